from typing import Annotated, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.auth import CurrentUser, requires_role
from app.shared.db.session import get_db
from app.modules.notifications.domain.events import EventBus, get_event_bus
from app.modules.optimization.domain.recommendations import RecommendationService
from app.modules.reporting.domain.accounts import parse_provider
from app.schemas.recommendations import RecommendationResponse, RecommendationStatusUpdate
from app.schemas.resources import ResourceResponse

router = APIRouter(tags=["Recommendations"])


@router.get("")
async def list_recommendations(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    status: Optional[str] = Query(None),
    impact: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
    type: Optional[str] = Query(None, description="Recommendation type"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    result = await RecommendationService(db).list_recommendations(
        user.id, status, impact, parse_provider(provider), type, limit, offset
    )
    return {
        **result,
        "recommendations": [RecommendationResponse.model_validate(r) for r in result["recommendations"]],
    }


@router.get("/summary")
async def get_summary(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    return await RecommendationService(db).summary(user.id)


@router.get("/{recommendation_id}")
async def get_recommendation(
    recommendation_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    result = await RecommendationService(db).get_recommendation(user.id, recommendation_id)
    resource = result["resource"]
    return {
        "recommendation": RecommendationResponse.model_validate(result["recommendation"]),
        "resource": ResourceResponse.model_validate(resource) if resource else None,
    }


@router.patch("/{recommendation_id}/status", response_model=RecommendationResponse)
async def update_recommendation_status(
    recommendation_id: UUID,
    body: RecommendationStatusUpdate,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
):
    """
    Move a recommendation through its lifecycle.
    Invalid transitions return 400; a concurrent change returns 409.
    """
    rec = await RecommendationService(db, events).update_status(
        user.id, recommendation_id, body.status.value, body.notes
    )
    return RecommendationResponse.model_validate(rec)
