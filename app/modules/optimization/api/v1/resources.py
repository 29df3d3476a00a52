from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.auth import CurrentUser, requires_role
from app.shared.db.session import get_db
from app.modules.optimization.domain.resources import ResourceService
from app.modules.reporting.domain.accounts import parse_provider
from app.schemas.resources import ResourceResponse, TagUpdate
from app.schemas.recommendations import RecommendationResponse

router = APIRouter(tags=["Resources"])


@router.get("")
async def list_resources(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    provider: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    region: Optional[str] = Query(None),
    tag: Optional[str] = Query(None, description="Tag filter as key=value"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    """List resources on the user's accounts. `provider` narrows, it never widens."""
    result = await ResourceService(db).list_resources(
        user.id, parse_provider(provider), resource_type, status, region, tag, limit, offset
    )
    return {**result, "resources": [ResourceResponse.model_validate(r) for r in result["resources"]]}


@router.get("/idle")
async def get_idle_resources(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    threshold: Optional[float] = Query(None, ge=0, le=100, description="Utilization percent"),
    provider: Optional[str] = Query(None),
):
    result = await ResourceService(db).get_idle_resources(user.id, threshold, parse_provider(provider))
    return {**result, "resources": [ResourceResponse.model_validate(r) for r in result["resources"]]}


@router.get("/utilization-anomalies")
async def get_utilization_anomalies(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    threshold: Optional[float] = Query(None, gt=0),
):
    return {"anomalies": await ResourceService(db).get_utilization_anomalies(user.id, threshold)}


@router.get("/count-by-type")
async def count_by_type(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    provider: Optional[str] = Query(None),
):
    return await ResourceService(db).count_by_type(user.id, parse_provider(provider))


@router.get("/{resource_id}")
async def get_resource(
    resource_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    result = await ResourceService(db).get_resource(user.id, resource_id)
    return {
        "resource": ResourceResponse.model_validate(result["resource"]),
        "recommendations": [RecommendationResponse.model_validate(r) for r in result["recommendations"]],
        "cost_records": result["cost_records"],
    }


@router.get("/{resource_id}/metrics")
async def get_resource_metrics(
    resource_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    metric: Optional[str] = Query(None, description="Metric name, e.g. CPUUtilization"),
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
):
    """Stored datapoints for one metric; the window defaults to the last 24 hours."""
    return await ResourceService(db).get_resource_metrics(user.id, resource_id, metric, start_time, end_time)


@router.get("/{resource_id}/tags")
async def get_resource_tags(
    resource_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    return {"tags": await ResourceService(db).get_tags(user.id, resource_id)}


@router.put("/{resource_id}/tags")
async def update_resource_tags(
    resource_id: UUID,
    body: TagUpdate,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    """Merge tags into the resource's existing tags."""
    return {"tags": await ResourceService(db).update_tags(user.id, resource_id, body.tags)}
