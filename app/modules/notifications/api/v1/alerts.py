from typing import Annotated, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.auth import CurrentUser, requires_role
from app.shared.db.session import get_db
from app.modules.notifications.domain.alerts import AlertService
from app.schemas.alerts import AlertResponse, AlertStatusUpdate

router = APIRouter(tags=["Alerts"])


@router.get("")
async def list_alerts(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    status: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    result = await AlertService(db).list_alerts(user.id, status, severity, category, limit, offset)
    return {**result, "alerts": [AlertResponse.model_validate(a) for a in result["alerts"]]}


@router.get("/summary")
async def get_alert_summary(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    return await AlertService(db).summary(user.id)


@router.post("/mark-all-read")
async def mark_all_read(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    updated = await AlertService(db).mark_all_read(user.id)
    return {"status": "ok", "updated": updated}


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    """Fetch an alert. Opening a new alert marks it read."""
    return AlertResponse.model_validate(await AlertService(db).get_alert(user.id, alert_id))


@router.patch("/{alert_id}/status", response_model=AlertResponse)
async def update_alert_status(
    alert_id: UUID,
    body: AlertStatusUpdate,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    alert = await AlertService(db).update_status(user.id, alert_id, body.status)
    return AlertResponse.model_validate(alert)


@router.delete("/{alert_id}")
async def delete_alert(
    alert_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    await AlertService(db).delete_alert(user.id, alert_id)
    return {"status": "deleted", "id": str(alert_id)}
