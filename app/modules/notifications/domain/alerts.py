"""
Alert inbox operations.

Alerts carry their owner's user_id directly, so they are scoped with a
plain equality filter rather than the provider scope filter.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.alert import Alert, AlertStatus, AlertSeverity, AlertCategory
from app.modules.reporting.domain.aggregator import aggregate, GroupBy
from app.shared.core.exceptions import BadRequestError, ResourceNotFoundError

logger = structlog.get_logger()

# Statuses a user may set by hand; "new" is only ever the initial state
SETTABLE_STATUSES = {AlertStatus.READ.value, AlertStatus.ACKNOWLEDGED.value, AlertStatus.RESOLVED.value}


def _validate_choice(value: Optional[str], enum_cls, label: str) -> Optional[str]:
    if value is None:
        return None
    allowed = {member.value for member in enum_cls}
    if value not in allowed:
        raise BadRequestError(
            f"Invalid {label}: {value}",
            code=f"invalid_{label}",
            details={"allowed": sorted(allowed)},
        )
    return value


class AlertService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def create_alert(
        self,
        user_id: UUID,
        title: str,
        message: str,
        severity: str = AlertSeverity.INFO.value,
        category: str = AlertCategory.OTHER.value,
        provider: Optional[str] = None,
        account_id: Optional[UUID] = None,
        resource_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Alert:
        """Stage a new alert in the current session. The caller commits."""
        alert = Alert(
            user_id=user_id,
            title=title,
            message=message,
            severity=_validate_choice(severity, AlertSeverity, "severity"),
            category=_validate_choice(category, AlertCategory, "category"),
            status=AlertStatus.NEW.value,
            provider=provider,
            account_id=account_id,
            resource_id=resource_id,
            extra_metadata=metadata or {},
        )
        self.db.add(alert)
        return alert

    async def list_alerts(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        conditions = [Alert.user_id == user_id]
        if _validate_choice(status, AlertStatus, "status"):
            conditions.append(Alert.status == status)
        if _validate_choice(severity, AlertSeverity, "severity"):
            conditions.append(Alert.severity == severity)
        if _validate_choice(category, AlertCategory, "category"):
            conditions.append(Alert.category == category)

        total = await self.db.scalar(select(func.count(Alert.id)).where(*conditions))
        unread = await self.db.scalar(
            select(func.count(Alert.id)).where(Alert.user_id == user_id, Alert.status == AlertStatus.NEW.value)
        )
        result = await self.db.execute(
            select(Alert)
            .where(*conditions)
            .order_by(Alert.created_at.desc(), Alert.id)
            .limit(limit)
            .offset(offset)
        )
        return {
            "alerts": list(result.scalars().all()),
            "total_count": total or 0,
            "unread_count": unread or 0,
            "limit": limit,
            "offset": offset,
        }

    async def _get_owned(self, user_id: UUID, alert_id: UUID) -> Alert:
        alert = await self.db.scalar(select(Alert).where(Alert.id == alert_id, Alert.user_id == user_id))
        if alert is None:
            raise ResourceNotFoundError("Alert not found")
        return alert

    async def get_alert(self, user_id: UUID, alert_id: UUID) -> Alert:
        """Fetch one alert; opening a new alert marks it read."""
        alert = await self._get_owned(user_id, alert_id)
        if alert.status == AlertStatus.NEW.value:
            alert.status = AlertStatus.READ.value
            await self.db.commit()
        return alert

    async def update_status(self, user_id: UUID, alert_id: UUID, status: str) -> Alert:
        if status not in SETTABLE_STATUSES:
            raise BadRequestError(
                f"Invalid alert status: {status}",
                code="invalid_status",
                details={"allowed": sorted(SETTABLE_STATUSES)},
            )
        alert = await self._get_owned(user_id, alert_id)
        alert.status = status
        if status == AlertStatus.RESOLVED.value:
            alert.resolved_at = datetime.now(timezone.utc)
        await self.db.commit()

        logger.info("alert_status_changed", alert_id=str(alert_id), status=status)
        return alert

    async def mark_all_read(self, user_id: UUID) -> int:
        result = await self.db.execute(
            update(Alert)
            .where(Alert.user_id == user_id, Alert.status == AlertStatus.NEW.value)
            .values(status=AlertStatus.READ.value, updated_at=datetime.now(timezone.utc))
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete_alert(self, user_id: UUID, alert_id: UUID) -> None:
        await self._get_owned(user_id, alert_id)
        await self.db.execute(delete(Alert).where(Alert.id == alert_id, Alert.user_id == user_id))
        await self.db.commit()
        logger.info("alert_deleted", alert_id=str(alert_id))

    async def summary(self, user_id: UUID) -> Dict[str, Any]:
        """Counts by status, severity and category. Every enum value is present."""
        result = await self.db.execute(
            select(Alert.status, Alert.severity, Alert.category).where(Alert.user_id == user_id)
        )
        rows = [row._asdict() for row in result.all()]

        def counts(axis: GroupBy, enum_cls) -> Dict[str, int]:
            out = {member.value: 0 for member in enum_cls}
            for group in aggregate(rows, axis):
                out[group[axis.value]] = group["count"]
            return out

        return {
            "total": len(rows),
            "by_status": counts(GroupBy.STATUS, AlertStatus),
            "by_severity": counts(GroupBy.SEVERITY, AlertSeverity),
            "by_category": counts(GroupBy.CATEGORY, AlertCategory),
        }
