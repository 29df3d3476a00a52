"""
Recommendation Service

Lists, summarizes and moves recommendations through their lifecycle:

    open -> in_progress -> implemented | dismissed
    open -> dismissed
    open | in_progress -> expired

Each transition appends {previous_status, status, timestamp, user_id} to
metadata["status_history"]. The write is one UPDATE guarded on the status
that was read, so two concurrent transitions cannot both land.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.alert import AlertCategory, AlertSeverity
from app.models.cloud import CloudProvider, Resource
from app.models.recommendation import (
    Recommendation,
    RecommendationImpact,
    RecommendationStatus,
    RecommendationType,
)
from app.modules.notifications.domain.alerts import AlertService
from app.modules.notifications.domain.events import EventBus, RecommendationImplemented, event_bus
from app.modules.reporting.domain.accounts import resolve_owned_account_ids
from app.modules.reporting.domain.aggregator import GroupBy, aggregate, sum_field, round_money
from app.modules.reporting.domain.scope import ScopeFilter, build_scope_filter
from app.shared.core.exceptions import BadRequestError, ConflictError, ResourceNotFoundError

logger = structlog.get_logger()

ALLOWED_TRANSITIONS: Dict[RecommendationStatus, frozenset] = {
    RecommendationStatus.OPEN: frozenset({
        RecommendationStatus.IN_PROGRESS,
        RecommendationStatus.DISMISSED,
        RecommendationStatus.EXPIRED,
    }),
    RecommendationStatus.IN_PROGRESS: frozenset({
        RecommendationStatus.IMPLEMENTED,
        RecommendationStatus.DISMISSED,
        RecommendationStatus.EXPIRED,
    }),
}


def can_transition(current: str, target: str) -> bool:
    try:
        current_status = RecommendationStatus(current)
        target_status = RecommendationStatus(target)
    except ValueError:
        return False
    return target_status in ALLOWED_TRANSITIONS.get(current_status, frozenset())


def append_history(
    metadata: Optional[Dict[str, Any]],
    previous_status: str,
    status: str,
    user_id: UUID,
    timestamp: datetime,
) -> Dict[str, Any]:
    """A copy of `metadata` with one more history entry. The input is left untouched."""
    metadata = dict(metadata or {})
    history = list(metadata.get("status_history") or [])
    history.append({
        "previous_status": previous_status,
        "status": status,
        "timestamp": timestamp.isoformat(),
        "user_id": str(user_id),
    })
    metadata["status_history"] = history
    return metadata


def _choice(value: Optional[str], enum_cls, label: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        raise BadRequestError(f"Invalid {label}: {value}", code=f"invalid_{label}")


class RecommendationService:
    def __init__(self, db: AsyncSession, events: EventBus = event_bus):
        self.db = db
        self.events = events

    async def _scope(self, user_id: UUID, provider: Optional[CloudProvider] = None) -> ScopeFilter:
        owned = await resolve_owned_account_ids(self.db, user_id)
        return build_scope_filter(owned, provider)

    async def list_recommendations(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        impact: Optional[str] = None,
        provider: Optional[CloudProvider] = None,
        recommendation_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        status = _choice(status, RecommendationStatus, "status")
        impact = _choice(impact, RecommendationImpact, "impact")
        recommendation_type = _choice(recommendation_type, RecommendationType, "type")

        empty = {
            "total_count": 0,
            "total_savings": 0.0,
            "recommendations": [],
            "by_type": [],
            "by_impact": [],
            "limit": limit,
            "offset": offset,
        }
        scope = await self._scope(user_id, provider)
        if scope.is_empty:
            return empty

        conditions = [scope.for_model(Recommendation)]
        if status:
            conditions.append(Recommendation.status == status)
        if impact:
            conditions.append(Recommendation.impact == impact)
        if recommendation_type:
            conditions.append(Recommendation.recommendation_type == recommendation_type)

        # Breakdowns cover the whole filtered set, not just the page
        facts = await self.db.execute(
            select(
                Recommendation.recommendation_type,
                Recommendation.impact,
                Recommendation.potential_savings,
            ).where(*conditions)
        )
        fact_rows = facts.mappings().all()

        page = await self.db.execute(
            select(Recommendation)
            .where(*conditions)
            .order_by(Recommendation.potential_savings.desc(), Recommendation.created_at.desc(), Recommendation.id)
            .limit(limit)
            .offset(offset)
        )

        def breakdown(axis: GroupBy, key: str) -> List[Dict[str, Any]]:
            return [
                {key: g[key], "count": g["count"], "potential_savings": float(round_money(g["total"]))}
                for g in aggregate(fact_rows, axis, "potential_savings")
            ]

        return {
            **empty,
            "total_count": len(fact_rows),
            "total_savings": float(round_money(sum_field(fact_rows, "potential_savings"))),
            "recommendations": list(page.scalars().all()),
            "by_type": breakdown(GroupBy.RECOMMENDATION_TYPE, "recommendation_type"),
            "by_impact": breakdown(GroupBy.IMPACT, "impact"),
        }

    async def _get_owned(self, user_id: UUID, recommendation_id: UUID) -> Recommendation:
        scope = await self._scope(user_id)
        if scope.is_empty:
            raise ResourceNotFoundError("Recommendation not found")
        rec = await self.db.scalar(
            select(Recommendation).where(
                Recommendation.id == recommendation_id,
                scope.for_model(Recommendation),
            )
        )
        if rec is None:
            raise ResourceNotFoundError("Recommendation not found")
        return rec

    async def get_recommendation(self, user_id: UUID, recommendation_id: UUID) -> Dict[str, Any]:
        """The recommendation and the resource it targets, when that resource is known."""
        rec = await self._get_owned(user_id, recommendation_id)
        resource = None
        if rec.resource_id:
            resource = await self.db.scalar(
                select(Resource).where(
                    Resource.provider == rec.provider,
                    Resource.account_id == rec.account_id,
                    Resource.resource_id == rec.resource_id,
                )
            )
        return {"recommendation": rec, "resource": resource}

    async def update_status(
        self,
        user_id: UUID,
        recommendation_id: UUID,
        status: str,
        notes: Optional[str] = None,
    ) -> Recommendation:
        """
        Move a recommendation to `status`.

        Raises:
            ResourceNotFoundError: absent or not owned
            BadRequestError: the transition is not allowed
            ConflictError: the status changed since it was read
        """
        rec = await self._get_owned(user_id, recommendation_id)
        # Plain values: a rollback below expires `rec`
        rec_id = rec.id
        previous_status = rec.status
        target = _choice(status, RecommendationStatus, "status")

        if not can_transition(previous_status, target):
            raise BadRequestError(
                f"Cannot move recommendation from {previous_status} to {target}",
                code="invalid_status_transition",
                details={"from": previous_status, "to": target},
            )

        now = datetime.now(timezone.utc)
        metadata = append_history(rec.extra_metadata, previous_status, target, user_id, now)
        if notes is not None:
            metadata["notes"] = notes

        result = await self.db.execute(
            update(Recommendation)
            .where(
                Recommendation.id == rec_id,
                Recommendation.status == previous_status,
            )
            .values({
                Recommendation.status: target,
                Recommendation.extra_metadata: metadata,
                Recommendation.updated_at: now,
            })
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning(
                "recommendation_status_conflict",
                recommendation_id=str(rec_id),
                expected_status=previous_status,
                requested_status=target,
            )
            raise ConflictError(
                "Recommendation status changed concurrently; reload and retry",
                details={"expected_status": previous_status},
            )

        if target == RecommendationStatus.IMPLEMENTED.value:
            AlertService(self.db).create_alert(
                user_id=user_id,
                title="Recommendation Implemented",
                message=f"{rec.title} was implemented. Estimated monthly savings: "
                        f"{rec.currency} {round_money(rec.potential_savings)}",
                severity=AlertSeverity.INFO.value,
                category=AlertCategory.COST.value,
                provider=rec.provider,
                account_id=rec.account_id,
                resource_id=rec.resource_id,
                metadata={"recommendation_id": str(rec.id)},
            )

        await self.db.commit()
        await self.db.refresh(rec)

        logger.info(
            "recommendation_status_changed",
            recommendation_id=str(rec.id),
            previous_status=previous_status,
            status=target,
            user_id=str(user_id),
        )

        if target == RecommendationStatus.IMPLEMENTED.value:
            self.events.publish(RecommendationImplemented(
                user_id=user_id,
                payload={
                    "recommendation_id": str(rec.id),
                    "title": rec.title,
                    "provider": rec.provider,
                    "potential_savings": float(rec.potential_savings or Decimal("0")),
                },
            ))
        return rec

    async def summary(self, user_id: UUID) -> Dict[str, Any]:
        """Counts and savings overall, by type, and by provider (all providers listed)."""
        by_provider = {
            p.value: {"count": 0, "potential_savings": 0.0} for p in CloudProvider
        }
        result = {
            "total_count": 0,
            "open_count": 0,
            "implemented_count": 0,
            "dismissed_count": 0,
            "total_potential_savings": 0.0,
            "implemented_savings": 0.0,
            "by_type": [],
            "by_provider": by_provider,
        }
        scope = await self._scope(user_id)
        if scope.is_empty:
            return result

        rows = (await self.db.execute(
            select(
                Recommendation.provider,
                Recommendation.status,
                Recommendation.recommendation_type,
                Recommendation.potential_savings,
            ).where(scope.for_model(Recommendation))
        )).mappings().all()

        status_counts = {g["status"]: g for g in aggregate(rows, GroupBy.STATUS, "potential_savings")}

        def count_of(status: RecommendationStatus) -> int:
            return status_counts[status.value]["count"] if status.value in status_counts else 0

        implemented = status_counts.get(RecommendationStatus.IMPLEMENTED.value)
        for g in aggregate(rows, GroupBy.PROVIDER, "potential_savings"):
            by_provider[g["provider"]] = {"count": g["count"], "potential_savings": float(round_money(g["total"]))}

        result.update({
            "total_count": len(rows),
            "open_count": count_of(RecommendationStatus.OPEN),
            "implemented_count": count_of(RecommendationStatus.IMPLEMENTED),
            "dismissed_count": count_of(RecommendationStatus.DISMISSED),
            "total_potential_savings": float(round_money(sum_field(rows, "potential_savings"))),
            "implemented_savings": float(round_money(implemented["total"])) if implemented else 0.0,
            "by_type": [
                {"recommendation_type": g["recommendation_type"], "count": g["count"], "potential_savings": float(round_money(g["total"]))}
                for g in aggregate(rows, GroupBy.RECOMMENDATION_TYPE, "potential_savings")
            ],
        })
        return result
