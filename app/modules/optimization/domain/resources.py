"""
Resource inventory queries.

Every query is scoped with the provider scope filter. An optional provider
narrowing only drops other providers' clauses, so it can never reach
accounts the user does not own.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cloud import CloudProvider, CostRecord, Resource
from app.models.recommendation import Recommendation
from app.modules.reporting.domain.accounts import resolve_owned_account_ids
from app.modules.reporting.domain.aggregator import GroupBy, aggregate, sum_field, round_money
from app.modules.reporting.domain.anomaly import detect_utilization_anomalies
from app.modules.reporting.domain.scope import ScopeFilter, build_scope_filter
from app.shared.core.config import get_settings
from app.shared.core.exceptions import BadRequestError, ResourceNotFoundError

logger = structlog.get_logger()

RUNNING_STATUS = "running"
RECENT_COST_RECORDS = 30
METRICS_DEFAULT_WINDOW = timedelta(hours=24)


def _as_utc(value: datetime) -> datetime:
    # Naive times are taken as UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _as_utc(value)
    if not value:
        return None
    try:
        return _as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


def parse_tag_filter(tag: Optional[str]) -> Optional[Tuple[str, str]]:
    """'key=value' -> (key, value). Anything else is a bad request."""
    if tag is None:
        return None
    key, sep, value = tag.partition("=")
    key = key.strip()
    if not sep or not key:
        raise BadRequestError(
            "Tag filter must look like key=value",
            code="invalid_tag_filter",
            details={"tag": tag},
        )
    return key, value.strip()


class ResourceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _scope(self, user_id: UUID, provider: Optional[CloudProvider] = None) -> ScopeFilter:
        owned = await resolve_owned_account_ids(self.db, user_id)
        return build_scope_filter(owned, provider)

    async def list_resources(
        self,
        user_id: UUID,
        provider: Optional[CloudProvider] = None,
        resource_type: Optional[str] = None,
        status: Optional[str] = None,
        region: Optional[str] = None,
        tag: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        tag_filter = parse_tag_filter(tag)
        scope = await self._scope(user_id, provider)
        if scope.is_empty:
            return {"resources": [], "total_count": 0, "limit": limit, "offset": offset}

        conditions = [scope.for_model(Resource)]
        if resource_type:
            conditions.append(Resource.resource_type == resource_type)
        if status:
            conditions.append(Resource.status == status)
        if region:
            conditions.append(Resource.region == region)
        if tag_filter:
            key, value = tag_filter
            conditions.append(Resource.tags[key].as_string() == value)

        total = await self.db.scalar(select(func.count(Resource.id)).where(*conditions))
        result = await self.db.execute(
            select(Resource)
            .where(*conditions)
            .order_by(Resource.cost_per_month.desc(), Resource.resource_id, Resource.id)
            .limit(limit)
            .offset(offset)
        )
        return {
            "resources": list(result.scalars().all()),
            "total_count": total or 0,
            "limit": limit,
            "offset": offset,
        }

    async def _get_owned(self, user_id: UUID, resource_id: UUID) -> Resource:
        scope = await self._scope(user_id)
        if scope.is_empty:
            raise ResourceNotFoundError("Resource not found")
        resource = await self.db.scalar(
            select(Resource).where(Resource.id == resource_id, scope.for_model(Resource))
        )
        if resource is None:
            raise ResourceNotFoundError("Resource not found")
        return resource

    async def get_resource(self, user_id: UUID, resource_id: UUID) -> Dict[str, Any]:
        """The resource with its recommendations and most recent cost records."""
        resource = await self._get_owned(user_id, resource_id)

        recommendations = await self.db.execute(
            select(Recommendation)
            .where(
                Recommendation.provider == resource.provider,
                Recommendation.account_id == resource.account_id,
                Recommendation.resource_id == resource.resource_id,
            )
            .order_by(Recommendation.potential_savings.desc(), Recommendation.id)
        )
        costs = await self.db.execute(
            select(CostRecord)
            .where(
                CostRecord.provider == resource.provider,
                CostRecord.account_id == resource.account_id,
                CostRecord.resource_id == resource.resource_id,
            )
            .order_by(CostRecord.date.desc(), CostRecord.id)
            .limit(RECENT_COST_RECORDS)
        )
        return {
            "resource": resource,
            "recommendations": list(recommendations.scalars().all()),
            "cost_records": [
                {
                    "date": c.date,
                    "service": c.service,
                    "cost": float(c.cost),
                    "currency": c.currency,
                    "usage_quantity": float(c.usage_quantity) if c.usage_quantity is not None else None,
                    "usage_unit": c.usage_unit,
                }
                for c in costs.scalars().all()
            ],
        }

    async def get_idle_resources(
        self,
        user_id: UUID,
        threshold: Optional[float] = None,
        provider: Optional[CloudProvider] = None,
    ) -> Dict[str, Any]:
        """Running resources under the utilization threshold, least utilized first."""
        threshold = threshold if threshold is not None else get_settings().IDLE_UTILIZATION_THRESHOLD
        scope = await self._scope(user_id, provider)
        if scope.is_empty:
            return {"resources": [], "count": 0, "potential_savings": 0.0, "threshold": threshold}

        result = await self.db.execute(
            select(Resource)
            .where(
                scope.for_model(Resource),
                Resource.status == RUNNING_STATUS,
                Resource.utilization.is_not(None),
                Resource.utilization < threshold,
            )
            .order_by(Resource.utilization.asc(), Resource.resource_id, Resource.id)
        )
        resources = list(result.scalars().all())
        savings = sum_field(resources, "cost_per_month")

        logger.info("idle_resources_found", user_id=str(user_id), count=len(resources), threshold=threshold)
        return {
            "resources": resources,
            "count": len(resources),
            "potential_savings": float(round_money(savings)),
            "threshold": threshold,
        }

    async def get_utilization_anomalies(self, user_id: UUID, threshold: Optional[float] = None) -> List[Dict[str, Any]]:
        """Resources whose utilization is an outlier among the user's fleet."""
        scope = await self._scope(user_id)
        if scope.is_empty:
            return []
        result = await self.db.execute(
            select(Resource.id, Resource.provider, Resource.resource_id, Resource.resource_type, Resource.utilization)
            .where(scope.for_model(Resource), Resource.utilization.is_not(None))
            .order_by(Resource.resource_id, Resource.id)
        )
        rows = [dict(row._mapping) for row in result.all()]
        return detect_utilization_anomalies(rows, threshold)

    async def count_by_type(self, user_id: UUID, provider: Optional[CloudProvider] = None) -> List[Dict[str, Any]]:
        """Resource count and monthly cost per type, most numerous first."""
        scope = await self._scope(user_id, provider)
        if scope.is_empty:
            return []
        result = await self.db.execute(
            select(Resource.resource_type, Resource.cost_per_month).where(scope.for_model(Resource))
        )
        groups = aggregate(result.mappings().all(), GroupBy.RESOURCE_TYPE, "cost_per_month")
        # Stable, so equal counts keep the higher-cost type first
        groups.sort(key=lambda g: -g["count"])
        return [
            {"resource_type": g["resource_type"], "count": g["count"], "total_cost": float(round_money(g["total"]))}
            for g in groups
        ]

    async def get_resource_metrics(
        self,
        user_id: UUID,
        resource_id: UUID,
        metric: Optional[str],
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Stored datapoints of one metric inside [start_time, end_time].

        The window defaults to the last 24 hours. Datapoints are
        {timestamp, value} entries under resource.metrics[metric]; entries
        without a parseable timestamp are skipped.
        """
        if not metric:
            raise BadRequestError("Metric name is required", code="missing_metric")
        end = _as_utc(end_time) if end_time else datetime.now(timezone.utc)
        start = _as_utc(start_time) if start_time else end - METRICS_DEFAULT_WINDOW
        if start > end:
            raise BadRequestError("start_time must be on or before end_time", code="invalid_time_range")

        resource = await self._get_owned(user_id, resource_id)
        datapoints = []
        for point in (resource.metrics or {}).get(metric) or []:
            timestamp = _parse_timestamp(point.get("timestamp")) if isinstance(point, dict) else None
            if timestamp is None or not start <= timestamp <= end:
                continue
            datapoints.append({"timestamp": timestamp, "value": point.get("value")})
        datapoints.sort(key=lambda p: p["timestamp"])

        return {
            "metric_name": metric,
            "start_time": start,
            "end_time": end,
            "datapoints": datapoints,
        }

    async def get_tags(self, user_id: UUID, resource_id: UUID) -> Dict[str, Any]:
        resource = await self._get_owned(user_id, resource_id)
        return dict(resource.tags or {})

    async def update_tags(self, user_id: UUID, resource_id: UUID, tags: Dict[str, str]) -> Dict[str, Any]:
        """Merge `tags` into the existing tags; existing keys are overwritten."""
        resource = await self._get_owned(user_id, resource_id)
        # New dict so the JSON column registers the change
        resource.tags = {**(resource.tags or {}), **tags}
        await self.db.commit()
        logger.info("resource_tags_updated", resource_id=str(resource_id), keys=sorted(tags))
        return dict(resource.tags)
