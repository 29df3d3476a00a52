"""
Cost reporting across every provider account a user owns.

Each call follows the same pipeline: resolve owned accounts, build the
scope filter, load the scoped cost rows, then aggregate in memory.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cloud import CostRecord
from app.modules.reporting.domain.accounts import (
    PROVIDER_ADAPTERS,
    OwnedAccounts,
    resolve_owned_account_ids,
)
from app.modules.reporting.domain.account_service import AccountService
from app.modules.reporting.domain.aggregator import (
    GroupBy,
    aggregate,
    pivot_by_date,
    sum_field,
    with_percentages,
    round_money,
)
from app.modules.reporting.domain.anomaly import score
from app.modules.reporting.domain.forecast import forecast, month_window
from app.modules.reporting.domain.scope import ScopeFilter, build_scope_filter
from app.models.cloud import CloudProvider
from app.shared.core.config import get_settings
from app.shared.core.exceptions import BadRequestError

logger = structlog.get_logger()

TOTAL_COST_GROUPINGS = {
    None: GroupBy.DATE,
    "date": GroupBy.DATE,
    "provider": GroupBy.PROVIDER,
    "service": GroupBy.PROVIDER_SERVICE,
}

ACCOUNT_COST_GROUPINGS = {
    "service": GroupBy.SERVICE,
    "date": GroupBy.DATE,
}


def resolve_date_range(
    start_date: Optional[date],
    end_date: Optional[date],
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """Fill in the default lookback window and reject inverted or oversized ranges."""
    settings = get_settings()
    today = today or date.today()
    end = end_date or today
    start = start_date or end - timedelta(days=settings.DEFAULT_LOOKBACK_DAYS)

    if start > end:
        raise BadRequestError("start_date must be on or before end_date", code="invalid_date_range")
    if (end - start).days + 1 > settings.MAX_DATE_RANGE_DAYS:
        raise BadRequestError(
            f"Date range cannot exceed {settings.MAX_DATE_RANGE_DAYS} days",
            code="date_range_too_large",
        )
    return start, end


class CostReportingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _scope(self, user_id: UUID, provider: Optional[CloudProvider] = None) -> ScopeFilter:
        owned = await resolve_owned_account_ids(self.db, user_id)
        return build_scope_filter(owned, provider)

    async def _load_costs(self, scope: ScopeFilter, start: date, end: date) -> Tuple[List[Any], bool]:
        """Scoped cost rows in [start, end]. Returns (rows, truncated)."""
        if scope.is_empty:
            return [], False

        limit = get_settings().MAX_AGGREGATION_ROWS
        stmt = (
            select(
                CostRecord.provider,
                CostRecord.account_id,
                CostRecord.date,
                CostRecord.service,
                CostRecord.cost,
            )
            .where(
                scope.for_model(CostRecord),
                CostRecord.date >= start,
                CostRecord.date <= end,
            )
            .order_by(CostRecord.date, CostRecord.id)
            .limit(limit + 1)
        )
        result = await self.db.execute(stmt)
        rows = list(result.mappings().all())

        truncated = len(rows) > limit
        if truncated:
            logger.warning("cost_aggregation_truncated", limit=limit, start=str(start), end=str(end))
            rows = rows[:limit]
        return rows, truncated

    async def get_total_cost(
        self,
        user_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        group_by: Optional[str] = None,
        provider: Optional[CloudProvider] = None,
    ) -> Dict[str, Any]:
        """
        Total cost over a range, plus a breakdown shaped by `group_by`:
        - unset/"date": dense daily pivot with aws/azure/gcp columns
        - "provider": {provider, cost, percentage}
        - "service": {provider, service, cost}
        """
        if group_by not in TOTAL_COST_GROUPINGS:
            raise BadRequestError(
                f"Unsupported group_by: {group_by}",
                code="invalid_group_by",
                details={"allowed": ["provider", "service", "date"]},
            )
        start, end = resolve_date_range(start_date, end_date)
        scope = await self._scope(user_id, provider)
        rows, truncated = await self._load_costs(scope, start, end)

        total = sum_field(rows, "cost")
        axis = TOTAL_COST_GROUPINGS[group_by]

        if axis is GroupBy.DATE:
            data = [
                {"date": r["date"], **{p.value: float(r[p.value]) for p in CloudProvider}}
                for r in pivot_by_date(rows, start, end)
            ]
        elif axis is GroupBy.PROVIDER:
            data = [
                {"provider": r["provider"], "cost": float(r["total"]), "percentage": float(r["percentage"])}
                for r in with_percentages(aggregate(rows, axis, "cost"), total)
            ]
        else:
            data = [
                {"provider": r["provider"], "service": r["service"], "cost": float(r["total"])}
                for r in aggregate(rows, axis, "cost")
            ]

        logger.info(
            "cost_total_computed",
            user_id=str(user_id),
            group_by=axis.value,
            record_count=len(rows),
            truncated=truncated,
        )
        return {
            "total_cost": float(round_money(total)),
            "start_date": start,
            "end_date": end,
            "group_by": group_by or GroupBy.DATE.value,
            "data": data,
            "truncated": truncated,
        }

    async def get_forecast(self, user_id: UUID, today: Optional[date] = None) -> Dict[str, Any]:
        """Month-end projection from month-to-date spend against last month."""
        today = today or date.today()
        window = month_window(today)
        scope = await self._scope(user_id)

        current_rows, current_truncated = await self._load_costs(scope, window["month_start"], today)
        previous_rows, previous_truncated = await self._load_costs(
            scope, window["previous_month_start"], window["previous_month_end"]
        )
        current = sum_field(current_rows, "cost")
        previous = sum_field(previous_rows, "cost")

        result = forecast(current, window["days_passed"], window["days_in_month"], previous)
        return {
            "current_cost": float(round_money(current)),
            "previous_month_cost": float(round_money(previous)),
            **{k: float(v) for k, v in result.to_dict().items()},
            "days_in_month": window["days_in_month"],
            "days_passed": window["days_passed"],
            "days_remaining": window["days_remaining"],
            "truncated": current_truncated or previous_truncated,
        }

    async def get_cost_by_account(
        self,
        user_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """
        One row per owned account on every provider, including accounts
        without spend, sorted by cost descending.
        """
        start, end = resolve_date_range(start_date, end_date)
        scope = await self._scope(user_id)
        rows, truncated = await self._load_costs(scope, start, end)
        if truncated:
            # Per-account totals from a partial range would misrank accounts
            raise BadRequestError(
                "Too many cost records in range; narrow the date range",
                code="too_many_records",
                details={"limit": get_settings().MAX_AGGREGATION_ROWS},
            )

        totals = {
            (r["provider"], r["account_id"]): r["total"]
            for r in aggregate(rows, GroupBy.ACCOUNT, "cost")
        }

        accounts = []
        for provider, adapter in PROVIDER_ADAPTERS.items():
            for account in await adapter.list_accounts(self.db, user_id):
                cost = totals.get((provider.value, account.id), Decimal("0"))
                accounts.append({
                    "id": str(account.id),
                    "name": account.name,
                    "provider": provider.value,
                    "account_id": account.external_id,
                    "cost": cost,
                })

        # Ties break on provider, then name
        accounts.sort(key=lambda a: (-a["cost"], a["provider"], a["name"], a["id"]))
        return [{**a, "cost": float(round_money(a["cost"]))} for a in accounts]

    async def get_account_costs(
        self,
        user_id: UUID,
        account_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        group_by: str = "service",
        provider: Optional[CloudProvider] = None,
    ) -> Dict[str, Any]:
        """Spend of one owned account, by service (cost descending) or by date (ascending)."""
        if group_by not in ACCOUNT_COST_GROUPINGS:
            raise BadRequestError(
                f"Unsupported group_by: {group_by}",
                code="invalid_group_by",
                details={"allowed": sorted(ACCOUNT_COST_GROUPINGS)},
            )
        start, end = resolve_date_range(start_date, end_date)
        account = await AccountService(self.db).get_account(user_id, account_id, provider)

        owned = OwnedAccounts()
        owned.for_provider(account.provider).append(account.id)
        rows, truncated = await self._load_costs(build_scope_filter(owned), start, end)

        axis = ACCOUNT_COST_GROUPINGS[group_by]
        data = [
            {group_by: g[group_by], "cost": float(round_money(g["total"]))}
            for g in aggregate(rows, axis, "cost")
        ]

        return {
            "id": str(account.id),
            "provider": account.provider,
            "start_date": start,
            "end_date": end,
            "group_by": group_by,
            "total_cost": float(round_money(sum_field(rows, "cost"))),
            "data": data,
            "truncated": truncated,
        }

    async def get_cost_anomalies(
        self,
        user_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        threshold: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Score daily totals (all providers combined) and flag outlier days."""
        threshold = threshold if threshold is not None else get_settings().ANOMALY_ZSCORE_THRESHOLD
        start, end = resolve_date_range(start_date, end_date)
        scope = await self._scope(user_id)
        rows, truncated = await self._load_costs(scope, start, end)

        daily = [
            {"date": r["date"], "cost": sum(r[p.value] for p in CloudProvider)}
            for r in pivot_by_date(rows, start, end)
        ]
        if not rows:
            # No spend at all is not a flat-zero signal worth scoring
            daily = []

        scored = score([d["cost"] for d in daily], threshold)
        series = [
            {"date": daily[p.index]["date"], "cost": float(daily[p.index]["cost"]), "z_score": p.z_score, "is_anomaly": p.is_anomaly}
            for p in scored
        ]

        anomalies = [s for s in series if s["is_anomaly"]]
        if anomalies:
            logger.info("cost_anomalies_detected", user_id=str(user_id), count=len(anomalies))

        return {
            "start_date": start,
            "end_date": end,
            "threshold": threshold,
            "series": series,
            "anomalies": anomalies,
            "truncated": truncated,
        }
