"""
Aggregation & grouping over provider-tagged rows.

Pure functions: the same input always produces the same output, including
ordering. Sums are Decimal; conversion to float happens at the response
boundary.
"""
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.models.cloud import CloudProvider

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


class GroupBy(str, Enum):
    DATE = "date"
    SERVICE = "service"
    PROVIDER = "provider"
    PROVIDER_SERVICE = "provider+service"
    ACCOUNT = "account"
    RESOURCE_TYPE = "resourceType"
    RECOMMENDATION_TYPE = "recommendationType"
    STATUS = "status"
    IMPACT = "impact"
    SEVERITY = "severity"
    CATEGORY = "category"


# Grouping axis -> record fields forming the group key
GROUP_KEY_FIELDS: Dict[GroupBy, Tuple[str, ...]] = {
    GroupBy.DATE: ("date",),
    GroupBy.SERVICE: ("service",),
    GroupBy.PROVIDER: ("provider",),
    GroupBy.PROVIDER_SERVICE: ("provider", "service"),
    GroupBy.ACCOUNT: ("provider", "account_id"),
    GroupBy.RESOURCE_TYPE: ("resource_type",),
    GroupBy.RECOMMENDATION_TYPE: ("recommendation_type",),
    GroupBy.STATUS: ("status",),
    GroupBy.IMPACT: ("impact",),
    GroupBy.SEVERITY: ("severity",),
    GroupBy.CATEGORY: ("category",),
}


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first so floats don't drag binary noise into the sum
    return Decimal(str(value))


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _sort_token(value: Any) -> Tuple[int, str]:
    # None sorts last; everything else compares by its text form
    return (1, "") if value is None else (0, str(value))


def aggregate(
    records: Iterable[Any],
    group_by: GroupBy | str,
    value_field: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Group records and sum `value_field` per group.

    Each row holds the key fields, `total` (Decimal, zero without a value
    field) and `count`. Rows order by total descending, then count
    descending, then key ascending. DATE orders ascending by date.
    """
    axis = GroupBy(group_by)
    key_fields = GROUP_KEY_FIELDS[axis]

    totals: "OrderedDict[Tuple[Any, ...], Decimal]" = OrderedDict()
    counts: Dict[Tuple[Any, ...], int] = {}

    for record in records:
        key = tuple(_field(record, f) for f in key_fields)
        if axis is GroupBy.DATE and key[0] is not None:
            key = (_as_date(key[0]),)
        value = _as_decimal(_field(record, value_field)) if value_field else ZERO
        totals[key] = totals.get(key, ZERO) + value
        counts[key] = counts.get(key, 0) + 1

    rows = [
        {**dict(zip(key_fields, key)), "total": total, "count": counts[key]}
        for key, total in totals.items()
    ]

    if axis is GroupBy.DATE:
        rows.sort(key=lambda r: _sort_token(r["date"]))
    else:
        rows.sort(key=lambda r: (
            -r["total"],
            -r["count"],
            tuple(_sort_token(r[f]) for f in key_fields),
        ))
    return rows


def date_range(start: date, end: date) -> List[date]:
    """Every calendar day from start to end, inclusive."""
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def pivot_by_date(
    records: Iterable[Any],
    start: date,
    end: date,
    value_field: str = "cost",
) -> List[Dict[str, Any]]:
    """
    One row per day in [start, end] with a column per provider.

    Days and providers without data are 0, so a chart gets exactly one
    point per day per provider.
    """
    providers = [p.value for p in CloudProvider]
    rows: "OrderedDict[date, Dict[str, Any]]" = OrderedDict(
        (day, {"date": day.isoformat(), **{p: ZERO for p in providers}})
        for day in date_range(start, end)
    )

    for record in records:
        day = _as_date(_field(record, "date"))
        provider = _field(record, "provider")
        row = rows.get(day)
        if row is None or provider not in providers:
            continue
        row[provider] += _as_decimal(_field(record, value_field))

    return list(rows.values())


def round_money(value: Decimal) -> Decimal:
    return _as_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percentage(part: Any, whole: Any) -> Decimal:
    """
    Share of `whole`, rounded half-up to two decimals.

    Rounded shares across a breakdown may not add up to exactly 100.00.
    """
    whole = _as_decimal(whole)
    if whole <= 0:
        return ZERO.quantize(TWO_PLACES)
    return (_as_decimal(part) / whole * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def with_percentages(rows: List[Dict[str, Any]], total: Any, value_key: str = "total") -> List[Dict[str, Any]]:
    return [{**row, "percentage": percentage(row[value_key], total)} for row in rows]


def sum_field(records: Iterable[Any], value_field: str) -> Decimal:
    total = ZERO
    for record in records:
        total += _as_decimal(_field(record, value_field))
    return total
