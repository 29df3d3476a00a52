"""
Month-end run-rate forecast.

projected = month_to_date + daily_average * remaining_days, where
daily_average = month_to_date / day_of_month. This is a plain linear
projection with no seasonality or trend term.
"""
import calendar
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict

from app.modules.reporting.domain.aggregator import percentage, round_money, ZERO


@dataclass(frozen=True)
class ForecastResult:
    projected_cost: Decimal
    daily_average: Decimal
    change_amount: Decimal
    change_percentage: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def forecast(
    month_to_date_cost: Any,
    day_of_month: int,
    days_in_month: int,
    previous_month_cost: Any,
) -> ForecastResult:
    """
    Project month-end spend from partial-month actuals.

    Guards: day_of_month <= 0 gives a zero daily average, and a previous
    month at or below zero gives a zero change percentage.
    """
    mtd = Decimal(str(month_to_date_cost or 0))
    previous = Decimal(str(previous_month_cost or 0))

    daily_average = mtd / day_of_month if day_of_month > 0 else ZERO
    remaining = max(days_in_month - day_of_month, 0)
    projected = mtd + daily_average * remaining
    change_amount = projected - previous

    return ForecastResult(
        projected_cost=round_money(projected),
        daily_average=round_money(daily_average),
        change_amount=round_money(change_amount),
        # percentage() already returns 0.00 when previous <= 0
        change_percentage=percentage(change_amount, previous),
    )


def month_window(today: date) -> Dict[str, date | int]:
    """Calendar facts the forecast endpoint needs for `today`."""
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    month_start = today.replace(day=1)
    prev_month_end = month_start - timedelta(days=1)
    return {
        "month_start": month_start,
        "previous_month_start": prev_month_end.replace(day=1),
        "previous_month_end": prev_month_end,
        "days_in_month": days_in_month,
        "days_passed": today.day,
        "days_remaining": days_in_month - today.day,
    }
