from datetime import date
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.auth import CurrentUser, requires_role
from app.shared.db.session import get_db
from app.modules.reporting.domain.accounts import parse_provider
from app.modules.reporting.domain.service import CostReportingService
from app.schemas.costs import TotalCostResponse, ForecastResponse, AccountCostRow, AnomalyResponse

router = APIRouter(tags=["Costs"])


@router.get("", response_model=TotalCostResponse)
async def get_total_cost(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_by: Optional[str] = Query(None, description="provider, service or date"),
    provider: Optional[str] = Query(None),
):
    """Total cost for the range (default: last 30 days), broken down by `group_by`."""
    return await CostReportingService(db).get_total_cost(
        user.id, start_date, end_date, group_by, parse_provider(provider)
    )


@router.get("/forecast", response_model=ForecastResponse)
async def get_forecast(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
):
    """Month-end run-rate projection."""
    return await CostReportingService(db).get_forecast(user.id)


@router.get("/by-account", response_model=List[AccountCostRow])
async def get_cost_by_account(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    return await CostReportingService(db).get_cost_by_account(user.id, start_date, end_date)


@router.get("/anomalies", response_model=AnomalyResponse)
async def get_cost_anomalies(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    threshold: Optional[float] = Query(None, gt=0),
):
    """Daily totals scored by z-score; days at or above the threshold are flagged."""
    return await CostReportingService(db).get_cost_anomalies(user.id, start_date, end_date, threshold)
