"""
Cost API Schemas
"""

from datetime import date
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field


class TotalCostResponse(BaseModel):
    total_cost: float
    start_date: date
    end_date: date
    group_by: Optional[str] = None
    data: List[Dict[str, Any]] = Field(default_factory=list)
    # Set when the row cap was hit and totals cover only part of the range
    truncated: bool = False


class ForecastResponse(BaseModel):
    current_cost: float
    previous_month_cost: float
    projected_cost: float
    daily_average: float
    change_amount: float
    change_percentage: float
    days_in_month: int
    days_passed: int
    days_remaining: int
    truncated: bool = False


class AccountCostRow(BaseModel):
    id: str
    name: str
    provider: str
    account_id: str
    cost: float


class AccountCostBreakdown(BaseModel):
    id: str
    provider: str
    start_date: date
    end_date: date
    group_by: str
    total_cost: float
    data: List[Dict[str, Any]]
    truncated: bool = False


class AnomalyResponse(BaseModel):
    start_date: date
    end_date: date
    threshold: float
    series: List[Dict[str, Any]]
    anomalies: List[Dict[str, Any]]
    truncated: bool = False
