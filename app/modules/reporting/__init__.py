from .domain.accounts import OwnedAccounts, AccountRef, resolve_owned_account_ids
from .domain.scope import ScopeFilter, build_scope_filter
from .domain.aggregator import GroupBy, aggregate, pivot_by_date
from .domain.forecast import forecast
from .domain.anomaly import score

__all__ = [
    "OwnedAccounts",
    "AccountRef",
    "resolve_owned_account_ids",
    "ScopeFilter",
    "build_scope_filter",
    "GroupBy",
    "aggregate",
    "pivot_by_date",
    "forecast",
    "score",
]
