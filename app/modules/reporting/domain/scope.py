"""
Ownership scoping for provider-tagged tables.

CostRecord, Resource and Recommendation carry no user column. A row belongs
to a user when its (provider, account_id) pair matches one of the user's
accounts, so the predicate is a disjunction of one clause per provider:

    (provider = 'aws' AND account_id IN (...)) OR (provider = 'azure' AND ...) ...

Providers with no owned accounts contribute no clause at all. When no
provider contributes, the filter is empty and callers return an empty
result without querying.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, or_, false

from app.models.cloud import CloudProvider
from app.modules.reporting.domain.accounts import OwnedAccounts


@dataclass(frozen=True)
class ScopeFilter:
    clauses: Tuple[Tuple[CloudProvider, Tuple[UUID, ...]], ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.clauses

    @property
    def providers(self) -> List[CloudProvider]:
        return [provider for provider, _ in self.clauses]

    def narrow(self, provider: Optional[CloudProvider]) -> "ScopeFilter":
        """Keep only one provider's clause. Never adds accounts."""
        if provider is None:
            return self
        return ScopeFilter(tuple(c for c in self.clauses if c[0] == provider))

    def for_model(self, model: Any):
        """
        Render as a SQLAlchemy predicate against any model with
        `provider` and `account_id` columns.
        """
        if self.is_empty:
            # Callers short-circuit before querying; this keeps accidental use safe
            return false()
        return or_(*[
            and_(model.provider == provider.value, model.account_id.in_(ids))
            for provider, ids in self.clauses
        ])

    def admits(self, provider: str, account_id: UUID) -> bool:
        """In-memory equivalent of `for_model`."""
        for clause_provider, ids in self.clauses:
            if clause_provider.value == provider and account_id in ids:
                return True
        return False

    def to_dict(self) -> Dict[str, List[str]]:
        return {provider.value: [str(i) for i in ids] for provider, ids in self.clauses}


def build_scope_filter(owned: OwnedAccounts, provider: Optional[CloudProvider] = None) -> ScopeFilter:
    """Build the ownership predicate, optionally narrowed to a single provider."""
    clauses = tuple(
        (p, tuple(owned.for_provider(p)))
        for p in CloudProvider
        if owned.for_provider(p)
    )
    return ScopeFilter(clauses).narrow(provider)
