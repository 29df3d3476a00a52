"""
Provider accounts: registry and ownership resolution.

Each cloud provider keeps its accounts in its own table. Cost, resource and
recommendation rows point at those tables through a (provider, account_id)
pair, so every ownership question is answered per provider by iterating the
adapter registry below instead of branching on provider names.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Type
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.aws_account import AwsAccount
from app.models.azure_account import AzureAccount
from app.models.gcp_account import GcpAccount
from app.models.cloud import CloudProvider
from app.shared.core.exceptions import BadRequestError, ConfigurationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class AccountRef:
    """A provider-tagged reference to one internal account record."""
    provider: CloudProvider
    account_id: UUID


@dataclass
class OwnedAccounts:
    """Internal account ids a user owns, per provider."""
    aws: List[UUID] = field(default_factory=list)
    azure: List[UUID] = field(default_factory=list)
    gcp: List[UUID] = field(default_factory=list)

    def for_provider(self, provider: CloudProvider | str) -> List[UUID]:
        return getattr(self, CloudProvider(provider).value)

    def is_empty(self) -> bool:
        return not (self.aws or self.azure or self.gcp)

    def refs(self) -> List[AccountRef]:
        return [
            AccountRef(provider, account_id)
            for provider in CloudProvider
            for account_id in self.for_provider(provider)
        ]

    def owns(self, ref: AccountRef) -> bool:
        return ref.account_id in self.for_provider(ref.provider)


class ProviderSyncClient(Protocol):
    """
    Talks to a cloud provider's billing API. Implementations live outside
    this service; rows come back as
    {provider, account_id, date, service, cost, usage_quantity, currency}.
    """

    async def validate_credentials(self, provider: str, credentials: Dict[str, Any]) -> bool:
        ...

    async def fetch_cost_and_usage(
        self, provider: str, external_id: str, credentials: Dict[str, Any], start: date, end: date
    ) -> List[Dict[str, Any]]:
        ...


class ProviderAdapter(ABC):
    """
    Per-provider behavior behind a single interface.

    Ownership lookups run against the provider's account table. Credential
    checks and cost fetching are delegated to an injected sync client.
    """

    provider: CloudProvider
    model: Type[Any]
    credential_fields: tuple[str, ...] = ()

    def __init__(self, sync_client: Optional[ProviderSyncClient] = None):
        self.sync_client = sync_client

    def _active(self, user_id: UUID):
        return select(self.model).where(
            self.model.user_id == user_id,
            self.model.deleted_at.is_(None),
        )

    async def list_account_ids(self, db: AsyncSession, user_id: UUID) -> List[UUID]:
        """Ids of the user's non-deleted accounts on this provider."""
        stmt = select(self.model.id).where(
            self.model.user_id == user_id,
            self.model.deleted_at.is_(None),
        ).order_by(self.model.created_at, self.model.id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_accounts(self, db: AsyncSession, user_id: UUID) -> List[Any]:
        result = await db.execute(self._active(user_id).order_by(self.model.created_at, self.model.id))
        return list(result.scalars().all())

    async def get_account(self, db: AsyncSession, user_id: UUID, account_id: UUID) -> Optional[Any]:
        result = await db.execute(self._active(user_id).where(self.model.id == account_id))
        return result.scalar_one_or_none()

    def credentials_of(self, account: Any) -> Dict[str, Any]:
        return {name: getattr(account, name) for name in self.credential_fields}

    def _require_client(self) -> ProviderSyncClient:
        if self.sync_client is None:
            raise ConfigurationError(f"No sync client configured for provider '{self.provider.value}'")
        return self.sync_client

    async def validate_credentials(self, credentials: Dict[str, Any]) -> bool:
        missing = [name for name in self.required_credentials(credentials) if not credentials.get(name)]
        if missing:
            raise BadRequestError(
                f"Missing {self.provider.value} credentials: {', '.join(missing)}",
                code="missing_credentials",
                details={"missing": missing},
            )
        return await self._require_client().validate_credentials(self.provider.value, credentials)

    async def fetch_cost_and_usage(self, account: Any, start: date, end: date) -> List[Dict[str, Any]]:
        """Fetch cost rows for one account, normalized onto the internal account id."""
        raw = await self._require_client().fetch_cost_and_usage(
            self.provider.value, account.external_id, self.credentials_of(account), start, end
        )
        rows = []
        for item in raw:
            rows.append({
                "provider": self.provider.value,
                "account_id": account.id,
                "date": item["date"] if isinstance(item["date"], date) else date.fromisoformat(str(item["date"])[:10]),
                "service": item.get("service") or "Unknown",
                "cost": Decimal(str(item.get("cost", 0))),
                "usage_quantity": Decimal(str(item["usage_quantity"])) if item.get("usage_quantity") is not None else None,
                "currency": item.get("currency") or "USD",
            })
        logger.info(
            "provider_costs_fetched",
            provider=self.provider.value,
            account_id=str(account.id),
            rows=len(rows),
        )
        return rows

    def apply_credentials(self, account: Any, credentials: Dict[str, Any]) -> None:
        """Copy known credential fields onto the account row; unknown keys are ignored."""
        for name in self.credential_fields:
            if name in credentials:
                setattr(account, name, credentials[name])

    def new_account(self, user_id: UUID, name: str, external_id: str, credentials: Dict[str, Any]) -> Any:
        account = self.model(user_id=user_id, name=name, **{self.model.external_id_field: external_id})
        self.apply_credentials(account, credentials)
        return account

    async def find_by_external_id(self, db: AsyncSession, user_id: UUID, external_id: str) -> Optional[Any]:
        """The user's row for a provider-side id, soft-deleted rows included."""
        column = getattr(self.model, self.model.external_id_field)
        result = await db.execute(
            select(self.model).where(self.model.user_id == user_id, column == external_id)
        )
        return result.scalar_one_or_none()

    @abstractmethod
    def required_credentials(self, credentials: Dict[str, Any]) -> Iterable[str]:
        """Credential fields that must be present to validate."""


class AwsAdapter(ProviderAdapter):
    provider = CloudProvider.AWS
    model = AwsAccount
    credential_fields = ("access_key_id", "secret_access_key", "role_arn", "role_external_id", "region")

    def required_credentials(self, credentials: Dict[str, Any]) -> Iterable[str]:
        # An assumable role stands in for a key pair
        if credentials.get("role_arn"):
            return ("role_arn",)
        return ("access_key_id", "secret_access_key")


class AzureAdapter(ProviderAdapter):
    provider = CloudProvider.AZURE
    model = AzureAccount
    credential_fields = ("directory_tenant_id", "client_id", "client_secret")

    def required_credentials(self, credentials: Dict[str, Any]) -> Iterable[str]:
        return self.credential_fields


class GcpAdapter(ProviderAdapter):
    provider = CloudProvider.GCP
    model = GcpAccount
    credential_fields = ("service_account_json",)

    def required_credentials(self, credentials: Dict[str, Any]) -> Iterable[str]:
        return self.credential_fields


def build_adapters(sync_client: Optional[ProviderSyncClient] = None) -> Dict[CloudProvider, ProviderAdapter]:
    return {
        adapter.provider: adapter
        for adapter in (AwsAdapter(sync_client), AzureAdapter(sync_client), GcpAdapter(sync_client))
    }


PROVIDER_ADAPTERS: Dict[CloudProvider, ProviderAdapter] = build_adapters()


def get_adapter(provider: CloudProvider | str) -> ProviderAdapter:
    try:
        return PROVIDER_ADAPTERS[CloudProvider(provider)]
    except ValueError:
        raise BadRequestError(f"Unsupported provider: {provider}", code="invalid_provider")


def parse_provider(value: Optional[str]) -> Optional[CloudProvider]:
    """Optional provider query value to enum; unknown names are a bad request."""
    if value is None or value == "":
        return None
    try:
        return CloudProvider(value.lower())
    except ValueError:
        raise BadRequestError(f"Unsupported provider: {value}", code="invalid_provider")


async def resolve_owned_account_ids(db: AsyncSession, user_id: UUID) -> OwnedAccounts:
    """
    Resolve the account ids a user owns on each provider.

    Unknown users and users without accounts get three empty lists.
    Database errors propagate.
    """
    owned = OwnedAccounts()
    for provider, adapter in PROVIDER_ADAPTERS.items():
        setattr(owned, provider.value, await adapter.list_account_ids(db, user_id))

    logger.debug(
        "owned_accounts_resolved",
        user_id=str(user_id),
        aws=len(owned.aws),
        azure=len(owned.azure),
        gcp=len(owned.gcp),
    )
    return owned
