"""
Cloud account lifecycle: connect, update, sync and soft delete.

Credential checks and cost fetching go through the provider adapters, which
delegate to the injected sync client. Account status moves between
pending, connected and error as those calls succeed or fail.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account_base import AccountStatus
from app.models.alert import AlertCategory, AlertSeverity
from app.models.cloud import CloudProvider, CostRecord
from app.modules.reporting.domain.accounts import (
    ProviderAdapter,
    ProviderSyncClient,
    build_adapters,
)
from app.modules.notifications.domain.alerts import AlertService
from app.modules.notifications.domain.events import AccountConnected, EventBus, event_bus
from app.shared.core.config import get_settings
from app.shared.core.exceptions import (
    AdapterError,
    BadRequestError,
    CloudWiseException,
    ResourceNotFoundError,
)
from app.shared.core.logging import audit_log

logger = structlog.get_logger()


class AccountService:
    """Provider-agnostic management of a user's cloud accounts."""

    def __init__(
        self,
        db: AsyncSession,
        events: EventBus = event_bus,
        sync_client: Optional[ProviderSyncClient] = None,
    ):
        self.db = db
        self.events = events
        self.adapters = build_adapters(sync_client)

    def _adapter(self, provider: CloudProvider | str) -> ProviderAdapter:
        try:
            return self.adapters[CloudProvider(provider)]
        except ValueError:
            raise BadRequestError(f"Unsupported provider: {provider}", code="invalid_provider")

    async def list_accounts(self, user_id: UUID) -> List[Any]:
        accounts = []
        for adapter in self.adapters.values():
            accounts.extend(await adapter.list_accounts(self.db, user_id))
        return accounts

    async def get_account(
        self, user_id: UUID, account_id: UUID, provider: Optional[CloudProvider] = None
    ) -> Any:
        """
        Look the account up on the hinted provider, or on each provider in
        turn. Absent, deleted and foreign accounts are all "not found".
        """
        adapters = [self._adapter(provider)] if provider else self.adapters.values()
        for adapter in adapters:
            account = await adapter.get_account(self.db, user_id, account_id)
            if account is not None:
                return account
        raise ResourceNotFoundError("Account not found")

    async def _check_credentials(
        self, adapter: ProviderAdapter, credentials: Dict[str, Any]
    ) -> Tuple[bool, Optional[str]]:
        """
        (connected, error_message) for a credential set. Missing fields and
        configuration problems raise; a rejection by the provider does not.
        """
        try:
            if await adapter.validate_credentials(credentials):
                return True, None
            return False, "Credential validation failed"
        except CloudWiseException:
            raise
        except Exception as e:
            logger.warning(
                "account_credentials_rejected",
                provider=adapter.provider.value,
                error=str(e),
            )
            return False, AdapterError(str(e)).message

    def _apply_status(self, account: Any, connected: bool, error_message: Optional[str]) -> str:
        previous_status = account.status
        if connected:
            account.status = AccountStatus.CONNECTED.value
            account.error_message = None
            account.last_sync = datetime.now(timezone.utc)
        else:
            account.status = AccountStatus.ERROR.value
            account.error_message = error_message
        return previous_status

    def _publish_connected(self, user_id: UUID, account: Any) -> None:
        self.events.publish(AccountConnected(
            user_id=user_id,
            payload={
                "provider": account.provider,
                "account_ref": str(account.id),
                "account_id": account.external_id,
                "name": account.name,
            },
        ))

    async def connect_account(
        self,
        user_id: UUID,
        provider: CloudProvider | str,
        name: str,
        external_id: str,
        credentials: Dict[str, Any],
        region: Optional[str] = None,
    ) -> Any:
        """
        Store a new provider account and check its credentials.

        Rejected credentials still store the account, in error status with the
        provider's message. A previously deleted account with the same
        provider-side id is restored in place.

        Raises:
            BadRequestError: already connected, or required credentials missing
        """
        adapter = self._adapter(provider)
        credentials = dict(credentials or {})
        if region and adapter.provider is CloudProvider.AWS:
            credentials["region"] = region

        existing = await adapter.find_by_external_id(self.db, user_id, external_id)
        if existing is not None and not existing.is_deleted:
            raise BadRequestError(
                f"{adapter.provider.value.upper()} account {external_id} is already connected",
                code="account_exists",
                details={"id": str(existing.id)},
            )

        connected, error_message = await self._check_credentials(adapter, credentials)

        if existing is not None:
            account = existing
            account.deleted_at = None
            account.name = name
            adapter.apply_credentials(account, credentials)
        else:
            account = adapter.new_account(user_id, name, external_id, credentials)
            self.db.add(account)
        self._apply_status(account, connected, error_message)
        await self.db.flush()

        if connected:
            AlertService(self.db).create_alert(
                user_id=user_id,
                title=f"{adapter.provider.value.upper()} Account Connected",
                message=f"{name} ({external_id}) has been connected successfully.",
                severity=AlertSeverity.INFO.value,
                category=AlertCategory.OTHER.value,
                provider=adapter.provider.value,
                account_id=account.id,
            )
        await self.db.commit()

        logger.info(
            "account_connected" if connected else "account_connection_failed",
            provider=adapter.provider.value,
            account_id=str(account.id),
            status=account.status,
        )
        audit_log(
            "account_connected",
            str(user_id),
            {"provider": adapter.provider.value, "account_id": str(account.id), "status": account.status},
        )
        if connected:
            self._publish_connected(user_id, account)
        return account

    async def update_account(
        self,
        user_id: UUID,
        account_id: UUID,
        name: Optional[str] = None,
        region: Optional[str] = None,
        credentials: Optional[Dict[str, Any]] = None,
        provider: Optional[CloudProvider] = None,
    ) -> Any:
        """Rename, move region, or replace credentials. New credentials are checked again."""
        account = await self.get_account(user_id, account_id, provider)
        adapter = self._adapter(account.provider)

        if name:
            account.name = name
        if region and adapter.provider is CloudProvider.AWS:
            account.region = region

        previous_status = account.status
        if credentials:
            merged = {**adapter.credentials_of(account), **credentials}
            connected, error_message = await self._check_credentials(adapter, merged)
            adapter.apply_credentials(account, credentials)
            self._apply_status(account, connected, error_message)
        await self.db.commit()

        logger.info(
            "account_updated",
            provider=account.provider,
            account_id=str(account.id),
            credentials_changed=bool(credentials),
            status=account.status,
        )
        if account.status == AccountStatus.CONNECTED.value and previous_status != AccountStatus.CONNECTED.value:
            self._publish_connected(user_id, account)
        return account

    async def sync_account(
        self,
        user_id: UUID,
        account_id: UUID,
        provider: Optional[CloudProvider] = None,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Pull the lookback window of cost data from the provider and store it.

        Rows already stored for the window are replaced, so repeated syncs do
        not double count. A failed fetch leaves stored rows untouched and puts
        the account in error status.
        """
        account = await self.get_account(user_id, account_id, provider)
        adapter = self._adapter(account.provider)
        end = today or date.today()
        start = end - timedelta(days=get_settings().DEFAULT_LOOKBACK_DAYS)

        try:
            rows = await adapter.fetch_cost_and_usage(account, start, end)
        except CloudWiseException:
            raise
        except Exception as e:
            error = AdapterError(str(e))
            logger.error(
                "account_sync_failed",
                provider=account.provider,
                account_id=str(account.id),
                error=str(e),
            )
            self._apply_status(account, False, error.message)
            await self.db.commit()
            raise error

        await self.db.execute(
            delete(CostRecord).where(
                CostRecord.provider == account.provider,
                CostRecord.account_id == account.id,
                CostRecord.date >= start,
                CostRecord.date <= end,
            )
        )
        self.db.add_all([CostRecord(**row) for row in rows])
        previous_status = self._apply_status(account, True, None)
        await self.db.commit()

        logger.info(
            "account_synced",
            provider=account.provider,
            account_id=str(account.id),
            records=len(rows),
            start=str(start),
            end=str(end),
        )
        if previous_status != AccountStatus.CONNECTED.value:
            self._publish_connected(user_id, account)
        return {
            "account": account,
            "records_synced": len(rows),
            "start_date": start,
            "end_date": end,
        }

    async def delete_account(
        self, user_id: UUID, account_id: UUID, provider: Optional[CloudProvider] = None
    ) -> None:
        """Soft delete: the row stays, but drops out of every ownership lookup."""
        account = await self.get_account(user_id, account_id, provider)
        account.deleted_at = datetime.now(timezone.utc)
        await self.db.commit()

        audit_log(
            "account_deleted",
            str(user_id),
            {"provider": account.provider, "account_id": str(account.id)},
        )
