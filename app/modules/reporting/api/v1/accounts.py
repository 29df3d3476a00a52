from datetime import date
from typing import Annotated, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.auth import CurrentUser, requires_role
from app.shared.db.session import get_db
from app.modules.notifications.domain.events import EventBus, get_event_bus
from app.modules.reporting.domain.accounts import ProviderSyncClient, parse_provider
from app.modules.reporting.domain.account_service import AccountService
from app.modules.reporting.domain.service import CostReportingService
from app.schemas.accounts import (
    AccountConnect,
    AccountSyncResponse,
    AccountUpdate,
    CloudAccountResponse,
)
from app.schemas.costs import AccountCostBreakdown

router = APIRouter(tags=["Cloud Accounts"])


def get_sync_client(request: Request) -> Optional[ProviderSyncClient]:
    """The billing API client installed on app.state, if any."""
    return getattr(request.app.state, "sync_client", None)


def account_service(
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
    sync_client: Optional[ProviderSyncClient] = Depends(get_sync_client),
) -> AccountService:
    return AccountService(db, events, sync_client)


@router.get("", response_model=List[CloudAccountResponse])
async def list_accounts(
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    service: AccountService = Depends(account_service),
):
    """All connected accounts across AWS, Azure and GCP."""
    accounts = await service.list_accounts(user.id)
    return [CloudAccountResponse.model_validate(a) for a in accounts]


@router.post("", response_model=CloudAccountResponse, status_code=201)
async def connect_account(
    body: AccountConnect,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    service: AccountService = Depends(account_service),
):
    """
    Connect a provider account. Credentials the provider rejects still create
    the account, with status "error" and the provider's message.
    """
    account = await service.connect_account(
        user.id, body.provider, body.name, body.account_id, body.credentials, body.region
    )
    return CloudAccountResponse.model_validate(account)


@router.get("/{account_id}", response_model=CloudAccountResponse)
async def get_account(
    account_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    service: AccountService = Depends(account_service),
    provider: Optional[str] = Query(None),
):
    account = await service.get_account(user.id, account_id, parse_provider(provider))
    return CloudAccountResponse.model_validate(account)


@router.patch("/{account_id}", response_model=CloudAccountResponse)
async def update_account(
    account_id: UUID,
    body: AccountUpdate,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    service: AccountService = Depends(account_service),
    provider: Optional[str] = Query(None),
):
    account = await service.update_account(
        user.id, account_id, body.name, body.region, body.credentials, parse_provider(provider)
    )
    return CloudAccountResponse.model_validate(account)


@router.delete("/{account_id}")
async def delete_account(
    account_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    service: AccountService = Depends(account_service),
    provider: Optional[str] = Query(None),
):
    await service.delete_account(user.id, account_id, parse_provider(provider))
    return {"status": "deleted", "id": str(account_id)}


@router.post("/{account_id}/sync", response_model=AccountSyncResponse)
async def sync_account(
    account_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    service: AccountService = Depends(account_service),
    provider: Optional[str] = Query(None),
):
    """Pull recent cost data from the provider. Provider failures return 502."""
    result = await service.sync_account(user.id, account_id, parse_provider(provider))
    return {**result, "account": CloudAccountResponse.model_validate(result["account"])}


@router.get("/{account_id}/costs", response_model=AccountCostBreakdown)
async def get_account_costs(
    account_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("member"))],
    db: AsyncSession = Depends(get_db),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_by: str = Query("service", description="service or date"),
    provider: Optional[str] = Query(None),
):
    return await CostReportingService(db).get_account_costs(
        user.id, account_id, start_date, end_date, group_by, parse_provider(provider)
    )
