from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from app.models.cloud import CloudProvider


class CloudAccountResponse(BaseModel):
    """One provider account, in the shape shared by all three providers."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    provider: str
    account_id: str = Field(validation_alias="external_id")
    status: str
    last_sync: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AccountConnect(BaseModel):
    """
    A new provider account. `credentials` holds the provider's fields:
    - aws: access_key_id + secret_access_key, or role_arn (+ role_external_id)
    - azure: directory_tenant_id, client_id, client_secret
    - gcp: service_account_json
    """
    provider: CloudProvider
    name: str = Field(..., min_length=1, max_length=255)
    account_id: str = Field(..., min_length=1, max_length=255)
    region: Optional[str] = None
    credentials: Dict[str, Any] = Field(default_factory=dict)


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    region: Optional[str] = None
    credentials: Optional[Dict[str, Any]] = None


class AccountSyncResponse(BaseModel):
    account: CloudAccountResponse
    records_synced: int
    start_date: date
    end_date: date
