from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class AlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: Optional[str] = None
    account_id: Optional[UUID] = None
    resource_id: Optional[str] = None
    title: str
    message: str
    severity: str
    status: str
    category: str
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("extra_metadata", "metadata")
    )
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AlertStatusUpdate(BaseModel):
    status: str
