from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class ResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: str
    account_id: UUID
    resource_id: str
    resource_name: Optional[str] = None
    resource_type: str
    region: Optional[str] = None
    status: Optional[str] = None
    utilization: Optional[float] = None
    cost_per_month: float = 0.0
    currency: str = "USD"
    tags: Dict[str, Any] = Field(default_factory=dict)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    configuration: Dict[str, Any] = Field(default_factory=dict)
    last_synced_at: Optional[datetime] = None


class TagUpdate(BaseModel):
    """Tags to merge into the resource's existing tags."""
    tags: Dict[str, str]
