from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.models.recommendation import RecommendationStatus


class RecommendationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: str
    account_id: UUID
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    title: str
    description: Optional[str] = None
    recommendation_type: str
    impact: str
    potential_savings: float = 0.0
    currency: str = "USD"
    status: str
    action_details: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("extra_metadata", "metadata")
    )
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecommendationStatusUpdate(BaseModel):
    status: RecommendationStatus
    notes: Optional[str] = Field(None, max_length=5000)
