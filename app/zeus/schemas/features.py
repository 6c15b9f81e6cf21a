from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.zeus.services.toggle_store import ToggleRecord


DecisionSource = Literal[
    "admin_bypass",
    "not_found",
    "disabled",
    "open_to_all",
    "no_caller_groups",
    "group_match",
    "group_mismatch",
    "fallback_deny",
    "fallback_allow",
]


class FeatureEvaluationResponse(BaseModel):
    feature_key: str
    allowed: bool = Field(..., description="Whether the calling identity may use the feature.")
    source: DecisionSource = Field(..., description="Rule that produced the decision.")
    trace_id: str


class FeatureUpdateRequest(BaseModel):
    enabled: bool = Field(..., description="Global switch; false denies everyone except administrators.")
    groups: list[str] | None = Field(
        default=None,
        description="Replacement group whitelist. Omitted or empty opens the feature to every caller.",
    )
    description: str | None = Field(default=None, max_length=255)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"enabled": True, "groups": []},
                {"enabled": True, "groups": ["BETA"], "description": "New payment flow"},
            ]
        }
    }


class FeatureItem(BaseModel):
    id: str | None
    feature_key: str
    enabled: bool
    description: str | None = None
    allowed_groups: list[str]
    created_by: str | None
    created_at: datetime | None
    updated_by: str | None
    updated_at: datetime | None
    version: int

    @classmethod
    def from_record(cls, record: ToggleRecord) -> "FeatureItem":
        return cls(
            id=str(record.id) if record.id else None,
            feature_key=record.feature_key,
            enabled=record.enabled,
            description=record.description,
            allowed_groups=sorted(record.allowed_groups),
            created_by=record.created_by,
            created_at=record.created_at,
            updated_by=record.updated_by,
            updated_at=record.updated_at,
            version=record.version,
        )


class FeatureResponse(FeatureItem):
    trace_id: str


class FeatureListResponse(BaseModel):
    items: list[FeatureItem]
    total: int
    limit: int
    offset: int
    trace_id: str
