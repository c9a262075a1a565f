from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AssetTier(str, Enum):
    """Business criticality of the project the dependency graph belongs to."""

    CROWN_JEWELS = "CROWN_JEWELS"
    EXTERNAL = "EXTERNAL"
    INTERNAL = "INTERNAL"
    NON_PRODUCTION = "NON_PRODUCTION"


DEFAULT_ASSET_TIER = AssetTier.EXTERNAL


class ProjectContext(BaseModel):
    """The subset of the project record the pipeline reads for scoring."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    organization_id: Optional[str] = None
    asset_tier: AssetTier = DEFAULT_ASSET_TIER
    tier_multiplier: Optional[float] = None

    @field_validator("asset_tier", mode="before")
    @classmethod
    def _unknown_tier_is_default(cls, value: Any) -> Any:
        if value in AssetTier._value2member_map_ or isinstance(value, AssetTier):
            return value
        return DEFAULT_ASSET_TIER
