"""Schemas for flags, flag state and evaluation."""
from typing import Dict, Optional

from pydantic import BaseModel, Field

from flagpole.constants import FlagType
from flagpole.models import Flag
from flagpole.services.flag_state import FlagEnvironmentState, FlagWithEnvironments
from flagpole.utils.serialization import serialize_datetime, serialize_uuid


class CreateFlagRequest(BaseModel):
    """Request schema for flag creation."""
    key: str = Field(..., description="Stable identifier, [A-Za-z0-9_-], 1-255 chars")
    name: str
    description: Optional[str] = None
    flag_type: str = Field(FlagType.BOOLEAN, description="boolean, string, number or json")
    enabled: bool = Field(False, description="Initial state in every environment")


class UpdateFlagValueRequest(BaseModel):
    """Partial update; omitted fields keep their current value."""
    enabled: Optional[bool] = None
    rollout_percentage: Optional[int] = None


class FlagEnvironmentValue(BaseModel):
    enabled: bool
    rollout: int

    @classmethod
    def from_state(cls, state: FlagEnvironmentState) -> "FlagEnvironmentValue":
        return cls(enabled=state.enabled, rollout=state.rollout)


class FlagResponse(BaseModel):
    id: str
    key: str
    name: str
    description: Optional[str]
    flag_type: str
    project_id: str
    created_at: Optional[str]

    class Config:
        from_attributes = True

    @classmethod
    def from_orm(cls, obj: Flag) -> "FlagResponse":
        """Convert SQLAlchemy model to response model."""
        return cls(
            id=serialize_uuid(obj.id),
            key=obj.key,
            name=obj.name,
            description=obj.description,
            flag_type=obj.flag_type,
            project_id=serialize_uuid(obj.project_id),
            created_at=serialize_datetime(obj.created_at),
        )


class FlagWithStateResponse(FlagResponse):
    """Flag plus its enabled state in one environment."""
    enabled: bool

    @classmethod
    def from_flag(cls, flag: Flag, enabled: bool) -> "FlagWithStateResponse":
        return cls(**FlagResponse.from_orm(flag).model_dump(), enabled=enabled)


class FlagStateResponse(BaseModel):
    """Flag plus its state in every environment, keyed by environment name."""
    key: str
    name: str
    description: Optional[str]
    environments: Dict[str, FlagEnvironmentValue]

    @classmethod
    def from_view(cls, view: FlagWithEnvironments) -> "FlagStateResponse":
        return cls(
            key=view.flag.key,
            name=view.flag.name,
            description=view.flag.description,
            environments={
                name: FlagEnvironmentValue.from_state(state)
                for name, state in view.environments.items()
            },
        )


class FlagEvaluationResponse(BaseModel):
    key: str
    enabled: bool


class FlagToggleResponse(BaseModel):
    key: str
    environment: str
    enabled: bool
    rollout: int
