"""Schemas for projects and environments."""
from typing import Optional

from pydantic import BaseModel, Field

from flagpole.constants import EnvironmentName
from flagpole.models import Environment, Project
from flagpole.utils.serialization import serialize_datetime, serialize_uuid


class CreateProjectRequest(BaseModel):
    """Request schema for POST /projects."""
    name: str = Field(..., description="Project name")
    description: Optional[str] = Field(None, description="Accepted for CLI compatibility, not stored")


class ProjectResponse(BaseModel):
    id: str
    name: str
    api_key: str
    created_at: Optional[str]

    class Config:
        from_attributes = True

    @classmethod
    def from_orm(cls, obj: Project) -> "ProjectResponse":
        """Convert SQLAlchemy model to response model."""
        return cls(
            id=serialize_uuid(obj.id),
            name=obj.name,
            api_key=obj.api_key,
            created_at=serialize_datetime(obj.created_at),
        )


class EnvironmentResponse(BaseModel):
    id: str
    project_id: str
    name: str
    api_key: str
    is_production: bool
    created_at: Optional[str]

    class Config:
        from_attributes = True

    @classmethod
    def from_orm(cls, obj: Environment) -> "EnvironmentResponse":
        """Convert SQLAlchemy model to response model."""
        return cls(
            id=serialize_uuid(obj.id),
            project_id=serialize_uuid(obj.project_id),
            name=obj.name,
            api_key=obj.api_key,
            is_production=obj.name == EnvironmentName.PRODUCTION,
            created_at=serialize_datetime(obj.created_at),
        )
