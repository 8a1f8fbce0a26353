"""Schemas for signup, login, profile and user API keys."""
from typing import List, Optional

from pydantic import BaseModel, Field

from flagpole.models import APIKey, User
from flagpole.schemas.projects import EnvironmentResponse, ProjectResponse
from flagpole.utils.serialization import serialize_datetime, serialize_uuid


class SignupRequest(BaseModel):
    """Request schema for /v1/auth/signup."""
    username: Optional[str] = Field(None, description="Generated when omitted")
    password: str
    project_name: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class UpdateUserRequest(BaseModel):
    email: Optional[str] = Field(None, description="Empty string clears the email")


class UserResponse(BaseModel):
    id: str
    username: str
    email: Optional[str]
    created_at: Optional[str]

    class Config:
        from_attributes = True

    @classmethod
    def from_orm(cls, obj: User) -> "UserResponse":
        """Convert SQLAlchemy model to response model."""
        return cls(
            id=serialize_uuid(obj.id),
            username=obj.username,
            email=obj.email,
            created_at=serialize_datetime(obj.created_at),
        )


class APIKeyCreate(BaseModel):
    name: Optional[str] = None


class APIKeyResponse(BaseModel):
    id: str
    key_prefix: str
    name: Optional[str]
    created_at: Optional[str]

    class Config:
        from_attributes = True

    @classmethod
    def from_orm(cls, obj: APIKey) -> "APIKeyResponse":
        """Convert SQLAlchemy model to response model."""
        return cls(
            id=serialize_uuid(obj.id),
            key_prefix=obj.key_prefix,
            name=obj.name,
            created_at=serialize_datetime(obj.created_at),
        )


class APIKeyCreatedResponse(APIKeyResponse):
    """Returned only on creation; ``key`` is the full raw key, shown once."""
    key: str

    @classmethod
    def from_issued(cls, obj: APIKey, raw_key: str) -> "APIKeyCreatedResponse":
        return cls(**APIKeyResponse.from_orm(obj).model_dump(), key=raw_key)


class SignupResponse(BaseModel):
    user: UserResponse
    api_key: APIKeyCreatedResponse
    token: str
    project: ProjectResponse
    environments: List[EnvironmentResponse]


class AuthResponse(BaseModel):
    token: str
    user: UserResponse
