"""Pydantic schemas for request/response validation."""
from flagpole.schemas.auth import (
    APIKeyCreate,
    APIKeyCreatedResponse,
    APIKeyResponse,
    AuthResponse,
    LoginRequest,
    SignupRequest,
    SignupResponse,
    UpdateUserRequest,
    UserResponse,
)
from flagpole.schemas.flags import (
    CreateFlagRequest,
    FlagEnvironmentValue,
    FlagEvaluationResponse,
    FlagResponse,
    FlagStateResponse,
    FlagToggleResponse,
    FlagWithStateResponse,
    UpdateFlagValueRequest,
)
from flagpole.schemas.projects import (
    CreateProjectRequest,
    EnvironmentResponse,
    ProjectResponse,
)

__all__ = [
    "APIKeyCreate",
    "APIKeyCreatedResponse",
    "APIKeyResponse",
    "AuthResponse",
    "LoginRequest",
    "SignupRequest",
    "SignupResponse",
    "UpdateUserRequest",
    "UserResponse",
    "CreateFlagRequest",
    "FlagEnvironmentValue",
    "FlagEvaluationResponse",
    "FlagResponse",
    "FlagStateResponse",
    "FlagToggleResponse",
    "FlagWithStateResponse",
    "UpdateFlagValueRequest",
    "CreateProjectRequest",
    "EnvironmentResponse",
    "ProjectResponse",
]
