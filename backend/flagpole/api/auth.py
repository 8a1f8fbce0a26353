"""Authentication API endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from flagpole.auth.credentials import CredentialCodec, get_codec
from flagpole.auth.principal import get_current_user
from flagpole.models import User
from flagpole.schemas.auth import (
    APIKeyCreatedResponse,
    AuthResponse,
    LoginRequest,
    SignupRequest,
    SignupResponse,
    UpdateUserRequest,
    UserResponse,
)
from flagpole.schemas.projects import EnvironmentResponse, ProjectResponse
from flagpole.services.accounts import AccountService
from flagpole.store import EntityStore, get_store
from flagpole.utils.exceptions import AppException, handle_database_error
from flagpole.utils.logger import logger

router = APIRouter(prefix="/v1/auth", tags=["auth"])


def get_account_service(
    store: EntityStore = Depends(get_store),
    codec: CredentialCodec = Depends(get_codec),
) -> AccountService:
    """Dependency for getting the account service."""
    return AccountService(store, codec)


@router.post("/signup", response_model=SignupResponse)
def signup(
    request: SignupRequest,
    accounts: AccountService = Depends(get_account_service),
) -> SignupResponse:
    """
    Create an account.

    The new user gets a default API key, a first project with development,
    staging and production environments, and a session token.

    Args:
        request: Password, optional username and optional project name
        accounts: Account service

    Returns:
        The user, the raw API key (shown once), token, project and environments
    """
    try:
        result = accounts.signup(
            password=request.password,
            username=request.username,
            project_name=request.project_name,
        )
    except AppException:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Signup failed: {e}", exc_info=True)
        raise handle_database_error(e, "signup")

    return SignupResponse(
        user=UserResponse.from_orm(result.user),
        api_key=APIKeyCreatedResponse.from_issued(result.api_key.api_key, result.api_key.raw_key),
        token=result.token,
        project=ProjectResponse.from_orm(result.project),
        environments=[EnvironmentResponse.from_orm(e) for e in result.environments],
    )


@router.post("/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """
    Exchange a username and password for a session token.

    Args:
        request: Login credentials
        accounts: Account service

    Returns:
        Session token and user data
    """
    user, token = accounts.login(request.username, request.password)
    return AuthResponse(token=token, user=UserResponse.from_orm(user))


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)) -> UserResponse:
    """Get the authenticated user."""
    return UserResponse.from_orm(user)


@router.patch("/me", response_model=UserResponse)
def update_me(
    request: UpdateUserRequest,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> UserResponse:
    """Update the authenticated user's profile."""
    try:
        user = accounts.update_profile(user, email=request.email)
    except AppException:
        raise
    except SQLAlchemyError as e:
        raise handle_database_error(e, "update_me")
    return UserResponse.from_orm(user)
