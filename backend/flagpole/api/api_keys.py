"""API Keys management endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from flagpole.api.auth import get_account_service
from flagpole.auth.principal import get_current_user
from flagpole.models import User
from flagpole.schemas.auth import APIKeyCreate, APIKeyCreatedResponse, APIKeyResponse
from flagpole.services.accounts import AccountService
from flagpole.utils.exceptions import AppException, handle_database_error

router = APIRouter(prefix="/v1/api-keys", tags=["api-keys"])


@router.get("", response_model=list[APIKeyResponse])
def get_api_keys(
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> list[APIKeyResponse]:
    """
    Get the authenticated user's active API keys.

    Only the display prefix of each key is returned.
    """
    return [APIKeyResponse.from_orm(k) for k in accounts.list_api_keys(user)]


@router.post("", response_model=APIKeyCreatedResponse)
def create_api_key(
    request: APIKeyCreate,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> APIKeyCreatedResponse:
    """
    Create a new API key.

    Args:
        request: Optional key name
        user: Authenticated user
        accounts: Account service

    Returns:
        The API key details and the raw key (only shown once)
    """
    try:
        issued = accounts.create_api_key(user, request.name)
    except SQLAlchemyError as e:
        raise handle_database_error(e, "create_api_key")
    return APIKeyCreatedResponse.from_issued(issued.api_key, issued.raw_key)


@router.delete("/{key_id}")
def revoke_api_key(
    key_id: str,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> dict[str, bool]:
    """
    Revoke an API key. Revoked keys stop authenticating immediately.

    Args:
        key_id: The API key ID to revoke
        user: Authenticated user (must own the key)
        accounts: Account service

    Returns:
        Success status
    """
    try:
        accounts.revoke_api_key(user, key_id)
    except AppException:
        raise
    except SQLAlchemyError as e:
        raise handle_database_error(e, "revoke_api_key")
    return {"success": True}
