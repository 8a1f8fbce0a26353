"""SDK flag endpoints.

Authenticated by any credential kind. Project, user-key and session
principals act on their project's production environment unless told
otherwise; environment-key principals evaluate in their own environment and
cannot mutate.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError

from flagpole.auth.principal import Principal, get_principal, require_project_scope
from flagpole.schemas.flags import (
    CreateFlagRequest,
    FlagEnvironmentValue,
    FlagEvaluationResponse,
    FlagStateResponse,
    FlagToggleResponse,
    FlagWithStateResponse,
    UpdateFlagValueRequest,
)
from flagpole.services.evaluation import FlagEvaluator
from flagpole.services.flag_state import FlagStateService
from flagpole.store import EntityStore, get_store
from flagpole.utils.exceptions import AppException, handle_database_error

router = APIRouter(prefix="/v1/flags", tags=["flags"])


@router.get("", response_model=list[FlagStateResponse])
def list_flags(
    principal: Principal = Depends(require_project_scope),
    store: EntityStore = Depends(get_store),
) -> list[FlagStateResponse]:
    """
    List all flags of the principal's project with their state in every
    environment.
    """
    views = FlagStateService(store).list_flag_states(principal.project)
    return [FlagStateResponse.from_view(view) for view in views]


@router.post("", response_model=FlagWithStateResponse)
def create_flag(
    request: CreateFlagRequest,
    principal: Principal = Depends(require_project_scope),
    store: EntityStore = Depends(get_store),
) -> FlagWithStateResponse:
    """
    Create a flag in the principal's project.

    Args:
        request: Flag key, name, description, type and initial state
        principal: Resolved project principal
        store: Entity store

    Returns:
        The created flag and its initial state
    """
    try:
        flag = FlagStateService(store).create_flag(
            principal.project,
            key=request.key,
            name=request.name,
            description=request.description,
            flag_type=request.flag_type,
            initial_enabled=request.enabled,
        )
    except AppException:
        raise
    except SQLAlchemyError as e:
        raise handle_database_error(e, "create_flag")
    return FlagWithStateResponse.from_flag(flag, request.enabled)


@router.get("/{key}", response_model=FlagEvaluationResponse)
def evaluate_flag(
    key: str,
    user_id: Optional[str] = Query(None, description="End-user id for sticky rollout"),
    principal: Principal = Depends(get_principal),
    store: EntityStore = Depends(get_store),
) -> FlagEvaluationResponse:
    """
    Evaluate a flag.

    Args:
        key: Flag key
        user_id: Optional end-user id; requests without one are bucketed at random
        principal: Resolved principal (any credential kind)
        store: Entity store

    Returns:
        The flag key and whether it is enabled
    """
    result = FlagEvaluator(store).evaluate(principal, key, user_id)
    return FlagEvaluationResponse(key=result.key, enabled=result.enabled)


@router.patch("/{key}/environments/{environment}", response_model=FlagEnvironmentValue)
def update_flag_value(
    key: str,
    environment: str,
    request: UpdateFlagValueRequest,
    principal: Principal = Depends(require_project_scope),
    store: EntityStore = Depends(get_store),
) -> FlagEnvironmentValue:
    """Partially update a flag's state in one environment."""
    service = FlagStateService(store)
    flag = service.get_flag_or_404(principal.project, key)
    env = service.get_environment_or_404(principal.project, environment)
    try:
        state = service.set_value(
            flag, env, enabled=request.enabled, rollout=request.rollout_percentage
        )
    except AppException:
        raise
    except SQLAlchemyError as e:
        raise handle_database_error(e, "update_flag_value")
    return FlagEnvironmentValue.from_state(state)


@router.post("/{key}/toggle", response_model=FlagToggleResponse)
def toggle_flag(
    key: str,
    environment: str = Query(..., description="Environment name"),
    principal: Principal = Depends(require_project_scope),
    store: EntityStore = Depends(get_store),
) -> FlagToggleResponse:
    """Toggle a flag in one environment."""
    service = FlagStateService(store)
    flag = service.get_flag_or_404(principal.project, key)
    env = service.get_environment_or_404(principal.project, environment)
    try:
        state = service.toggle(flag, env)
    except AppException:
        raise
    except SQLAlchemyError as e:
        raise handle_database_error(e, "toggle_flag")
    return FlagToggleResponse(
        key=flag.key, environment=env.name, enabled=state.enabled, rollout=state.rollout
    )


@router.delete("/{key}")
def delete_flag(
    key: str,
    principal: Principal = Depends(require_project_scope),
    store: EntityStore = Depends(get_store),
) -> dict[str, bool]:
    """Delete a flag and its per-environment values."""
    service = FlagStateService(store)
    flag = service.get_flag_or_404(principal.project, key)
    try:
        service.delete_flag(flag)
    except SQLAlchemyError as e:
        raise handle_database_error(e, "delete_flag")
    return {"success": True}
