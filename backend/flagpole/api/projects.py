"""Projects API endpoints.

User-scoped management routes used by the CLI and dashboard. Every route that
names a project id checks ownership first; a foreign project answers exactly
like a missing one.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError

from flagpole.auth.ownership import get_owned_project
from flagpole.auth.principal import get_current_user
from flagpole.models import User
from flagpole.schemas.flags import (
    CreateFlagRequest,
    FlagEnvironmentValue,
    FlagWithStateResponse,
    UpdateFlagValueRequest,
)
from flagpole.schemas.projects import CreateProjectRequest, EnvironmentResponse, ProjectResponse
from flagpole.services.flag_state import FlagStateService
from flagpole.services.projects import create_project as provision_project
from flagpole.store import EntityStore, get_store
from flagpole.utils.exceptions import AppException, BadRequestError, handle_database_error
from flagpole.utils.logger import logger

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[ProjectResponse])
def get_projects(
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> list[ProjectResponse]:
    """
    Get all projects for the authenticated user.

    Args:
        user: Authenticated user
        store: Entity store

    Returns:
        List of projects, oldest first
    """
    projects = store.list_projects_by_user(user.id)
    return [ProjectResponse.from_orm(p) for p in projects]


@router.post("", response_model=ProjectResponse)
def create_project(
    request: CreateProjectRequest,
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> ProjectResponse:
    """
    Create a new project with development, staging and production
    environments.

    Args:
        request: Project creation data
        user: Authenticated user
        store: Entity store

    Returns:
        Created project
    """
    try:
        project, _ = provision_project(store, user, request.name)
    except AppException:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Failed to create project for user {user.id}: {e}", exc_info=True)
        raise handle_database_error(e, "create_project")
    return ProjectResponse.from_orm(project)


@router.get("/{project_id}/environments", response_model=list[EnvironmentResponse])
def get_environments(
    project_id: str,
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> list[EnvironmentResponse]:
    """List the environments of a project owned by the user."""
    project = get_owned_project(store, project_id, user)
    return [EnvironmentResponse.from_orm(e) for e in store.list_environments_by_project(project.id)]


@router.get("/{project_id}/flags", response_model=list[FlagWithStateResponse])
def get_flags(
    project_id: str,
    environment: Optional[str] = Query(None, description="Environment name (default production)"),
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> list[FlagWithStateResponse]:
    """
    List a project's flags with their state in one environment.

    Args:
        project_id: Project ID
        environment: Environment name, production when omitted
        user: Authenticated user (must own the project)
        store: Entity store

    Returns:
        Flags with their enabled state
    """
    project = get_owned_project(store, project_id, user)
    views = FlagStateService(store).list_flags(project, environment)
    return [FlagWithStateResponse.from_flag(v.flag, v.enabled) for v in views]


@router.post("/{project_id}/flags", response_model=FlagWithStateResponse)
def create_flag(
    project_id: str,
    request: CreateFlagRequest,
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> FlagWithStateResponse:
    """Create a flag in a project owned by the user."""
    project = get_owned_project(store, project_id, user)
    try:
        flag = FlagStateService(store).create_flag(
            project,
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


@router.get("/{project_id}/flags/{key}", response_model=FlagWithStateResponse)
def get_flag(
    project_id: str,
    key: str,
    environment: Optional[str] = Query(None, description="Environment name (default production)"),
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> FlagWithStateResponse:
    """Get one flag with its state in one environment."""
    project = get_owned_project(store, project_id, user)
    view = FlagStateService(store).get_flag(project, key, environment)
    return FlagWithStateResponse.from_flag(view.flag, view.enabled)


@router.patch(
    "/{project_id}/flags/{key}/environments/{environment}",
    response_model=FlagEnvironmentValue,
)
def update_flag_value(
    project_id: str,
    key: str,
    environment: str,
    request: UpdateFlagValueRequest,
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> FlagEnvironmentValue:
    """Partially update a flag's enabled state and rollout in one environment."""
    project = get_owned_project(store, project_id, user)
    service = FlagStateService(store)
    flag = service.get_flag_or_404(project, key)
    env = service.get_environment_or_404(project, environment)
    try:
        state = service.set_value(
            flag, env, enabled=request.enabled, rollout=request.rollout_percentage
        )
    except AppException:
        raise
    except SQLAlchemyError as e:
        raise handle_database_error(e, "update_flag_value")
    return FlagEnvironmentValue.from_state(state)


@router.post("/{project_id}/flags/{key}/toggle", response_model=FlagWithStateResponse)
def toggle_flag(
    project_id: str,
    key: str,
    environment: Optional[str] = Query(None, description="Environment name"),
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> FlagWithStateResponse:
    """
    Toggle a flag in one environment.

    Args:
        project_id: Project ID
        key: Flag key
        environment: Environment name (required)
        user: Authenticated user (must own the project)
        store: Entity store

    Returns:
        The flag with its new enabled state
    """
    project = get_owned_project(store, project_id, user)
    service = FlagStateService(store)
    flag = service.get_flag_or_404(project, key)
    if not environment:
        raise BadRequestError("environment query param is required")
    env = service.get_environment_or_404(project, environment)
    try:
        state = service.toggle(flag, env)
    except AppException:
        raise
    except SQLAlchemyError as e:
        raise handle_database_error(e, "toggle_flag")
    return FlagWithStateResponse.from_flag(flag, state.enabled)


@router.delete("/{project_id}/flags/{key}")
def delete_flag(
    project_id: str,
    key: str,
    user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict[str, bool]:
    """Delete a flag and its per-environment values."""
    project = get_owned_project(store, project_id, user)
    service = FlagStateService(store)
    flag = service.get_flag_or_404(project, key)
    try:
        service.delete_flag(flag)
    except SQLAlchemyError as e:
        raise handle_database_error(e, "delete_flag")
    return {"success": True}
