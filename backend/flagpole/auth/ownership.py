"""Tenant ownership checks for project-scoped management routes."""
from flagpole.models import Project, User
from flagpole.store import EntityStore
from flagpole.utils.exceptions import not_found_error


def ensure_owned(project: Project, user: User) -> None:
    """
    Verify that the project belongs to the user.

    A foreign project is reported exactly like a missing one, so callers
    cannot probe for other tenants' project ids.

    Raises:
        NotFoundError: project is owned by someone else
    """
    if project.user_id != user.id:
        raise not_found_error("Project")


def get_owned_project(store: EntityStore, project_id: str, user: User) -> Project:
    """Load a project by id and verify the user owns it."""
    project = store.get_project_by_id(project_id)
    if not project:
        raise not_found_error("Project")
    ensure_owned(project, user)
    return project
