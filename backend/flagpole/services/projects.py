"""Project provisioning."""
from flagpole.constants import DEFAULT_ENVIRONMENTS, NAME_MAX_LENGTH
from flagpole.models import Environment, Project, User
from flagpole.store import EntityStore
from flagpole.utils.exceptions import BadRequestError
from flagpole.utils.hashing import generate_environment_api_key, generate_project_api_key
from flagpole.utils.logger import logger


def validate_project_name(name: str) -> str:
    """Trim and validate a project name."""
    name = (name or "").strip()
    if not name:
        raise BadRequestError("Project name cannot be empty")
    if len(name) > NAME_MAX_LENGTH:
        raise BadRequestError("Project name must be at most 255 characters")
    return name


def create_project(store: EntityStore, user: User, name: str) -> tuple[Project, list[Environment]]:
    """
    Create a project with the default development, staging and production
    environments, each with its own environment key.

    Args:
        store: Entity store
        user: Owner of the new project
        name: Project name

    Returns:
        The project and its environments
    """
    project = Project(
        user_id=user.id,
        name=validate_project_name(name),
        api_key=generate_project_api_key(),
    )
    environments = [
        Environment(name=env_name, api_key=generate_environment_api_key())
        for env_name in DEFAULT_ENVIRONMENTS
    ]
    project = store.create_project(project, environments)
    logger.info(f"Created project {project.id} for user {user.id}")
    return project, environments
