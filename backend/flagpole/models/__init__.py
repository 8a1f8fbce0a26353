"""Models package."""
from flagpole.models.user import User
from flagpole.models.api_key import APIKey
from flagpole.models.project import Project
from flagpole.models.environment import Environment
from flagpole.models.flag import Flag, FlagValue

__all__ = ["User", "APIKey", "Project", "Environment", "Flag", "FlagValue"]
