"""Flag state mutation and per-environment views.

FlagValue rows are only ever written here. Toggle goes through the store's
atomic negate primitive; partial updates read the row under a lock in the
same transaction as the write.
"""
import re
from dataclasses import dataclass, field
from typing import Optional

from flagpole.constants import (
    DEFAULT_ENABLED,
    DEFAULT_ROLLOUT,
    EnvironmentName,
    FLAG_KEY_MAX_LENGTH,
    FLAG_TYPES,
    FlagType,
    MAX_ROLLOUT,
    MIN_ROLLOUT,
    NAME_MAX_LENGTH,
)
from flagpole.models import Environment, Flag, FlagValue, Project
from flagpole.store import EntityStore
from flagpole.utils.exceptions import BadRequestError, InternalError, not_found_error
from flagpole.utils.logger import logger

FLAG_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class FlagEnvironmentState:
    enabled: bool
    rollout: int


DEFAULT_STATE = FlagEnvironmentState(enabled=DEFAULT_ENABLED, rollout=DEFAULT_ROLLOUT)


@dataclass
class FlagWithState:
    """A flag and whether it is enabled in one environment."""
    flag: Flag
    enabled: bool


@dataclass
class FlagWithEnvironments:
    """A flag and its state in every environment of its project."""
    flag: Flag
    environments: dict[str, FlagEnvironmentState] = field(default_factory=dict)


def validate_flag_key(key: str) -> None:
    if not key or len(key) > FLAG_KEY_MAX_LENGTH:
        raise BadRequestError("Invalid flag key")
    if not FLAG_KEY_PATTERN.match(key):
        raise BadRequestError(
            "Flag key can only contain alphanumeric characters, hyphens, and underscores"
        )


def validate_rollout(rollout: int) -> None:
    if not MIN_ROLLOUT <= rollout <= MAX_ROLLOUT:
        raise BadRequestError("Rollout percentage must be between 0 and 100")


def _state_of(flag_value: Optional[FlagValue]) -> FlagEnvironmentState:
    if flag_value is None:
        return DEFAULT_STATE
    return FlagEnvironmentState(enabled=flag_value.enabled, rollout=flag_value.rollout_percentage)


class FlagStateService:
    """Creates, deletes and mutates flags and their per-environment values."""

    def __init__(self, store: EntityStore):
        self.store = store

    # ==================== LOOKUPS ====================

    def get_flag_or_404(self, project: Project, key: str) -> Flag:
        flag = self.store.get_flag_by_key(project.id, key)
        if not flag:
            raise not_found_error("Flag", key)
        return flag

    def get_environment_or_404(self, project: Project, name: str) -> Environment:
        environment = self.store.get_environment_by_name(project.id, name)
        if not environment:
            raise not_found_error("Environment", name)
        return environment

    # ==================== MUTATIONS ====================

    def set_value(
        self,
        flag: Flag,
        environment: Environment,
        enabled: Optional[bool] = None,
        rollout: Optional[int] = None,
    ) -> FlagEnvironmentState:
        """
        Merge the provided fields over the current state and persist it.

        Fields left as None keep their current value (or the default when the
        pair has no row yet).

        Raises:
            BadRequestError: resulting rollout outside [0, 100]
        """
        existing = self.store.get_flag_value(flag.id, environment.id, for_update=True)
        state = self._merge(existing, enabled, rollout)

        if existing is None:
            inserted = self.store.insert_flag_value(
                flag.id, environment.id, state.enabled, state.rollout
            )
            if inserted is not None:
                logger.info(
                    f"Created flag {flag.key} value in {environment.name}: "
                    f"enabled={state.enabled} rollout={state.rollout}"
                )
                return _state_of(inserted)
            # Lost a race with a concurrent first write: merge over that row
            existing = self.store.get_flag_value(flag.id, environment.id, for_update=True)
            if existing is None:
                raise InternalError(f"Flag value for {flag.key} vanished during update")
            state = self._merge(existing, enabled, rollout)

        existing.enabled = state.enabled
        existing.rollout_percentage = state.rollout
        self.store.save_flag_value(existing)
        logger.info(
            f"Updated flag {flag.key} in {environment.name}: "
            f"enabled={state.enabled} rollout={state.rollout}"
        )
        return state

    def toggle(self, flag: Flag, environment: Environment) -> FlagEnvironmentState:
        """
        Flip ``enabled`` for a (flag, environment) pair.

        An absent value row is treated as disabled, so the first toggle
        creates it enabled with a full rollout.
        """
        flipped = self.store.negate_flag_value(flag.id, environment.id)
        if flipped is None:
            inserted = self.store.insert_flag_value(
                flag.id, environment.id, enabled=True, rollout_percentage=DEFAULT_ROLLOUT
            )
            if inserted is not None:
                state = _state_of(inserted)
            else:
                flipped = self.store.negate_flag_value(flag.id, environment.id)
                if flipped is None:
                    raise InternalError(f"Flag value for {flag.key} vanished during toggle")
                state = FlagEnvironmentState(*flipped)
        else:
            state = FlagEnvironmentState(*flipped)

        logger.info(f"Toggled flag {flag.key} in {environment.name}: enabled={state.enabled}")
        return state

    def create_flag(
        self,
        project: Project,
        key: str,
        name: str,
        description: Optional[str] = None,
        flag_type: str = FlagType.BOOLEAN,
        initial_enabled: bool = DEFAULT_ENABLED,
    ) -> Flag:
        """
        Create a flag with one value row per environment of the project.

        Raises:
            BadRequestError: invalid key, empty name, unknown type, or a flag
                with the same key already exists
        """
        validate_flag_key(key)
        name = (name or "").strip()
        if not name or len(name) > NAME_MAX_LENGTH:
            raise BadRequestError("Flag name must be between 1 and 255 characters")
        if flag_type not in FLAG_TYPES:
            raise BadRequestError(f"Unknown flag type '{flag_type}'")
        if self.store.get_flag_by_key(project.id, key):
            raise BadRequestError(f"Flag '{key}' already exists")

        flag = Flag(
            project_id=project.id,
            key=key,
            name=name,
            description=description,
            flag_type=flag_type,
        )
        values = [
            FlagValue(
                environment_id=environment.id,
                enabled=initial_enabled,
                rollout_percentage=DEFAULT_ROLLOUT,
            )
            for environment in self.store.list_environments_by_project(project.id)
        ]
        flag = self.store.create_flag(flag, values)
        logger.info(f"Created flag {key} in project {project.id} across {len(values)} environments")
        return flag

    def delete_flag(self, flag: Flag) -> None:
        key, project_id = flag.key, flag.project_id
        self.store.delete_flag(flag)
        logger.info(f"Deleted flag {key} from project {project_id}")

    # ==================== VIEWS ====================

    def get_flag(
        self,
        project: Project,
        key: str,
        environment_name: Optional[str] = None,
    ) -> FlagWithState:
        flag = self.get_flag_or_404(project, key)
        environment = self.store.get_environment_by_name(
            project.id, environment_name or EnvironmentName.PRODUCTION
        )
        return FlagWithState(flag=flag, enabled=self._enabled_in(flag, environment))

    def list_flags(
        self,
        project: Project,
        environment_name: Optional[str] = None,
    ) -> list[FlagWithState]:
        """Flags of the project with their state in one environment.

        An unknown environment name reports every flag as disabled.
        """
        environment = self.store.get_environment_by_name(
            project.id, environment_name or EnvironmentName.PRODUCTION
        )
        flags = self.store.list_flags_by_project(project.id)
        enabled_by_flag = {}
        if environment is not None:
            for flag_value in self.store.list_flag_values_by_flag_ids([f.id for f in flags]):
                if flag_value.environment_id == environment.id:
                    enabled_by_flag[flag_value.flag_id] = flag_value.enabled
        return [
            FlagWithState(flag=flag, enabled=enabled_by_flag.get(flag.id, DEFAULT_ENABLED))
            for flag in flags
        ]

    def list_flag_states(self, project: Project) -> list[FlagWithEnvironments]:
        """Flags of the project with their state in every environment."""
        environments = self.store.list_environments_by_project(project.id)
        env_names = {environment.id: environment.name for environment in environments}
        flags = self.store.list_flags_by_project(project.id)

        results = {
            flag.id: FlagWithEnvironments(
                flag=flag,
                environments={environment.name: DEFAULT_STATE for environment in environments},
            )
            for flag in flags
        }
        for flag_value in self.store.list_flag_values_by_flag_ids(list(results)):
            env_name = env_names.get(flag_value.environment_id)
            if env_name is not None:
                results[flag_value.flag_id].environments[env_name] = _state_of(flag_value)
        return list(results.values())

    # ==================== HELPERS ====================

    @staticmethod
    def _merge(
        existing: Optional[FlagValue],
        enabled: Optional[bool],
        rollout: Optional[int],
    ) -> FlagEnvironmentState:
        current = _state_of(existing)
        state = FlagEnvironmentState(
            enabled=current.enabled if enabled is None else enabled,
            rollout=current.rollout if rollout is None else rollout,
        )
        validate_rollout(state.rollout)
        return state

    def _enabled_in(self, flag: Flag, environment: Optional[Environment]) -> bool:
        if environment is None:
            return DEFAULT_ENABLED
        return _state_of(self.store.get_flag_value(flag.id, environment.id)).enabled
