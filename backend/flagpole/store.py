"""
Entity Store

Keyed lookups and inserts for every entity the flag service works with,
wrapped around a single SQLAlchemy session. Each write method commits its own
transaction so callers see one atomic unit per call.
"""
import uuid
from typing import Iterable, Optional, Sequence

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flagpole.constants import DEFAULT_ROLLOUT
from flagpole.database import get_db
from flagpole.models import APIKey, Environment, Flag, FlagValue, Project, User
from flagpole.utils.clock import utcnow
from flagpole.utils.logger import logger


def parse_uuid(value) -> Optional[uuid.UUID]:
    """Parse a UUID, returning None for malformed input."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class EntityStore:
    """
    Store facade used by the resolver, evaluation engine and mutators.

    Usage:
        store = EntityStore(db)
        project = store.get_project_by_api_key(token)
    """

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            # Unique violations are expected races; callers decide what they mean
            self.db.rollback()
            logger.debug(f"Constraint violation committing {operation}: {e}")
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error committing {operation}: {e}")
            raise

    # ==================== USERS ====================

    def create_user(self, user: User) -> User:
        self.db.add(user)
        self._commit("create_user")
        self.db.refresh(user)
        return user

    def get_user_by_id(self, user_id) -> Optional[User]:
        parsed = parse_uuid(user_id)
        if parsed is None:
            return None
        return self.db.get(User, parsed)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.scalars(select(User).where(User.username == username)).first()

    def username_exists(self, username: str) -> bool:
        return self.get_user_by_username(username) is not None

    def update_user(self, user: User) -> User:
        self._commit("update_user")
        self.db.refresh(user)
        return user

    # ==================== API KEYS ====================

    def create_api_key(self, api_key: APIKey) -> APIKey:
        self.db.add(api_key)
        self._commit("create_api_key")
        self.db.refresh(api_key)
        return api_key

    def get_active_api_key_by_hash(self, key_hash: str) -> Optional[APIKey]:
        """Find a usable (non-revoked) API key by digest."""
        return self.db.scalars(
            select(APIKey).where(APIKey.key_hash == key_hash, APIKey.revoked_at.is_(None))
        ).first()

    def list_api_keys_by_user(self, user_id: uuid.UUID) -> list[APIKey]:
        return list(
            self.db.scalars(
                select(APIKey)
                .where(APIKey.user_id == user_id, APIKey.revoked_at.is_(None))
                .order_by(APIKey.created_at)
            )
        )

    def revoke_api_key(self, user_id: uuid.UUID, key_id) -> bool:
        """Revoke one of the user's keys. Returns False if no such active key."""
        parsed = parse_uuid(key_id)
        if parsed is None:
            return False
        result = self.db.execute(
            update(APIKey)
            .where(APIKey.id == parsed, APIKey.user_id == user_id, APIKey.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self._commit("revoke_api_key")
        return result.rowcount > 0

    # ==================== PROJECTS ====================

    def create_project(self, project: Project, environments: Iterable[Environment]) -> Project:
        """Insert a project together with its environments in one transaction."""
        self.db.add(project)
        self.db.flush()
        for environment in environments:
            environment.project_id = project.id
            self.db.add(environment)
        self._commit("create_project")
        self.db.refresh(project)
        return project

    def get_project_by_id(self, project_id) -> Optional[Project]:
        parsed = parse_uuid(project_id)
        if parsed is None:
            return None
        return self.db.get(Project, parsed)

    def get_project_by_api_key(self, api_key: str) -> Optional[Project]:
        return self.db.scalars(select(Project).where(Project.api_key == api_key)).first()

    def list_projects_by_user(self, user_id: uuid.UUID) -> list[Project]:
        return list(
            self.db.scalars(
                select(Project).where(Project.user_id == user_id).order_by(Project.created_at, Project.id)
            )
        )

    def get_first_project_by_user(self, user_id: uuid.UUID) -> Optional[Project]:
        """The user's earliest-created project."""
        return self.db.scalars(
            select(Project)
            .where(Project.user_id == user_id)
            .order_by(Project.created_at, Project.id)
            .limit(1)
        ).first()

    # ==================== ENVIRONMENTS ====================

    def get_environment_by_api_key(self, api_key: str) -> Optional[Environment]:
        return self.db.scalars(select(Environment).where(Environment.api_key == api_key)).first()

    def get_environment_by_name(self, project_id: uuid.UUID, name: str) -> Optional[Environment]:
        return self.db.scalars(
            select(Environment).where(Environment.project_id == project_id, Environment.name == name)
        ).first()

    def list_environments_by_project(self, project_id: uuid.UUID) -> list[Environment]:
        return list(
            self.db.scalars(
                select(Environment)
                .where(Environment.project_id == project_id)
                .order_by(Environment.created_at, Environment.name)
            )
        )

    # ==================== FLAGS ====================

    def create_flag(self, flag: Flag, values: Iterable[FlagValue]) -> Flag:
        """Insert a flag together with its initial per-environment values."""
        self.db.add(flag)
        self.db.flush()
        for value in values:
            value.flag_id = flag.id
            self.db.add(value)
        self._commit("create_flag")
        self.db.refresh(flag)
        return flag

    def get_flag_by_key(self, project_id: uuid.UUID, key: str) -> Optional[Flag]:
        return self.db.scalars(
            select(Flag).where(Flag.project_id == project_id, Flag.key == key)
        ).first()

    def list_flags_by_project(self, project_id: uuid.UUID) -> list[Flag]:
        return list(
            self.db.scalars(
                select(Flag).where(Flag.project_id == project_id).order_by(Flag.created_at, Flag.key)
            )
        )

    def delete_flag(self, flag: Flag) -> None:
        """Delete a flag; its values are removed by the ORM cascade."""
        self.db.delete(flag)
        self._commit("delete_flag")

    # ==================== FLAG VALUES ====================

    def get_flag_value(
        self,
        flag_id: uuid.UUID,
        environment_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[FlagValue]:
        """Look up the value row for a (flag, environment) pair.

        With ``for_update`` the row stays locked until the next commit.
        """
        query = select(FlagValue).where(
            FlagValue.flag_id == flag_id,
            FlagValue.environment_id == environment_id,
        )
        if for_update:
            query = query.with_for_update()
        return self.db.scalars(query).first()

    def list_flag_values_by_flag_ids(self, flag_ids: Sequence[uuid.UUID]) -> list[FlagValue]:
        if not flag_ids:
            return []
        return list(self.db.scalars(select(FlagValue).where(FlagValue.flag_id.in_(flag_ids))))

    def save_flag_value(self, flag_value: FlagValue) -> FlagValue:
        """Persist a new or modified value row.

        Raises:
            IntegrityError: a row for the same pair was inserted concurrently
        """
        flag_value.updated_at = utcnow()
        self.db.add(flag_value)
        self._commit("save_flag_value")
        self.db.refresh(flag_value)
        return flag_value

    def negate_flag_value(
        self, flag_id: uuid.UUID, environment_id: uuid.UUID
    ) -> Optional[tuple[bool, int]]:
        """Atomically flip ``enabled`` in a single UPDATE ... RETURNING.

        Returns the new ``(enabled, rollout_percentage)``, or None when no row
        exists for the pair.
        """
        row = self.db.execute(
            update(FlagValue)
            .where(FlagValue.flag_id == flag_id, FlagValue.environment_id == environment_id)
            .values(enabled=~FlagValue.enabled, updated_at=utcnow())
            .returning(FlagValue.enabled, FlagValue.rollout_percentage)
            .execution_options(synchronize_session=False)
        ).first()
        self._commit("negate_flag_value")
        if row is None:
            return None
        return bool(row.enabled), int(row.rollout_percentage)

    def insert_flag_value(
        self,
        flag_id: uuid.UUID,
        environment_id: uuid.UUID,
        enabled: bool,
        rollout_percentage: int = DEFAULT_ROLLOUT,
    ) -> Optional[FlagValue]:
        """Insert a value row; returns None if one already exists for the pair."""
        flag_value = FlagValue(
            flag_id=flag_id,
            environment_id=environment_id,
            enabled=enabled,
            rollout_percentage=rollout_percentage,
        )
        try:
            return self.save_flag_value(flag_value)
        except IntegrityError:
            logger.debug(f"Flag value for flag {flag_id} / env {environment_id} already exists")
            return None


def get_store(db: Session = Depends(get_db)) -> EntityStore:
    """Dependency for getting an entity store bound to the request session."""
    return EntityStore(db)
