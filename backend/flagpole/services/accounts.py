"""Account management: signup, login, profile and user API keys."""
import re
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from flagpole.auth.credentials import CredentialCodec
from flagpole.constants import (
    DEFAULT_API_KEY_NAME,
    DEFAULT_PROJECT_NAME,
    KEY_DISPLAY_PREFIX_LENGTH,
    MAX_USERNAME_LENGTH,
    MAX_USERNAME_RETRIES,
    MIN_PASSWORD_LENGTH,
    MIN_USERNAME_LENGTH,
)
from flagpole.models import APIKey, Environment, Project, User
from flagpole.services.projects import create_project, validate_project_name
from flagpole.store import EntityStore
from flagpole.utils.exceptions import (
    BadRequestError,
    ConflictError,
    InternalError,
    InvalidCredentialsError,
    not_found_error,
)
from flagpole.utils.hashing import generate_user_api_key, hash_password, verify_password
from flagpole.utils.logger import logger
from flagpole.utils.usernames import generate_username, generate_username_with_suffix

USERNAME_PATTERN = re.compile(r"^[a-z0-9_-]+$")
MAX_PASSWORD_BYTES = 72  # bcrypt input limit


@dataclass
class IssuedApiKey:
    """A freshly created API key. ``raw_key`` is never retrievable again."""
    api_key: APIKey
    raw_key: str


@dataclass
class SignupResult:
    user: User
    api_key: IssuedApiKey
    token: str
    project: Project
    environments: list[Environment]


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError("Password must be at least 8 characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise BadRequestError("Password must be at most 72 bytes")


def normalize_username(username: str) -> str:
    """Trim, lower-case and validate a user-chosen username."""
    username = username.strip().lower()
    if len(username) < MIN_USERNAME_LENGTH:
        raise BadRequestError("Username must be at least 3 characters")
    if len(username) > MAX_USERNAME_LENGTH:
        raise BadRequestError("Username must be at most 32 characters")
    if not USERNAME_PATTERN.match(username):
        raise BadRequestError(
            "Username can only contain letters, numbers, hyphens, and underscores"
        )
    return username


def pick_free_username(
    store: EntityStore,
    generate: Callable[[], str] = generate_username,
    generate_with_suffix: Callable[[], str] = generate_username_with_suffix,
) -> str:
    """Generate a username not yet taken.

    Tries the short form first, then the suffixed form, and gives up after
    twice the retry budget.
    """
    username = generate()
    retries = 0
    while store.username_exists(username):
        retries += 1
        if retries > MAX_USERNAME_RETRIES * 2:
            raise InternalError("Failed to generate unique username")
        username = generate_with_suffix() if retries > MAX_USERNAME_RETRIES else generate()
    return username


class AccountService:
    """Signup, login, profile updates and user API key management."""

    def __init__(self, store: EntityStore, codec: CredentialCodec):
        self.store = store
        self.codec = codec

    def signup(
        self,
        password: str,
        username: Optional[str] = None,
        project_name: Optional[str] = None,
    ) -> SignupResult:
        """
        Create an account with a default API key and a first project.

        Raises:
            BadRequestError: password or username fails validation
            ConflictError: the requested username is taken
        """
        validate_password(password)
        project_name = validate_project_name(project_name or DEFAULT_PROJECT_NAME)
        if username is not None:
            username = normalize_username(username)
            if self.store.username_exists(username):
                raise ConflictError("User already exists")
        else:
            username = pick_free_username(self.store)

        try:
            user = self.store.create_user(
                User(username=username, password_hash=hash_password(password))
            )
        except IntegrityError as e:
            raise ConflictError("User already exists") from e
        issued = self.create_api_key(user, DEFAULT_API_KEY_NAME)
        project, environments = create_project(self.store, user, project_name)
        logger.info(f"Signed up user {user.id} ({username})")

        return SignupResult(
            user=user,
            api_key=issued,
            token=self.codec.issue(user),
            project=project,
            environments=environments,
        )

    def login(self, username: str, password: str) -> tuple[User, str]:
        """
        Check a username/password pair and issue a session token.

        Raises:
            InvalidCredentialsError: unknown user or wrong password
        """
        user = self.store.get_user_by_username(username.strip().lower())
        if not user or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login for {username}")
            raise InvalidCredentialsError()
        return user, self.codec.issue(user)

    def update_profile(self, user: User, email: Optional[str] = None) -> User:
        """Update the user's email. An empty string clears it."""
        if email is not None:
            email = email.strip().lower()
            if email and "@" not in email:
                raise BadRequestError("Invalid email format")
            user.email = email or None
        return self.store.update_user(user)

    # ==================== API KEYS ====================

    def create_api_key(self, user: User, name: Optional[str] = None) -> IssuedApiKey:
        raw_key = generate_user_api_key()
        api_key = self.store.create_api_key(
            APIKey(
                user_id=user.id,
                key_hash=self.codec.digest(raw_key),
                key_prefix=raw_key[:KEY_DISPLAY_PREFIX_LENGTH],
                name=name,
            )
        )
        logger.info(f"Created API key {api_key.id} for user {user.id}")
        return IssuedApiKey(api_key=api_key, raw_key=raw_key)

    def list_api_keys(self, user: User) -> list[APIKey]:
        return self.store.list_api_keys_by_user(user.id)

    def revoke_api_key(self, user: User, key_id: str) -> None:
        """
        Revoke one of the user's API keys.

        Raises:
            NotFoundError: no active key with that id belongs to the user
        """
        if not self.store.revoke_api_key(user.id, key_id):
            raise not_found_error("API key")
        logger.info(f"Revoked API key {key_id} for user {user.id}")
