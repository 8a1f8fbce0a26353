"""Bearer credential resolution.

Every request carries one of four credential kinds in the ``Authorization``
header:

* project key (``fp_proj_...``) - scoped to one project
* environment key (``fp_env_...``) - scoped to one environment of a project
* user API key (``fpu_...``) - acts on the owner's first project
* session token (anything else) - a signed JWT, also acting on the owner's
  first project

``classify_token`` is the only place that decides which kind a token is.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from flagpole.auth.credentials import CredentialCodec, get_codec
from flagpole.constants import (
    BEARER_SCHEME,
    ENVIRONMENT_KEY_PREFIX,
    PROJECT_KEY_PREFIX,
    USER_KEY_PREFIX,
)
from flagpole.models import Environment, Project, User
from flagpole.store import EntityStore, get_store
from flagpole.utils.exceptions import (
    InternalError,
    InvalidApiKeyError,
    NotFoundError,
    UnauthorizedError,
)
from flagpole.utils.logger import logger


class TokenKind(str, enum.Enum):
    """Credential kinds, in classification order."""
    PROJECT_KEY = "project_key"
    ENVIRONMENT_KEY = "environment_key"
    USER_KEY = "user_key"
    SESSION_TOKEN = "session_token"


# Ordered: first matching prefix wins. Anything unmatched is a session token.
TOKEN_PREFIXES = (
    (PROJECT_KEY_PREFIX, TokenKind.PROJECT_KEY),
    (ENVIRONMENT_KEY_PREFIX, TokenKind.ENVIRONMENT_KEY),
    (USER_KEY_PREFIX, TokenKind.USER_KEY),
)


def classify_token(token: str) -> TokenKind:
    """Classify a bare bearer token by its prefix."""
    for prefix, kind in TOKEN_PREFIXES:
        if token.startswith(prefix):
            return kind
    return TokenKind.SESSION_TOKEN


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Strip the ``Bearer`` scheme from an Authorization header value.

    Raises:
        UnauthorizedError: header missing, wrong scheme, or empty token
    """
    if not authorization or not authorization.startswith(BEARER_SCHEME):
        raise UnauthorizedError()
    token = authorization[len(BEARER_SCHEME):].strip()
    if not token:
        raise UnauthorizedError()
    return token


class PrincipalScope(str, enum.Enum):
    PROJECT = "project"
    ENVIRONMENT = "environment"


@dataclass(frozen=True)
class Principal:
    """Resolved identity of a request.

    ``environment`` is set exactly when ``scope`` is ENVIRONMENT.
    """
    scope: PrincipalScope
    project: Project
    environment: Optional[Environment] = None

    @classmethod
    def for_project(cls, project: Project) -> "Principal":
        return cls(scope=PrincipalScope.PROJECT, project=project)

    @classmethod
    def for_environment(cls, environment: Environment, project: Project) -> "Principal":
        return cls(scope=PrincipalScope.ENVIRONMENT, project=project, environment=environment)


class PrincipalResolver:
    """Resolves bearer credentials against the entity store."""

    def __init__(self, store: EntityStore, codec: CredentialCodec):
        self.store = store
        self.codec = codec

    def resolve(self, authorization: Optional[str]) -> Principal:
        """
        Resolve an Authorization header to a scoped principal.

        Raises:
            UnauthorizedError: missing/garbled header, or unknown token subject
            InvalidApiKeyError: unknown or revoked long-lived key
            InvalidCredentialsError: session token failed verification
            NotFoundError: the authenticated user owns no project
            InternalError: environment key whose project no longer exists
        """
        token = extract_bearer_token(authorization)
        kind = classify_token(token)

        if kind is TokenKind.PROJECT_KEY:
            project = self.store.get_project_by_api_key(token)
            if not project:
                logger.warning("Rejected unknown project key")
                raise InvalidApiKeyError()
            return Principal.for_project(project)

        if kind is TokenKind.ENVIRONMENT_KEY:
            environment = self.store.get_environment_by_api_key(token)
            if not environment:
                logger.warning("Rejected unknown environment key")
                raise InvalidApiKeyError()
            project = self.store.get_project_by_id(environment.project_id)
            if not project:
                raise InternalError(
                    f"Project {environment.project_id} not found for environment {environment.id}"
                )
            return Principal.for_environment(environment, project)

        user = self._resolve_user_token(token, kind)
        return Principal.for_project(self._first_project(user))

    def resolve_user(self, authorization: Optional[str]) -> User:
        """
        Resolve an Authorization header to the authenticated user.

        Only user API keys and session tokens identify a user; project and
        environment keys fall through to session-token verification and fail
        there.
        """
        token = extract_bearer_token(authorization)
        kind = classify_token(token)
        if kind is not TokenKind.USER_KEY:
            kind = TokenKind.SESSION_TOKEN
        return self._resolve_user_token(token, kind)

    def _resolve_user_token(self, token: str, kind: TokenKind) -> User:
        if kind is TokenKind.USER_KEY:
            api_key = self.store.get_active_api_key_by_hash(self.codec.digest(token))
            if not api_key:
                logger.warning("Rejected unknown or revoked user API key")
                raise InvalidApiKeyError()
            user_id = api_key.user_id
        else:
            claims = self.codec.verify(token)
            user_id = claims.sub

        user = self.store.get_user_by_id(user_id)
        if not user:
            raise UnauthorizedError()
        return user

    def _first_project(self, user: User) -> Project:
        project = self.store.get_first_project_by_user(user.id)
        if not project:
            raise NotFoundError("No project found")
        return project


def get_resolver(
    store: EntityStore = Depends(get_store),
    codec: CredentialCodec = Depends(get_codec),
) -> PrincipalResolver:
    """Dependency for getting a principal resolver."""
    return PrincipalResolver(store, codec)


def get_principal(
    authorization: Optional[str] = Header(None),
    resolver: PrincipalResolver = Depends(get_resolver),
) -> Principal:
    """Dependency resolving any of the four credential kinds."""
    return resolver.resolve(authorization)


def get_current_user(
    authorization: Optional[str] = Header(None),
    resolver: PrincipalResolver = Depends(get_resolver),
) -> User:
    """Dependency resolving a user API key or session token to its user."""
    return resolver.resolve_user(authorization)


def require_project_scope(principal: Principal = Depends(get_principal)) -> Principal:
    """
    Dependency for management routes. Environment keys are read-only.

    An environment key reaching a management route is rejected with
    ``unauthorized`` ("Environment keys can only evaluate flags") instead of
    falling through to session-token verification, so SDKs see
    ``unauthorized`` here rather than ``invalid_credentials``.
    """
    if principal.scope is PrincipalScope.ENVIRONMENT:
        raise UnauthorizedError("Environment keys can only evaluate flags")
    return principal
