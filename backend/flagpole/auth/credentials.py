"""Session token and API key digest codec."""
import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable

from jose import JWTError, jwt

from flagpole.config import settings
from flagpole.models.user import User
from flagpole.utils.clock import utcnow
from flagpole.utils.exceptions import InvalidCredentialsError


@dataclass(frozen=True)
class SessionClaims:
    """Claims carried by a session token."""
    sub: str
    username: str
    iat: int
    exp: int


class CredentialCodec:
    """Issues and verifies session tokens and digests long-lived API keys.

    The signing secret is passed in explicitly so each caller (and each test)
    decides which secret is in effect.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(days=7),
        key_salt: str = "",
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret:
            raise ValueError("A signing secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl
        self.key_salt = key_salt
        self.clock = clock

    def issue(self, user: User) -> str:
        """Create a signed, time-boxed session token for ``user``."""
        now = int(self.clock().timestamp())
        claims = {
            "sub": str(user.id),
            "username": user.username,
            "iat": now,
            "exp": now + int(self.ttl.total_seconds()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> SessionClaims:
        """
        Verify a session token.

        Raises:
            InvalidCredentialsError: bad signature, malformed token, expired
                token, or missing subject
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidCredentialsError("Invalid token") from e

        subject = payload.get("sub")
        if not subject:
            raise InvalidCredentialsError("Invalid token claims")

        return SessionClaims(
            sub=subject,
            username=payload.get("username", ""),
            iat=int(payload.get("iat", 0)),
            exp=int(payload.get("exp", 0)),
        )

    def digest(self, raw_key: str) -> str:
        """
        Hash a raw API key using SHA-256 with the configured salt.

        Args:
            raw_key: The API key as presented by the client

        Returns:
            Hex digest used for storage and lookup
        """
        salted_key = f"{raw_key}{self.key_salt}"
        return hashlib.sha256(salted_key.encode()).hexdigest()


@lru_cache
def get_codec() -> CredentialCodec:
    """Dependency returning the codec configured from settings."""
    return CredentialCodec(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl=timedelta(days=settings.jwt_expiry_days),
        key_salt=settings.api_key_salt,
    )
