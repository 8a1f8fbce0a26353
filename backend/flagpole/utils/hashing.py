"""Hashing utilities for passwords and key generation."""
import secrets
import string
import bcrypt

from flagpole.constants import (
    ENVIRONMENT_KEY_PREFIX,
    KEY_RANDOM_LENGTH,
    PROJECT_KEY_PREFIX,
    USER_KEY_PREFIX,
)

# Random part of generated keys never contains the "_" used in prefixes
KEY_ALPHABET = string.ascii_lowercase + string.digits


def _random_alphanumeric(length: int = KEY_RANDOM_LENGTH) -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


def generate_user_api_key() -> str:
    """
    Generate a new user API key.

    Returns:
        A new API key string (format: fpu_xxxxxxxx...)
    """
    return f"{USER_KEY_PREFIX}{_random_alphanumeric()}"


def generate_project_api_key() -> str:
    """Generate a project-scoped key (format: fp_proj_xxxxxxxx...)."""
    return f"{PROJECT_KEY_PREFIX}{_random_alphanumeric()}"


def generate_environment_api_key() -> str:
    """Generate an environment-scoped key (format: fp_env_xxxxxxxx...)."""
    return f"{ENVIRONMENT_KEY_PREFIX}{_random_alphanumeric()}"


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: The password to hash

    Returns:
        Bcrypt hash string
    """
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Args:
        password: The password to verify
        password_hash: The stored bcrypt hash

    Returns:
        True if the password matches, False otherwise
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False
