"""Application-wide constants."""

# Long-lived credential prefixes. None of these is a prefix of another.
PROJECT_KEY_PREFIX = "fp_proj_"
ENVIRONMENT_KEY_PREFIX = "fp_env_"
USER_KEY_PREFIX = "fpu_"

KEY_RANDOM_LENGTH = 32
KEY_DISPLAY_PREFIX_LENGTH = 12  # e.g. "fpu_a1b2c3d4"

BEARER_SCHEME = "Bearer "


# Environment names
class EnvironmentName:
    """Environment name constants."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


DEFAULT_ENVIRONMENTS = (
    EnvironmentName.DEVELOPMENT,
    EnvironmentName.STAGING,
    EnvironmentName.PRODUCTION,
)


# Flag types accepted on creation; evaluation is boolean-only
class FlagType:
    """Flag type constants."""
    BOOLEAN = "boolean"
    STRING = "string"
    NUMBER = "number"
    JSON = "json"


FLAG_TYPES = (FlagType.BOOLEAN, FlagType.STRING, FlagType.NUMBER, FlagType.JSON)

# Flag value defaults (also the meaning of a missing flag value row)
DEFAULT_ENABLED = False
DEFAULT_ROLLOUT = 100
MIN_ROLLOUT = 0
MAX_ROLLOUT = 100
ROLLOUT_BUCKETS = 100

FLAG_KEY_MAX_LENGTH = 255
NAME_MAX_LENGTH = 255

# Accounts
MIN_PASSWORD_LENGTH = 8
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 32
MAX_USERNAME_RETRIES = 10
DEFAULT_PROJECT_NAME = "My Project"
DEFAULT_API_KEY_NAME = "Default API Key"
