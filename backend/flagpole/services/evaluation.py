"""Flag evaluation.

Decides whether a flag is on for a request, using the stored per-environment
state and deterministic percentage bucketing.
"""
import random
from dataclasses import dataclass
from typing import Optional

import mmh3

from flagpole.auth.principal import Principal, PrincipalScope
from flagpole.constants import EnvironmentName, MAX_ROLLOUT, MIN_ROLLOUT, ROLLOUT_BUCKETS
from flagpole.models import Environment, FlagValue
from flagpole.store import EntityStore
from flagpole.utils.exceptions import not_found_error

BUCKET_HASH_SEED = 0


@dataclass(frozen=True)
class EvaluationResult:
    key: str
    enabled: bool


def rollout_bucket(flag_key: str, end_user_id: str) -> int:
    """Stable bucket in [0, 100) for an end user of a flag.

    Uses unsigned 32-bit MurmurHash3 (seed 0) of ``"<flag_key>:<end_user_id>"``.
    """
    hashed = mmh3.hash(f"{flag_key}:{end_user_id}", BUCKET_HASH_SEED, signed=False)
    return hashed % ROLLOUT_BUCKETS


def is_enabled_for_user(flag_key: str, end_user_id: str, rollout_percentage: int) -> bool:
    """Sticky rollout decision for a single end user."""
    return rollout_bucket(flag_key, end_user_id) < rollout_percentage


def decide(
    flag_key: str,
    flag_value: Optional[FlagValue],
    end_user_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> bool:
    """
    Apply the decision rule to a flag's stored state.

    A missing value row means disabled. Without an end-user id the bucket is
    drawn at random on every call, so only requests that carry an id get a
    sticky answer.
    """
    if flag_value is None or not flag_value.enabled:
        return False
    rollout = flag_value.rollout_percentage
    if rollout >= MAX_ROLLOUT:
        return True
    if rollout <= MIN_ROLLOUT:
        return False
    if end_user_id is not None:
        return is_enabled_for_user(flag_key, end_user_id, rollout)
    return (rng or random).randrange(ROLLOUT_BUCKETS) < rollout


class FlagEvaluator:
    """Evaluates flags on behalf of a resolved principal."""

    def __init__(self, store: EntityStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng

    def target_environment(self, principal: Principal) -> Environment:
        """Environment named by the principal, or the project's production."""
        if principal.scope is PrincipalScope.ENVIRONMENT:
            return principal.environment
        environment = self.store.get_environment_by_name(
            principal.project.id, EnvironmentName.PRODUCTION
        )
        if not environment:
            raise not_found_error("Production environment")
        return environment

    def evaluate(
        self,
        principal: Principal,
        flag_key: str,
        end_user_id: Optional[str] = None,
    ) -> EvaluationResult:
        """
        Evaluate ``flag_key`` for the principal's project.

        Raises:
            NotFoundError: unknown flag, or no production environment
        """
        flag = self.store.get_flag_by_key(principal.project.id, flag_key)
        if not flag:
            raise not_found_error("Flag", flag_key)

        environment = self.target_environment(principal)
        flag_value = self.store.get_flag_value(flag.id, environment.id)
        enabled = decide(flag.key, flag_value, end_user_id, self.rng)
        return EvaluationResult(key=flag.key, enabled=enabled)
