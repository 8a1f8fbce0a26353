"""Tests for rollout bucketing and flag evaluation."""
import random

import pytest

from flagpole.auth.principal import Principal
from flagpole.models import FlagValue
from flagpole.services.evaluation import FlagEvaluator, decide, is_enabled_for_user, rollout_bucket
from flagpole.services.flag_state import FlagStateService
from flagpole.utils.exceptions import NotFoundError


def flag_value(enabled=True, rollout=100):
    return FlagValue(enabled=enabled, rollout_percentage=rollout)


# ==================== BUCKETING ====================


class TestRolloutBucket:
    def test_bucket_in_range(self):
        for i in range(1000):
            assert 0 <= rollout_bucket("checkout-v2", f"user-{i}") < 100

    def test_bucket_is_stable(self):
        assert rollout_bucket("checkout-v2", "user-123") == rollout_bucket("checkout-v2", "user-123")

    def test_full_and_empty_rollout(self):
        for i in range(200):
            assert is_enabled_for_user("checkout-v2", f"user-{i}", 100)
            assert not is_enabled_for_user("checkout-v2", f"user-{i}", 0)

    def test_half_rollout_distribution(self):
        enabled = sum(is_enabled_for_user("checkout-v2", f"user-{i}", 50) for i in range(10000))

        assert 0.45 <= enabled / 10000 <= 0.55

    def test_rollout_is_monotonic(self):
        """Raising the percentage never turns a user off."""
        for i in range(500):
            user_id = f"user-{i}"
            if is_enabled_for_user("new-nav", user_id, 20):
                assert is_enabled_for_user("new-nav", user_id, 60)

    def test_bucket_depends_on_flag_key(self):
        buckets_a = [rollout_bucket("flag-a", f"user-{i}") for i in range(100)]
        buckets_b = [rollout_bucket("flag-b", f"user-{i}") for i in range(100)]

        assert buckets_a != buckets_b


# ==================== DECISION RULE ====================


class TestDecide:
    def test_missing_value_is_disabled(self):
        assert decide("f", None, "user-1") is False

    def test_disabled_ignores_rollout(self):
        assert decide("f", flag_value(enabled=False, rollout=100), "user-1") is False

    def test_full_rollout_without_user(self):
        assert decide("f", flag_value(rollout=100)) is True

    def test_zero_rollout_without_user(self):
        assert decide("f", flag_value(rollout=0)) is False

    def test_sticky_with_user(self):
        value = flag_value(rollout=50)
        first = decide("checkout-v2", value, "user-123")

        for _ in range(20):
            assert decide("checkout-v2", value, "user-123") is first
        assert first is is_enabled_for_user("checkout-v2", "user-123", 50)

    def test_random_bucket_without_user(self):
        value = flag_value(rollout=30)
        rng = random.Random(42)
        expected_rng = random.Random(42)

        results = [decide("f", value, rng=rng) for _ in range(50)]

        assert results == [expected_rng.randrange(100) < 30 for _ in range(50)]
        assert any(results) and not all(results)


# ==================== EVALUATOR ====================


class TestFlagEvaluator:
    @pytest.fixture
    def project(self, create_user, create_project):
        return create_project(create_user())

    def test_project_principal_uses_production(self, store, project, create_flag, environment):
        flag = create_flag(project, key="checkout-v2")
        FlagStateService(store).set_value(flag, environment(project, "staging"), enabled=True)

        result = FlagEvaluator(store).evaluate(Principal.for_project(project), "checkout-v2", "user-123")

        assert result.key == "checkout-v2"
        assert result.enabled is False

    def test_environment_principal_uses_its_environment(self, store, project, create_flag, environment):
        flag = create_flag(project, key="checkout-v2")
        staging = environment(project, "staging")
        FlagStateService(store).set_value(flag, staging, enabled=True)

        result = FlagEvaluator(store).evaluate(
            Principal.for_environment(staging, project), "checkout-v2", "user-123"
        )

        assert result.enabled is True

    def test_half_rollout_is_sticky_per_user(self, store, project, create_flag, environment):
        flag = create_flag(project, key="checkout-v2")
        FlagStateService(store).set_value(flag, environment(project), enabled=True, rollout=50)
        evaluator = FlagEvaluator(store)
        principal = Principal.for_project(project)

        first = evaluator.evaluate(principal, "checkout-v2", "user-123").enabled
        second = evaluator.evaluate(principal, "checkout-v2", "user-123").enabled

        assert first is second
        assert first is is_enabled_for_user("checkout-v2", "user-123", 50)

    def test_anonymous_uses_injected_rng(self, store, project, create_flag, environment):
        flag = create_flag(project, key="checkout-v2")
        FlagStateService(store).set_value(flag, environment(project), enabled=True, rollout=50)
        evaluator = FlagEvaluator(store, rng=random.Random(7))
        expected_rng = random.Random(7)

        results = [
            evaluator.evaluate(Principal.for_project(project), "checkout-v2").enabled
            for _ in range(10)
        ]

        assert results == [expected_rng.randrange(100) < 50 for _ in range(10)]

    def test_missing_value_row_is_disabled(self, store, project, create_flag, environment):
        flag = create_flag(project, key="checkout-v2", enabled=True)
        production = environment(project)
        store.db.delete(store.get_flag_value(flag.id, production.id))
        store.db.commit()

        result = FlagEvaluator(store).evaluate(Principal.for_project(project), "checkout-v2")

        assert result.enabled is False

    def test_unknown_flag(self, store, project):
        with pytest.raises(NotFoundError):
            FlagEvaluator(store).evaluate(Principal.for_project(project), "nope")

    def test_missing_production_environment(self, store, project, create_flag, environment):
        create_flag(project, key="checkout-v2")
        store.db.delete(environment(project, "production"))
        store.db.commit()

        with pytest.raises(NotFoundError):
            FlagEvaluator(store).evaluate(Principal.for_project(project), "checkout-v2")

    def test_checkout_example(self, store, project, create_flag, environment):
        flag = create_flag(project, key="checkout-v2", enabled=True)
        service = FlagStateService(store)
        service.set_value(flag, environment(project), rollout=25)
        evaluator = FlagEvaluator(store)
        principal = Principal.for_project(project)

        results = {evaluator.evaluate(principal, "checkout-v2", "user-42").enabled for _ in range(100)}
        assert len(results) == 1

        service.set_value(flag, environment(project), rollout=0)
        assert not any(
            evaluator.evaluate(principal, "checkout-v2", f"user-{i}").enabled for i in range(100)
        )

    def test_other_projects_flag_is_not_found(self, store, project, create_user, create_project, create_flag):
        other = create_project(create_user())
        create_flag(other, key="secret-flag", enabled=True)

        with pytest.raises(NotFoundError):
            FlagEvaluator(store).evaluate(Principal.for_project(project), "secret-flag")
