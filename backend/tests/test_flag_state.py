"""Tests for flag creation, deletion, toggling and partial updates."""
import logging
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from flagpole.database import Base, init_db
from flagpole.models import User
from flagpole.services.flag_state import DEFAULT_STATE, FlagEnvironmentState, FlagStateService
from flagpole.services.projects import create_project as provision_project
from flagpole.store import EntityStore
from flagpole.utils.logger import logger
from flagpole.utils.exceptions import BadRequestError, NotFoundError


@pytest.fixture
def service(store):
    return FlagStateService(store)


@pytest.fixture
def project(create_user, create_project):
    return create_project(create_user())


# ==================== CREATE / DELETE ====================


class TestCreateFlag:
    def test_creates_one_value_per_environment(self, service, store, project):
        flag = service.create_flag(project, key="new-nav", name="New nav", initial_enabled=True)

        values = store.list_flag_values_by_flag_ids([flag.id])
        assert len(values) == 3
        assert all(v.enabled and v.rollout_percentage == 100 for v in values)

    def test_defaults_to_disabled_boolean(self, service, project):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        states = service.list_flag_states(project)[0].environments

        assert flag.flag_type == "boolean"
        assert set(states) == {"development", "staging", "production"}
        assert all(state == FlagEnvironmentState(enabled=False, rollout=100) for state in states.values())

    def test_duplicate_key(self, service, project):
        service.create_flag(project, key="new-nav", name="New nav")

        with pytest.raises(BadRequestError, match="already exists"):
            service.create_flag(project, key="new-nav", name="Again")

    def test_same_key_in_other_project(self, service, project, create_user, create_project):
        other = create_project(create_user())
        service.create_flag(project, key="new-nav", name="New nav")

        assert service.create_flag(other, key="new-nav", name="New nav").project_id == other.id

    @pytest.mark.parametrize("key", ["", "has space", "dots.not.allowed", "x" * 256, "emoji-✨"])
    def test_invalid_key(self, service, project, key):
        with pytest.raises(BadRequestError):
            service.create_flag(project, key=key, name="Name")

    def test_empty_name(self, service, project):
        with pytest.raises(BadRequestError):
            service.create_flag(project, key="ok", name="   ")

    def test_unknown_type(self, service, project):
        with pytest.raises(BadRequestError):
            service.create_flag(project, key="ok", name="Ok", flag_type="colour")


class TestDeleteFlag:
    def test_delete_removes_values(self, service, store, project):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        flag_id = flag.id

        service.delete_flag(flag)

        assert store.get_flag_by_key(project.id, "new-nav") is None
        assert store.list_flag_values_by_flag_ids([flag_id]) == []


# ==================== TOGGLE ====================


class TestToggle:
    def test_toggle_flips_and_preserves_rollout(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        production = environment(project)
        service.set_value(flag, production, rollout=25)

        assert service.toggle(flag, production) == FlagEnvironmentState(enabled=True, rollout=25)
        assert service.toggle(flag, production) == FlagEnvironmentState(enabled=False, rollout=25)

    def test_toggle_twice_restores_state(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav", initial_enabled=True)
        staging = environment(project, "staging")

        service.toggle(flag, staging)
        service.toggle(flag, staging)

        assert service.list_flag_states(project)[0].environments["staging"].enabled is True

    def test_toggle_only_touches_one_environment(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")

        service.toggle(flag, environment(project, "development"))

        states = service.list_flag_states(project)[0].environments
        assert states["development"].enabled is True
        assert states["staging"].enabled is False
        assert states["production"].enabled is False

    def test_toggle_absent_value_creates_enabled(self, service, store, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        production = environment(project)
        store.db.delete(store.get_flag_value(flag.id, production.id))
        store.db.commit()

        state = service.toggle(flag, production)

        assert state == FlagEnvironmentState(enabled=True, rollout=100)
        assert store.get_flag_value(flag.id, production.id).enabled is True


# ==================== PARTIAL UPDATE ====================


class TestSetValue:
    def test_rollout_only_keeps_enabled(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav", initial_enabled=True)

        state = service.set_value(flag, environment(project), rollout=40)

        assert state == FlagEnvironmentState(enabled=True, rollout=40)

    def test_enabled_only_keeps_rollout(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        production = environment(project)
        service.set_value(flag, production, rollout=40)

        state = service.set_value(flag, production, enabled=True)

        assert state == FlagEnvironmentState(enabled=True, rollout=40)

    def test_empty_update_is_a_no_op(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")

        assert service.set_value(flag, environment(project)) == DEFAULT_STATE

    def test_absent_value_merges_over_defaults(self, service, store, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        production = environment(project)
        store.db.delete(store.get_flag_value(flag.id, production.id))
        store.db.commit()

        state = service.set_value(flag, production, rollout=10)

        assert state == FlagEnvironmentState(enabled=False, rollout=10)
        assert store.get_flag_value(flag.id, production.id).rollout_percentage == 10

    @pytest.mark.parametrize("rollout", [-1, 101, 1000])
    def test_rollout_out_of_range(self, service, store, project, environment, rollout):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        production = environment(project)

        with pytest.raises(BadRequestError):
            service.set_value(flag, production, rollout=rollout)
        store.db.rollback()
        assert store.get_flag_value(flag.id, production.id).rollout_percentage == 100

    @pytest.mark.parametrize("rollout", [0, 100])
    def test_rollout_bounds_accepted(self, service, project, environment, rollout):
        flag = service.create_flag(project, key="new-nav", name="New nav")

        assert service.set_value(flag, environment(project), rollout=rollout).rollout == rollout


# ==================== VIEWS ====================


class TestViews:
    def test_get_flag_defaults_to_production(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        service.toggle(flag, environment(project, "staging"))

        assert service.get_flag(project, "new-nav").enabled is False
        assert service.get_flag(project, "new-nav", "staging").enabled is True

    def test_get_unknown_flag(self, service, project):
        with pytest.raises(NotFoundError):
            service.get_flag(project, "nope")

    def test_list_flags_unknown_environment_reports_disabled(self, service, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav", initial_enabled=True)

        assert [v.enabled for v in service.list_flags(project)] == [True]
        assert [v.enabled for v in service.list_flags(project, "qa")] == [False]
        assert service.list_flags(project)[0].flag.id == flag.id

    def test_unknown_environment_lookup(self, service, project):
        with pytest.raises(NotFoundError):
            service.get_environment_or_404(project, "qa")


# ==================== INSERT RACES ====================


def competing_insert(store, enabled, rollout):
    """Replace ``insert_flag_value`` with one that loses to a concurrent writer.

    The replacement writes the competitor's row first, then reports the
    unique violation by returning None.
    """
    real_insert = store.insert_flag_value

    def _insert(flag_id, environment_id, *args, **kwargs):
        real_insert(flag_id, environment_id, enabled, rollout)
        return None

    return _insert


class TestInsertRace:
    @pytest.fixture
    def absent_value(self, service, store, project, environment):
        flag = service.create_flag(project, key="new-nav", name="New nav")
        production = environment(project)
        store.db.delete(store.get_flag_value(flag.id, production.id))
        store.db.commit()
        return flag, production

    def test_toggle_falls_back_to_negate(self, service, store, absent_value, monkeypatch):
        flag, production = absent_value
        monkeypatch.setattr(store, "insert_flag_value", competing_insert(store, False, 30))

        state = service.toggle(flag, production)

        assert state == FlagEnvironmentState(enabled=True, rollout=30)
        assert store.get_flag_value(flag.id, production.id).enabled is True

    def test_set_value_merges_over_winning_row(self, service, store, absent_value, monkeypatch):
        flag, production = absent_value
        monkeypatch.setattr(store, "insert_flag_value", competing_insert(store, True, 30))

        state = service.set_value(flag, production, rollout=60)

        assert state == FlagEnvironmentState(enabled=True, rollout=60)
        stored = store.get_flag_value(flag.id, production.id)
        assert (stored.enabled, stored.rollout_percentage) == (True, 60)

    def test_duplicate_insert_is_not_logged_as_error(self, store, project, create_flag, environment, caplog):
        flag = create_flag(project, key="new-nav")
        logger.addHandler(caplog.handler)
        try:
            with caplog.at_level(logging.DEBUG, logger="flagpole"):
                result = store.insert_flag_value(flag.id, environment(project).id, enabled=True)
        finally:
            logger.removeHandler(caplog.handler)

        assert result is None
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


# ==================== CONCURRENT TOGGLES ====================


class TestConcurrentToggle:
    """Toggles of one (flag, environment) pair from separate connections."""

    THREADS = 9
    TOGGLES_PER_THREAD = 3

    @pytest.fixture
    def file_engine(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'flags.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        init_db(bind=engine)
        yield engine
        Base.metadata.drop_all(bind=engine)
        engine.dispose()

    def _setup_absent_value(self, SessionLocal):
        session = SessionLocal()
        try:
            store = EntityStore(session)
            user = store.create_user(User(username="racer", password_hash="x"))
            project, _ = provision_project(store, user, "Race")
            service = FlagStateService(store)
            flag = service.create_flag(project, key="race-flag", name="Race flag")
            production = store.get_environment_by_name(project.id, "production")
            session.delete(store.get_flag_value(flag.id, production.id))
            session.commit()
            return project.id
        finally:
            session.close()

    def test_final_state_matches_toggle_parity(self, file_engine):
        SessionLocal = sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
        project_id = self._setup_absent_value(SessionLocal)
        barrier = threading.Barrier(self.THREADS)
        errors = []

        def worker():
            session = SessionLocal()
            try:
                store = EntityStore(session)
                service = FlagStateService(store)
                flag = store.get_flag_by_key(project_id, "race-flag")
                production = store.get_environment_by_name(project_id, "production")
                barrier.wait()
                for _ in range(self.TOGGLES_PER_THREAD):
                    service.toggle(flag, production)
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(self.THREADS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        session = SessionLocal()
        try:
            store = EntityStore(session)
            flag = store.get_flag_by_key(project_id, "race-flag")
            production = store.get_environment_by_name(project_id, "production")
            total = self.THREADS * self.TOGGLES_PER_THREAD
            assert store.get_flag_value(flag.id, production.id).enabled is (total % 2 == 1)
        finally:
            session.close()
