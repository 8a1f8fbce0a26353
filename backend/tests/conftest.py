"""
Pytest Configuration and Shared Fixtures

This module provides shared fixtures for all test files including:
- Database session fixtures (in-memory SQLite)
- Entity store and credential codec fixtures
- Test data factories for users, projects and flags
- A FastAPI test client wired to the test database
"""

import os

# Settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from flagpole.auth.credentials import CredentialCodec, get_codec
from flagpole.database import Base, get_db, init_db
from flagpole.main import app
from flagpole.models import Flag, Project, User
from flagpole.services.flag_state import FlagStateService
from flagpole.services.projects import create_project as provision_project
from flagpole.store import EntityStore
from flagpole.utils.hashing import hash_password

TEST_SECRET = "test-secret"
TEST_PASSWORD = "correct-horse"


# ==================== DATABASE FIXTURES ====================


@pytest.fixture(scope="function")
def test_db_engine():
    """
    Create in-memory SQLite database engine for testing.

    StaticPool keeps one connection so the request threadpool and the test
    see the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    init_db(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_db_engine) -> Generator[Session, None, None]:
    """Database session bound to the in-memory engine."""
    SessionLocal = sessionmaker(bind=test_db_engine, autocommit=False, autoflush=False)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def store(db_session) -> EntityStore:
    return EntityStore(db_session)


@pytest.fixture
def codec() -> CredentialCodec:
    return CredentialCodec(secret=TEST_SECRET)


# ==================== MODEL FACTORY FIXTURES ====================


@pytest.fixture
def create_user(store):
    """
    Factory for creating users.

    Usage:
        user = create_user(username="alice")
    """
    counter = {"n": 0}

    def _create(username: str = None, password: str = TEST_PASSWORD, **kwargs) -> User:
        counter["n"] += 1
        return store.create_user(
            User(
                username=username or f"user-{counter['n']}",
                password_hash=hash_password(password),
                **kwargs,
            )
        )

    return _create


@pytest.fixture
def create_project(store):
    """
    Factory for creating a project with its three default environments.

    Usage:
        project = create_project(user, name="Shop")
    """

    def _create(user: User, name: str = "Test Project") -> Project:
        project, _ = provision_project(store, user, name)
        return project

    return _create


@pytest.fixture
def create_flag(store):
    """
    Factory for creating flags.

    Usage:
        flag = create_flag(project, key="new-checkout", enabled=True)
    """

    def _create(
        project: Project,
        key: str = "test-flag",
        name: str = None,
        enabled: bool = False,
        **kwargs,
    ) -> Flag:
        return FlagStateService(store).create_flag(
            project,
            key=key,
            name=name or key,
            initial_enabled=enabled,
            **kwargs,
        )

    return _create


@pytest.fixture
def environment(store):
    """Look up one of a project's environments by name."""

    def _get(project: Project, name: str = "production"):
        return store.get_environment_by_name(project.id, name)

    return _get


# ==================== API FIXTURES ====================


@pytest.fixture
def client(db_session, codec) -> Generator[TestClient, None, None]:
    """
    Test client whose requests use the test database session and codec.

    The application lifespan is not entered, so no tables are created on the
    configured database.
    """

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_codec] = lambda: codec
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
