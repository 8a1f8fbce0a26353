"""Database connection and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool
from flagpole.config import settings

# SQLite is used for local development and single-node installs; the
# connection is shared across FastAPI's threadpool workers.
if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
        echo=False,
    )
elif settings.environment == "production":
    # Pooled connection for long-running API servers
    engine = create_engine(
        settings.database_url,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )
else:
    engine = create_engine(
        settings.database_url,
        poolclass=NullPool,
        echo=settings.environment == "development",
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create all tables that do not exist yet."""
    # Import models so they are registered on Base.metadata
    import flagpole.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
