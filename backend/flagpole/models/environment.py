"""Environment model."""
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from flagpole.database import Base
from flagpole.utils.clock import utcnow


class Environment(Base):
    """Named environment of a project (development, staging, production)."""
    __tablename__ = "environments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(64), nullable=False)
    api_key = Column(String, nullable=False, unique=True, index=True)  # fp_env_*
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="environments")
    flag_values = relationship("FlagValue", back_populates="environment", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_environment_project_name"),
    )
