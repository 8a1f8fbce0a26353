"""Flag and per-environment flag value models."""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
import uuid
from flagpole.constants import DEFAULT_ROLLOUT, FlagType
from flagpole.database import Base
from flagpole.utils.clock import utcnow


class Flag(Base):
    """Feature flag, identified by its key within a project."""
    __tablename__ = "flags"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    flag_type = Column(String(16), nullable=False, default=FlagType.BOOLEAN)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="flags")
    values = relationship("FlagValue", back_populates="flag", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("project_id", "key", name="uq_flag_project_key"),
    )


class FlagValue(Base):
    """On/off and rollout state of a flag in one environment.

    A missing row for a (flag, environment) pair means disabled with a
    rollout of 100.
    """
    __tablename__ = "flag_values"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    flag_id = Column(Uuid(as_uuid=True), ForeignKey("flags.id", ondelete="CASCADE"), nullable=False, index=True)
    environment_id = Column(Uuid(as_uuid=True), ForeignKey("environments.id", ondelete="CASCADE"), nullable=False, index=True)
    enabled = Column(Boolean, nullable=False, default=False)
    rollout_percentage = Column(Integer, nullable=False, default=DEFAULT_ROLLOUT)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    flag = relationship("Flag", back_populates="values")
    environment = relationship("Environment", back_populates="flag_values")

    __table_args__ = (
        UniqueConstraint("flag_id", "environment_id", name="uq_flag_value_flag_environment"),
        CheckConstraint("rollout_percentage >= 0 AND rollout_percentage <= 100", name="ck_flag_value_rollout_range"),
    )
