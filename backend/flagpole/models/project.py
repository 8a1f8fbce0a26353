"""Project model. A project is the tenant boundary for flags and environments."""
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid
from flagpole.database import Base
from flagpole.utils.clock import utcnow


class Project(Base):
    """Project owned by a single user."""
    __tablename__ = "projects"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    api_key = Column(String, nullable=False, unique=True, index=True)  # fp_proj_*
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="projects")
    environments = relationship("Environment", back_populates="project", cascade="all, delete-orphan")
    flags = relationship("Flag", back_populates="project", cascade="all, delete-orphan")
