"""
SQLAlchemy models for dagplane.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base


class ProjectModel(Base):
    """A registered project and its configuration."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    config = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    secrets = relationship(
        "ProjectSecretModel", back_populates="project", cascade="all, delete-orphan"
    )
    jobs = relationship("JobSpecModel", back_populates="project", cascade="all, delete-orphan")


class ProjectSecretModel(Base):
    """A named project secret, encrypted with the application key."""

    __tablename__ = "project_secrets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    value = Column(LargeBinary, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    project = relationship("ProjectModel", back_populates="secrets")

    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_project_secrets_name"),)


class JobSpecModel(Base):
    """A job specification stored as JSON, plus the destination it produces."""

    __tablename__ = "job_specs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    spec = Column(JSON, nullable=False)
    destination = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    project = relationship("ProjectModel", back_populates="jobs")

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_job_specs_name"),
        Index("ix_job_specs_destination", "destination"),
    )
