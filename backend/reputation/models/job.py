"""
Job Models - SQLAlchemy ORM models for commissioned work

A Job is instantiated from an accepted proposal (one job per project) and
tracks the engagement between a client and a professional until it is
completed or cancelled. Milestones are optional sub-deliverables, and every
status change is recorded as an append-only JobStatusUpdate row.

Status Flow (advisory, see JOB_STATUS_TRANSITIONS in services/jobs.py):
    not_started → in_progress → milestone_review → completed
                                               ↘ cancelled / disputed
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from reputation.database import Base
from reputation.models.common import new_id, utcnow


class JobStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    MILESTONE_REVIEW = "milestone_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class Job(Base):
    """
    Commissioned job between a client and a professional.

    Attributes:
        project_id: Originating project (unique, one job per project)
        proposal_id: Accepted proposal the job was created from
        agreed_price/currency: Price agreed in the proposal
        status: JobStatus value (indexed)
        progress_percentage: 0-100, set explicitly or derived from milestones
        started_at/completed_at/cancelled_at: Write-once status timestamps
    """

    __tablename__ = "jobs"

    id = Column(String, primary_key=True, default=new_id)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, unique=True)
    client_id = Column(String, nullable=False, index=True)
    professional_id = Column(String, nullable=False, index=True)
    proposal_id = Column(String, ForeignKey("proposals.id"), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    agreed_price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="ARS")
    status = Column(String(20), nullable=False, default=JobStatus.NOT_STARTED.value, index=True)
    progress_percentage = Column(Integer, nullable=False, default=0)
    delivery_date = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    milestones = relationship(
        "JobMilestone",
        back_populates="job",
        lazy="selectin",
        order_by="JobMilestone.created_at",
    )
    status_updates = relationship(
        "JobStatusUpdate",
        back_populates="job",
        lazy="selectin",
        order_by="JobStatusUpdate.created_at.desc()",
    )


class JobMilestone(Base):
    __tablename__ = "job_milestones"

    id = Column(String, primary_key=True, default=new_id)
    job_id = Column(String, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False)
    due_date = Column(DateTime, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)
    approved_by_client = Column(Boolean, nullable=False, default=False)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    job = relationship("Job", back_populates="milestones", lazy="selectin")


class JobStatusUpdate(Base):
    """Append-only audit row for a job status change. Never updated."""

    __tablename__ = "job_status_updates"

    id = Column(String, primary_key=True, default=new_id)
    job_id = Column(String, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    status_from = Column(String(20), nullable=False)
    status_to = Column(String(20), nullable=False)
    updated_by_user_id = Column(String, nullable=False)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    job = relationship("Job", back_populates="status_updates")
