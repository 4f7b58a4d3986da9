"""
Review Models - client reviews of professionals and their moderation state

A review is anchored to exactly one of a service or a job. Only reviews in
the "approved" moderation state are publicly visible and count towards a
professional's rating and trust score.

Moderation Flow:
    pending → approved | rejected
    any     → flagged   (forced once flagged_count reaches the threshold)
    any     → pending   (when the reviewer edits the review)
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
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from reputation.database import Base
from reputation.models.common import new_id, utcnow


class ReviewModerationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class ReviewFlagReason(str, enum.Enum):
    INAPPROPRIATE = "inappropriate"
    FAKE = "fake"
    SPAM = "spam"
    OFFENSIVE = "offensive"
    IRRELEVANT = "irrelevant"
    OTHER = "other"


class Review(Base):
    """
    Client review of a professional.

    Attributes:
        service_id/job_id: Review anchor (exactly one is set)
        rating: Overall rating 1-5
        communication/quality/timeliness/professionalism_rating: Optional 1-5
        verified_purchase: Reviewer had a completed job with the professional
            (computed once at creation, never changed)
        moderation_status: ReviewModerationStatus value (indexed)
        moderated_by: Moderator user id, NULL for system decisions
        flagged_count: Number of distinct users who flagged the review
        helpful_count: Live count of helpful=true votes
        trust_score: Per-review weight 0-100
    """

    __tablename__ = "reviews"
    # NULL anchors never collide, so each constraint only covers its own anchor kind
    __table_args__ = (
        UniqueConstraint("reviewer_id", "professional_id", "job_id", name="uq_review_job"),
        UniqueConstraint("reviewer_id", "professional_id", "service_id", name="uq_review_service"),
    )

    id = Column(String, primary_key=True, default=new_id)
    service_id = Column(String, ForeignKey("services.id"), nullable=True, index=True)
    job_id = Column(String, ForeignKey("jobs.id"), nullable=True, index=True)
    reviewer_id = Column(String, nullable=False, index=True)
    professional_id = Column(String, nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    communication_rating = Column(Integer, nullable=True)
    quality_rating = Column(Integer, nullable=True)
    timeliness_rating = Column(Integer, nullable=True)
    professionalism_rating = Column(Integer, nullable=True)
    verified_purchase = Column(Boolean, nullable=False, default=False)
    moderation_status = Column(
        String(20), nullable=False, default=ReviewModerationStatus.PENDING.value, index=True
    )
    moderated_by = Column(String, nullable=True)
    moderated_at = Column(DateTime, nullable=True)
    flagged_count = Column(Integer, nullable=False, default=0)
    helpful_count = Column(Integer, nullable=False, default=0)
    trust_score = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    flags = relationship("ReviewFlag", lazy="selectin", order_by="ReviewFlag.created_at")


class ReviewFlag(Base):
    __tablename__ = "review_flags"
    __table_args__ = (UniqueConstraint("review_id", "flagger_id", name="uq_review_flag"),)

    id = Column(String, primary_key=True, default=new_id)
    review_id = Column(String, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    flagger_id = Column(String, nullable=False)
    reason = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ReviewHelpfulVote(Base):
    """One row per (review, user); re-voting updates is_helpful in place."""

    __tablename__ = "review_helpful_votes"
    __table_args__ = (UniqueConstraint("review_id", "user_id", name="uq_review_helpful_vote"),)

    id = Column(String, primary_key=True, default=new_id)
    review_id = Column(String, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    is_helpful = Column(Boolean, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
