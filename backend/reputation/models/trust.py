"""
Trust Score Model - composite reputation snapshot per user

One row per user (upsert target). Every recalculation replaces all fields;
nothing here is updated incrementally.

Component Weights (defaults):
    - review: 0.30
    - completion: 0.25
    - reliability: 0.20
    - communication: 0.15
    - verification: 0.10
"""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String

from reputation.database import Base
from reputation.models.common import new_id, utcnow


class TrustScore(Base):
    __tablename__ = "trust_scores"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, unique=True, index=True)

    overall_score = Column(Float, nullable=False, default=0.0)
    review_score = Column(Float, nullable=False, default=0.0)
    completion_score = Column(Float, nullable=False, default=0.0)
    communication_score = Column(Float, nullable=False, default=0.0)
    reliability_score = Column(Float, nullable=False, default=0.0)
    verification_score = Column(Float, nullable=False, default=0.0)

    total_jobs_completed = Column(Integer, nullable=False, default=0)
    total_reviews_received = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    response_time_hours = Column(Float, nullable=False, default=24.0)
    completion_rate = Column(Float, nullable=False, default=0.0)

    verified_identity = Column(Boolean, nullable=False, default=False)
    verified_skills = Column(Boolean, nullable=False, default=False)
    verified_business = Column(Boolean, nullable=False, default=False)
    background_checked = Column(Boolean, nullable=False, default=False)

    last_calculated_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
