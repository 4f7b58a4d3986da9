"""
Marketplace Models - aggregates owned by other parts of the platform

The reputation engine reads these and writes only the rating aggregate on
ProfessionalProfile. Columns are limited to what the engine consumes.
"""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String

from reputation.database import Base
from reputation.models.common import new_id, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=False, unique=True)
    user_type = Column(String(20), nullable=False, default="client", index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=new_id)
    client_id = Column(String, nullable=False, index=True)
    title = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False, default="open")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(String, primary_key=True, default=new_id)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    professional_id = Column(String, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")
    quoted_price = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Service(Base):
    __tablename__ = "services"

    id = Column(String, primary_key=True, default=new_id)
    professional_id = Column(String, nullable=False, index=True)
    title = Column(String(500), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ProfessionalProfile(Base):
    __tablename__ = "professional_profiles"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, unique=True, index=True)
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    response_time_hours = Column(Float, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class VerificationRequest(Base):
    __tablename__ = "verification_requests"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    verification_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
