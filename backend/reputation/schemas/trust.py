from pydantic import BaseModel
from datetime import datetime


class ScoreBreakdown(BaseModel):
    review_score: float
    completion_score: float
    communication_score: float
    reliability_score: float
    verification_score: float


class TrustScoreResponse(BaseModel):
    user_id: str
    overall_score: float
    review_score: float
    completion_score: float
    communication_score: float
    reliability_score: float
    verification_score: float
    total_jobs_completed: int
    total_reviews_received: int
    average_rating: float
    response_time_hours: float
    completion_rate: float
    verified_identity: bool
    verified_skills: bool
    verified_business: bool
    background_checked: bool
    last_calculated_at: datetime
    trust_badge: str
    badge_color: str
    score_breakdown: ScoreBreakdown


class BadgeInfo(BaseModel):
    name: str
    min_score: float
    color: str
    description: str


class ComponentInfo(BaseModel):
    weight: int
    description: str


class BadgeCatalogResponse(BaseModel):
    badges: list[BadgeInfo]
    score_components: dict[str, ComponentInfo]


class RecalculationSummary(BaseModel):
    total: int
    updated: int
    failed: int
