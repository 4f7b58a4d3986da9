from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from reputation.models.review import ReviewFlagReason, ReviewModerationStatus


class ReviewCreate(BaseModel):
    service_id: Optional[str] = None
    job_id: Optional[str] = None
    professional_id: str
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    communication_rating: Optional[int] = Field(None, ge=1, le=5)
    quality_rating: Optional[int] = Field(None, ge=1, le=5)
    timeliness_rating: Optional[int] = Field(None, ge=1, le=5)
    professionalism_rating: Optional[int] = Field(None, ge=1, le=5)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None
    communication_rating: Optional[int] = Field(None, ge=1, le=5)
    quality_rating: Optional[int] = Field(None, ge=1, le=5)
    timeliness_rating: Optional[int] = Field(None, ge=1, le=5)
    professionalism_rating: Optional[int] = Field(None, ge=1, le=5)


class ReviewFlagCreate(BaseModel):
    reason: ReviewFlagReason
    description: Optional[str] = None


class HelpfulVote(BaseModel):
    is_helpful: bool


class ModerateReview(BaseModel):
    status: ReviewModerationStatus
    notes: Optional[str] = None


class ReviewFilters(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    verified_only: bool = False
    sort_by: str = "newest"
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)


class ReviewFlagResponse(BaseModel):
    id: str
    review_id: str
    flagger_id: str
    reason: str
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class HelpfulVoteResponse(BaseModel):
    id: str
    review_id: str
    user_id: str
    is_helpful: bool

    class Config:
        from_attributes = True


class ReviewResponse(BaseModel):
    id: str
    service_id: Optional[str] = None
    job_id: Optional[str] = None
    reviewer_id: str
    professional_id: str
    rating: int
    comment: Optional[str] = None
    communication_rating: Optional[int] = None
    quality_rating: Optional[int] = None
    timeliness_rating: Optional[int] = None
    professionalism_rating: Optional[int] = None
    verified_purchase: bool
    moderation_status: str
    moderated_by: Optional[str] = None
    moderated_at: Optional[datetime] = None
    flagged_count: int
    helpful_count: int
    trust_score: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ModerationReviewResponse(ReviewResponse):
    flags: list[ReviewFlagResponse] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ReviewListResponse(BaseModel):
    reviews: list[ReviewResponse]
    pagination: Pagination


class ModerationQueueResponse(BaseModel):
    reviews: list[ModerationReviewResponse]
    pagination: Pagination


class RatingBucket(BaseModel):
    rating: int
    count: int
    percentage: float


class ReviewStatsResponse(BaseModel):
    total: int
    average: float
    distribution: list[RatingBucket]
