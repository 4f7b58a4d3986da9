from reputation.schemas.job import (
    JobCreate,
    JobStatusChange,
    MilestoneCreate,
    MilestoneResponse,
    JobResponse,
    JobStatsResponse,
)
from reputation.schemas.review import (
    ReviewCreate,
    ReviewUpdate,
    ReviewFlagCreate,
    HelpfulVote,
    ModerateReview,
    ReviewFilters,
    ReviewResponse,
    ReviewListResponse,
    ModerationQueueResponse,
    ReviewFlagResponse,
    HelpfulVoteResponse,
    ReviewStatsResponse,
)
from reputation.schemas.trust import (
    TrustScoreResponse,
    BadgeCatalogResponse,
    RecalculationSummary,
)

__all__ = [
    "JobCreate",
    "JobStatusChange",
    "MilestoneCreate",
    "MilestoneResponse",
    "JobResponse",
    "JobStatsResponse",
    "ReviewCreate",
    "ReviewUpdate",
    "ReviewFlagCreate",
    "HelpfulVote",
    "ModerateReview",
    "ReviewFilters",
    "ReviewResponse",
    "ReviewListResponse",
    "ModerationQueueResponse",
    "ReviewFlagResponse",
    "HelpfulVoteResponse",
    "ReviewStatsResponse",
    "TrustScoreResponse",
    "BadgeCatalogResponse",
    "RecalculationSummary",
]
