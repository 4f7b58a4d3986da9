from reputation.models.job import Job, JobMilestone, JobStatus, JobStatusUpdate
from reputation.models.review import (
    Review,
    ReviewFlag,
    ReviewFlagReason,
    ReviewHelpfulVote,
    ReviewModerationStatus,
)
from reputation.models.trust import TrustScore
from reputation.models.marketplace import (
    ProfessionalProfile,
    Project,
    Proposal,
    Service,
    User,
    VerificationRequest,
)

__all__ = [
    "Job",
    "JobMilestone",
    "JobStatus",
    "JobStatusUpdate",
    "Review",
    "ReviewFlag",
    "ReviewFlagReason",
    "ReviewHelpfulVote",
    "ReviewModerationStatus",
    "TrustScore",
    "ProfessionalProfile",
    "Project",
    "Proposal",
    "Service",
    "User",
    "VerificationRequest",
]
