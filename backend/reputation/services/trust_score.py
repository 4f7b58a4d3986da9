"""
Trust Score Aggregator - Composite Reputation Scoring for Professionals

This module computes a 0-100 trust score per professional from the current
state of their jobs, approved reviews and approved verification requests,
and persists it as a single TrustScore row (full replace on every run).

Score Composition (default weights):
    - Review Score (30%): Average rating, verified ratio, review volume
    - Completion Score (25%): Completion rate and completed-job volume
    - Reliability Score (20%): On-time delivery and timeliness ratings
    - Communication Score (15%): Average communication sub-rating
    - Verification Score (10%): Approved identity/skill/business checks

Badge Tiers (highest threshold wins):
    95+ Top Rated Plus, 85+ Highly Trusted, 75+ Trusted Professional,
    65+ Verified Professional, 50+ Professional, else New Professional

The scoring layer is a pure function of a snapshot: calling it twice with
the same data yields the same breakdown. Because every recalculation reads
a full snapshot instead of applying a delta, concurrent recalculations for
one user are harmless; the last writer stores a correct snapshot.
"""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reputation.middleware.metrics import record_trust_score_latency
from reputation.models import (
    Job,
    JobStatus,
    ProfessionalProfile,
    Review,
    ReviewModerationStatus,
    TrustScore,
    User,
    VerificationRequest,
)
from reputation.models.common import utcnow

logger = logging.getLogger(__name__)

# ==================== Scoring Constants ====================

DEFAULT_COMPONENT_WEIGHTS = {
    "review": 0.30,
    "completion": 0.25,
    "reliability": 0.20,
    "communication": 0.15,
    "verification": 0.10,
}

VERIFICATION_WEIGHTS = {
    "identity": 25,
    "skills": 20,
    "business": 20,
    "background_check": 25,
    "phone": 5,
    "email": 3,
    "address": 2,
}

REVIEW_RATING_MULTIPLIER = 15
REVIEW_VERIFIED_BONUS = 10
REVIEW_VOLUME_TARGET = 50
REVIEW_VOLUME_MAX_BONUS = 10

COMPLETION_RATE_MULTIPLIER = 80
COMPLETION_VOLUME_TARGET = 20
COMPLETION_VOLUME_POINTS = 10
COMPLETION_VOLUME_MAX_BONUS = 20

DEFAULT_COMMUNICATION_SCORE = 75.0
COMMUNICATION_RATING_MULTIPLIER = 20

RELIABILITY_BASE = 50.0
RELIABILITY_ON_TIME_BONUS = 30
RELIABILITY_TIMELINESS_PIVOT = 3
RELIABILITY_TIMELINESS_MULTIPLIER = 5

DEFAULT_RESPONSE_TIME_HOURS = 24.0

MIN_SCORE = 0.0
MAX_SCORE = 100.0


@dataclass(frozen=True)
class BadgeTier:
    name: str
    min_score: float
    color: str
    description: str


# Ordered from highest to lowest threshold
BADGE_TIERS = (
    BadgeTier("Top Rated Plus", 95, "text-purple-600 bg-purple-100",
              "Elite professionals with exceptional performance"),
    BadgeTier("Highly Trusted", 85, "text-green-600 bg-green-100",
              "Highly trusted professionals with proven track record"),
    BadgeTier("Trusted Professional", 75, "text-blue-600 bg-blue-100",
              "Trusted professionals with good performance"),
    BadgeTier("Verified Professional", 65, "text-orange-600 bg-orange-100",
              "Verified professionals with decent performance"),
    BadgeTier("Professional", 50, "text-gray-600 bg-gray-100",
              "Registered professionals"),
    BadgeTier("New Professional", 0, "text-slate-600 bg-slate-100",
              "New professionals building their reputation"),
)

COMPONENT_DESCRIPTIONS = {
    "review": "Based on client reviews and ratings",
    "completion": "Job completion rate and history",
    "reliability": "On-time delivery and reliability",
    "communication": "Communication quality with clients",
    "verification": "Identity and skill verification",
}


# ==================== Snapshot Records ====================

@dataclass(frozen=True)
class JobSnapshot:
    status: str
    delivery_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReviewSnapshot:
    rating: int
    verified_purchase: bool = False
    communication_rating: Optional[int] = None
    timeliness_rating: Optional[int] = None


@dataclass(frozen=True)
class TrustBreakdown:
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


# ==================== Component Scores ====================

def clamp(value: float, low: float = MIN_SCORE, high: float = MAX_SCORE) -> float:
    return min(max(value, low), high)


def calculate_review_score(reviews: Sequence[ReviewSnapshot]) -> float:
    """
    Review component.

    avgRating*15 + verifiedRatio*10 + min(count/50*10, 10), capped at 100.
    Zero when there are no approved reviews.
    """
    if not reviews:
        return MIN_SCORE

    count = len(reviews)
    return review_score_from_stats(
        average_rating=sum(r.rating for r in reviews) / count,
        verified_ratio=sum(1 for r in reviews if r.verified_purchase) / count,
        review_count=count,
    )


def review_score_from_stats(average_rating: float, verified_ratio: float, review_count: int) -> float:
    if review_count <= 0:
        return MIN_SCORE

    volume_bonus = min(
        review_count / REVIEW_VOLUME_TARGET * REVIEW_VOLUME_MAX_BONUS, REVIEW_VOLUME_MAX_BONUS
    )
    score = (
        average_rating * REVIEW_RATING_MULTIPLIER
        + verified_ratio * REVIEW_VERIFIED_BONUS
        + volume_bonus
    )
    return clamp(score)


def calculate_completion_score(jobs: Sequence[JobSnapshot]) -> float:
    """completionRate*80 + min(completed/20*10, 20), capped at 100."""
    if not jobs:
        return MIN_SCORE

    completed = sum(1 for job in jobs if job.status == JobStatus.COMPLETED.value)
    completion_rate = completed / len(jobs)
    volume_bonus = min(
        completed / COMPLETION_VOLUME_TARGET * COMPLETION_VOLUME_POINTS, COMPLETION_VOLUME_MAX_BONUS
    )
    return clamp(completion_rate * COMPLETION_RATE_MULTIPLIER + volume_bonus)


def calculate_communication_score(reviews: Sequence[ReviewSnapshot]) -> float:
    ratings = [r.communication_rating for r in reviews if r.communication_rating is not None]
    if not ratings:
        return DEFAULT_COMMUNICATION_SCORE
    return clamp(sum(ratings) / len(ratings) * COMMUNICATION_RATING_MULTIPLIER)


def is_on_time(job: JobSnapshot) -> bool:
    # Jobs without a deadline or completion timestamp count as on time
    if job.delivery_date is None or job.completed_at is None:
        return True
    return job.completed_at <= job.delivery_date


def calculate_reliability_score(
    jobs: Sequence[JobSnapshot],
    reviews: Sequence[ReviewSnapshot],
) -> float:
    """
    Reliability component.

    Starts at 50, adds up to 30 for the on-time rate of completed jobs and
    (avgTimeliness - 3) * 5 for timeliness sub-ratings; clamped to [0, 100].
    """
    score = RELIABILITY_BASE

    completed = [job for job in jobs if job.status == JobStatus.COMPLETED.value]
    if completed:
        on_time_rate = sum(1 for job in completed if is_on_time(job)) / len(completed)
        score += on_time_rate * RELIABILITY_ON_TIME_BONUS

    timeliness = [r.timeliness_rating for r in reviews if r.timeliness_rating is not None]
    if timeliness:
        average_timeliness = sum(timeliness) / len(timeliness)
        score += (average_timeliness - RELIABILITY_TIMELINESS_PIVOT) * RELIABILITY_TIMELINESS_MULTIPLIER

    return clamp(score)


def calculate_verification_score(verification_types: Iterable[str]) -> float:
    # Each approved type counts once, however many requests were approved
    return clamp(sum(VERIFICATION_WEIGHTS.get(t, 0) for t in set(verification_types)))


def calculate_overall_score(
    components: Dict[str, float],
    weights: Optional[Dict[str, float]] = None,
) -> float:
    """
    Weighted sum of the five component scores.

    Args:
        components: Component name ("review", "completion", ...) -> score
        weights: Component name -> weight, defaults to DEFAULT_COMPONENT_WEIGHTS

    Returns:
        Overall score clamped to [0, 100]
    """
    weights = weights or DEFAULT_COMPONENT_WEIGHTS
    total = sum(components[name] * weights.get(name, 0.0) for name in DEFAULT_COMPONENT_WEIGHTS)
    return clamp(total)


def compute_trust_breakdown(
    jobs: Sequence[JobSnapshot],
    reviews: Sequence[ReviewSnapshot],
    verification_types: Iterable[str],
    response_time_hours: Optional[float] = None,
    weights: Optional[Dict[str, float]] = None,
) -> TrustBreakdown:
    """
    Compute every trust score field from a data snapshot.

    Pure function: no I/O, no clock. Identical input gives identical output.
    """
    verification_types = set(verification_types)

    components = {
        "review": calculate_review_score(reviews),
        "completion": calculate_completion_score(jobs),
        "communication": calculate_communication_score(reviews),
        "reliability": calculate_reliability_score(jobs, reviews),
        "verification": calculate_verification_score(verification_types),
    }

    completed = sum(1 for job in jobs if job.status == JobStatus.COMPLETED.value)
    average_rating = sum(r.rating for r in reviews) / len(reviews) if reviews else 0.0
    completion_rate = completed / len(jobs) * 100 if jobs else 0.0

    return TrustBreakdown(
        overall_score=calculate_overall_score(components, weights),
        review_score=components["review"],
        completion_score=components["completion"],
        communication_score=components["communication"],
        reliability_score=components["reliability"],
        verification_score=components["verification"],
        total_jobs_completed=completed,
        total_reviews_received=len(reviews),
        average_rating=average_rating,
        response_time_hours=response_time_hours or DEFAULT_RESPONSE_TIME_HOURS,
        completion_rate=completion_rate,
        verified_identity="identity" in verification_types,
        verified_skills="skills" in verification_types,
        verified_business="business" in verification_types,
        background_checked="background_check" in verification_types,
    )


# ==================== Badges ====================

def get_badge_tier(score: float) -> BadgeTier:
    for tier in BADGE_TIERS:
        if score >= tier.min_score:
            return tier
    return BADGE_TIERS[-1]


def get_trust_badge(score: float) -> str:
    return get_badge_tier(score).name


def get_badge_color(score: float) -> str:
    return get_badge_tier(score).color


def get_badge_catalog(weights: Optional[Dict[str, float]] = None) -> dict:
    """Badge tiers and component weights (as percentages) for display."""
    weights = weights or DEFAULT_COMPONENT_WEIGHTS
    return {
        "badges": [
            {
                "name": tier.name,
                "min_score": tier.min_score,
                "color": tier.color,
                "description": tier.description,
            }
            for tier in BADGE_TIERS
        ],
        "score_components": {
            f"{name}_score": {
                "weight": round(weights.get(name, 0.0) * 100),
                "description": COMPONENT_DESCRIPTIONS[name],
            }
            for name in DEFAULT_COMPONENT_WEIGHTS
        },
    }


def trust_score_to_dict(trust_score: TrustScore) -> dict:
    """Serialize a TrustScore row with badge and breakdown fields."""
    breakdown = {
        "review_score": trust_score.review_score,
        "completion_score": trust_score.completion_score,
        "communication_score": trust_score.communication_score,
        "reliability_score": trust_score.reliability_score,
        "verification_score": trust_score.verification_score,
    }
    return {
        "user_id": trust_score.user_id,
        "overall_score": trust_score.overall_score,
        **breakdown,
        "total_jobs_completed": trust_score.total_jobs_completed,
        "total_reviews_received": trust_score.total_reviews_received,
        "average_rating": trust_score.average_rating,
        "response_time_hours": trust_score.response_time_hours,
        "completion_rate": trust_score.completion_rate,
        "verified_identity": trust_score.verified_identity,
        "verified_skills": trust_score.verified_skills,
        "verified_business": trust_score.verified_business,
        "background_checked": trust_score.background_checked,
        "last_calculated_at": trust_score.last_calculated_at,
        "trust_badge": get_trust_badge(trust_score.overall_score),
        "badge_color": get_badge_color(trust_score.overall_score),
        "score_breakdown": breakdown,
    }


# ==================== Persistence ====================

class TrustScoreAggregator:
    """
    Loads a professional's current data and writes their TrustScore row.

    This class is the only writer of trust_scores.

    Attributes:
        session: AsyncSession for database operations
        weights: Component weights used for the overall score
    """

    def __init__(self, session: AsyncSession, weights: Optional[Dict[str, float]] = None):
        self.session = session
        self.weights = weights or DEFAULT_COMPONENT_WEIGHTS

    async def _load_jobs(self, user_id: str) -> List[JobSnapshot]:
        result = await self.session.execute(
            select(Job.status, Job.delivery_date, Job.completed_at).where(
                Job.professional_id == user_id
            )
        )
        return [
            JobSnapshot(status=row.status, delivery_date=row.delivery_date, completed_at=row.completed_at)
            for row in result.all()
        ]

    async def _load_reviews(self, user_id: str) -> List[ReviewSnapshot]:
        result = await self.session.execute(
            select(
                Review.rating,
                Review.verified_purchase,
                Review.communication_rating,
                Review.timeliness_rating,
            ).where(
                Review.professional_id == user_id,
                Review.moderation_status == ReviewModerationStatus.APPROVED.value,
            )
        )
        return [
            ReviewSnapshot(
                rating=row.rating,
                verified_purchase=row.verified_purchase,
                communication_rating=row.communication_rating,
                timeliness_rating=row.timeliness_rating,
            )
            for row in result.all()
        ]

    async def _load_verification_types(self, user_id: str) -> List[str]:
        result = await self.session.execute(
            select(VerificationRequest.verification_type).where(
                VerificationRequest.user_id == user_id,
                VerificationRequest.status == "approved",
            )
        )
        return list(result.scalars().all())

    async def _load_response_time(self, user_id: str) -> Optional[float]:
        result = await self.session.execute(
            select(ProfessionalProfile.response_time_hours).where(
                ProfessionalProfile.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def compute(self, user_id: str) -> TrustBreakdown:
        """Compute the breakdown for a user without persisting it."""
        jobs = await self._load_jobs(user_id)
        reviews = await self._load_reviews(user_id)
        verification_types = await self._load_verification_types(user_id)
        response_time_hours = await self._load_response_time(user_id)

        return compute_trust_breakdown(
            jobs,
            reviews,
            verification_types,
            response_time_hours=response_time_hours,
            weights=self.weights,
        )

    async def calculate_trust_score(self, user_id: str) -> TrustScore:
        """
        Recompute and upsert the user's TrustScore row.

        Every field is overwritten and last_calculated_at is set to now.

        Args:
            user_id: Professional's user id

        Returns:
            The persisted TrustScore
        """
        logger.info(f"Calculating trust score for user: {user_id}")
        start_time = time.perf_counter()

        breakdown = await self.compute(user_id)

        trust_score = await self.get_trust_score(user_id)
        if trust_score is None:
            trust_score = TrustScore(user_id=user_id)
            self.session.add(trust_score)

        for field, value in asdict(breakdown).items():
            setattr(trust_score, field, value)
        trust_score.last_calculated_at = utcnow()

        await self.session.commit()

        record_trust_score_latency(time.perf_counter() - start_time)
        logger.info(
            f"Trust score calculated: {breakdown.overall_score:.2f} for user: {user_id}"
        )
        return trust_score

    async def get_trust_score(self, user_id: str) -> Optional[TrustScore]:
        result = await self.session.execute(
            select(TrustScore).where(TrustScore.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_or_calculate_trust_score(self, user_id: str) -> TrustScore:
        """Return the stored score, computing it on first access."""
        trust_score = await self.get_trust_score(user_id)
        if trust_score is None:
            trust_score = await self.calculate_trust_score(user_id)
        return trust_score

    async def update_all_trust_scores(self) -> Dict[str, int]:
        """
        Recalculate every professional's trust score.

        Each user is independent: a failure is rolled back, logged and
        skipped so the rest of the batch still runs.

        Returns:
            Dict with total, updated and failed counts
        """
        logger.info("Starting bulk trust score update")

        result = await self.session.execute(
            select(User.id).where(User.user_type == "professional")
        )
        professional_ids = list(result.scalars().all())

        stats = {"total": len(professional_ids), "updated": 0, "failed": 0}
        for user_id in professional_ids:
            try:
                await self.calculate_trust_score(user_id)
                stats["updated"] += 1
            except Exception as e:
                await self.session.rollback()
                logger.error(f"Failed to update trust score for user {user_id}: {e}", exc_info=True)
                stats["failed"] += 1

        logger.info(
            f"Updated trust scores for {stats['updated']}/{stats['total']} professionals"
        )
        return stats
