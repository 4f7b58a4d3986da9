"""
Review Gatekeeper & Moderation Pipeline

Decides whether a review may be written, tracks its moderation state, and
keeps the professional's public rating aggregate in sync with the set of
approved reviews.

Gatekeeping Rules:
    - A review is anchored to exactly one of a service or a job
    - One review per (reviewer, professional, anchor)
    - Job reviews: only the job's client, only once the job is completed
      (always a verified purchase)
    - Service reviews: verified when the reviewer has any completed job
      with the professional

Moderation:
    - New reviews start pending; verified reviews with a substantial
      comment are approved automatically by the system actor
    - Edits send a review back to pending
    - FLAG_THRESHOLD distinct flags force the review to flagged

Usage:
    service = ReviewService(session, dispatcher)
    review = await service.create_review(reviewer_id, ReviewCreate(...))
    await service.moderate_review(review.id, moderator_id, ReviewModerationStatus.APPROVED)
"""

import logging
import math
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reputation.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from reputation.middleware.metrics import record_review_moderation
from reputation.models import (
    Job,
    JobStatus,
    ProfessionalProfile,
    Review,
    ReviewFlag,
    ReviewFlagReason,
    ReviewHelpfulVote,
    ReviewModerationStatus,
    Service,
)
from reputation.models.common import utcnow
from reputation.schemas.review import ReviewCreate, ReviewFilters, ReviewUpdate
from reputation.services.dispatcher import TrustEvent

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
FLAG_THRESHOLD = 5
AUTO_APPROVE_MIN_COMMENT_LENGTH = 20
VERIFIED_PURCHASE_MULTIPLIER = 1.2
MAX_REVIEW_TRUST_SCORE = 100.0
MODERATION_QUEUE_DEFAULT_LIMIT = 20

MODERATION_QUEUE_STATUSES = (
    ReviewModerationStatus.PENDING.value,
    ReviewModerationStatus.FLAGGED.value,
)

REVIEW_SORT_ORDERS = {
    "newest": [Review.created_at.desc()],
    "oldest": [Review.created_at.asc()],
    "rating_high": [Review.rating.desc(), Review.created_at.desc()],
    "rating_low": [Review.rating.asc(), Review.created_at.desc()],
    "helpful": [Review.helpful_count.desc(), Review.created_at.desc()],
}


def calculate_review_trust_score(rating: int, verified_purchase: bool) -> float:
    """
    Per-review trust score: rating scaled to 0-100 with a 20% bonus for
    verified purchases, capped at 100.

    Example:
        >>> calculate_review_trust_score(5, True)
        100.0
        >>> calculate_review_trust_score(4, False)
        80.0
    """
    score = rating / 5 * 100
    if verified_purchase:
        score *= VERIFIED_PURCHASE_MULTIPLIER
    return min(score, MAX_REVIEW_TRUST_SCORE)


def review_sort_order(sort_by: Optional[str]) -> list:
    # Unknown keys fall back to newest first
    return REVIEW_SORT_ORDERS.get(sort_by or "newest", REVIEW_SORT_ORDERS["newest"])


def paginate(total: int, page: int, limit: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


class ReviewService:
    """
    Service for review creation, moderation and listing.

    Attributes:
        session: AsyncSession, the unit of work for every operation
        dispatcher: Recalculation dispatcher notified when a review is approved
        auto_approve_min_comment_length: Comment length (exclusive) above
            which a verified review is approved automatically
        flag_threshold: Flag count that forces the flagged state
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher=None,
        auto_approve_min_comment_length: int = AUTO_APPROVE_MIN_COMMENT_LENGTH,
        flag_threshold: int = FLAG_THRESHOLD,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.auto_approve_min_comment_length = auto_approve_min_comment_length
        self.flag_threshold = flag_threshold

    # ==================== Gatekeeping ====================

    async def create_review(self, reviewer_id: str, data: ReviewCreate) -> Review:
        """
        Create a review after checking eligibility.

        Raises:
            BadRequestError: Both or neither anchor given, job not completed,
                service/job belongs to another professional
            ConflictError: Reviewer already reviewed this anchor
            NotFoundError: Job or service does not exist
            ForbiddenError: Reviewer was not the job's client
        """
        if bool(data.service_id) == bool(data.job_id):
            raise BadRequestError("Exactly one of serviceId or jobId must be provided")

        if await self._already_reviewed(reviewer_id, data):
            raise ConflictError("You have already reviewed this service/job")

        if data.job_id:
            verified_purchase = await self._check_job_anchor(reviewer_id, data)
        else:
            verified_purchase = await self._check_service_anchor(reviewer_id, data)

        review = Review(
            service_id=data.service_id,
            job_id=data.job_id,
            reviewer_id=reviewer_id,
            professional_id=data.professional_id,
            rating=data.rating,
            comment=data.comment,
            communication_rating=data.communication_rating,
            quality_rating=data.quality_rating,
            timeliness_rating=data.timeliness_rating,
            professionalism_rating=data.professionalism_rating,
            verified_purchase=verified_purchase,
            moderation_status=ReviewModerationStatus.PENDING.value,
            trust_score=calculate_review_trust_score(data.rating, verified_purchase),
        )

        try:
            self.session.add(review)
            await self.session.flush()
            await self.update_professional_rating(data.professional_id)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError("You have already reviewed this service/job")

        logger.info(
            f"Review {review.id} created by {reviewer_id} for {data.professional_id} "
            f"(verified={verified_purchase})"
        )

        if self.should_auto_approve(review):
            review = await self.moderate_review(
                review.id,
                SYSTEM_ACTOR,
                ReviewModerationStatus.APPROVED,
                notes="Auto-approved: verified purchase with substantial comment",
            )

        return review

    async def _already_reviewed(self, reviewer_id: str, data: ReviewCreate) -> bool:
        anchor = (
            Review.job_id == data.job_id if data.job_id else Review.service_id == data.service_id
        )
        existing = await self.session.execute(
            select(Review.id).where(
                Review.reviewer_id == reviewer_id,
                Review.professional_id == data.professional_id,
                anchor,
            )
        )
        return existing.first() is not None

    def should_auto_approve(self, review: Review) -> bool:
        return bool(
            review.verified_purchase
            and review.comment
            and len(review.comment) > self.auto_approve_min_comment_length
        )

    async def _check_job_anchor(self, reviewer_id: str, data: ReviewCreate) -> bool:
        job = await self.session.get(Job, data.job_id)
        if not job:
            raise NotFoundError("Job not found")

        if job.client_id != reviewer_id:
            raise ForbiddenError("You can only review jobs you were the client for")

        if job.status != JobStatus.COMPLETED.value:
            raise BadRequestError("You can only review completed jobs")

        if job.professional_id != data.professional_id:
            raise BadRequestError("Job does not belong to the specified professional")

        return True

    async def _check_service_anchor(self, reviewer_id: str, data: ReviewCreate) -> bool:
        service = await self.session.get(Service, data.service_id)
        if not service:
            raise NotFoundError("Service not found")

        if service.professional_id != data.professional_id:
            raise BadRequestError("Service does not belong to the specified professional")

        completed_job = await self.session.execute(
            select(Job.id)
            .where(
                Job.client_id == reviewer_id,
                Job.professional_id == data.professional_id,
                Job.status == JobStatus.COMPLETED.value,
            )
            .limit(1)
        )
        return completed_job.first() is not None

    async def get_review(self, review_id: str) -> Review:
        result = await self.session.execute(
            select(Review)
            .where(Review.id == review_id)
            .execution_options(populate_existing=True)
        )
        review = result.scalar_one_or_none()
        if not review:
            raise NotFoundError("Review not found")
        return review

    async def _get_own_review(self, review_id: str, user_id: str, action: str) -> Review:
        review = await self.get_review(review_id)
        if review.reviewer_id != user_id:
            raise ForbiddenError(f"You can only {action} your own reviews")
        return review

    async def update_review(self, review_id: str, user_id: str, data: ReviewUpdate) -> Review:
        """
        Edit a review. Only its author may do this.

        The review goes back to pending, unless it has reached the flag
        threshold, in which case it stays flagged. Null fields in the
        payload are ignored. The per-review trust score is recomputed when
        the rating changes.
        """
        review = await self._get_own_review(review_id, user_id, "update")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            setattr(review, field, value)

        if review.flagged_count >= self.flag_threshold:
            review.moderation_status = ReviewModerationStatus.FLAGGED.value
        else:
            review.moderation_status = ReviewModerationStatus.PENDING.value
        if "rating" in changes:
            review.trust_score = calculate_review_trust_score(review.rating, review.verified_purchase)

        await self.update_professional_rating(review.professional_id)
        await self.session.commit()

        logger.info(f"Review {review_id} updated by {user_id}, now {review.moderation_status}")
        return review

    async def delete_review(self, review_id: str, user_id: str) -> None:
        review = await self._get_own_review(review_id, user_id, "delete")
        professional_id = review.professional_id

        await self.session.execute(delete(ReviewFlag).where(ReviewFlag.review_id == review_id))
        await self.session.execute(
            delete(ReviewHelpfulVote).where(ReviewHelpfulVote.review_id == review_id)
        )
        await self.session.execute(delete(Review).where(Review.id == review_id))

        await self.update_professional_rating(professional_id)
        await self.session.commit()

        logger.info(f"Review {review_id} deleted by {user_id}")

    # ==================== Community Signals ====================

    async def flag_review(
        self,
        review_id: str,
        flagger_id: str,
        reason: ReviewFlagReason,
        description: Optional[str] = None,
    ) -> ReviewFlag:
        """
        Record a user's flag on a review.

        Once flagged_count reaches flag_threshold the review is forced to
        the flagged state, whatever its previous state was.

        Raises:
            NotFoundError: Review does not exist
            BadRequestError: Reviewer flagging their own review
            ConflictError: User already flagged this review
        """
        review = await self.get_review(review_id)

        if review.reviewer_id == flagger_id:
            raise BadRequestError("You cannot flag your own review")

        existing = await self.session.execute(
            select(ReviewFlag.id).where(
                ReviewFlag.review_id == review_id,
                ReviewFlag.flagger_id == flagger_id,
            )
        )
        if existing.first():
            raise ConflictError("You have already flagged this review")

        previous_status = review.moderation_status
        flag = ReviewFlag(
            review_id=review_id,
            flagger_id=flagger_id,
            reason=ReviewFlagReason(reason).value,
            description=description,
        )

        try:
            self.session.add(flag)
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError("You have already flagged this review")

        await self.session.execute(
            update(Review)
            .where(Review.id == review_id)
            .values(flagged_count=Review.flagged_count + 1)
        )
        count_result = await self.session.execute(
            select(Review.flagged_count).where(Review.id == review_id)
        )
        flagged_count = count_result.scalar_one()

        if flagged_count >= self.flag_threshold:
            await self.session.execute(
                update(Review)
                .where(Review.id == review_id)
                .values(moderation_status=ReviewModerationStatus.FLAGGED.value)
            )
            logger.warning(f"Review {review_id} auto-flagged after {flagged_count} flags")
            if previous_status == ReviewModerationStatus.APPROVED.value:
                await self.update_professional_rating(review.professional_id)

        await self.session.commit()
        return flag

    async def vote_helpful(self, review_id: str, user_id: str, is_helpful: bool) -> ReviewHelpfulVote:
        """
        Upsert the user's helpful vote and recount helpful_count.

        The count is a full recount of helpful=true votes, so flipping a
        vote back and forth always leaves it consistent.
        """
        review = await self.get_review(review_id)

        vote = await self._find_vote(review_id, user_id)
        if vote:
            vote.is_helpful = is_helpful
            await self.session.flush()
        else:
            vote = ReviewHelpfulVote(review_id=review_id, user_id=user_id, is_helpful=is_helpful)
            try:
                self.session.add(vote)
                await self.session.flush()
            except IntegrityError:
                # Concurrent first vote from the same user won the insert
                await self.session.rollback()
                logger.info(f"Helpful vote race on review {review_id} by {user_id}, updating")
                review = await self.get_review(review_id)
                vote = await self._find_vote(review_id, user_id)
                vote.is_helpful = is_helpful
                await self.session.flush()

        count_result = await self.session.execute(
            select(func.count(ReviewHelpfulVote.id)).where(
                ReviewHelpfulVote.review_id == review_id,
                ReviewHelpfulVote.is_helpful.is_(True),
            )
        )
        review.helpful_count = count_result.scalar() or 0

        await self.session.commit()
        return vote

    async def _find_vote(self, review_id: str, user_id: str) -> Optional[ReviewHelpfulVote]:
        result = await self.session.execute(
            select(ReviewHelpfulVote)
            .where(
                ReviewHelpfulVote.review_id == review_id,
                ReviewHelpfulVote.user_id == user_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ==================== Moderation ====================

    async def moderate_review(
        self,
        review_id: str,
        moderator_id: str,
        status: ReviewModerationStatus,
        notes: Optional[str] = None,
    ) -> Review:
        """
        Apply a moderation decision.

        moderated_by is left NULL for the system actor. The professional's
        rating aggregate is recomputed, and an approval triggers a trust
        score refresh.

        Args:
            review_id: Review to moderate
            moderator_id: Moderator user id or SYSTEM_ACTOR
            status: New moderation status
            notes: Optional moderation notes (logged)
        """
        review = await self.get_review(review_id)
        new_status = ReviewModerationStatus(status).value

        review.moderation_status = new_status
        review.moderated_by = None if moderator_id == SYSTEM_ACTOR else moderator_id
        review.moderated_at = utcnow()

        await self.update_professional_rating(review.professional_id)
        await self.session.commit()

        actor = "system" if moderator_id == SYSTEM_ACTOR else "moderator"
        record_review_moderation(new_status, actor)
        logger.info(
            f"Review {review_id} moderated to {new_status} by {moderator_id}"
            + (f": {notes}" if notes else "")
        )

        if new_status == ReviewModerationStatus.APPROVED.value and self.dispatcher is not None:
            self.dispatcher.trigger_trust_score_update(
                review.professional_id, TrustEvent.REVIEW_RECEIVED
            )

        return review

    async def update_professional_rating(self, professional_id: str) -> None:
        """
        Write the average and count of approved reviews to the professional's
        profile. Does not commit; callers include it in their unit of work.
        """
        result = await self.session.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(
                Review.professional_id == professional_id,
                Review.moderation_status == ReviewModerationStatus.APPROVED.value,
            )
        )
        average, count = result.one()

        profile_result = await self.session.execute(
            select(ProfessionalProfile).where(ProfessionalProfile.user_id == professional_id)
        )
        profile = profile_result.scalar_one_or_none()
        if not profile:
            logger.warning(f"No professional profile for {professional_id}, rating not updated")
            return

        profile.rating = float(average or 0)
        profile.review_count = count or 0

    # ==================== Listings ====================

    async def _list(self, conditions: list, filters: ReviewFilters) -> dict:
        if filters.rating:
            conditions.append(Review.rating == filters.rating)
        if filters.verified_only:
            conditions.append(Review.verified_purchase.is_(True))

        total_result = await self.session.execute(
            select(func.count(Review.id)).where(*conditions)
        )
        total = total_result.scalar() or 0

        query = (
            select(Review)
            .where(*conditions)
            .order_by(*review_sort_order(filters.sort_by))
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        result = await self.session.execute(query)

        return {
            "reviews": list(result.scalars().all()),
            "pagination": paginate(total, filters.page, filters.limit),
        }

    async def list_reviews_for_professional(
        self, professional_id: str, filters: Optional[ReviewFilters] = None
    ) -> dict:
        """Public listing: approved reviews about a professional."""
        return await self._list(
            [
                Review.professional_id == professional_id,
                Review.moderation_status == ReviewModerationStatus.APPROVED.value,
            ],
            filters or ReviewFilters(),
        )

    async def list_reviews_by_client(
        self, client_id: str, filters: Optional[ReviewFilters] = None
    ) -> dict:
        """Public listing: approved reviews written by a client."""
        return await self._list(
            [
                Review.reviewer_id == client_id,
                Review.moderation_status == ReviewModerationStatus.APPROVED.value,
            ],
            filters or ReviewFilters(),
        )

    async def list_reviews_by_user(
        self, user_id: str, filters: Optional[ReviewFilters] = None
    ) -> dict:
        """The author's own reviews in every moderation state."""
        return await self._list([Review.reviewer_id == user_id], filters or ReviewFilters())

    async def get_reviews_for_moderation(
        self, page: int = 1, limit: int = MODERATION_QUEUE_DEFAULT_LIMIT
    ) -> dict:
        """Pending and flagged reviews, most-flagged first, then oldest first."""
        condition = Review.moderation_status.in_(MODERATION_QUEUE_STATUSES)

        total_result = await self.session.execute(select(func.count(Review.id)).where(condition))
        total = total_result.scalar() or 0

        result = await self.session.execute(
            select(Review)
            .where(condition)
            .order_by(Review.flagged_count.desc(), Review.created_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )

        return {
            "reviews": list(result.scalars().all()),
            "pagination": paginate(total, page, limit),
        }

    async def get_professional_review_stats(self, professional_id: str) -> dict:
        result = await self.session.execute(
            select(Review.rating, func.count(Review.id))
            .where(
                Review.professional_id == professional_id,
                Review.moderation_status == ReviewModerationStatus.APPROVED.value,
            )
            .group_by(Review.rating)
        )
        counts = {row[0]: row[1] for row in result.all()}

        total = sum(counts.values())
        average = sum(rating * count for rating, count in counts.items()) / total if total else 0.0

        distribution: List[dict] = [
            {
                "rating": rating,
                "count": counts.get(rating, 0),
                "percentage": counts.get(rating, 0) / total * 100 if total else 0.0,
            }
            for rating in range(1, 6)
        ]

        return {
            "total": total,
            "average": round(average, 1),
            "distribution": distribution,
        }
