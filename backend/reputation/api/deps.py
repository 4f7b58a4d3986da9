from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from reputation.config import get_settings
from reputation.database import get_db
from reputation.services.jobs import JobLifecycleManager
from reputation.services.reviews import ReviewService
from reputation.services.trust_score import TrustScoreAggregator


def get_dispatcher(request: Request):
    return getattr(request.app.state, "dispatcher", None)


async def get_job_manager(
    db: AsyncSession = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
) -> JobLifecycleManager:
    settings = get_settings()
    return JobLifecycleManager(
        db,
        dispatcher=dispatcher,
        enforce_transitions=settings.enforce_job_transitions,
        default_currency=settings.default_currency,
    )


async def get_review_service(
    db: AsyncSession = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
) -> ReviewService:
    settings = get_settings()
    return ReviewService(
        db,
        dispatcher=dispatcher,
        auto_approve_min_comment_length=settings.auto_approve_min_comment_length,
        flag_threshold=settings.review_flag_threshold,
    )


async def get_trust_aggregator(db: AsyncSession = Depends(get_db)) -> TrustScoreAggregator:
    return TrustScoreAggregator(db, weights=get_settings().trust_weights)
