"""
Background Scheduler - Periodic Trust Score Recalculation

Event-driven recalculation is best-effort, so a scheduled batch recomputes
every professional's trust score to repair anything a lost trigger missed.

Default Schedule: Every 24 hours (configurable via TRUST_RECALC_INTERVAL_HOURS)
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reputation.config import get_settings
from reputation.database import async_session
from reputation.services.trust_score import TrustScoreAggregator

logger = logging.getLogger(__name__)

settings = get_settings()
scheduler = AsyncIOScheduler()


async def recalculate_all_trust_scores() -> dict:
    """Scheduled task: recompute and persist every professional's trust score."""
    logger.info("Starting scheduled trust score recalculation")

    async with async_session() as db:
        aggregator = TrustScoreAggregator(db, weights=settings.trust_weights)
        stats = await aggregator.update_all_trust_scores()

    logger.info(
        f"Scheduled recalculation done: {stats['updated']}/{stats['total']} updated, "
        f"{stats['failed']} failed"
    )
    return stats


def start_scheduler():
    """Start the background scheduler"""
    scheduler.add_job(
        recalculate_all_trust_scores,
        trigger=IntervalTrigger(hours=settings.trust_recalc_interval_hours),
        id="recalculate_trust_scores",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started: recalculating trust scores every "
        f"{settings.trust_recalc_interval_hours} hours"
    )


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown()
