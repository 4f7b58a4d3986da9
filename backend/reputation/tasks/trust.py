"""
Background Tasks for Trust Score Recalculation

Celery tasks for:
- Recalculating one professional's trust score after an event
- Batch recalculation of every professional

Tasks run the async aggregator on a private event loop with a NullPool
session factory. A failed recalculation is not retried: it is logged,
counted, and returned as an error dict.
"""

import asyncio
import logging
import time

from prometheus_client import Counter, Histogram

from reputation.celery import celery_app
from reputation.middleware.metrics import record_recalculation

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

TASK_DURATION = Histogram(
    "celery_task_duration_seconds",
    "Time spent executing Celery tasks",
    ["task_name"]
)

TASK_FAILURES = Counter(
    "celery_task_failures_total",
    "Number of Celery task failures",
    ["task_name"]
)


# ==================== Helper Functions ====================

def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _calculate(user_id: str) -> dict:
    from reputation.config import get_settings
    from reputation.database import create_task_session_factory
    from reputation.services.trust_score import TrustScoreAggregator

    session_factory = create_task_session_factory()
    async with session_factory() as session:
        aggregator = TrustScoreAggregator(session, weights=get_settings().trust_weights)
        trust_score = await aggregator.calculate_trust_score(user_id)
        return {
            "user_id": user_id,
            "overall_score": trust_score.overall_score,
        }


async def _calculate_all() -> dict:
    from reputation.config import get_settings
    from reputation.database import create_task_session_factory
    from reputation.services.trust_score import TrustScoreAggregator

    session_factory = create_task_session_factory()
    async with session_factory() as session:
        aggregator = TrustScoreAggregator(session, weights=get_settings().trust_weights)
        return await aggregator.update_all_trust_scores()


# ==================== Celery Tasks ====================

@celery_app.task(bind=True, max_retries=0)
def recalculate_trust_score(self, user_id: str, event: str = "manual") -> dict:
    """
    Recalculate and persist one professional's trust score.

    Args:
        user_id: Professional user id
        event: Triggering event name (job_completed, review_received, ...)

    Returns:
        Dict with user_id and overall_score, or an error dict on failure
    """
    start_time = time.time()

    try:
        result = run_async(_calculate(user_id))
        record_recalculation(event, "success")
        logger.info(f"Recalculated trust score for {user_id} ({event}): {result['overall_score']}")
        return result

    except Exception as e:
        TASK_FAILURES.labels(task_name="recalculate_trust_score").inc()
        record_recalculation(event, "failure")
        logger.error(f"Failed to update trust score for user {user_id}: {e}", exc_info=True)
        return {"user_id": user_id, "error": str(e)}

    finally:
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="recalculate_trust_score").observe(duration)


@celery_app.task(bind=True, max_retries=0)
def recalculate_all_trust_scores(self) -> dict:
    """
    Recalculate every professional's trust score.

    Returns:
        Dict with total, updated and failed counts
    """
    start_time = time.time()

    try:
        stats = run_async(_calculate_all())
        logger.info(
            f"Batch trust recalculation: {stats['updated']}/{stats['total']} updated, "
            f"{stats['failed']} failed"
        )
        return stats

    except Exception as e:
        TASK_FAILURES.labels(task_name="recalculate_all_trust_scores").inc()
        logger.error(f"Batch trust recalculation failed: {e}", exc_info=True)
        return {"error": str(e)}

    finally:
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="recalculate_all_trust_scores").observe(duration)
