"""
Recalculation Dispatcher - Event-Driven Trust Score Refresh

Connects job and review events to trust score recalculation. A trigger
never blocks the caller and never raises into it: the recalculation runs
as a detached, best-effort unit of work (no retry, no ordering between
triggers for the same user) and failures are only logged.

Backends:
    - RecalculationDispatcher: bounded asyncio tasks on the running loop,
      each with its own database session
    - CeleryRecalculationDispatcher: enqueues the Celery task
      reputation.tasks.trust.recalculate_trust_score

Usage:
    dispatcher = build_dispatcher(settings, async_session)
    dispatcher.trigger_trust_score_update(professional_id, TrustEvent.JOB_COMPLETED)

    # On shutdown / in tests
    await dispatcher.drain()
"""

import asyncio
import enum
import logging
from typing import Dict, Optional, Set, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from reputation.config import Settings
from reputation.middleware.metrics import record_recalculation, update_pending_recalculations
from reputation.services.trust_score import TrustScoreAggregator

logger = logging.getLogger(__name__)


class TrustEvent(str, enum.Enum):
    JOB_COMPLETED = "job_completed"
    REVIEW_RECEIVED = "review_received"
    VERIFICATION_APPROVED = "verification_approved"


def _event_name(event: Union[TrustEvent, str]) -> str:
    return event.value if isinstance(event, TrustEvent) else str(event)


class RecalculationDispatcher:
    """
    In-process bounded executor for trust score recalculations.

    At most max_concurrency recalculations run at once; further triggers
    wait on a semaphore inside their own task, so the caller is never held.
    Each task is isolated: an exception in one is logged and cannot affect
    the others or the triggering request.

    Attributes:
        session_factory: Callable returning a new AsyncSession context
        weights: Component weights passed to the aggregator
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_concurrency: int = 4,
        weights: Optional[Dict[str, float]] = None,
    ):
        self.session_factory = session_factory
        self.weights = weights
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def trigger_trust_score_update(self, user_id: str, event: Union[TrustEvent, str]) -> None:
        """
        Schedule a recalculation for user_id and return immediately.

        Args:
            user_id: Professional whose score should be refreshed
            event: What caused the refresh (for logging and metrics)
        """
        event_name = _event_name(event)
        logger.info(f"Trust score update triggered for user {user_id} due to: {event_name}")

        try:
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._recalculate(user_id, event_name))
        except RuntimeError as e:
            logger.error(f"Could not schedule trust score update for user {user_id}: {e}")
            record_recalculation(event_name, "failure")
            return

        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        update_pending_recalculations(self.pending)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        update_pending_recalculations(self.pending)

    async def _recalculate(self, user_id: str, event_name: str) -> None:
        async with self._semaphore:
            try:
                async with self.session_factory() as session:
                    aggregator = TrustScoreAggregator(session, weights=self.weights)
                    await aggregator.calculate_trust_score(user_id)
                record_recalculation(event_name, "success")
            except Exception as e:
                logger.error(f"Failed to update trust score for user {user_id}: {e}", exc_info=True)
                record_recalculation(event_name, "failure")

    async def drain(self) -> None:
        """Wait for every scheduled recalculation, including ones scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class CeleryRecalculationDispatcher:
    """Hands recalculations to Celery workers instead of the web process."""

    def trigger_trust_score_update(self, user_id: str, event: Union[TrustEvent, str]) -> None:
        from reputation.tasks.trust import recalculate_trust_score

        event_name = _event_name(event)
        logger.info(f"Trust score update queued for user {user_id} due to: {event_name}")
        try:
            recalculate_trust_score.delay(user_id, event_name)
        except Exception as e:
            logger.error(f"Failed to enqueue trust score update for user {user_id}: {e}")
            record_recalculation(event_name, "failure")

    async def drain(self) -> None:
        return None


def build_dispatcher(
    settings: Settings,
    session_factory: async_sessionmaker,
) -> Union[RecalculationDispatcher, CeleryRecalculationDispatcher]:
    """Select the dispatcher backend configured in settings."""
    if settings.dispatcher_backend == "celery":
        return CeleryRecalculationDispatcher()
    return RecalculationDispatcher(
        session_factory,
        max_concurrency=settings.dispatcher_max_concurrency,
        weights=settings.trust_weights,
    )
