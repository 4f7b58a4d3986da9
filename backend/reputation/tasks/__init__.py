"""
Celery Task Modules

Background tasks for reputation processing:
- trust.py: Single and batch trust score recalculation
"""

from reputation.tasks.trust import (
    recalculate_trust_score,
    recalculate_all_trust_scores,
)

__all__ = [
    "recalculate_trust_score",
    "recalculate_all_trust_scores",
]
