from fastapi import APIRouter, Depends

from reputation.api.deps import get_trust_aggregator
from reputation.auth import ADMIN_ROLE, Actor, get_current_actor, require_roles
from reputation.config import get_settings
from reputation.errors import ForbiddenError, NotFoundError
from reputation.schemas import BadgeCatalogResponse, RecalculationSummary, TrustScoreResponse
from reputation.services.trust_score import (
    TrustScoreAggregator,
    get_badge_catalog,
    trust_score_to_dict,
)

router = APIRouter()


@router.get("/badges", response_model=BadgeCatalogResponse)
async def get_badges():
    return get_badge_catalog(get_settings().trust_weights)


@router.get("/my-score", response_model=TrustScoreResponse)
async def get_my_trust_score(
    aggregator: TrustScoreAggregator = Depends(get_trust_aggregator),
    actor: Actor = Depends(get_current_actor),
):
    trust_score = await aggregator.get_or_calculate_trust_score(actor.id)
    return trust_score_to_dict(trust_score)


@router.get("/score/{user_id}", response_model=TrustScoreResponse)
async def get_trust_score(
    user_id: str,
    aggregator: TrustScoreAggregator = Depends(get_trust_aggregator),
):
    trust_score = await aggregator.get_trust_score(user_id)
    if not trust_score:
        raise NotFoundError("Trust score not found")
    return trust_score_to_dict(trust_score)


@router.post("/calculate/{user_id}", response_model=TrustScoreResponse)
async def calculate_trust_score(
    user_id: str,
    aggregator: TrustScoreAggregator = Depends(get_trust_aggregator),
    actor: Actor = Depends(get_current_actor),
):
    if actor.id != user_id and not actor.is_admin:
        raise ForbiddenError("You can only calculate your own trust score")
    trust_score = await aggregator.calculate_trust_score(user_id)
    return trust_score_to_dict(trust_score)


@router.post("/recalculate-all", response_model=RecalculationSummary)
async def recalculate_all(
    aggregator: TrustScoreAggregator = Depends(get_trust_aggregator),
    _: Actor = Depends(require_roles(ADMIN_ROLE)),
):
    return await aggregator.update_all_trust_scores()
