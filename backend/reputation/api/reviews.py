from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from reputation.api.deps import get_review_service
from reputation.auth import ADMIN_ROLE, MODERATOR_ROLE, Actor, get_current_actor, require_roles
from reputation.schemas import (
    HelpfulVote,
    HelpfulVoteResponse,
    ModerateReview,
    ModerationQueueResponse,
    ReviewCreate,
    ReviewFilters,
    ReviewFlagCreate,
    ReviewFlagResponse,
    ReviewListResponse,
    ReviewResponse,
    ReviewStatsResponse,
    ReviewUpdate,
)
from reputation.services.reviews import ReviewService

router = APIRouter()

require_moderator = require_roles(ADMIN_ROLE, MODERATOR_ROLE)


def review_filters(
    rating: Optional[int] = Query(None, ge=1, le=5),
    verified_only: bool = Query(False),
    sort_by: str = Query("newest"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
) -> ReviewFilters:
    return ReviewFilters(
        rating=rating,
        verified_only=verified_only,
        sort_by=sort_by,
        page=page,
        limit=limit,
    )


@router.post("", response_model=ReviewResponse, status_code=201)
async def create_review(
    data: ReviewCreate,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    review = await service.create_review(actor.id, data)
    return ReviewResponse.model_validate(review)


@router.get("/me", response_model=ReviewListResponse)
async def list_my_reviews(
    filters: ReviewFilters = Depends(review_filters),
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    return await service.list_reviews_by_user(actor.id, filters)


@router.get("/professional/{professional_id}", response_model=ReviewListResponse)
async def list_professional_reviews(
    professional_id: str,
    filters: ReviewFilters = Depends(review_filters),
    service: ReviewService = Depends(get_review_service),
):
    return await service.list_reviews_for_professional(professional_id, filters)


@router.get("/professional/{professional_id}/stats", response_model=ReviewStatsResponse)
async def get_professional_review_stats(
    professional_id: str,
    service: ReviewService = Depends(get_review_service),
):
    return await service.get_professional_review_stats(professional_id)


@router.get("/client/{client_id}", response_model=ReviewListResponse)
async def list_client_reviews(
    client_id: str,
    filters: ReviewFilters = Depends(review_filters),
    service: ReviewService = Depends(get_review_service),
):
    return await service.list_reviews_by_client(client_id, filters)


@router.get("/moderation/queue", response_model=ModerationQueueResponse)
async def get_moderation_queue(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: ReviewService = Depends(get_review_service),
    _: Actor = Depends(require_moderator),
):
    return await service.get_reviews_for_moderation(page=page, limit=limit)


@router.patch("/{review_id}/moderate", response_model=ReviewResponse)
async def moderate_review(
    review_id: str,
    data: ModerateReview,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(require_moderator),
):
    review = await service.moderate_review(review_id, actor.id, data.status, notes=data.notes)
    return ReviewResponse.model_validate(review)


@router.patch("/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: str,
    data: ReviewUpdate,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    review = await service.update_review(review_id, actor.id, data)
    return ReviewResponse.model_validate(review)


@router.delete("/{review_id}", status_code=204)
async def delete_review(
    review_id: str,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    await service.delete_review(review_id, actor.id)
    return Response(status_code=204)


@router.post("/{review_id}/flag", response_model=ReviewFlagResponse, status_code=201)
async def flag_review(
    review_id: str,
    data: ReviewFlagCreate,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    flag = await service.flag_review(review_id, actor.id, data.reason, data.description)
    return ReviewFlagResponse.model_validate(flag)


@router.post("/{review_id}/helpful", response_model=HelpfulVoteResponse)
async def vote_helpful(
    review_id: str,
    data: HelpfulVote,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    vote = await service.vote_helpful(review_id, actor.id, data.is_helpful)
    return HelpfulVoteResponse.model_validate(vote)
