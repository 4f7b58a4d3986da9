from fastapi import APIRouter
from reputation.api import jobs, reviews, trust

api_router = APIRouter()
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
api_router.include_router(trust.router, prefix="/trust", tags=["trust"])
