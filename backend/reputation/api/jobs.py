from fastapi import APIRouter, Depends, Query

from reputation.api.deps import get_job_manager
from reputation.auth import Actor, get_current_actor
from reputation.errors import ForbiddenError
from reputation.schemas import (
    JobCreate,
    JobResponse,
    JobStatsResponse,
    JobStatusChange,
    MilestoneCreate,
    MilestoneResponse,
)
from reputation.services.jobs import JobLifecycleManager

router = APIRouter()


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    data: JobCreate,
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    if actor.id != data.client_id and not actor.is_admin:
        raise ForbiddenError("Only the project's client can create its job")
    job = await manager.create_job(data)
    return JobResponse.model_validate(job)


@router.get("", response_model=list[JobResponse])
async def list_my_jobs(
    role: str = Query("client"),
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    jobs = await manager.list_jobs_for_user(actor.id, role)
    return [JobResponse.model_validate(job) for job in jobs]


@router.get("/stats", response_model=JobStatsResponse)
async def get_my_job_stats(
    role: str = Query("professional"),
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    return await manager.get_job_stats(actor.id, role)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    job = await manager.get_job(job_id)
    if actor.id not in (job.client_id, job.professional_id) and not actor.is_admin:
        raise ForbiddenError("You are not a party to this job")
    return JobResponse.model_validate(job)


@router.patch("/{job_id}/status", response_model=JobResponse)
async def update_job_status(
    job_id: str,
    data: JobStatusChange,
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    job = await manager.update_status(
        job_id,
        actor.id,
        data.status,
        progress=data.progress_percentage,
        message=data.message,
    )
    return JobResponse.model_validate(job)


@router.post("/{job_id}/milestones", response_model=MilestoneResponse, status_code=201)
async def create_milestone(
    job_id: str,
    data: MilestoneCreate,
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    job = await manager.get_job(job_id)
    if actor.id not in (job.client_id, job.professional_id):
        raise ForbiddenError("You are not a party to this job")
    milestone = await manager.create_milestone(job_id, data)
    return MilestoneResponse.model_validate(milestone)


@router.post("/milestones/{milestone_id}/complete", response_model=MilestoneResponse)
async def complete_milestone(
    milestone_id: str,
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    milestone = await manager.complete_milestone(milestone_id, actor.id)
    return MilestoneResponse.model_validate(milestone)


@router.post("/milestones/{milestone_id}/approve", response_model=MilestoneResponse)
async def approve_milestone(
    milestone_id: str,
    manager: JobLifecycleManager = Depends(get_job_manager),
    actor: Actor = Depends(get_current_actor),
):
    milestone = await manager.approve_milestone(milestone_id, actor.id)
    return MilestoneResponse.model_validate(milestone)
