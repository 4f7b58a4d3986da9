"""
Job Lifecycle Manager - Job, Milestone and Status Audit Operations

Owns job state from creation (from an accepted proposal) to completion or
cancellation. Every status change is appended to the job's audit trail and
a completed job triggers a trust score refresh for the professional.

Write-once timestamps:
    in_progress → started_at, completed → completed_at, cancelled → cancelled_at
    Each is set the first time the status is reached and never overwritten.

Transition policy:
    Permissive by default: any status may follow any other. When
    enforce_transitions is enabled, JOB_STATUS_TRANSITIONS is applied and
    illegal moves raise BadRequestError.

Usage:
    manager = JobLifecycleManager(session, dispatcher)
    job = await manager.create_job(JobCreate(...))
    job = await manager.update_status(job.id, actor_id, JobStatus.COMPLETED)
"""

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reputation.errors import BadRequestError, ForbiddenError, NotFoundError
from reputation.middleware.metrics import record_job_status_change
from reputation.models import (
    Job,
    JobMilestone,
    JobStatus,
    JobStatusUpdate,
    Project,
    Proposal,
)
from reputation.models.common import new_id, utcnow
from reputation.schemas.job import JobCreate, MilestoneCreate
from reputation.services.dispatcher import TrustEvent

logger = logging.getLogger(__name__)

JOB_STATUS_TRANSITIONS: Dict[str, set] = {
    JobStatus.NOT_STARTED.value: {JobStatus.IN_PROGRESS.value, JobStatus.CANCELLED.value},
    JobStatus.IN_PROGRESS.value: {
        JobStatus.MILESTONE_REVIEW.value,
        JobStatus.COMPLETED.value,
        JobStatus.CANCELLED.value,
        JobStatus.DISPUTED.value,
    },
    JobStatus.MILESTONE_REVIEW.value: {
        JobStatus.IN_PROGRESS.value,
        JobStatus.COMPLETED.value,
        JobStatus.CANCELLED.value,
        JobStatus.DISPUTED.value,
    },
    JobStatus.DISPUTED.value: {
        JobStatus.IN_PROGRESS.value,
        JobStatus.COMPLETED.value,
        JobStatus.CANCELLED.value,
    },
    JobStatus.COMPLETED.value: set(),
    JobStatus.CANCELLED.value: set(),
}

STATUS_TIMESTAMP_FIELDS = {
    JobStatus.IN_PROGRESS.value: "started_at",
    JobStatus.COMPLETED.value: "completed_at",
    JobStatus.CANCELLED.value: "cancelled_at",
}

ACCEPTED_PROPOSAL_STATUS = "accepted"
USER_ROLES = ("client", "professional")


def milestone_progress(milestones: Sequence[JobMilestone]) -> int:
    """round(completed / total * 100); 0 when the job has no milestones."""
    if not milestones:
        return 0
    completed = sum(1 for m in milestones if m.completed)
    return round(completed / len(milestones) * 100)


def is_transition_allowed(status_from: str, status_to: str) -> bool:
    if status_from == status_to:
        return True
    return status_to in JOB_STATUS_TRANSITIONS.get(status_from, set())


class JobLifecycleManager:
    """
    Service for job lifecycle operations.

    Attributes:
        session: AsyncSession, the unit of work for every operation
        dispatcher: Recalculation dispatcher notified on job completion
        enforce_transitions: Apply JOB_STATUS_TRANSITIONS when True
        default_currency: Currency used when a job is created without one
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher=None,
        enforce_transitions: bool = False,
        default_currency: str = "ARS",
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.enforce_transitions = enforce_transitions
        self.default_currency = default_currency

    async def create_job(self, data: JobCreate) -> Job:
        """
        Create a job from an accepted proposal.

        The job row, the project status change and the initial audit row
        are committed together; nothing is written if any step fails.

        Raises:
            NotFoundError: Project does not exist
            ForbiddenError: Project belongs to another client
            BadRequestError: Proposal missing, not accepted or not matching
                the project and professional, or the project already has a job
        """
        project = await self.session.get(Project, data.project_id)
        if not project:
            raise NotFoundError("Project not found")

        if project.client_id != data.client_id:
            raise ForbiddenError("Project belongs to another client")

        proposal = await self.session.get(Proposal, data.proposal_id)
        if not proposal or proposal.status != ACCEPTED_PROPOSAL_STATUS:
            raise BadRequestError("Proposal must be accepted to create a job")

        if proposal.project_id != data.project_id:
            raise BadRequestError("Proposal does not belong to this project")

        if proposal.professional_id != data.professional_id:
            raise BadRequestError("Proposal was submitted by another professional")

        existing = await self.session.execute(
            select(Job.id).where(Job.project_id == data.project_id)
        )
        if existing.scalar_one_or_none():
            raise BadRequestError("Job already exists for this project")

        job = Job(
            id=new_id(),
            project_id=data.project_id,
            proposal_id=data.proposal_id,
            client_id=data.client_id,
            professional_id=data.professional_id,
            title=data.title,
            description=data.description,
            agreed_price=data.agreed_price,
            currency=data.currency or self.default_currency,
            delivery_date=data.delivery_date,
            status=JobStatus.NOT_STARTED.value,
            progress_percentage=0,
        )

        try:
            self.session.add(job)
            project.status = "in_progress"
            self.session.add(
                JobStatusUpdate(
                    job_id=job.id,
                    status_from=JobStatus.NOT_STARTED.value,
                    status_to=JobStatus.NOT_STARTED.value,
                    updated_by_user_id=data.client_id,
                    message="Job created",
                )
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Created job {job.id} for project {data.project_id}")
        return await self.get_job(job.id)

    async def get_job(self, job_id: str) -> Job:
        result = await self.session.execute(
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        job = result.scalar_one_or_none()
        if not job:
            raise NotFoundError("Job not found")
        return job

    async def list_jobs_for_user(self, user_id: str, role: str) -> List[Job]:
        if role not in USER_ROLES:
            raise BadRequestError(f"Unknown role: {role}")

        column = Job.client_id if role == "client" else Job.professional_id
        result = await self.session.execute(
            select(Job).where(column == user_id).order_by(Job.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        job_id: str,
        actor_id: str,
        status: JobStatus,
        progress: Optional[int] = None,
        message: Optional[str] = None,
    ) -> Job:
        """
        Change a job's status on behalf of its client or professional.

        Args:
            job_id: Job to update
            actor_id: Acting user (must be the job's client or professional)
            status: New status
            progress: Optional progress percentage 0-100
            message: Optional note stored on the audit row

        Raises:
            NotFoundError: Job does not exist
            ForbiddenError: Actor is not a party to the job
            BadRequestError: Invalid progress, or a disallowed transition
                while transitions are enforced
        """
        job = await self.get_job(job_id)

        if actor_id not in (job.client_id, job.professional_id):
            raise ForbiddenError("You are not authorized to update this job")

        new_status = JobStatus(status).value
        previous_status = job.status

        if progress is not None and not 0 <= progress <= 100:
            raise BadRequestError("Progress percentage must be between 0 and 100")

        if self.enforce_transitions and not is_transition_allowed(previous_status, new_status):
            raise BadRequestError(
                f"Cannot change job status from {previous_status} to {new_status}"
            )

        try:
            job.status = new_status
            if progress is not None:
                job.progress_percentage = progress

            timestamp_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
            if timestamp_field and getattr(job, timestamp_field) is None:
                setattr(job, timestamp_field, utcnow())

            self.session.add(
                JobStatusUpdate(
                    job_id=job.id,
                    status_from=previous_status,
                    status_to=new_status,
                    updated_by_user_id=actor_id,
                    message=message,
                )
            )

            if new_status == JobStatus.COMPLETED.value:
                project = await self.session.get(Project, job.project_id)
                if project:
                    project.status = "completed"

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        record_job_status_change(new_status)
        logger.info(f"Job {job_id} status {previous_status} -> {new_status} by {actor_id}")

        if new_status == JobStatus.COMPLETED.value and self.dispatcher is not None:
            self.dispatcher.trigger_trust_score_update(
                job.professional_id, TrustEvent.JOB_COMPLETED
            )

        return await self.get_job(job_id)

    # ==================== Milestones ====================

    async def create_milestone(self, job_id: str, data: MilestoneCreate) -> JobMilestone:
        await self.get_job(job_id)

        milestone = JobMilestone(
            job_id=job_id,
            title=data.title,
            description=data.description,
            amount=data.amount,
            due_date=data.due_date,
        )
        self.session.add(milestone)
        await self.session.commit()
        return milestone

    async def _get_milestone(self, milestone_id: str) -> JobMilestone:
        milestone = await self.session.get(JobMilestone, milestone_id)
        if not milestone:
            raise NotFoundError("Milestone not found")
        return milestone

    async def _job_milestones(self, job_id: str) -> List[JobMilestone]:
        result = await self.session.execute(
            select(JobMilestone).where(JobMilestone.job_id == job_id)
        )
        return list(result.scalars().all())

    async def complete_milestone(self, milestone_id: str, actor_id: str) -> JobMilestone:
        """
        Mark a milestone completed. Only the job's professional may do this.

        The job's progress percentage is re-derived from its milestones.
        """
        milestone = await self._get_milestone(milestone_id)
        job = await self.session.get(Job, milestone.job_id)

        if job.professional_id != actor_id:
            raise ForbiddenError("Only the professional can complete milestones")

        milestone.completed = True
        if milestone.completed_at is None:
            milestone.completed_at = utcnow()

        job.progress_percentage = milestone_progress(await self._job_milestones(job.id))
        await self.session.commit()
        return milestone

    async def approve_milestone(self, milestone_id: str, actor_id: str) -> JobMilestone:
        """Mark a milestone approved. Only the job's client may do this."""
        milestone = await self._get_milestone(milestone_id)
        job = await self.session.get(Job, milestone.job_id)

        if job.client_id != actor_id:
            raise ForbiddenError("Only the client can approve milestones")

        milestone.approved_by_client = True
        if milestone.approved_at is None:
            milestone.approved_at = utcnow()

        await self.session.commit()
        return milestone

    # ==================== Reporting ====================

    async def get_job_stats(self, user_id: str, role: str) -> dict:
        if role not in USER_ROLES:
            raise BadRequestError(f"Unknown role: {role}")

        column = Job.client_id if role == "client" else Job.professional_id

        # Single GROUP BY query for status counts
        result = await self.session.execute(
            select(Job.status, func.count(Job.id)).where(column == user_id).group_by(Job.status)
        )
        jobs_by_status = {row[0]: row[1] for row in result.all()}

        total_earnings = 0.0
        if role == "professional":
            earnings = await self.session.execute(
                select(func.sum(Job.agreed_price)).where(
                    Job.professional_id == user_id,
                    Job.status == JobStatus.COMPLETED.value,
                )
            )
            total_earnings = earnings.scalar() or 0.0

        return {
            "jobs_by_status": jobs_by_status,
            "total_jobs": sum(jobs_by_status.values()),
            "total_earnings": total_earnings,
        }
