"""
Tests for the job lifecycle manager.

Tests cover:
- Job creation from an accepted proposal (single unit of work)
- Status changes: authorization, write-once timestamps, audit trail
- Completion side effects (project status, trust score trigger)
- Optional transition enforcement
- Milestones and derived progress
- Per-user job statistics

Run with: cd backend && pytest tests/test_jobs.py -v
"""
import pytest
from sqlalchemy import func, select

from reputation.errors import BadRequestError, ForbiddenError, NotFoundError
from reputation.models import Job, JobStatus, JobStatusUpdate, Project
from reputation.schemas import JobCreate, MilestoneCreate
from reputation.services.dispatcher import TrustEvent
from reputation.services.jobs import (
    JobLifecycleManager,
    is_transition_allowed,
    milestone_progress,
)


async def create_job(manager, marketplace, currency=None):
    client = await marketplace.client()
    pro = await marketplace.professional()
    project = await marketplace.project(client)
    proposal = await marketplace.proposal(project, pro)
    job = await manager.create_job(
        JobCreate(
            project_id=project.id,
            proposal_id=proposal.id,
            client_id=client.id,
            professional_id=pro.id,
            title="Bathroom tiling",
            agreed_price=1200.0,
            currency=currency,
        )
    )
    return job, client, pro


class TestHelpers:
    def test_milestone_progress_without_milestones(self):
        assert milestone_progress([]) == 0

    def test_milestone_progress_rounds(self):
        class M:
            def __init__(self, completed):
                self.completed = completed

        assert milestone_progress([M(True), M(False), M(False)]) == 33
        assert milestone_progress([M(True), M(True), M(False)]) == 67

    def test_transition_table(self):
        assert is_transition_allowed("not_started", "in_progress")
        assert is_transition_allowed("in_progress", "in_progress")
        assert not is_transition_allowed("completed", "in_progress")
        assert not is_transition_allowed("cancelled", "completed")


class TestCreateJob:
    """Tests for job creation."""

    @pytest.mark.asyncio
    async def test_creates_job_with_audit_row(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, client, _ = await create_job(manager, marketplace)

        assert job.status == JobStatus.NOT_STARTED.value
        assert job.progress_percentage == 0
        assert job.currency == "ARS"
        assert len(job.status_updates) == 1
        audit = job.status_updates[0]
        assert audit.status_from == audit.status_to == "not_started"
        assert audit.updated_by_user_id == client.id
        assert audit.message == "Job created"

    @pytest.mark.asyncio
    async def test_marks_project_in_progress(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, _ = await create_job(manager, marketplace)

        project = await session.get(Project, job.project_id)
        assert project.status == "in_progress"

    @pytest.mark.asyncio
    async def test_explicit_currency(self, session, marketplace):
        manager = JobLifecycleManager(session, default_currency="USD")
        job, _, _ = await create_job(manager, marketplace, currency="EUR")
        assert job.currency == "EUR"

    @pytest.mark.asyncio
    async def test_missing_project(self, session, marketplace):
        manager = JobLifecycleManager(session)
        with pytest.raises(NotFoundError):
            await manager.create_job(
                JobCreate(
                    project_id="missing",
                    proposal_id="missing",
                    client_id="c",
                    professional_id="p",
                    title="x",
                    agreed_price=1,
                )
            )

    @pytest.mark.asyncio
    async def test_proposal_not_accepted(self, session, marketplace):
        client = await marketplace.client()
        pro = await marketplace.professional()
        project = await marketplace.project(client)
        proposal = await marketplace.proposal(project, pro, status="pending")

        with pytest.raises(BadRequestError):
            await JobLifecycleManager(session).create_job(
                JobCreate(
                    project_id=project.id,
                    proposal_id=proposal.id,
                    client_id=client.id,
                    professional_id=pro.id,
                    title="x",
                    agreed_price=100,
                )
            )

    @pytest.mark.asyncio
    async def test_project_of_another_client_forbidden(self, session, marketplace):
        owner = await marketplace.client("Owner")
        intruder = await marketplace.client("Intruder")
        pro = await marketplace.professional()
        project = await marketplace.project(owner)
        proposal = await marketplace.proposal(project, pro)

        with pytest.raises(ForbiddenError):
            await JobLifecycleManager(session).create_job(
                JobCreate(
                    project_id=project.id,
                    proposal_id=proposal.id,
                    client_id=intruder.id,
                    professional_id=pro.id,
                    title="x",
                    agreed_price=100,
                )
            )

        count = await session.execute(select(func.count(Job.id)))
        assert count.scalar() == 0

    @pytest.mark.asyncio
    async def test_proposal_from_other_project_rejected(self, session, marketplace):
        client = await marketplace.client()
        pro = await marketplace.professional()
        project = await marketplace.project(client)
        other_project = await marketplace.project(client, title="Garden fence")
        proposal = await marketplace.proposal(other_project, pro)

        with pytest.raises(BadRequestError):
            await JobLifecycleManager(session).create_job(
                JobCreate(
                    project_id=project.id,
                    proposal_id=proposal.id,
                    client_id=client.id,
                    professional_id=pro.id,
                    title="x",
                    agreed_price=100,
                )
            )

    @pytest.mark.asyncio
    async def test_proposal_from_other_professional_rejected(self, session, marketplace):
        client = await marketplace.client()
        pro = await marketplace.professional()
        other_pro = await marketplace.professional()
        project = await marketplace.project(client)
        proposal = await marketplace.proposal(project, pro)

        with pytest.raises(BadRequestError):
            await JobLifecycleManager(session).create_job(
                JobCreate(
                    project_id=project.id,
                    proposal_id=proposal.id,
                    client_id=client.id,
                    professional_id=other_pro.id,
                    title="x",
                    agreed_price=100,
                )
            )

    @pytest.mark.asyncio
    async def test_one_job_per_project(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, client, pro = await create_job(manager, marketplace)

        with pytest.raises(BadRequestError):
            await manager.create_job(
                JobCreate(
                    project_id=job.project_id,
                    proposal_id=job.proposal_id,
                    client_id=client.id,
                    professional_id=pro.id,
                    title="again",
                    agreed_price=100,
                )
            )

        count = await session.execute(select(func.count(Job.id)))
        assert count.scalar() == 1


class TestUpdateStatus:
    """Tests for status changes."""

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, _ = await create_job(manager, marketplace)

        with pytest.raises(ForbiddenError):
            await manager.update_status(job.id, "someone-else", JobStatus.IN_PROGRESS)

    @pytest.mark.asyncio
    async def test_missing_job(self, session):
        with pytest.raises(NotFoundError):
            await JobLifecycleManager(session).update_status("missing", "u", JobStatus.IN_PROGRESS)

    @pytest.mark.asyncio
    async def test_start_sets_started_at_once(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, client, pro = await create_job(manager, marketplace)

        job = await manager.update_status(job.id, pro.id, JobStatus.IN_PROGRESS)
        first_started = job.started_at
        assert first_started is not None

        await manager.update_status(job.id, pro.id, JobStatus.MILESTONE_REVIEW)
        job = await manager.update_status(job.id, client.id, JobStatus.IN_PROGRESS)

        assert job.started_at == first_started

    @pytest.mark.asyncio
    async def test_completed_at_write_once(self, session, marketplace, dispatcher):
        manager = JobLifecycleManager(session, dispatcher=dispatcher)
        job, _, pro = await create_job(manager, marketplace)

        job = await manager.update_status(job.id, pro.id, JobStatus.COMPLETED)
        first_completed = job.completed_at
        await manager.update_status(job.id, pro.id, JobStatus.DISPUTED)
        job = await manager.update_status(job.id, pro.id, JobStatus.COMPLETED)

        assert job.completed_at == first_completed

    @pytest.mark.asyncio
    async def test_cancel_sets_cancelled_at(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, client, _ = await create_job(manager, marketplace)

        job = await manager.update_status(job.id, client.id, JobStatus.CANCELLED, message="Changed plans")

        assert job.cancelled_at is not None
        assert job.status_updates[0].message == "Changed plans"

    @pytest.mark.asyncio
    async def test_appends_audit_rows(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, pro = await create_job(manager, marketplace)

        await manager.update_status(job.id, pro.id, JobStatus.IN_PROGRESS)
        await manager.update_status(job.id, pro.id, JobStatus.MILESTONE_REVIEW)

        result = await session.execute(
            select(JobStatusUpdate).where(JobStatusUpdate.job_id == job.id)
        )
        transitions = {(u.status_from, u.status_to) for u in result.scalars().all()}
        assert ("not_started", "in_progress") in transitions
        assert ("in_progress", "milestone_review") in transitions
        assert len(transitions) == 3

    @pytest.mark.asyncio
    async def test_progress_update(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, pro = await create_job(manager, marketplace)

        job = await manager.update_status(job.id, pro.id, JobStatus.IN_PROGRESS, progress=40)
        assert job.progress_percentage == 40

    @pytest.mark.asyncio
    async def test_invalid_progress_rejected_before_write(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, pro = await create_job(manager, marketplace)

        with pytest.raises(BadRequestError):
            await manager.update_status(job.id, pro.id, JobStatus.IN_PROGRESS, progress=150)

        job = await manager.get_job(job.id)
        assert job.status == JobStatus.NOT_STARTED.value
        assert len(job.status_updates) == 1

    @pytest.mark.asyncio
    async def test_completion_triggers_trust_update(self, session, marketplace, dispatcher):
        manager = JobLifecycleManager(session, dispatcher=dispatcher)
        job, _, pro = await create_job(manager, marketplace)

        await manager.update_status(job.id, pro.id, JobStatus.COMPLETED)

        dispatcher.trigger_trust_score_update.assert_called_once_with(
            pro.id, TrustEvent.JOB_COMPLETED
        )
        project = await session.get(Project, job.project_id)
        assert project.status == "completed"

    @pytest.mark.asyncio
    async def test_other_statuses_do_not_trigger(self, session, marketplace, dispatcher):
        manager = JobLifecycleManager(session, dispatcher=dispatcher)
        job, _, pro = await create_job(manager, marketplace)

        await manager.update_status(job.id, pro.id, JobStatus.IN_PROGRESS)

        dispatcher.trigger_trust_score_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_permissive_by_default(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, pro = await create_job(manager, marketplace)

        await manager.update_status(job.id, pro.id, JobStatus.COMPLETED)
        job = await manager.update_status(job.id, pro.id, JobStatus.NOT_STARTED)

        assert job.status == JobStatus.NOT_STARTED.value

    @pytest.mark.asyncio
    async def test_enforced_transitions(self, session, marketplace):
        manager = JobLifecycleManager(session, enforce_transitions=True)
        job, _, pro = await create_job(manager, marketplace)

        with pytest.raises(BadRequestError):
            await manager.update_status(job.id, pro.id, JobStatus.MILESTONE_REVIEW)

        job = await manager.update_status(job.id, pro.id, JobStatus.IN_PROGRESS)
        assert job.status == JobStatus.IN_PROGRESS.value


class TestMilestones:
    """Tests for milestones and derived progress."""

    @pytest.mark.asyncio
    async def test_complete_and_approve(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, client, pro = await create_job(manager, marketplace)
        first = await manager.create_milestone(job.id, MilestoneCreate(title="Demo", amount=300))
        await manager.create_milestone(job.id, MilestoneCreate(title="Tiles", amount=900))

        milestone = await manager.complete_milestone(first.id, pro.id)
        assert milestone.completed is True
        assert milestone.completed_at is not None

        job = await manager.get_job(job.id)
        assert job.progress_percentage == 50

        milestone = await manager.approve_milestone(first.id, client.id)
        assert milestone.approved_by_client is True
        assert milestone.approved_at is not None

    @pytest.mark.asyncio
    async def test_completed_at_write_once(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, pro = await create_job(manager, marketplace)
        milestone = await manager.create_milestone(job.id, MilestoneCreate(title="A", amount=1))

        first = (await manager.complete_milestone(milestone.id, pro.id)).completed_at
        second = (await manager.complete_milestone(milestone.id, pro.id)).completed_at

        assert first == second

    @pytest.mark.asyncio
    async def test_only_professional_completes(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, client, _ = await create_job(manager, marketplace)
        milestone = await manager.create_milestone(job.id, MilestoneCreate(title="A", amount=1))

        with pytest.raises(ForbiddenError):
            await manager.complete_milestone(milestone.id, client.id)

    @pytest.mark.asyncio
    async def test_only_client_approves(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, pro = await create_job(manager, marketplace)
        milestone = await manager.create_milestone(job.id, MilestoneCreate(title="A", amount=1))

        with pytest.raises(ForbiddenError):
            await manager.approve_milestone(milestone.id, pro.id)

    @pytest.mark.asyncio
    async def test_missing_milestone(self, session):
        with pytest.raises(NotFoundError):
            await JobLifecycleManager(session).complete_milestone("missing", "u")

    @pytest.mark.asyncio
    async def test_milestone_for_missing_job(self, session):
        with pytest.raises(NotFoundError):
            await JobLifecycleManager(session).create_milestone(
                "missing", MilestoneCreate(title="A", amount=1)
            )


class TestJobQueries:
    @pytest.mark.asyncio
    async def test_list_jobs_by_role(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, client, pro = await create_job(manager, marketplace)

        assert [j.id for j in await manager.list_jobs_for_user(client.id, "client")] == [job.id]
        assert [j.id for j in await manager.list_jobs_for_user(pro.id, "professional")] == [job.id]
        assert await manager.list_jobs_for_user(client.id, "professional") == []

    @pytest.mark.asyncio
    async def test_unknown_role(self, session):
        with pytest.raises(BadRequestError):
            await JobLifecycleManager(session).list_jobs_for_user("u", "admin")

    @pytest.mark.asyncio
    async def test_stats_for_professional(self, session, marketplace):
        manager = JobLifecycleManager(session)
        job, _, pro = await create_job(manager, marketplace)
        await manager.update_status(job.id, pro.id, JobStatus.COMPLETED)

        stats = await manager.get_job_stats(pro.id, "professional")

        assert stats["total_jobs"] == 1
        assert stats["jobs_by_status"] == {"completed": 1}
        assert stats["total_earnings"] == pytest.approx(1200.0)
