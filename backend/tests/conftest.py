"""
Shared fixtures: an in-memory SQLite database per test and a seeder for the
marketplace rows (users, projects, proposals, services) the engine reads.
"""

from datetime import datetime
from typing import Optional
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import reputation.models  # noqa: F401
from reputation.database import Base
from reputation.models import (
    Job,
    JobStatus,
    ProfessionalProfile,
    Project,
    Proposal,
    Service,
    User,
    VerificationRequest,
)


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher():
    """Dispatcher stand-in that records triggers."""
    return MagicMock()


class MarketplaceSeeder:
    """Creates the rows owned by the rest of the platform."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._counter = 0

    async def _add(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def client(self, name: str = "Client") -> User:
        self._counter += 1
        return await self._add(
            User(name=name, email=f"client{self._counter}@example.com", user_type="client")
        )

    async def professional(
        self,
        name: str = "Professional",
        response_time_hours: Optional[float] = None,
    ) -> User:
        self._counter += 1
        user = await self._add(
            User(name=name, email=f"pro{self._counter}@example.com", user_type="professional")
        )
        await self._add(
            ProfessionalProfile(user_id=user.id, response_time_hours=response_time_hours)
        )
        return user

    async def project(self, client: User, title: str = "Kitchen remodel") -> Project:
        return await self._add(Project(client_id=client.id, title=title))

    async def proposal(
        self, project: Project, professional: User, status: str = "accepted"
    ) -> Proposal:
        return await self._add(
            Proposal(
                project_id=project.id,
                professional_id=professional.id,
                status=status,
                quoted_price=1500.0,
            )
        )

    async def service(self, professional: User, title: str = "Plumbing") -> Service:
        return await self._add(Service(professional_id=professional.id, title=title))

    async def job(
        self,
        client: User,
        professional: User,
        status: JobStatus = JobStatus.NOT_STARTED,
        delivery_date: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> Job:
        """Insert a job directly, bypassing the lifecycle manager."""
        project = await self.project(client)
        proposal = await self.proposal(project, professional)
        return await self._add(
            Job(
                project_id=project.id,
                proposal_id=proposal.id,
                client_id=client.id,
                professional_id=professional.id,
                title=project.title,
                agreed_price=1500.0,
                status=JobStatus(status).value,
                delivery_date=delivery_date,
                completed_at=completed_at,
            )
        )

    async def verification(
        self, user: User, verification_type: str, status: str = "approved"
    ) -> VerificationRequest:
        return await self._add(
            VerificationRequest(
                user_id=user.id, verification_type=verification_type, status=status
            )
        )


@pytest.fixture
def marketplace(session):
    return MarketplaceSeeder(session)
