"""
Tests for the HTTP routers.

Tests cover:
- Bearer token authentication and role gates
- Domain errors mapped to HTTP status codes
- End-to-end job → review → trust score flow through the API

TestClient runs the app on its own event loop, so these tests use a
temporary SQLite file with a NullPool engine instead of the shared
in-memory fixtures.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from starlette.routing import Match
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from reputation import auth
from reputation.database import Base, get_db
from reputation.main import app
from reputation.middleware.metrics import PrometheusMiddleware
from reputation.models import JobStatus, ProfessionalProfile, Project, Proposal, User
from reputation.services.dispatcher import TrustEvent


def token_for(user_id: str, role: str = "user") -> dict:
    token = jwt.encode({"sub": user_id, "role": role}, auth.settings.secret_key, algorithm=auth.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "api.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return path


@pytest.fixture
def seed(db_path):
    """Insert a client, a professional and an accepted proposal."""
    sync_engine = create_engine(f"sqlite:///{db_path}")
    with Session(sync_engine, expire_on_commit=False) as db:
        client = User(id="client-1", name="Ana", email="ana@example.com", user_type="client")
        pro = User(id="pro-1", name="Luis", email="luis@example.com", user_type="professional")
        project = Project(id="project-1", client_id=client.id, title="Paint the hallway")
        db.add_all([client, pro, project, ProfessionalProfile(user_id=pro.id)])
        db.flush()
        db.add(
            Proposal(
                id="proposal-1",
                project_id=project.id,
                professional_id=pro.id,
                status="accepted",
                quoted_price=800.0,
            )
        )
        db.commit()
    sync_engine.dispose()
    return {"client": "client-1", "pro": "pro-1", "project": "project-1", "proposal": "proposal-1"}


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def client(db_path, dispatcher):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.dispatcher = dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.dispatcher


def create_job(client, seed):
    return client.post(
        "/jobs",
        json={
            "project_id": seed["project"],
            "proposal_id": seed["proposal"],
            "client_id": seed["client"],
            "professional_id": seed["pro"],
            "title": "Paint the hallway",
            "agreed_price": 800.0,
        },
        headers=token_for(seed["client"]),
    )


class TestHealthAndPublicRoutes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_badges(self, client):
        response = client.get("/trust/badges")
        assert response.status_code == 200
        body = response.json()
        assert len(body["badges"]) == 6
        assert body["score_components"]["review_score"]["weight"] == 30

    def test_missing_trust_score(self, client):
        response = client.get("/trust/score/nobody")
        assert response.status_code == 404
        assert response.json()["detail"] == "Trust score not found"

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.post("/reviews", json={"professional_id": "p", "rating": 5})
        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/trust/my-score", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_moderation_requires_role(self, client):
        response = client.get("/reviews/moderation/queue", headers=token_for("someone"))
        assert response.status_code == 403

    def test_moderator_can_view_queue(self, client):
        response = client.get("/reviews/moderation/queue", headers=token_for("mod", "moderator"))
        assert response.status_code == 200
        assert response.json()["reviews"] == []

    def test_calculate_is_self_only(self, client, seed):
        response = client.post(f"/trust/calculate/{seed['pro']}", headers=token_for("someone"))
        assert response.status_code == 403

    def test_admin_can_calculate_for_others(self, client, seed):
        response = client.post(f"/trust/calculate/{seed['pro']}", headers=token_for("root", "admin"))
        assert response.status_code == 200
        assert response.json()["user_id"] == seed["pro"]

    def test_recalculate_all_requires_admin(self, client, seed):
        assert client.post("/trust/recalculate-all", headers=token_for("someone")).status_code == 403

        response = client.post("/trust/recalculate-all", headers=token_for("root", "admin"))
        assert response.status_code == 200
        assert response.json() == {"total": 1, "updated": 1, "failed": 0}


class TestJobReviewFlow:
    """A job is created, completed and reviewed through the API."""

    def test_create_job(self, client, seed):
        response = create_job(client, seed)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "not_started"
        assert body["currency"] == "ARS"
        assert body["status_updates"][0]["message"] == "Job created"

    def test_duplicate_job_is_bad_request(self, client, seed):
        create_job(client, seed)
        response = create_job(client, seed)
        assert response.status_code == 400

    def test_outsider_cannot_update_status(self, client, seed):
        job_id = create_job(client, seed).json()["id"]

        response = client.patch(
            f"/jobs/{job_id}/status",
            json={"status": "in_progress"},
            headers=token_for("stranger"),
        )
        assert response.status_code == 403

    def test_complete_and_review(self, client, seed, dispatcher):
        job_id = create_job(client, seed).json()["id"]

        response = client.patch(
            f"/jobs/{job_id}/status",
            json={"status": JobStatus.COMPLETED.value, "message": "All done"},
            headers=token_for(seed["pro"]),
        )
        assert response.status_code == 200
        assert response.json()["completed_at"] is not None
        dispatcher.trigger_trust_score_update.assert_called_with(seed["pro"], TrustEvent.JOB_COMPLETED)

        response = client.post(
            "/reviews",
            json={
                "job_id": job_id,
                "professional_id": seed["pro"],
                "rating": 5,
                "comment": "Spotless finish and very tidy.",
            },
            headers=token_for(seed["client"]),
        )
        assert response.status_code == 201
        review = response.json()
        assert review["verified_purchase"] is True
        assert review["moderation_status"] == "approved"

        listing = client.get(f"/reviews/professional/{seed['pro']}")
        assert listing.json()["pagination"]["total"] == 1

        stats = client.get(f"/reviews/professional/{seed['pro']}/stats")
        assert stats.json()["average"] == 5.0

    def test_review_without_anchor_is_bad_request(self, client, seed):
        response = client.post(
            "/reviews",
            json={"professional_id": seed["pro"], "rating": 4},
            headers=token_for(seed["client"]),
        )
        assert response.status_code == 400

    def test_my_score_is_calculated_on_first_access(self, client, seed):
        response = client.get("/trust/my-score", headers=token_for(seed["pro"]))

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == seed["pro"]
        assert body["trust_badge"] == "New Professional"
        assert set(body["score_breakdown"]) == {
            "review_score",
            "completion_score",
            "communication_score",
            "reliability_score",
            "verification_score",
        }


class TestEndpointLabels:
    """Route patterns used as the metrics endpoint label."""

    def _request(self, routes, path):
        request = MagicMock()
        request.app.routes = routes
        request.url.path = path
        return request

    def test_uses_route_pattern(self):
        route = SimpleNamespace(path="/jobs/{job_id}", matches=lambda scope: (Match.FULL, {}))
        middleware = PrometheusMiddleware(MagicMock())

        assert middleware._get_endpoint(self._request([route], "/jobs/abc-123")) == "/jobs/{job_id}"

    def test_route_without_path_falls_back_to_url(self):
        included = SimpleNamespace(matches=lambda scope: (Match.FULL, {}))
        middleware = PrometheusMiddleware(MagicMock())

        assert middleware._get_endpoint(self._request([included], "/jobs/abc-123")) == "/jobs/abc-123"

    def test_prefers_route_from_child_scope(self):
        route = SimpleNamespace(path="/reviews/{review_id}")
        included = SimpleNamespace(matches=lambda scope: (Match.FULL, {"route": route}))
        middleware = PrometheusMiddleware(MagicMock())

        assert middleware._get_endpoint(self._request([included], "/reviews/r-1")) == "/reviews/{review_id}"
