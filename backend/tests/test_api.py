# ruff: noqa: INP001
"""HTTP surface tests: lifecycle endpoints, error envelopes and rule reporting."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi import APIRouter, FastAPI
from fastapi_pagination import add_pagination
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from support import add_card, add_milestone, add_rule, add_task, make_engine, seed_world

from taskflow.api.cards import router as cards_router
from taskflow.api.milestones import router as milestones_router
from taskflow.api.rules import router as rules_router
from taskflow.api.tasks import router as tasks_router
from taskflow.core.error_handling import install_error_handling
from taskflow.db.session import get_session
from taskflow.main import app as main_app
from taskflow.models.milestones import MilestoneState
from taskflow.models.tasks import TaskStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def _session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _build_test_app(session_maker: async_sessionmaker[AsyncSession]) -> FastAPI:
    app = FastAPI()
    install_error_handling(app)
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(tasks_router)
    api_v1.include_router(milestones_router)
    api_v1.include_router(cards_router)
    api_v1.include_router(rules_router)
    app.include_router(api_v1)
    add_pagination(app)

    async def _override_get_session() -> AsyncSession:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.asyncio
async def test_claim_then_conflicting_claim_returns_error_envelope() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)
    try:
        async with session_maker() as session:
            world = await seed_world(session)
            task = await add_task(session, world)

        app = _build_test_app(session_maker)
        async with _client(app) as client:
            claimed = await client.post(
                f"/api/v1/tasks/{task.id}/claim",
                json={"version": 1},
                headers={"X-User-Id": str(world.alice.id)},
            )
            conflict = await client.post(
                f"/api/v1/tasks/{task.id}/claim",
                json={"version": 1},
                headers={"X-User-Id": str(world.bob.id)},
            )

        assert claimed.status_code == 200
        body = claimed.json()
        assert body["status"] == TaskStatus.CLAIMED.value
        assert body["claimed_by"] == world.alice.id
        assert body["version"] == 2

        assert conflict.status_code == 409
        error = conflict.json()
        assert error["code"] == "already_claimed"
        assert error["retryable"] is False
        assert error["request_id"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_stale_version_is_retryable_conflict() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)
    try:
        async with session_maker() as session:
            world = await seed_world(session)
            task = await add_task(
                session,
                world,
                status=TaskStatus.CLAIMED,
                claimed_by=world.alice,
            )

        app = _build_test_app(session_maker)
        async with _client(app) as client:
            response = await client.post(
                f"/api/v1/tasks/{task.id}/complete",
                json={"version": 7},
                headers={"X-User-Id": str(world.alice.id)},
            )

        assert response.status_code == 409
        assert response.json()["code"] == "version_conflict"
        assert response.json()["retryable"] is True
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_complete_by_other_user_is_forbidden() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)
    try:
        async with session_maker() as session:
            world = await seed_world(session)
            task = await add_task(
                session,
                world,
                status=TaskStatus.CLAIMED,
                claimed_by=world.alice,
            )

        app = _build_test_app(session_maker)
        async with _client(app) as client:
            response = await client.post(
                f"/api/v1/tasks/{task.id}/complete",
                json={"version": 1},
                headers={"X-User-Id": str(world.bob.id)},
            )

        assert response.status_code == 403
        assert response.json()["code"] == "not_authorized"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_requests_without_actor_or_with_null_title_are_rejected() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)
    try:
        async with session_maker() as session:
            world = await seed_world(session)
            task = await add_task(
                session,
                world,
                status=TaskStatus.CLAIMED,
                claimed_by=world.alice,
            )

        app = _build_test_app(session_maker)
        async with _client(app) as client:
            anonymous = await client.post(f"/api/v1/tasks/{task.id}/claim", json={"version": 1})
            null_title = await client.patch(
                f"/api/v1/tasks/{task.id}",
                json={"version": 1, "title": None},
                headers={"X-User-Id": str(world.alice.id)},
            )
            cleared = await client.patch(
                f"/api/v1/tasks/{task.id}",
                json={"version": 1, "description": None, "priority": 5},
                headers={"X-User-Id": str(world.alice.id)},
            )

        assert anonymous.status_code == 422
        assert null_title.status_code == 422
        assert cleared.status_code == 200
        assert cleared.json()["priority"] == 5
        assert cleared.json()["description"] is None
        assert cleared.json()["version"] == 2
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_activate_milestone_endpoint() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)
    try:
        async with session_maker() as session:
            world = await seed_world(session)
            milestone = await add_milestone(session, world)
            card = await add_card(session, world, milestone=milestone)
            await add_task(session, world, card=card)
            busy = await add_milestone(session, world, name="M0", state=MilestoneState.ACTIVE)

        app = _build_test_app(session_maker)
        path = f"/api/v1/projects/{world.project.id}/milestones/{milestone.id}/activate"
        async with _client(app) as client:
            blocked = await client.post(path, headers={"X-User-Id": str(world.alice.id)})
            async with session_maker() as session:
                busy.state = MilestoneState.COMPLETED.value
                busy.completed_at = busy.activated_at
                session.add(busy)
                await session.commit()
            activated = await client.post(path, headers={"X-User-Id": str(world.alice.id)})

        assert blocked.status_code == 409
        assert blocked.json()["code"] == "already_active"
        assert activated.status_code == 200
        body = activated.json()
        assert body["milestone"]["state"] == MilestoneState.ACTIVE.value
        assert body["cards_released"] == 1
        assert body["tasks_released"] == 1
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_card_move_endpoint_rejects_foreign_milestone() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)
    try:
        async with session_maker() as session:
            world = await seed_world(session)
            card = await add_card(session, world)

        app = _build_test_app(session_maker)
        async with _client(app) as client:
            response = await client.post(
                f"/api/v1/cards/{card.id}/move",
                json={"version": 1, "milestone_id": 404},
                headers={"X-User-Id": str(world.alice.id)},
            )

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_rule_metrics_and_executions_endpoints() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)
    try:
        async with session_maker() as session:
            world = await seed_world(session)
            rule = await add_rule(session, world, templates=(("Follow up", 0),))
            task = await add_task(session, world)

        app = _build_test_app(session_maker)
        headers = {"X-User-Id": str(world.alice.id)}
        async with _client(app) as client:
            await client.post(
                f"/api/v1/tasks/{task.id}/claim",
                json={"version": 1},
                headers=headers,
            )
            await client.post(
                f"/api/v1/tasks/{task.id}/complete",
                json={"version": 2},
                headers=headers,
            )
            metrics = await client.get(f"/api/v1/rules/{rule.id}/metrics", headers=headers)
            executions = await client.get(
                f"/api/v1/rules/{rule.id}/executions",
                params={"limit": 10},
                headers=headers,
            )
            bad_window = await client.get(
                f"/api/v1/rules/{rule.id}/metrics",
                params={"since": "2026-02-01T00:00:00Z", "until": "2026-01-01T00:00:00Z"},
                headers=headers,
            )
            missing = await client.get("/api/v1/rules/404/metrics", headers=headers)

        assert metrics.status_code == 200
        assert metrics.json()["evaluated_count"] == 1
        assert metrics.json()["applied_count"] == 1
        assert metrics.json()["suppressed_by_reason"]["idempotent"] == 0

        assert executions.status_code == 200
        page = executions.json()
        assert page["total"] == 1
        assert page["limit"] == 10
        item = page["items"][0]
        assert item["outcome"] == "applied"
        assert item["origin_id"] == task.id
        assert item["user_email"] == "alice@example.com"

        assert bad_window.status_code == 422
        assert missing.status_code == 404
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_readiness_probe_uses_database_session() -> None:
    engine = await make_engine()
    session_maker = _session_maker(engine)

    async def _override_get_session() -> AsyncSession:
        async with session_maker() as session:
            yield session

    main_app.dependency_overrides[get_session] = _override_get_session
    try:
        async with _client(main_app) as client:
            ready = await client.get("/readyz")
            health = await client.get("/health")

        assert ready.status_code == 200
        assert ready.json() == {"ok": True}
        assert health.json() == {"ok": True}
    finally:
        main_app.dependency_overrides.clear()
        await engine.dispose()
