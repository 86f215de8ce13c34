# ruff: noqa: INP001
"""Error envelope and request-id behavior on the task lifecycle routes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from starlette.requests import Request
from support import add_task, make_engine, make_session, seed_world

from taskflow.api.tasks import router as tasks_router
from taskflow.core import error_handling
from taskflow.core.error_handling import (
    REQUEST_ID_HEADER,
    _error_payload,
    _lifecycle_error_handler,
    install_error_handling,
)
from taskflow.db.session import get_session
from taskflow.models.tasks import Task, TaskStatus
from taskflow.services import task_lifecycle

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def _build_app(engine: AsyncEngine) -> FastAPI:
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    app = FastAPI()
    install_error_handling(app)
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(tasks_router)
    app.include_router(api_v1)

    async def _override_get_session() -> AsyncSession:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    return app


def _client(app: FastAPI) -> AsyncClient:
    # Unhandled errors are answered by the 500 handler and then re-raised by Starlette.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://testserver")


async def _seed_task(engine: AsyncEngine, **kwargs) -> tuple[int, int, int]:  # noqa: ANN003
    async with await make_session(engine) as session:
        world = await seed_world(session)
        task = await add_task(session, world, **kwargs)
        return task.id, world.alice.id, world.bob.id


async def _stored_task(engine: AsyncEngine, task_id: int) -> Task:
    async with await make_session(engine) as session:
        task = await Task.objects.by_id(task_id).first(session)
        assert task is not None
        return task


async def _storage_down(*_args, **_kwargs) -> None:  # noqa: ANN002, ANN003
    raise OperationalError("UPDATE tasks", {}, Exception("connection reset"))


async def _bug(*_args, **_kwargs) -> None:  # noqa: ANN002, ANN003
    raise RuntimeError("unexpected")


@pytest.mark.asyncio
async def test_lifecycle_conflict_envelope_echoes_client_request_id() -> None:
    engine = await make_engine()
    try:
        task_id, alice_id, bob_id = await _seed_task(engine)
        async with _client(_build_app(engine)) as client:
            await client.post(
                f"/api/v1/tasks/{task_id}/claim",
                json={"version": 1},
                headers={"X-User-Id": str(alice_id)},
            )
            response = await client.post(
                f"/api/v1/tasks/{task_id}/claim",
                json={"version": 1},
                headers={"X-User-Id": str(bob_id), REQUEST_ID_HEADER: "  req-123  "},
            )

        assert response.status_code == 409
        assert response.headers.get(REQUEST_ID_HEADER) == "req-123"
        body = response.json()
        assert set(body) == {"detail", "code", "retryable", "request_id"}
        assert body["code"] == "already_claimed"
        assert body["retryable"] is False
        assert body["request_id"] == "req-123"
        assert isinstance(body["detail"], str)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_unknown_task_and_stale_version_envelopes() -> None:
    engine = await make_engine()
    try:
        task_id, alice_id, _ = await _seed_task(engine)
        headers = {"X-User-Id": str(alice_id)}
        async with _client(_build_app(engine)) as client:
            missing = await client.post(
                "/api/v1/tasks/404/claim",
                json={"version": 1},
                headers=headers,
            )
            stale = await client.post(
                f"/api/v1/tasks/{task_id}/claim",
                json={"version": 3},
                headers=headers,
            )

        assert missing.status_code == 404
        assert (missing.json()["code"], missing.json()["retryable"]) == ("not_found", False)
        assert stale.status_code == 409
        assert (stale.json()["code"], stale.json()["retryable"]) == ("version_conflict", True)
        assert missing.json()["request_id"] != stale.json()["request_id"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_invalid_request_is_422_with_generated_request_id() -> None:
    engine = await make_engine()
    try:
        task_id, alice_id, _ = await _seed_task(engine)
        async with _client(_build_app(engine)) as client:
            anonymous = await client.post(f"/api/v1/tasks/{task_id}/claim", json={"version": 1})
            zero_version = await client.post(
                f"/api/v1/tasks/{task_id}/claim",
                json={"version": 0},
                headers={"X-User-Id": str(alice_id)},
            )
            not_json = await client.post(
                f"/api/v1/tasks/{task_id}/claim",
                content=b"version=1",
                headers={"X-User-Id": str(alice_id), "content-type": "text/plain"},
            )

        for response in (anonymous, zero_version, not_json):
            assert response.status_code == 422
            body = response.json()
            assert body["code"] == "request_validation_error"
            assert isinstance(body["detail"], list)
            assert body["request_id"]
            assert response.headers.get(REQUEST_ID_HEADER) == body["request_id"]
        assert (await _stored_task(engine, task_id)).version == 1
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_database_failure_is_retryable_503_and_rolls_back(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    engine = await make_engine()
    try:
        task_id, alice_id, _ = await _seed_task(engine)
        monkeypatch.setattr(task_lifecycle, "update_if_version", _storage_down)

        with caplog.at_level(logging.ERROR, logger="taskflow.db.transactions"):
            async with _client(_build_app(engine)) as client:
                response = await client.post(
                    f"/api/v1/tasks/{task_id}/claim",
                    json={"version": 1},
                    headers={"X-User-Id": str(alice_id)},
                )

        assert response.status_code == 503
        assert response.json()["code"] == "storage_error"
        assert response.json()["retryable"] is True
        assert "connection reset" not in response.json()["detail"]
        assert "db.transaction.failed" in caplog.messages
        stored = await _stored_task(engine, task_id)
        assert (stored.status, stored.version) == (TaskStatus.AVAILABLE, 1)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_unexpected_error_returns_500_with_request_id(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    engine = await make_engine()
    try:
        task_id, alice_id, _ = await _seed_task(engine)
        monkeypatch.setattr(task_lifecycle, "update_if_version", _bug)

        with caplog.at_level(logging.ERROR, logger="taskflow.core.error_handling"):
            async with _client(_build_app(engine)) as client:
                response = await client.post(
                    f"/api/v1/tasks/{task_id}/claim",
                    json={"version": 1},
                    headers={"X-User-Id": str(alice_id)},
                )

        assert response.status_code == 500
        body = response.json()
        assert body["detail"] == "Internal Server Error"
        assert "code" not in body
        assert body["request_id"]
        assert "http.request.unhandled_error" in caplog.messages
        assert (await _stored_task(engine, task_id)).status == TaskStatus.AVAILABLE
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_slow_lifecycle_request_is_logged_as_slow(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    engine = await make_engine()
    try:
        task_id, alice_id, _ = await _seed_task(engine)
        monkeypatch.setattr(error_handling.settings, "request_log_slow_ms", 0)

        with caplog.at_level(logging.INFO, logger="taskflow.core.error_handling"):
            async with _client(_build_app(engine)) as client:
                response = await client.post(
                    f"/api/v1/tasks/{task_id}/claim",
                    json={"version": 1},
                    headers={"X-User-Id": str(alice_id)},
                )

        assert response.status_code == 200
        slow = [r for r in caplog.records if r.getMessage() == "http.request.slow"]
        assert len(slow) == 1
        assert slow[0].path == f"/api/v1/tasks/{task_id}/claim"
        assert slow[0].status_code == 200
        assert slow[0].request_id == response.headers[REQUEST_ID_HEADER]
    finally:
        await engine.dispose()


def test_error_payload_includes_code_and_retryable_only_when_given() -> None:
    assert _error_payload(detail="x", request_id=None) == {"detail": "x"}
    assert _error_payload(
        detail=b"\xff",
        request_id="r-1",
        code="version_conflict",
        retryable=True,
    ) == {"detail": "\ufffd", "code": "version_conflict", "retryable": True, "request_id": "r-1"}


@pytest.mark.asyncio
async def test_lifecycle_error_handler_rejects_other_exceptions() -> None:
    request = Request({"type": "http", "headers": [], "state": {}})
    with pytest.raises(TypeError, match="Expected LifecycleError"):
        await _lifecycle_error_handler(request, ValueError("x"))
