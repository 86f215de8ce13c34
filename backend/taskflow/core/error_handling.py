"""Request-id propagation, request logging, and uniform error payloads."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from time import perf_counter
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import status
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskflow.core.config import settings
from taskflow.core.logging import get_logger
from taskflow.services.errors import LifecycleError

if TYPE_CHECKING:
    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
HEALTH_PATHS = frozenset({"/health", "/healthz", "/readyz"})
_INTERNAL_ERROR_DETAIL = "Internal Server Error"


def _json_safe(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, Sequence):
        return [_json_safe(item) for item in value]
    return str(value)


def _get_request_id(request: Request) -> str | None:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return None


def _error_payload(
    *,
    detail: object,
    request_id: str | None,
    code: str | None = None,
    retryable: bool | None = None,
) -> dict[str, object]:
    payload: dict[str, object] = {"detail": _json_safe(detail)}
    if code is not None:
        payload["code"] = code
    if retryable is not None:
        payload["retryable"] = retryable
    if request_id is not None:
        payload["request_id"] = request_id
    return payload


def _error_response(
    request: Request,
    *,
    status_code: int,
    detail: object,
    code: str | None = None,
    retryable: bool | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    request_id = _get_request_id(request)
    response_headers = dict(headers or {})
    if request_id is not None:
        response_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=status_code,
        content=_error_payload(
            detail=detail,
            request_id=request_id,
            code=code,
            retryable=retryable,
        ),
        headers=response_headers,
    )


async def _request_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        msg = "Expected RequestValidationError"
        raise TypeError(msg)
    return _error_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=exc.errors(),
        code="request_validation_error",
    )


async def _response_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, ResponseValidationError):
        msg = "Expected ResponseValidationError"
        raise TypeError(msg)
    logger.error(
        "http.response.validation_failed",
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
    )
    return _error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_INTERNAL_ERROR_DETAIL,
    )


async def _http_exception_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        msg = "Expected StarletteHTTPException"
        raise TypeError(msg)
    return _error_response(
        request,
        status_code=exc.status_code,
        detail=exc.detail,
        headers=exc.headers,
    )


async def _lifecycle_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, LifecycleError):
        msg = "Expected LifecycleError"
        raise TypeError(msg)
    return _error_response(
        request,
        status_code=exc.status_code,
        detail=exc.message,
        code=exc.kind.value,
        retryable=exc.retryable,
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "http.request.unhandled_error",
        exc_info=exc,
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
    )
    return _error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_INTERNAL_ERROR_DETAIL,
    )


class RequestContextMiddleware:
    """Assign a request id, echo it back, and log request timing."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    @staticmethod
    def _incoming_request_id(scope: Scope) -> str | None:
        for name, value in scope.get("headers", []):
            if name.decode("latin-1").lower() == REQUEST_ID_HEADER.lower():
                candidate = value.decode("latin-1").strip()
                return candidate or None
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._incoming_request_id(scope) or uuid4().hex
        scope.setdefault("state", {})["request_id"] = request_id
        path = scope.get("path", "")
        should_log = settings.request_log_include_health or path not in HEALTH_PATHS
        status_holder: dict[str, int] = {}

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                status_holder["status_code"] = message["status"]
                headers = list(message.get("headers", []))
                header_name = REQUEST_ID_HEADER.lower().encode("latin-1")
                if not any(name.lower() == header_name for name, _ in headers):
                    headers.append((header_name, request_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        if not should_log:
            await self.app(scope, receive, send_with_request_id)
            return

        started = perf_counter()
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            duration_ms = (perf_counter() - started) * 1000
            context: dict[str, Any] = {
                "method": scope.get("method", ""),
                "path": path,
                "status_code": status_holder.get("status_code", 500),
                "duration_ms": round(duration_ms, 2),
                "request_id": request_id,
            }
            if duration_ms >= settings.request_log_slow_ms:
                logger.warning(
                    "http.request.slow",
                    extra={**context, "slow_threshold_ms": settings.request_log_slow_ms},
                )
            else:
                logger.info("http.request.completed", extra=context)


def install_error_handling(app: FastAPI) -> None:
    """Register request-context middleware and every exception handler on ``app``."""
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(LifecycleError, _lifecycle_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
