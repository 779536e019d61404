from __future__ import annotations

import logging
import time
from uuid import uuid4

import orjson
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from cashwise_api.core.config import Settings
from cashwise_api.db import SessionLocal
from cashwise_api.errors import (
    InvariantViolation,
    NotFound,
    PreconditionNotMet,
    ScoringError,
    StoreUnavailableError,
    ValidationError,
)
from cashwise_api.feed import ProgressFeed
from cashwise_api.logging_config import configure_logging
from cashwise_api.metrics import observe_http_request, render_prometheus_metrics
from cashwise_api.routers import challenges, leaderboard, lessons, profile, progress, quizzes

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("cashwise_api.requests")

_ERROR_STATUS: tuple[tuple[type[ScoringError], int], ...] = (
    (ValidationError, 400),
    (NotFound, 404),
    (PreconditionNotMet, 409),
    (StoreUnavailableError, 503),
    (InvariantViolation, 500),
)


def _parse_csv(value: str) -> list[str]:
    raw = str(value or "").strip()
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def status_for_error(exc: ScoringError) -> int:
    for cls, status in _ERROR_STATUS:
        if isinstance(exc, cls):
            return status
    return 500


def create_app(*, settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(
        title="CashWise Progress API",
        version="0.1.0",
        openapi_url="/api/openapi.json",
        docs_url="/docs",
    )
    app.state.settings = settings
    app.state.feed = ProgressFeed()

    if settings.trust_proxy_headers:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    allowed_hosts = _parse_csv(settings.allowed_hosts) or ["*"]
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

    cors_origins = _parse_csv(settings.cors_allowed_origins)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def _request_context(request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or f"req_{uuid4().hex}"
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            _observe_http(request=request, status_code=500, duration_ms=duration_ms)
            if settings.log_json:
                _log_json(
                    {
                        "level": "error",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status": 500,
                        "duration_ms": round(duration_ms, 2),
                    }
                )
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        _observe_http(
            request=request, status_code=response.status_code, duration_ms=duration_ms
        )
        response.headers["X-Request-Id"] = request_id

        if settings.log_json:
            _log_json(
                {
                    "level": "info",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                }
            )

        return response

    def _with_request_id(request: Request, resp: Response) -> Response:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            resp.headers["X-Request-Id"] = str(request_id)
        return resp

    @app.exception_handler(ScoringError)
    async def _scoring_error(request: Request, exc: ScoringError):
        status = status_for_error(exc)
        if status >= 500:
            logger.error("%s on %s: %s", exc.code, request.url.path, exc)
        return _with_request_id(
            request,
            JSONResponse(status_code=status, content={"detail": str(exc), "code": exc.code}),
        )

    @app.exception_handler(HTTPException)
    async def _with_request_id_http_exception(request: Request, exc: HTTPException):
        return _with_request_id(request, await http_exception_handler(request, exc))

    @app.exception_handler(RequestValidationError)
    async def _with_request_id_validation_error(
        request: Request, exc: RequestValidationError
    ):
        return _with_request_id(
            request, await request_validation_exception_handler(request, exc)
        )

    @app.exception_handler(Exception)
    async def _with_request_id_unhandled(request: Request, exc: Exception):
        logger.exception("unhandled error on %s", request.url.path, exc_info=exc)
        return _with_request_id(
            request, JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        )

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/ready")
    def ready() -> dict[str, object]:
        db_ok = False
        db_err: str | None = None
        try:
            with SessionLocal() as session:
                session.execute(text("SELECT 1"))
            db_ok = True
        except SQLAlchemyError as exc:
            db_err = str(exc)[:400]

        return {
            "status": "ok" if db_ok else "fail",
            "db": {"ok": db_ok, "error": db_err},
        }

    @app.get("/api/metrics", response_class=PlainTextResponse)
    def metrics() -> Response:
        with SessionLocal() as session:
            text_out = render_prometheus_metrics(db=session)
        return PlainTextResponse(content=text_out, media_type="text/plain; version=0.0.4")

    app.include_router(profile.router)
    app.include_router(quizzes.router)
    app.include_router(lessons.router)
    app.include_router(challenges.router)
    app.include_router(progress.router)
    app.include_router(leaderboard.router)

    return app


def _observe_http(*, request: Request, status_code: int, duration_ms: float | None = None) -> None:
    route = request.scope.get("route")
    template = getattr(route, "path", None) if route is not None else None
    observe_http_request(
        path=str(template or request.url.path),
        method=request.method,
        status=str(status_code),
        duration_ms=duration_ms,
    )


def _log_json(payload: dict[str, object]) -> None:
    request_logger.info(orjson.dumps(payload).decode("utf-8"))


app = create_app()
