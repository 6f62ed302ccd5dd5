"""FastAPI application: quota-bounded credential rotation.

Operational goals:
- Every request is independent; the ledger is the only shared state.
- Precise, non-leaky error bodies: {"error": ..., "code": ...}
- Request-id propagation and structured access logs
- Store failures fail the request, never the process

Run with: uvicorn app.main:create_app --factory
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.api.router import router as api_router
from app.core.clock import Clock, UtcClock
from app.core.config import Settings
from app.core.db import create_db_engine
from app.core.errors import KeyRelayError, StoreError
from app.repositories.ledger import LedgerStore
from app.repositories.sql_ledger import SqlLedgerStore
from app.security.rate_limit import InMemoryWindowRateLimiter, RateLimitExceeded
from app.services.quota_enforcer import QuotaEnforcer


logger = logging.getLogger("keyrelay")
# Access logs are the audit trail; emit them by default.
logger.setLevel(logging.INFO)


def build_sql_store(settings: Settings, clock: Clock) -> SqlLedgerStore:
    engine = create_db_engine(settings.database_url, timeout_seconds=settings.store_timeout_seconds)
    store = SqlLedgerStore(engine)
    if engine.dialect.name == "sqlite":
        # Local runs: no migration step. Deployments run `alembic upgrade head`.
        store.create_schema()
    store.initialize(clock.today())
    return store


def _error_body(exc: KeyRelayError) -> dict[str, str]:
    message = exc.public_message if isinstance(exc, StoreError) else str(exc)
    return {"error": message, "code": exc.code}


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[LedgerStore] = None,
    clock: Optional[Clock] = None,
    limiter: Optional[InMemoryWindowRateLimiter] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    clock = clock or UtcClock()
    store = store if store is not None else build_sql_store(settings, clock)

    app = FastAPI(
        title="keyrelay",
        version="1.0.0",
        openapi_url="/openapi.json",
        docs_url=None,
        redoc_url=None,
        description="Quota-bounded rotation of upstream API keys, issued encrypted.",
    )
    app.state.settings = settings
    app.state.clock = clock
    app.state.store = store
    app.state.enforcer = QuotaEnforcer.from_settings(settings, store=store, clock=clock)
    app.state.limiter = limiter or InMemoryWindowRateLimiter(
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    app.include_router(api_router)

    @app.exception_handler(KeyRelayError)
    async def keyrelay_error_handler(request: Request, exc: KeyRelayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail, "code": "RATE_LIMITED"})

    @app.middleware("http")
    async def request_id_and_access_log(request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start = time.time()
        try:
            response = await call_next(request)
        except OperationalError:
            return JSONResponse(
                status_code=503,
                content={"error": "Service temporarily unavailable.", "code": "STORE_UNAVAILABLE"},
                headers={"x-request-id": request_id},
            )
        except Exception:  # noqa: BLE001
            logger.exception("Unhandled error", extra={"request_id": request_id})
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "code": "INTERNAL_ERROR"},
                headers={"x-request-id": request_id},
            )

        duration_ms = int((time.time() - start) * 1000)
        response.headers["x-request-id"] = request_id

        # Structured access log (no bodies, no headers).
        logger.info(
            json.dumps(
                {
                    "event": "access",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": getattr(response, "status_code", None),
                    "duration_ms": duration_ms,
                }
            )
        )
        return response

    return app
