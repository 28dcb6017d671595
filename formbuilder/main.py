from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError

from formbuilder.config import get_config
from formbuilder.db.base import get_engine
from formbuilder.db.migrations_runner import apply_migrations
from formbuilder.http.problem import register_exception_handlers
from formbuilder.http.request_id import RequestIdMiddleware
from formbuilder.logging_setup import configure_logging
from formbuilder.routes import api_router

logger = logging.getLogger(__name__)


def _health_check() -> Callable[[], dict]:
    def check() -> dict:
        try:
            with get_engine().connect() as conn:
                conn.execute(sql_text("SELECT 1"))
            return {"status": "ok", "db": True}
        except SQLAlchemyError as e:
            logger.error("Health DB check failed", exc_info=True)
            return {"status": "degraded", "db": False, "reason": str(e)}

    return check


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Form Builder Service")
    register_exception_handlers(app)
    app.add_middleware(RequestIdMiddleware)

    # Apply migrations on startup to avoid import-time side effects
    @app.on_event("startup")
    def _apply_migrations() -> None:
        if not get_config().database.auto_migrate:
            logger.info("startup_migrations_disabled")
            return
        applied = apply_migrations(get_engine())
        logger.info("startup_migrations_applied count=%s", len(applied))

    app.include_router(api_router, prefix="/api/v1")

    health_check = _health_check()

    @app.get("/health")
    def health():
        return health_check()

    return app


# Intentionally do not instantiate the app at import time to prevent side effects.

__all__ = ["create_app"]
