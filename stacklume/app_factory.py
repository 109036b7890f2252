from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.constants import APP_TITLE, APP_VERSION
from config.settings import _as_csv
from routes import backup, health, imports
from services import app_state
from utils.request_id import RequestIdMiddleware


log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
    try:
        await app_state.startup(app)
        yield
    finally:
        try:
            await app_state.shutdown(app)
        except Exception:
            log.exception("shutdown failed")


def create_app() -> FastAPI:
    app = FastAPI(title=APP_TITLE, version=APP_VERSION, lifespan=lifespan)

    app.add_middleware(RequestIdMiddleware)

    # Settings are not loaded yet at build time; read the env directly.
    cors_origins = list(_as_csv(os.environ.get("CORS_ALLOW_ORIGINS")))
    if cors_origins:
        # Starlette forbids allow_credentials with wildcard origins.
        allow_credentials = not any(o == "*" for o in cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if not allow_credentials else cors_origins,
            allow_credentials=allow_credentials,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(health.router)
    app.include_router(backup.router)
    app.include_router(imports.router)

    return app
