from __future__ import annotations

import asyncio
import logging
import time

from fastapi import FastAPI

from config.settings import load_settings
from services.db_service import DatabaseService
from services.state import AppState
from utils.db_retry import retry_policy_from_settings


log = logging.getLogger(__name__)

_STATE_LOCK = asyncio.Lock()


async def startup(app: FastAPI) -> None:
    async with _STATE_LOCK:
        if getattr(app.state, "stacklume", None) is not None:
            return

        settings = load_settings()
        db = DatabaseService(
            database_url=settings.database_url,
            echo=settings.db_echo,
            retry=retry_policy_from_settings(settings),
        )
        try:
            await db.init()
        except Exception as e:
            await db.close()
            raise RuntimeError(f"Database init failed: {e}") from e

        app.state.stacklume = AppState(
            settings=settings,
            started_at=time.time(),
            db=db,
        )
        log.info(
            "startup complete account=%s backup_max=%s",
            settings.account_id,
            settings.backup_max_per_account,
        )


async def shutdown(app: FastAPI) -> None:
    st: AppState | None = getattr(app.state, "stacklume", None)
    if st is None:
        return
    try:
        if st.db is not None:
            await st.db.close()
    except Exception:
        log.exception("database close failed")
    app.state.stacklume = None
