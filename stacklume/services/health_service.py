from __future__ import annotations

from typing import Any, Dict

from fastapi import Depends
from fastapi.responses import JSONResponse

from config.constants import APP_VERSION, SERVICE_NAME
from services.state import AppState, get_state


async def root() -> Dict[str, Any]:
    return {"ok": True, "service": SERVICE_NAME, "version": APP_VERSION}


async def health(state: AppState = Depends(get_state)) -> Dict[str, Any]:
    return {
        "ok": True,
        "service": SERVICE_NAME,
        "version": APP_VERSION,
        "uptime_s": round(state.uptime_s(), 3),
    }


async def livez() -> JSONResponse:
    return JSONResponse(status_code=200, content={"ok": True})


async def readyz(state: AppState = Depends(get_state)) -> JSONResponse:
    checks: Dict[str, Any] = {}
    ok = True

    if state.db is not None:
        try:
            h = await state.db.health()
            ok = bool(h.ok)
            checks["db"] = {"ok": bool(h.ok), "detail": str(h.detail)}
        except Exception as e:
            ok = False
            checks["db"] = {"ok": False, "error": str(e)}
    else:
        ok = False
        checks["db"] = {"ok": False, "error": "Database not initialized"}

    return JSONResponse(
        status_code=200 if ok else 503,
        content={"ok": ok, "checks": checks},
    )
