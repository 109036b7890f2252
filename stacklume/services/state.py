from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, Request

from config.settings import Settings


@dataclass
class AppState:
    settings: Settings
    started_at: float

    # Async DB service (SQLModel / AsyncSession).
    db: Any = None  # DatabaseService

    def uptime_s(self) -> float:
        return max(0.0, time.time() - float(self.started_at))


def get_state(request: Request) -> AppState:
    st = getattr(request.app.state, "stacklume", None)
    if st is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return st
