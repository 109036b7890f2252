from __future__ import annotations

import sys
from pathlib import Path


# Allow `import config`, `import sql_store`, etc when running `pytest` from repo root.
APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))


import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    # The service stack (SQLAlchemy asyncio + aiosqlite) is asyncio-only.
    return "asyncio"
