from __future__ import annotations

import os
from dataclasses import dataclass


def _as_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None and str(val).strip() != "" else default
    except Exception:
        return default


def _as_float(val: str | None, default: float) -> float:
    try:
        return float(val) if val is not None and str(val).strip() != "" else default
    except Exception:
        return default


def _as_bool(val: str | None, default: bool) -> bool:
    if val is None:
        return default
    s = str(val).strip().lower()
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def _as_str(val: str | None, default: str) -> str:
    if val is None:
        return default
    s = str(val).strip()
    return s if s else default


def _as_csv(val: str | None) -> tuple[str, ...]:
    """Parse comma-separated strings, ignoring blanks."""
    if val is None:
        return tuple()
    out: list[str] = []
    for part in str(val).split(","):
        p = part.strip()
        if not p:
            continue
        out.append(p)
    return tuple(out)


@dataclass(frozen=True)
class Settings:
    # Database (required)
    database_url: str
    db_echo: bool

    # Storage retry wrapper
    db_retry_attempts: int
    db_retry_backoff_base_s: float
    db_retry_backoff_max_s: float

    # Single account scope (no multi-user auth).
    account_id: str

    # Backups
    backup_max_per_account: int
    import_skipped_details_max: int

    # HTTP
    cors_allow_origins: tuple[str, ...]


def load_settings() -> Settings:
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is required (e.g. sqlite:////data/stacklume.sqlite)"
        )
    db_echo = _as_bool(os.environ.get("DB_ECHO"), False)

    db_retry_attempts = max(1, _as_int(os.environ.get("DB_RETRY_ATTEMPTS"), 3))
    db_retry_backoff_base_s = max(
        0.0, _as_float(os.environ.get("DB_RETRY_BACKOFF_BASE_S"), 0.5)
    )
    db_retry_backoff_max_s = max(
        0.0, _as_float(os.environ.get("DB_RETRY_BACKOFF_MAX_S"), 5.0)
    )

    account_id = _as_str(os.environ.get("ACCOUNT_ID"), default="default")

    backup_max_per_account = max(
        1, _as_int(os.environ.get("BACKUP_MAX_PER_ACCOUNT"), 10)
    )
    import_skipped_details_max = max(
        0, _as_int(os.environ.get("IMPORT_SKIPPED_DETAILS_MAX"), 10)
    )

    cors_allow_origins = _as_csv(os.environ.get("CORS_ALLOW_ORIGINS"))

    return Settings(
        database_url=database_url,
        db_echo=db_echo,
        db_retry_attempts=db_retry_attempts,
        db_retry_backoff_base_s=db_retry_backoff_base_s,
        db_retry_backoff_max_s=db_retry_backoff_max_s,
        account_id=account_id,
        backup_max_per_account=backup_max_per_account,
        import_skipped_details_max=import_skipped_details_max,
        cors_allow_origins=cors_allow_origins,
    )
