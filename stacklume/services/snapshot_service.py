"""
Snapshot assembly and storage.

A snapshot is the account's live (non soft-deleted) data wrapped in a
versioned envelope:

    {"version": "1.0.0", "exportedAt": "<ISO-8601>", "data": {...}}

Entity rows inside `data` use camelCase keys and never carry the owner
field, so a snapshot can be restored into any account.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel

from config.constants import BACKUP_FORMAT_VERSION
from models.requests import BackupEnvelope, validate_model
from services.db_service import DatabaseService, model_for, new_id
from services.retention_service import DEFAULT_MAX_BACKUPS, enforce_retention
from sql_store import BackupRecord, LinkTagRecord, UserSettingsRecord


log = logging.getLogger(__name__)

OWNER_FIELD = "account_id"

# (option flag, family, envelope key); read order of the assembler.
_ENTITY_FAMILIES: Tuple[Tuple[str, str, str], ...] = (
    ("links", "links", "links"),
    ("categories", "categories", "categories"),
    ("tags", "tags", "tags"),
    ("widgets", "widgets", "widgets"),
    ("projects", "projects", "projects"),
)

COUNTED_KEYS = ("links", "categories", "tags", "widgets", "projects")


class SnapshotValidationError(ValueError):
    def __init__(self, errors: List[str]) -> None:
        super().__init__("Invalid backup data format")
        self.errors = list(errors)


@dataclass(frozen=True)
class SnapshotOptions:
    links: bool = True
    categories: bool = True
    tags: bool = True
    widgets: bool = True
    projects: bool = True
    settings: bool = True


def _now() -> float:
    return time.time()


def _iso(ts: float) -> str:
    dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _filename(prefix: str, ts: float) -> str:
    stamp = _iso(ts).replace(":", "-").replace(".", "-")
    return f"{prefix}-{stamp}.json"


def envelope_size(envelope: Dict[str, Any]) -> int:
    return len(
        json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    )


def export_row(rec: SQLModel, *, drop: Tuple[str, ...] = (OWNER_FIELD,)) -> Dict[str, Any]:
    return {
        to_camel(k): v for k, v in rec.model_dump().items() if k not in drop
    }


async def _live_rows(db: DatabaseService, family: str, account_id: str) -> List[Any]:
    model: Any = model_for(family)
    return await db.select_rows(
        family,
        model.account_id == account_id,
        model.deleted_at.is_(None),
        order_by=(model.created_at,),
        op=f"snapshot fetch {family}",
    )


async def assemble_envelope(
    db: DatabaseService,
    account_id: str,
    options: SnapshotOptions | None = None,
    *,
    now: float | None = None,
) -> Dict[str, Any]:
    opts = options or SnapshotOptions()
    data: Dict[str, Any] = {}

    for flag, family, key in _ENTITY_FAMILIES:
        if not getattr(opts, flag):
            continue
        rows = await _live_rows(db, family, account_id)
        data[key] = [export_row(r) for r in rows]

    link_ids = [str(r["id"]) for r in data.get("links") or []]
    if opts.links and opts.tags and link_ids:
        pairs = await db.select_rows(
            "link_tags",
            LinkTagRecord.link_id.in_(link_ids),
            op="snapshot fetch link tags",
        )
        data["linkTags"] = [{"linkId": p.link_id, "tagId": p.tag_id} for p in pairs]

    if opts.settings:
        row = await db.first_row(
            "settings",
            UserSettingsRecord.account_id == account_id,
            op="snapshot fetch settings",
        )
        if row is not None:
            data["settings"] = export_row(row, drop=(OWNER_FIELD, "id"))

    return {
        "version": BACKUP_FORMAT_VERSION,
        "exportedAt": _iso(now if now is not None else _now()),
        "data": data,
    }


async def create_snapshot(
    db: DatabaseService,
    account_id: str,
    options: SnapshotOptions | None = None,
    *,
    backup_type: str = "manual",
    retention_limit: int = DEFAULT_MAX_BACKUPS,
) -> BackupRecord:
    """
    Snapshot the account's live data and persist it as a backup record.

    The backup insert is the last write, so a failing read never leaves a
    partial snapshot behind. Retention runs for the same account afterwards.
    """
    now = _now()
    envelope = await assemble_envelope(db, account_id, options, now=now)
    rec = BackupRecord(
        id=new_id(),
        account_id=account_id,
        filename=_filename("stacklume-backup", now),
        size=envelope_size(envelope),
        backup_data=envelope,
        backup_type=backup_type,
        created_at=now,
    )
    rec = await db.insert_row("backups", rec, op="save backup")
    log.info(
        "backup created account=%s id=%s type=%s size=%s",
        account_id,
        rec.id,
        backup_type,
        rec.size,
    )
    await enforce_retention(db, account_id, retention_limit)
    return rec


def validate_envelope(payload: Any) -> List[str]:
    _, errors = validate_model(BackupEnvelope, payload)
    return errors


async def store_uploaded_snapshot(
    db: DatabaseService,
    account_id: str,
    envelope: Any,
    *,
    retention_limit: int = DEFAULT_MAX_BACKUPS,
) -> BackupRecord:
    """
    Persist an externally supplied envelope as an `export` backup.

    Only the envelope shape is checked here; rows are validated one by one
    when the backup is restored.
    """
    errors = validate_envelope(envelope)
    if errors:
        raise SnapshotValidationError(errors)
    now = _now()
    rec = BackupRecord(
        id=new_id(),
        account_id=account_id,
        filename=_filename("stacklume-import", now),
        size=envelope_size(envelope),
        backup_data=dict(envelope),
        backup_type="export",
        created_at=now,
    )
    rec = await db.insert_row("backups", rec, op="save uploaded backup")
    log.info("backup uploaded account=%s id=%s size=%s", account_id, rec.id, rec.size)
    await enforce_retention(db, account_id, retention_limit)
    return rec


async def list_snapshots(db: DatabaseService, account_id: str) -> List[BackupRecord]:
    return await db.select_rows(
        "backups",
        BackupRecord.account_id == account_id,
        order_by=(BackupRecord.created_at.desc(), BackupRecord.id.desc()),
        op="list backups",
    )


async def get_snapshot(
    db: DatabaseService, account_id: str, backup_id: str
) -> BackupRecord | None:
    rec = await db.get_row("backups", backup_id, op="get backup")
    if rec is None or rec.account_id != account_id:
        return None
    return rec


async def delete_snapshot(db: DatabaseService, account_id: str, backup_id: str) -> bool:
    rec = await get_snapshot(db, account_id, backup_id)
    if rec is None:
        return False
    return await db.delete_row("backups", rec.id, op="delete backup")


def export_snapshot_json(rec: BackupRecord) -> str:
    return json.dumps(rec.backup_data, indent=2, ensure_ascii=False)


def snapshot_summary(rec: BackupRecord) -> Dict[str, Any]:
    data = (rec.backup_data or {}).get("data") or {}
    counts: Dict[str, int] = {}
    for key in COUNTED_KEYS:
        rows = data.get(key) if isinstance(data, dict) else None
        counts[key] = len(rows) if isinstance(rows, list) else 0
    return {
        "id": rec.id,
        "filename": rec.filename,
        "size": int(rec.size or 0),
        "backup_type": rec.backup_type,
        "created_at": float(rec.created_at),
        "item_count": counts,
    }
