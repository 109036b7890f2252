from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple

from pydantic.alias_generators import to_snake

from services.db_service import DatabaseService, column_names, new_id
from services.sanitizer import parse_timestamp
from services.snapshot_service import OWNER_FIELD, get_snapshot
from sql_store import CategoryRecord, LinkRecord, TagRecord, UserSettingsRecord


log = logging.getLogger(__name__)

REPLACE_WARNING = "Replace mode not yet implemented. Using merge mode instead."
NOT_FOUND = "Backup not found"

# (envelope key, family, label, display field), in dependency order.
_PLAN: Tuple[Tuple[str, str, str, str], ...] = (
    ("categories", "categories", "category", "name"),
    ("tags", "tags", "tag", "name"),
    ("projects", "projects", "project", "name"),
    ("links", "links", "link", "title"),
    ("widgets", "widgets", "widget", "title"),
)

# Columns stored as epoch seconds; envelopes may carry ISO-8601 strings.
_TIMESTAMPS = ("created_at", "updated_at", "published_at", "last_checked_at")

# Foreign keys rewritten (or nulled) before insert.
_REFERENCES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "links": (("category_id", "categories"),),
    "widgets": (
        ("project_id", "projects"),
        ("category_id", "categories"),
        ("tag_id", "tags"),
    ),
}


def _empty_counts() -> Dict[str, int]:
    return {
        "links": 0,
        "categories": 0,
        "tags": 0,
        "widgets": 0,
        "projects": 0,
        "link_tags": 0,
        "settings": 0,
    }


@dataclass
class RestoreResult:
    success: bool
    restored: Dict[str, int] = field(default_factory=_empty_counts)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _natural_key(family: str, account_id: str, cols: Dict[str, Any]) -> List[Any]:
    if family == "categories":
        return [
            CategoryRecord.account_id == account_id,
            CategoryRecord.name == cols.get("name"),
            CategoryRecord.deleted_at.is_(None),
        ]
    if family == "tags":
        return [
            TagRecord.account_id == account_id,
            TagRecord.name == cols.get("name"),
            TagRecord.deleted_at.is_(None),
        ]
    if family == "links":
        return [
            LinkRecord.account_id == account_id,
            LinkRecord.url == cols.get("url"),
            LinkRecord.deleted_at.is_(None),
        ]
    return []


def _to_columns(family: str, raw: Dict[str, Any], account_id: str) -> Dict[str, Any]:
    known = set(column_names(family))
    cols: Dict[str, Any] = {}
    for k, v in raw.items():
        name = to_snake(str(k))
        if name in known and name != OWNER_FIELD:
            cols[name] = v
    if "account_id" in known:
        cols["account_id"] = account_id
    if "id" in known and not cols.get("id"):
        cols["id"] = new_id()
    for ts in _TIMESTAMPS:
        if ts in cols:
            cols[ts] = parse_timestamp(cols[ts])
    now = time.time()
    for ts in ("created_at", "updated_at"):
        if ts in known and cols.get(ts) is None:
            cols[ts] = now
    if "deleted_at" in known:
        cols["deleted_at"] = None
    return cols


class _MergeRestorer:
    """
    One restore run: replays envelope rows family by family, idempotently.

    `id_map` tracks snapshot id -> local id for rows that exist locally after
    their family was processed (inserted, or matched by key).
    """

    def __init__(self, db: DatabaseService, account_id: str) -> None:
        self.db = db
        self.account_id = account_id
        self.result = RestoreResult(success=True)
        self.id_map: Dict[str, Dict[str, str]] = {}

    def _is_local_live(self, rec: Any) -> bool:
        return (
            rec is not None
            and getattr(rec, "account_id", None) == self.account_id
            and getattr(rec, "deleted_at", None) is None
        )

    async def _resolve(self, family: str, old_id: Any) -> str | None:
        if not old_id:
            return None
        key = str(old_id)
        mapped = self.id_map.setdefault(family, {}).get(key)
        if mapped:
            return mapped
        rec = await self.db.get_row(family, key, op=f"restore resolve {family}")
        if self._is_local_live(rec):
            self.id_map[family][key] = rec.id
            return rec.id
        return None

    async def restore_family(
        self, rows: Any, family: str, label: str, display: str
    ) -> None:
        if not isinstance(rows, list):
            return
        mapping = self.id_map.setdefault(family, {})
        for raw in rows:
            name = "unknown"
            try:
                if not isinstance(raw, dict):
                    raise ValueError("row is not an object")
                name = str(raw.get(display) or raw.get("id") or "unknown")
                cols = _to_columns(family, raw, self.account_id)
                old_id = str(cols["id"])
                for fk, target in _REFERENCES.get(family, ()):
                    if fk in cols:
                        cols[fk] = await self._resolve(target, cols.get(fk))
                rec, inserted = await self.db.insert_if_absent(
                    family,
                    cols,
                    natural_key=_natural_key(family, self.account_id, cols),
                    op=f"restore {label}",
                )
                if inserted:
                    self.result.restored[family] += 1
                    mapping[old_id] = rec.id
                elif self._is_local_live(rec):
                    mapping[old_id] = rec.id
            except Exception as e:
                log.warning("restore %s failed name=%s error=%s", label, name, e)
                self.result.errors.append(f"Failed to restore {label}: {name}")

    async def restore_link_tags(self, rows: Any) -> None:
        if not isinstance(rows, list):
            return
        for raw in rows:
            if not isinstance(raw, dict):
                continue
            link_ref = raw.get("linkId") or raw.get("link_id")
            tag_ref = raw.get("tagId") or raw.get("tag_id")
            try:
                link_id = await self._resolve("links", link_ref)
                tag_id = await self._resolve("tags", tag_ref)
                if not link_id or not tag_id:
                    log.debug(
                        "restore link tag skipped link=%s tag=%s", link_ref, tag_ref
                    )
                    continue
                _, inserted = await self.db.insert_if_absent(
                    "link_tags",
                    {"link_id": link_id, "tag_id": tag_id},
                    op="restore link tag",
                )
                if inserted:
                    self.result.restored["link_tags"] += 1
            except Exception as e:
                log.warning(
                    "restore link tag failed link=%s tag=%s error=%s",
                    link_ref,
                    tag_ref,
                    e,
                )
                self.result.errors.append(
                    f"Failed to restore link tag: {link_ref} -> {tag_ref}"
                )

    async def restore_settings(self, raw: Any) -> None:
        if not isinstance(raw, dict):
            return
        try:
            cols = _to_columns("settings", raw, self.account_id)
            cols["id"] = new_id()
            _, inserted = await self.db.insert_if_absent(
                "settings",
                cols,
                natural_key=[UserSettingsRecord.account_id == self.account_id],
                op="restore settings",
            )
            if inserted:
                self.result.restored["settings"] += 1
        except Exception as e:
            log.warning("restore settings failed error=%s", e)
            self.result.errors.append("Failed to restore settings")


async def restore_snapshot(
    db: DatabaseService, account_id: str, backup_id: str, mode: str = "merge"
) -> RestoreResult:
    """
    Merge a stored snapshot back into the live store.

    Rows that already exist (same id, or same name/url for categories, tags
    and links) are left untouched and not counted. Row failures are collected
    in `errors`; the run never stops early because of one row.
    """
    backup = await get_snapshot(db, account_id, backup_id)
    if backup is None:
        return RestoreResult(success=False, errors=[NOT_FOUND])

    restorer = _MergeRestorer(db, account_id)
    if str(mode or "merge").strip().lower() != "merge":
        restorer.result.errors.append(REPLACE_WARNING)

    data = (backup.backup_data or {}).get("data")
    if not isinstance(data, dict):
        data = {}

    for key, family, label, display in _PLAN:
        await restorer.restore_family(data.get(key), family, label, display)
    await restorer.restore_link_tags(data.get("linkTags"))
    await restorer.restore_settings(data.get("settings"))

    res = restorer.result
    log.info(
        "backup restored account=%s id=%s restored=%s errors=%s",
        account_id,
        backup_id,
        res.restored,
        len(res.errors),
    )
    return res
