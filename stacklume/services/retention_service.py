from __future__ import annotations

import logging
from typing import List, Sequence

from services.db_service import DatabaseService
from sql_store import BackupRecord


log = logging.getLogger(__name__)

DEFAULT_MAX_BACKUPS = 10


def select_evictions(ids_newest_first: Sequence[str], limit: int) -> List[str]:
    """
    Ids beyond the `limit` newest, oldest first. `limit <= 0` evicts nothing.
    """
    lim = int(limit)
    if lim <= 0 or len(ids_newest_first) <= lim:
        return []
    return list(reversed(list(ids_newest_first)[lim:]))


async def enforce_retention(
    db: DatabaseService, account_id: str, limit: int = DEFAULT_MAX_BACKUPS
) -> List[str]:
    """
    Keep only the `limit` most recent snapshots for `account_id`.

    Returns the deleted ids (oldest first). A second run with no new
    snapshots deletes nothing.
    """
    total = await db.count_rows(
        "backups",
        BackupRecord.account_id == account_id,
        op="count backups",
    )
    if total <= int(limit):
        return []

    ids = await db.select_values(
        BackupRecord.id,
        BackupRecord.account_id == account_id,
        order_by=(BackupRecord.created_at.desc(), BackupRecord.id.desc()),
        op="list backups for retention",
    )
    evict = select_evictions([str(x) for x in ids if x], limit)
    deleted: List[str] = []
    for backup_id in evict:
        if await db.delete_row("backups", backup_id, op="delete old backup"):
            deleted.append(backup_id)
    if deleted:
        log.info(
            "backup retention account=%s limit=%s deleted=%s",
            account_id,
            limit,
            len(deleted),
        )
    return deleted
