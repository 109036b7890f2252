from __future__ import annotations

import copy
import time
from datetime import datetime, timezone
from typing import Any, Dict

import pytest

from services import restore_service
from services.db_service import DatabaseService
from sql_store import LinkRecord


ENVELOPE: Dict[str, Any] = {
    "version": "1.0.0",
    "exportedAt": "2024-01-01T00:00:00.000Z",
    "data": {
        "categories": [{"id": "c1", "name": "Work", "createdAt": 1.0, "updatedAt": 1.0}],
        "tags": [{"id": "t1", "name": "news", "createdAt": 1.0}],
        "projects": [{"id": "p1", "name": "Side", "createdAt": 1.0, "updatedAt": 1.0}],
        "links": [
            {
                "id": "l1",
                "url": "https://example.com/",
                "title": "Example",
                "categoryId": "c1",
                "isFavorite": True,
                "createdAt": 1.0,
                "updatedAt": 1.0,
            },
            {
                "id": "l2",
                "url": "https://example.org/",
                "title": "Dangling",
                "categoryId": "no-such-category",
                "createdAt": 1.0,
                "updatedAt": 1.0,
            },
        ],
        "widgets": [
            {
                "id": "w1",
                "type": "links",
                "title": "My links",
                "projectId": "p1",
                "categoryId": "c1",
                "tags": [],
                "config": {"limit": 5},
                "layoutX": 3,
                "createdAt": 1.0,
                "updatedAt": 1.0,
            }
        ],
        "linkTags": [
            {"linkId": "l1", "tagId": "t1"},
            {"linkId": "l2", "tagId": "ghost"},
        ],
        "settings": {"theme": "dark", "createdAt": 1.0, "updatedAt": 1.0},
    },
}


async def _store(db: DatabaseService, envelope: Dict[str, Any], account_id: str = "acct") -> str:
    await db.insert_row(
        "backups",
        {
            "id": "bk1",
            "account_id": account_id,
            "filename": "bk1.json",
            "size": 1,
            "backup_data": envelope,
            "backup_type": "export",
            "created_at": 1.0,
        },
    )
    return "bk1"


@pytest.mark.anyio
async def test_restore_is_idempotent(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    bid = await _store(db, ENVELOPE)

    first = await restore_service.restore_snapshot(db, "acct", bid)
    assert first.success is True
    assert first.errors == []
    assert first.restored == {
        "links": 2,
        "categories": 1,
        "tags": 1,
        "widgets": 1,
        "projects": 1,
        "link_tags": 1,
        "settings": 1,
    }

    second = await restore_service.restore_snapshot(db, "acct", bid)
    assert second.success is True
    assert second.errors == []
    assert all(v == 0 for v in second.restored.values())
    assert await db.count_rows("links") == 2

    await db.close()


@pytest.mark.anyio
async def test_restore_rewrites_references(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    bid = await _store(db, ENVELOPE)

    await restore_service.restore_snapshot(db, "acct", bid)

    l1 = await db.get_row("links", "l1")
    assert l1.account_id == "acct"
    assert l1.category_id == "c1"
    assert l1.is_favorite is True
    assert l1.deleted_at is None

    # Dangling reference is nulled, not reported.
    l2 = await db.get_row("links", "l2")
    assert l2.category_id is None

    w1 = await db.get_row("widgets", "w1")
    assert w1.project_id == "p1"
    assert w1.layout_x == 3
    assert w1.config == {"limit": 5}

    await db.close()


@pytest.mark.anyio
async def test_restore_maps_to_existing_rows_by_name(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    await db.insert_row(
        "categories",
        {"id": "local-c", "account_id": "acct", "name": "Work", "created_at": 5.0, "updated_at": 5.0},
    )
    bid = await _store(db, ENVELOPE)

    res = await restore_service.restore_snapshot(db, "acct", bid)
    assert res.restored["categories"] == 0

    l1 = await db.get_row("links", "l1")
    assert l1.category_id == "local-c"

    await db.close()


@pytest.mark.anyio
async def test_restore_replace_mode_degrades_to_merge(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    bid = await _store(db, ENVELOPE)

    res = await restore_service.restore_snapshot(db, "acct", bid, mode="replace")
    assert res.success is True
    assert res.errors == [restore_service.REPLACE_WARNING]
    assert res.restored["links"] == 2

    await db.close()


@pytest.mark.anyio
async def test_restore_not_found(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    bid = await _store(db, ENVELOPE, account_id="other")

    res = await restore_service.restore_snapshot(db, "acct", bid)
    assert res.success is False
    assert res.errors == [restore_service.NOT_FOUND]

    res = await restore_service.restore_snapshot(db, "acct", "missing")
    assert res.success is False
    assert res.errors == [restore_service.NOT_FOUND]

    await db.close()


@pytest.mark.anyio
async def test_restore_continues_past_bad_rows(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    envelope = copy.deepcopy(ENVELOPE)
    envelope["data"]["links"].insert(
        0, {"id": "l0", "url": "https://broken.example/", "createdAt": 1.0, "updatedAt": 1.0}
    )
    envelope["data"]["links"].insert(1, "not a row")
    bid = await _store(db, envelope)

    res = await restore_service.restore_snapshot(db, "acct", bid)
    assert res.success is True
    assert "Failed to restore link: l0" in res.errors
    assert "Failed to restore link: unknown" in res.errors
    assert res.restored["links"] == 2
    assert await db.count_rows("links", LinkRecord.id == "l0") == 0

    await db.close()


@pytest.mark.anyio
async def test_restore_tolerates_missing_sections(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    bid = await _store(
        db, {"version": "1.0.0", "exportedAt": "x", "data": {"tags": [{"name": "solo"}]}}
    )

    res = await restore_service.restore_snapshot(db, "acct", bid)
    assert res.errors == []
    assert res.restored["tags"] == 1
    assert res.restored["links"] == 0

    await db.close()


@pytest.mark.anyio
async def test_restore_accepts_iso_timestamps(tmp_path) -> None:
    db = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    await db.init()
    envelope = {
        "version": "1.0.0",
        "exportedAt": "2024-01-01T00:00:00.000Z",
        "data": {
            "categories": [
                {
                    "id": "c1",
                    "name": "Work",
                    "createdAt": "2024-01-01T00:00:00.000Z",
                    "updatedAt": "2024-01-01T00:00:00.000Z",
                }
            ],
            "links": [
                {
                    "id": "l1",
                    "url": "https://example.com/",
                    "title": "Example",
                    "categoryId": "c1",
                    "publishedAt": "2023-06-01T12:00:00Z",
                    "createdAt": "2024-01-01T00:00:00.000Z",
                    "updatedAt": "not a date",
                }
            ],
        },
    }
    bid = await _store(db, envelope)

    before = time.time()
    res = await restore_service.restore_snapshot(db, "acct", bid)
    assert res.success is True
    assert res.errors == []
    assert res.restored["categories"] == 1
    assert res.restored["links"] == 1

    expected = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()
    c1 = await db.get_row("categories", "c1")
    assert c1.created_at == expected
    assert c1.updated_at == expected

    l1 = await db.get_row("links", "l1")
    assert l1.created_at == expected
    assert l1.published_at == datetime(2023, 6, 1, 12, tzinfo=timezone.utc).timestamp()
    # Unparseable creation/update times fall back to the restore time.
    assert l1.updated_at >= before
    assert l1.category_id == "c1"

    await db.close()
