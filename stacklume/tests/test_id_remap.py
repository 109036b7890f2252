from __future__ import annotations

import pytest

from services.id_remap import IdRemapper


def test_resolves_by_original_id_and_name() -> None:
    remap = IdRemapper()
    remap.remember("category", "new-c", "Work", original_id="old-c")
    assert remap.resolve_category("old-c") == "new-c"
    assert remap.resolve_category("Work") == "new-c"
    assert remap.resolve_category("missing") is None
    assert remap.resolve_category(None) is None


def test_tables_are_separate() -> None:
    remap = IdRemapper()
    remap.remember("tag", "new-t", "news")
    assert remap.resolve_tag("news") == "new-t"
    assert remap.resolve_category("news") is None


def test_unknown_kind() -> None:
    with pytest.raises(ValueError):
        IdRemapper().remember("widget", "x", "y")
