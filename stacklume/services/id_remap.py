from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class IdRemapper:
    """
    Transient translation tables built while ingesting a foreign document.

    Keys are the document's original ids and the sanitized names; values are
    ids of rows in the local store.
    """

    categories: Dict[str, str] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)

    def _table(self, kind: str) -> Dict[str, str]:
        if kind == "category":
            return self.categories
        if kind == "tag":
            return self.tags
        raise ValueError(f"Unknown remap kind: {kind}")

    def remember(
        self, kind: str, new_id: str, name: str, original_id: str | None = None
    ) -> None:
        table = self._table(kind)
        if original_id:
            table[original_id] = new_id
        table[name] = new_id

    def resolve_category(self, key: str | None) -> str | None:
        if not key:
            return None
        return self.categories.get(key)

    def resolve_tag(self, key: str | None) -> str | None:
        if not key:
            return None
        return self.tags.get(key)
