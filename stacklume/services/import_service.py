"""
JSON import of externally authored (untrusted) documents.

The document shape is validated first, and that is the only all-or-nothing
step. After it, every field is sanitized, cross references are rewritten
through an IdRemapper, and rows that cannot be accepted are skipped with a
human-readable reason instead of failing the import.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from config.constants import IMPORT_LIMITS
from models.requests import (
    ImportCategoryItem,
    ImportDocument,
    ImportLinkItem,
    ImportTagItem,
    validate_model,
)
from services.db_service import DatabaseService, new_id
from services.id_remap import IdRemapper
from services.sanitizer import parse_timestamp, sanitize_text, sanitize_url, truncate
from sql_store import CategoryRecord, LinkRecord, TagRecord


log = logging.getLogger(__name__)

DEFAULT_SKIPPED_DETAILS_MAX = 10


class ImportValidationError(ValueError):
    def __init__(self, errors: List[str]) -> None:
        super().__init__("Validation failed")
        self.errors = list(errors)


@dataclass
class ImportResult:
    success: bool = True
    imported: int = 0
    skipped: int = 0
    skipped_reasons: List[str] = field(default_factory=list)
    limits: Dict[str, int] = field(default_factory=lambda: dict(IMPORT_LIMITS))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class _Ingester:
    def __init__(self, db: DatabaseService, account_id: str, doc: ImportDocument) -> None:
        self.db = db
        self.account_id = account_id
        self.doc = doc
        self.remap = IdRemapper()
        self.imported = 0
        self.skipped: List[str] = []

    async def category(self, item: ImportCategoryItem) -> None:
        name = sanitize_text(item.name)
        if not name:
            self.skipped.append("Category skipped: invalid name")
            return
        now = time.time()
        rec, _ = await self.db.insert_if_absent(
            "categories",
            CategoryRecord(
                id=new_id(),
                account_id=self.account_id,
                name=name,
                description=sanitize_text(item.description),
                icon=sanitize_text(item.icon),
                color=sanitize_text(item.color),
                order=int(item.order or 0),
                created_at=now,
                updated_at=now,
            ),
            natural_key=[
                CategoryRecord.account_id == self.account_id,
                CategoryRecord.name == name,
                CategoryRecord.deleted_at.is_(None),
            ],
            op="import category",
        )
        self.remap.remember("category", rec.id, name, item.id)

    async def tag(self, item: ImportTagItem) -> None:
        name = sanitize_text(item.name)
        if not name:
            self.skipped.append("Tag skipped: invalid name")
            return
        rec, _ = await self.db.insert_if_absent(
            "tags",
            TagRecord(
                id=new_id(),
                account_id=self.account_id,
                name=name,
                color=sanitize_text(item.color),
                order=int(item.order or 0),
                created_at=time.time(),
            ),
            natural_key=[
                TagRecord.account_id == self.account_id,
                TagRecord.name == name,
                TagRecord.deleted_at.is_(None),
            ],
            op="import tag",
        )
        self.remap.remember("tag", rec.id, name, item.id)

    async def link(self, item: ImportLinkItem) -> None:
        url = sanitize_url(item.url)
        if not url:
            self.skipped.append(f'Link skipped: invalid URL "{truncate(item.url)}..."')
            return
        title = sanitize_text(item.title)
        if not title:
            self.skipped.append(
                f'Link skipped: invalid title for URL "{truncate(url)}..."'
            )
            return

        existing = await self.db.first_row(
            "links",
            LinkRecord.account_id == self.account_id,
            LinkRecord.url == url,
            LinkRecord.deleted_at.is_(None),
            op="check existing link",
        )
        if existing is not None:
            self.skipped.append(f'Link skipped: duplicate URL "{truncate(url)}..."')
            return

        now = time.time()
        rec = await self.db.insert_row(
            "links",
            LinkRecord(
                id=new_id(),
                account_id=self.account_id,
                url=url,
                title=title,
                description=sanitize_text(item.description),
                image_url=sanitize_url(item.image_url),
                favicon_url=sanitize_url(item.favicon_url),
                category_id=self.remap.resolve_category(item.category_id),
                is_favorite=bool(item.is_favorite),
                site_name=sanitize_text(item.site_name),
                author=sanitize_text(item.author),
                published_at=parse_timestamp(item.published_at),
                source=sanitize_text(item.source) or "import",
                source_id=sanitize_text(item.source_id),
                platform=sanitize_text(item.platform),
                content_type=sanitize_text(item.content_type),
                platform_color=sanitize_text(item.platform_color),
                created_at=now,
                updated_at=now,
            ),
            op="import link",
        )
        self.imported += 1
        try:
            await self.link_tags(item, rec.id)
        except Exception as e:
            log.warning("import link tags failed url=%s error=%s", url, e)
            self.skipped.append(
                f'Link tags skipped: failed to import for URL "{truncate(url)}..."'
            )

    async def link_tags(self, item: ImportLinkItem, link_id: str) -> None:
        tag_ids: List[str] = []
        if item.id and self.doc.link_tags:
            for assoc in self.doc.link_tags:
                if assoc.link_id != item.id:
                    continue
                tid = self.remap.resolve_tag(assoc.tag_id)
                if tid:
                    tag_ids.append(tid)
        for tag_name in item.tags or []:
            tid = self.remap.resolve_tag(sanitize_text(tag_name))
            if tid:
                tag_ids.append(tid)

        for tid in dict.fromkeys(tag_ids):
            await self.db.insert_if_absent(
                "link_tags",
                {"link_id": link_id, "tag_id": tid},
                op="import link-tag association",
            )


async def import_document(
    db: DatabaseService,
    account_id: str,
    raw: Any,
    *,
    skipped_details_max: int = DEFAULT_SKIPPED_DETAILS_MAX,
) -> ImportResult:
    doc, errors = validate_model(ImportDocument, raw)
    if doc is None:
        raise ImportValidationError(errors)

    ingester = _Ingester(db, account_id, doc)
    # A failing row is reported and skipped; earlier rows stay written.
    for cat in doc.categories:
        try:
            await ingester.category(cat)
        except Exception as e:
            log.warning("import category failed name=%s error=%s", cat.name, e)
            ingester.skipped.append(
                f'Category skipped: failed to import "{truncate(cat.name)}..."'
            )
    for tag in doc.tags:
        try:
            await ingester.tag(tag)
        except Exception as e:
            log.warning("import tag failed name=%s error=%s", tag.name, e)
            ingester.skipped.append(
                f'Tag skipped: failed to import "{truncate(tag.name)}..."'
            )
    for link in doc.links:
        try:
            await ingester.link(link)
        except Exception as e:
            log.warning("import link failed url=%s error=%s", link.url, e)
            ingester.skipped.append(
                f'Link skipped: failed to import "{truncate(link.url)}..."'
            )

    log.info(
        "import finished account=%s imported=%s skipped=%s",
        account_id,
        ingester.imported,
        len(ingester.skipped),
    )
    return ImportResult(
        success=True,
        imported=ingester.imported,
        skipped=len(ingester.skipped),
        skipped_reasons=ingester.skipped[: max(0, int(skipped_details_max))],
    )
