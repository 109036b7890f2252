from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from config.constants import IMPORT_LIMITS


M = TypeVar("M", bound=BaseModel)


class _CamelModel(BaseModel):
    # Accept both the wire form (camelCase) and field names.
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


def validate_model(model: Type[M], data: Any) -> Tuple[Optional[M], List[str]]:
    """
    Validate untrusted `data` against `model`.

    Returns (value, []) on success or (None, ["path: message", ...]).
    """
    try:
        return model.model_validate(data), []
    except ValidationError as e:
        errors: List[str] = []
        for err in e.errors():
            path = ".".join(str(p) for p in err.get("loc", ()))
            msg = str(err.get("msg") or "invalid")
            errors.append(f"{path}: {msg}" if path else msg)
        return None, errors


# ---- Backups ----


class CreateBackupRequest(_CamelModel):
    backup_type: Literal["manual", "auto", "export"] = "manual"
    include_links: bool = True
    include_categories: bool = True
    include_tags: bool = True
    include_widgets: bool = True
    include_projects: bool = True
    include_settings: bool = True
    import_data: Optional[Dict[str, Any]] = Field(
        default=None, description="Upload an exported envelope instead of snapshotting"
    )


class RestoreBackupRequest(_CamelModel):
    action: str
    merge_mode: str = "merge"


class BackupEnvelope(_CamelModel):
    version: str = Field(..., min_length=1)
    exported_at: str = Field(..., min_length=1)
    data: Dict[str, Any]


# ---- JSON import (untrusted documents) ----


class ImportLinkItem(_CamelModel):
    id: Optional[str] = Field(
        default=None, description="Pre-import id, used to match linkTags entries"
    )
    url: str = Field(..., max_length=2048)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    image_url: Optional[str] = Field(default=None, max_length=2048)
    favicon_url: Optional[str] = Field(default=None, max_length=2048)
    category_id: Optional[str] = None
    is_favorite: Optional[bool] = None
    site_name: Optional[str] = Field(default=None, max_length=100)
    author: Optional[str] = Field(default=None, max_length=100)
    published_at: Optional[str] = None
    source: Optional[str] = Field(default=None, max_length=50)
    source_id: Optional[str] = Field(default=None, max_length=100)
    platform: Optional[str] = Field(default=None, max_length=50)
    content_type: Optional[str] = Field(default=None, max_length=30)
    platform_color: Optional[str] = Field(default=None, max_length=20)
    tags: Optional[List[str]] = Field(
        default=None, description="Tag names to associate (resolved by name)"
    )


class ImportCategoryItem(_CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)
    order: Optional[int] = None


class ImportTagItem(_CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)
    order: Optional[int] = None


class ImportLinkTag(_CamelModel):
    link_id: str
    tag_id: str


class ImportDocument(_CamelModel):
    links: List[ImportLinkItem] = Field(
        default_factory=list, max_length=IMPORT_LIMITS["max_links_per_import"]
    )
    categories: List[ImportCategoryItem] = Field(
        default_factory=list, max_length=IMPORT_LIMITS["max_categories_per_import"]
    )
    tags: List[ImportTagItem] = Field(
        default_factory=list, max_length=IMPORT_LIMITS["max_tags_per_import"]
    )
    link_tags: Optional[List[ImportLinkTag]] = None
