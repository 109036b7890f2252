from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import Column, Index
from sqlalchemy.types import JSON
from sqlmodel import Field, SQLModel


class CategoryRecord(SQLModel, table=True):
    __tablename__ = "categories"
    __table_args__ = (
        Index("ix_categories_account_name", "account_id", "name"),
        Index("ix_categories_account_deleted_at", "account_id", "deleted_at"),
    )

    id: str = Field(primary_key=True, max_length=64)
    account_id: str = Field(index=True, max_length=128)

    name: str = Field(max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)
    order: int = Field(default=0)

    created_at: float = Field(index=True)
    updated_at: float
    deleted_at: Optional[float] = None


class TagRecord(SQLModel, table=True):
    __tablename__ = "tags"
    __table_args__ = (
        Index("ix_tags_account_name", "account_id", "name"),
        Index("ix_tags_account_deleted_at", "account_id", "deleted_at"),
    )

    id: str = Field(primary_key=True, max_length=64)
    account_id: str = Field(index=True, max_length=128)

    name: str = Field(max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)
    order: int = Field(default=0)

    created_at: float = Field(index=True)
    deleted_at: Optional[float] = None


class LinkRecord(SQLModel, table=True):
    __tablename__ = "links"
    __table_args__ = (
        Index("ix_links_account_url", "account_id", "url"),
        Index("ix_links_account_deleted_at", "account_id", "deleted_at"),
    )

    id: str = Field(primary_key=True, max_length=64)
    account_id: str = Field(index=True, max_length=128)

    url: str
    title: str = Field(max_length=255)
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon_url: Optional[str] = None
    category_id: Optional[str] = Field(
        default=None, foreign_key="categories.id", index=True, max_length=64
    )
    is_favorite: bool = Field(default=False)

    # Metadata from scraping / source platform.
    site_name: Optional[str] = Field(default=None, max_length=100)
    author: Optional[str] = Field(default=None, max_length=100)
    published_at: Optional[float] = None
    source: Optional[str] = Field(default=None, max_length=50)
    source_id: Optional[str] = Field(default=None, max_length=100)
    platform: Optional[str] = Field(default=None, max_length=50)
    content_type: Optional[str] = Field(default=None, max_length=30)
    platform_color: Optional[str] = Field(default=None, max_length=20)

    order: int = Field(default=0)
    created_at: float = Field(index=True)
    updated_at: float
    deleted_at: Optional[float] = None

    last_checked_at: Optional[float] = None
    health_status: Optional[str] = Field(default=None, max_length=20)


class LinkTagRecord(SQLModel, table=True):
    """
    Join rows between links and tags. Not owner-scoped: both sides already are.
    """

    __tablename__ = "link_tags"

    link_id: str = Field(primary_key=True, foreign_key="links.id", max_length=64)
    tag_id: str = Field(primary_key=True, foreign_key="tags.id", max_length=64)


class ProjectRecord(SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_account_deleted_at", "account_id", "deleted_at"),
    )

    id: str = Field(primary_key=True, max_length=64)
    account_id: str = Field(index=True, max_length=128)

    name: str = Field(max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = Field(default="Folder", max_length=50)
    color: Optional[str] = Field(default="#6366f1", max_length=20)
    order: int = Field(default=0)
    is_default: bool = Field(default=False)

    created_at: float = Field(index=True)
    updated_at: float
    deleted_at: Optional[float] = None


class WidgetRecord(SQLModel, table=True):
    """
    Bento grid widget configuration. `project_id` null means the Home view.
    """

    __tablename__ = "widgets"
    __table_args__ = (
        Index("ix_widgets_account_deleted_at", "account_id", "deleted_at"),
    )

    id: str = Field(primary_key=True, max_length=64)
    account_id: str = Field(index=True, max_length=128)

    project_id: Optional[str] = Field(
        default=None, foreign_key="projects.id", index=True, max_length=64
    )
    type: str = Field(max_length=50)
    title: Optional[str] = Field(default=None, max_length=100)
    size: str = Field(default="medium", max_length=20)
    category_id: Optional[str] = Field(
        default=None, foreign_key="categories.id", max_length=64
    )
    tag_id: Optional[str] = Field(default=None, foreign_key="tags.id", max_length=64)
    tags: List[str] = Field(sa_column=Column(JSON), default_factory=list)
    config: Dict[str, Any] = Field(sa_column=Column(JSON), default_factory=dict)

    layout_x: int = Field(default=0)
    layout_y: int = Field(default=0)
    layout_w: int = Field(default=2)
    layout_h: int = Field(default=2)
    is_visible: bool = Field(default=True)

    created_at: float = Field(index=True)
    updated_at: float
    deleted_at: Optional[float] = None


class UserSettingsRecord(SQLModel, table=True):
    __tablename__ = "user_settings"

    id: str = Field(primary_key=True, max_length=64)
    account_id: str = Field(unique=True, max_length=128)

    theme: str = Field(default="system", max_length=20)
    view_density: str = Field(default="normal", max_length=20)
    view_mode: str = Field(default="bento", max_length=20)
    show_tooltips: bool = Field(default=True)
    reduce_motion: bool = Field(default=False)

    created_at: float
    updated_at: float


class BackupRecord(SQLModel, table=True):
    """
    A stored snapshot envelope. Immutable once written.
    """

    __tablename__ = "user_backups"
    __table_args__ = (
        Index("ix_user_backups_account_created_at", "account_id", "created_at"),
    )

    id: str = Field(primary_key=True, max_length=64)
    account_id: str = Field(index=True, max_length=128)

    filename: str = Field(max_length=255)
    size: int = Field(default=0)
    backup_data: Dict[str, Any] = Field(sa_column=Column(JSON), default_factory=dict)
    backup_type: str = Field(default="manual", max_length=20)

    created_at: float = Field(index=True)
