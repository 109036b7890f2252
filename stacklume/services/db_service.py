from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Sequence

from sqlalchemy import func, select as sa_select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from sql_store import (
    BackupRecord,
    CategoryRecord,
    LinkRecord,
    LinkTagRecord,
    ProjectRecord,
    TagRecord,
    UserSettingsRecord,
    WidgetRecord,
)
from utils.db_retry import RetryPolicy, with_retry


FAMILIES: Dict[str, type[SQLModel]] = {
    "categories": CategoryRecord,
    "tags": TagRecord,
    "links": LinkRecord,
    "link_tags": LinkTagRecord,
    "projects": ProjectRecord,
    "widgets": WidgetRecord,
    "settings": UserSettingsRecord,
    "backups": BackupRecord,
}


def _now() -> float:
    return time.time()


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_database_url_async(raw: str) -> str:
    """
    Normalize common DB URL variants to SQLAlchemy AsyncEngine-compatible URLs.

    - mysql://... -> mysql+aiomysql://...
    - mysql+pymysql://... -> mysql+aiomysql://...
    - sqlite:///... or sqlite:////... -> sqlite+aiosqlite:///... or sqlite+aiosqlite:////...
    """
    url = str(raw or "").strip()
    if not url:
        raise ValueError("Empty database URL")
    if url.startswith("mysql://"):
        return "mysql+aiomysql://" + url[len("mysql://") :]
    if url.startswith("mysql+pymysql://"):
        return "mysql+aiomysql://" + url[len("mysql+pymysql://") :]
    if url.startswith("sqlite:") and not url.startswith("sqlite+aiosqlite:"):
        return "sqlite+aiosqlite:" + url[len("sqlite:") :]
    return url


def model_for(family: str) -> type[SQLModel]:
    try:
        return FAMILIES[family]
    except KeyError as e:
        raise ValueError(f"Unknown family: {family}") from e


def column_names(family: str) -> list[str]:
    return [c.name for c in model_for(family).__table__.columns]  # type: ignore[attr-defined]


def _pk_names(model: type[SQLModel]) -> list[str]:
    return [c.name for c in model.__table__.primary_key.columns]  # type: ignore[attr-defined]


def _pk_value(rec: SQLModel) -> Any:
    names = _pk_names(type(rec))
    if len(names) == 1:
        return getattr(rec, names[0])
    return tuple(getattr(rec, n) for n in names)


@dataclass(frozen=True)
class DatabaseHealth:
    ok: bool
    detail: str


class DatabaseService:
    """
    SQLModel-based storage gateway with an async API.

    Every public call is a single storage operation wrapped in `with_retry`,
    named by the caller-supplied `op` (falls back to a generic name).

    Implementation note:
    - Uses a true SQLAlchemy AsyncEngine + AsyncSession.
    - Requires an async DB driver (aiomysql/aiosqlite) and `greenlet` for SQLAlchemy's
      asyncio support.
    """

    def __init__(
        self,
        *,
        database_url: str,
        echo: bool = False,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.database_url = str(database_url).strip()
        self.retry = retry or RetryPolicy()
        async_url = normalize_database_url_async(self.database_url)
        connect_args: Dict[str, Any] = {}
        if async_url.startswith("sqlite+aiosqlite:"):
            # SQLite driver uses a thread internally; disable same-thread checks.
            connect_args["check_same_thread"] = False
        self.engine: AsyncEngine = create_async_engine(
            async_url,
            echo=bool(echo),
            pool_pre_ping=True,
            connect_args=connect_args,
        )

    async def init(self) -> None:
        for attempt in range(2):
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(SQLModel.metadata.create_all)
                break
            except Exception:
                if attempt >= 1:
                    raise
                await asyncio.sleep(0.25)

    async def close(self) -> None:
        try:
            await self.engine.dispose()
        except Exception:
            try:
                await self.engine.dispose()
            except Exception:
                pass

    async def health(self) -> DatabaseHealth:
        try:
            async with AsyncSession(self.engine) as session:
                res = await session.exec(sa_select(1))
                _ = res.one()
            return DatabaseHealth(ok=True, detail="ok")
        except Exception as e:
            return DatabaseHealth(ok=False, detail=str(e))

    def _session(self) -> AsyncSession:
        return AsyncSession(self.engine, expire_on_commit=False)

    # ---- Reads ----

    async def select_rows(
        self,
        family: str,
        *where: Any,
        order_by: Sequence[Any] | None = None,
        limit: int | None = None,
        op: str | None = None,
    ) -> list[Any]:
        model = model_for(family)

        async def _run() -> list[Any]:
            async with self._session() as session:
                stmt = select(model)
                if where:
                    stmt = stmt.where(*where)
                if order_by:
                    stmt = stmt.order_by(*order_by)
                if limit is not None:
                    stmt = stmt.limit(max(1, int(limit)))
                return list((await session.exec(stmt)).all())

        return await with_retry(
            _run, operation_name=op or f"select {family}", policy=self.retry
        )

    async def select_values(
        self,
        column: Any,
        *where: Any,
        order_by: Sequence[Any] | None = None,
        op: str | None = None,
    ) -> list[Any]:
        async def _run() -> list[Any]:
            async with self._session() as session:
                stmt = select(column)
                if where:
                    stmt = stmt.where(*where)
                if order_by:
                    stmt = stmt.order_by(*order_by)
                return list((await session.exec(stmt)).all())

        return await with_retry(
            _run, operation_name=op or "select values", policy=self.retry
        )

    async def first_row(self, family: str, *where: Any, op: str | None = None) -> Any:
        rows = await self.select_rows(family, *where, limit=1, op=op)
        return rows[0] if rows else None

    async def get_row(self, family: str, key: Any, *, op: str | None = None) -> Any:
        model = model_for(family)

        async def _run() -> Any:
            async with self._session() as session:
                return await session.get(model, key)

        return await with_retry(
            _run, operation_name=op or f"get {family}", policy=self.retry
        )

    async def count_rows(self, family: str, *where: Any, op: str | None = None) -> int:
        model = model_for(family)

        async def _run() -> int:
            async with self._session() as session:
                stmt = select(func.count()).select_from(model)
                if where:
                    stmt = stmt.where(*where)
                return int((await session.exec(stmt)).one() or 0)

        return await with_retry(
            _run, operation_name=op or f"count {family}", policy=self.retry
        )

    # ---- Writes ----

    def build(self, family: str, row: Dict[str, Any] | SQLModel) -> SQLModel:
        model = model_for(family)
        if isinstance(row, model):
            return row
        return model.model_validate(dict(row))

    async def insert_row(
        self, family: str, row: Dict[str, Any] | SQLModel, *, op: str | None = None
    ) -> Any:
        rec = self.build(family, row)

        async def _run() -> Any:
            async with self._session() as session:
                session.add(rec)
                await session.commit()
                return rec

        return await with_retry(
            _run, operation_name=op or f"insert {family}", policy=self.retry
        )

    async def insert_if_absent(
        self,
        family: str,
        row: Dict[str, Any] | SQLModel,
        *,
        natural_key: Iterable[Any] | None = None,
        op: str | None = None,
    ) -> tuple[Any, bool]:
        """
        Insert `row` unless an equivalent row exists.

        Equivalent means same primary key, or (when `natural_key` clauses are
        given) any row matching all of them. Returns (row, inserted); an existing
        row is returned untouched.
        """
        model = model_for(family)
        rec = self.build(family, row)
        nk = list(natural_key or ())

        async def _run() -> tuple[Any, bool]:
            pk = _pk_value(rec)
            async with self._session() as session:
                existing = await session.get(model, pk)
                if existing is not None:
                    return existing, False
                if nk:
                    existing = (await session.exec(select(model).where(*nk))).first()
                    if existing is not None:
                        return existing, False
                session.add(rec)
                try:
                    await session.commit()
                except IntegrityError:
                    # Lost a race with a concurrent writer: conflict-do-nothing.
                    await session.rollback()
                    existing = await session.get(model, pk)
                    if existing is None:
                        raise
                    return existing, False
                return rec, True

        return await with_retry(
            _run, operation_name=op or f"insert-if-absent {family}", policy=self.retry
        )

    async def soft_delete(
        self, family: str, row_id: str, *, op: str | None = None
    ) -> bool:
        model = model_for(family)
        if "deleted_at" not in model.model_fields:
            raise ValueError(f"{family} does not support soft delete")

        async def _run() -> bool:
            async with self._session() as session:
                rec = await session.get(model, row_id)
                if rec is None or getattr(rec, "deleted_at", None) is not None:
                    return False
                rec.deleted_at = _now()  # type: ignore[attr-defined]
                session.add(rec)
                await session.commit()
                return True

        return await with_retry(
            _run, operation_name=op or f"soft-delete {family}", policy=self.retry
        )

    async def delete_row(self, family: str, key: Any, *, op: str | None = None) -> bool:
        model = model_for(family)

        async def _run() -> bool:
            async with self._session() as session:
                rec = await session.get(model, key)
                if rec is None:
                    return False
                await session.delete(rec)
                await session.commit()
                return True

        return await with_retry(
            _run, operation_name=op or f"delete {family}", policy=self.retry
        )
