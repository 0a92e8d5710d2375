from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from sqlalchemy import Table, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app import models  # noqa: F401
from app.db.base import Base
from app.db.session import get_session_local

logger = logging.getLogger("okr.store")

Row = dict[str, Any]
FilterOp = Literal["eq", "contains", "in"]


class StoreError(Exception):
    """Raised by a PersistentStore when the backing store fails (never for "zero rows")."""

    def __init__(self, message: str, *, table: str, operation: str) -> None:
        super().__init__(message)
        self.table = table
        self.operation = operation


@dataclass(frozen=True)
class QueryFilter:
    column: str
    value: Any
    op: FilterOp = "eq"

    @classmethod
    def eq(cls, column: str, value: Any) -> QueryFilter:
        return cls(column=column, value=value, op="eq")

    @classmethod
    def contains(cls, column: str, value: str) -> QueryFilter:
        return cls(column=column, value=value, op="contains")

    @classmethod
    def in_list(cls, column: str, values: Sequence[Any]) -> QueryFilter:
        return cls(column=column, value=tuple(values), op="in")

    def describe(self) -> dict[str, Any]:
        value = list(self.value) if self.op == "in" else self.value
        return {"column": self.column, "op": self.op, "value": value}


@dataclass(frozen=True)
class OrderBy:
    column: str
    descending: bool = False
    nulls_last: bool = True


class PersistentStore(Protocol):
    async def query(
        self,
        table: str,
        filters: Sequence[QueryFilter] = (),
        order: Sequence[OrderBy] = (),
    ) -> list[Row]: ...

    async def get(self, table: str, row_id: Any) -> Row | None: ...

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row: ...

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]: ...

    async def update(self, table: str, row_id: Any, patch: Mapping[str, Any]) -> Row | None: ...


class SqlAlchemyStore:
    """PersistentStore over the declarative metadata; blocking work runs in a worker thread."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory

    def _sessions(self) -> sessionmaker:
        return self._session_factory or get_session_local()

    @staticmethod
    def _table(name: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError as exc:
            raise StoreError(f"Unknown table {name}", table=name, operation="resolve") from exc

    async def query(
        self,
        table: str,
        filters: Sequence[QueryFilter] = (),
        order: Sequence[OrderBy] = (),
    ) -> list[Row]:
        return await asyncio.to_thread(self._query_sync, table, tuple(filters), tuple(order))

    async def get(self, table: str, row_id: Any) -> Row | None:
        rows = await self.query(table, [QueryFilter.eq("id", row_id)])
        return rows[0] if rows else None

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        return await asyncio.to_thread(self._insert_sync, table, dict(values))

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        """All rows commit in one transaction or none do."""
        if not rows:
            return []
        return await asyncio.to_thread(self._insert_many_sync, table, [dict(values) for values in rows])

    async def update(self, table: str, row_id: Any, patch: Mapping[str, Any]) -> Row | None:
        return await asyncio.to_thread(self._update_sync, table, row_id, dict(patch))

    def _query_sync(self, name: str, filters: tuple[QueryFilter, ...], order: tuple[OrderBy, ...]) -> list[Row]:
        table = self._table(name)
        stmt = select(table)
        for item in filters:
            column = table.c[item.column]
            if item.op == "eq":
                stmt = stmt.where(column.is_(None) if item.value is None else column == item.value)
            elif item.op == "contains":
                stmt = stmt.where(column.icontains(str(item.value), autoescape=True))
            elif item.op == "in":
                stmt = stmt.where(column.in_(list(item.value)))
            else:
                raise StoreError(f"Unsupported filter op {item.op}", table=name, operation="query")
        for item in order:
            column = table.c[item.column]
            if item.nulls_last:
                stmt = stmt.order_by(column.is_(None))
            stmt = stmt.order_by(column.desc() if item.descending else column.asc())
        try:
            with self._sessions()() as session:
                return [dict(row._mapping) for row in session.execute(stmt)]
        except SQLAlchemyError as exc:
            logger.warning("store query failed table=%s", name, exc_info=True)
            raise StoreError(str(exc), table=name, operation="query") from exc

    def _insert_sync(self, name: str, values: Row) -> Row:
        table = self._table(name)
        try:
            with self._sessions()() as session:
                result = session.execute(insert(table).values(**values))
                row_id = result.inserted_primary_key[0]
                session.commit()
                created = session.execute(select(table).where(table.c.id == row_id)).first()
        except SQLAlchemyError as exc:
            logger.warning("store insert failed table=%s", name, exc_info=True)
            raise StoreError(str(exc), table=name, operation="insert") from exc
        return dict(created._mapping)

    def _insert_many_sync(self, name: str, rows: list[Row]) -> list[Row]:
        table = self._table(name)
        try:
            with self._sessions()() as session:
                row_ids = [session.execute(insert(table).values(**values)).inserted_primary_key[0] for values in rows]
                session.commit()
                created = {
                    row.id: dict(row._mapping)
                    for row in session.execute(select(table).where(table.c.id.in_(row_ids)))
                }
        except SQLAlchemyError as exc:
            logger.warning("store bulk insert failed table=%s rows=%d", name, len(rows), exc_info=True)
            raise StoreError(str(exc), table=name, operation="insert_many") from exc
        return [created[row_id] for row_id in row_ids]

    def _update_sync(self, name: str, row_id: Any, patch: Row) -> Row | None:
        table = self._table(name)
        try:
            with self._sessions()() as session:
                result = session.execute(update(table).where(table.c.id == row_id).values(**patch))
                if result.rowcount == 0:
                    session.rollback()
                    return None
                session.commit()
                updated = session.execute(select(table).where(table.c.id == row_id)).first()
        except SQLAlchemyError as exc:
            logger.warning("store update failed table=%s", name, exc_info=True)
            raise StoreError(str(exc), table=name, operation="update") from exc
        return dict(updated._mapping)
