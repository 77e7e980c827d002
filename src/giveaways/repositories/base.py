"""Table gateway shared by the Oracle repositories.

Rows travel as plain dicts keyed by lower-cased column name. Every public
method takes an optional ``conn``: without it the call borrows a pooled
connection and commits its own write; with it the call joins the caller's
unit of work from :func:`giveaways.core.database.transaction`, which owns
commit and rollback.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import oracledb

logger = logging.getLogger(__name__)

SLOW_QUERY_MS = 100


def generate_id() -> str:
    """32-char hex id used as the primary key of every table."""
    return uuid.uuid4().hex


def where_clause(filters: dict[str, Any], prefix: str = "w_") -> tuple[str, dict[str, Any]]:
    """``("WHERE a = :w_a AND b IS NULL", {"w_a": ...})`` for equality *filters*."""
    if not filters:
        return "", {}
    terms = []
    binds: dict[str, Any] = {}
    for column, value in filters.items():
        if value is None:
            terms.append(f"{column} IS NULL")
        else:
            terms.append(f"{column} = :{prefix}{column}")
            binds[prefix + column] = value
    return "WHERE " + " AND ".join(terms), binds


def _plain(value: Any) -> Any:
    # RAW -> hex, CLOB/BLOB -> str/bytes
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, oracledb.LOB):
        return value.read()
    return value


class BaseRepository:
    """Generic reads, inserts and guarded updates over one table."""

    def __init__(self, pool: Any, table_name: str, id_column: str) -> None:
        self.pool = pool
        self.table_name = table_name
        self.id_column = id_column

    @contextmanager
    def _connection(self, conn: Any | None = None) -> Iterator[tuple[Any, bool]]:
        """Yield ``(connection, owned)``; only owned connections are closed here."""
        if conn is not None:
            yield conn, False
            return
        borrowed = self.pool.acquire()
        try:
            yield borrowed, True
        finally:
            borrowed.close()

    @contextmanager
    def _cursor(self, sql: str, params: dict[str, Any], conn: Any | None) -> Iterator[Any]:
        """Execute *sql*; yields the cursor and, when borrowed here, the connection."""
        with self._connection(conn) as (c, owned), c.cursor() as cur:
            started = time.perf_counter()
            cur.execute(sql, params)
            yield cur, c if owned else None
            elapsed_ms = (time.perf_counter() - started) * 1000
            log = logger.warning if elapsed_ms > SLOW_QUERY_MS else logger.debug
            log("query %.1fms: %s", elapsed_ms, sql[:200])

    def _select(
        self, sql: str, params: dict[str, Any], conn: Any | None = None
    ) -> list[dict[str, Any]]:
        with self._cursor(sql, params, conn) as (cur, _):
            names = [d[0].lower() for d in cur.description or ()]
            return [
                {name: _plain(value) for name, value in zip(names, row, strict=True)}
                for row in cur.fetchall()
            ]

    def _execute(self, sql: str, params: dict[str, Any], conn: Any | None = None) -> int:
        """Run DML; returns the affected row count."""
        with self._cursor(sql, params, conn) as (cur, owned_conn):
            if owned_conn is not None:
                owned_conn.commit()
            return int(cur.rowcount)

    def _scalar(self, sql: str, params: dict[str, Any], conn: Any | None = None) -> int:
        with self._cursor(sql, params, conn) as (cur, _):
            row = cur.fetchone()
            return int(row[0]) if row and row[0] is not None else 0

    # reads

    def find_by_id(
        self, entity_id: str, conn: Any | None = None, *, for_update: bool = False
    ) -> dict[str, Any] | None:
        """Row by primary key; ``for_update`` holds a row lock for the transaction."""
        sql = f"SELECT * FROM {self.table_name} WHERE {self.id_column} = :id"
        rows = self._select(sql + (" FOR UPDATE" if for_update else ""), {"id": entity_id}, conn)
        return rows[0] if rows else None

    def find_where(
        self,
        filters: dict[str, Any],
        order_by: str | None = None,
        conn: Any | None = None,
    ) -> list[dict[str, Any]]:
        where, binds = where_clause(filters)
        sql = f"SELECT * FROM {self.table_name} {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        return self._select(sql, binds, conn)

    def find_one_where(
        self, filters: dict[str, Any], conn: Any | None = None
    ) -> dict[str, Any] | None:
        rows = self.find_where(filters, conn=conn)
        return rows[0] if rows else None

    def find_all(
        self,
        limit: int = 20,
        offset: int = 0,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        """One page of rows matching *filters*."""
        where, binds = where_clause(filters or {})
        order = f" ORDER BY {order_by}" if order_by else ""
        sql = (
            f"SELECT * FROM {self.table_name} {where}{order}"
            " OFFSET :off ROWS FETCH NEXT :lim ROWS ONLY"
        )
        return self._select(sql, {**binds, "off": offset, "lim": limit})

    def count(self, filters: dict[str, Any] | None = None, conn: Any | None = None) -> int:
        where, binds = where_clause(filters or {})
        return self._scalar(f"SELECT COUNT(*) FROM {self.table_name} {where}", binds, conn)

    # writes

    def create(
        self, data: dict[str, Any], new_id: str | None = None, conn: Any | None = None
    ) -> str:
        """Insert *data* under *new_id* (generated when omitted); returns the id."""
        row_id = new_id or generate_id()
        row = {self.id_column: row_id, **data}
        sql = (
            f"INSERT INTO {self.table_name} ({', '.join(row)}) "
            f"VALUES ({', '.join(':' + column for column in row)})"
        )
        self._execute(sql, row, conn)
        return row_id

    def update(self, entity_id: str, data: dict[str, Any], conn: Any | None = None) -> int:
        return self.update_where(entity_id, data, expected=None, conn=conn)

    def update_where(
        self,
        entity_id: str,
        data: dict[str, Any],
        expected: dict[str, Any] | None,
        conn: Any | None = None,
    ) -> int:
        """Compare-and-set update of one row.

        The row changes only while every column in *expected* still holds its
        expected value. A result of ``0`` means the row is gone or another
        writer got there first.
        """
        if not data:
            raise ValueError("No data provided for update")

        binds: dict[str, Any] = {f"s_{column}": value for column, value in data.items()}
        binds["id"] = entity_id
        guard = f"{self.id_column} = :id"
        if expected:
            extra, extra_binds = where_clause(expected, prefix="e_")
            guard += " AND " + extra.removeprefix("WHERE ")
            binds.update(extra_binds)

        assignments = ", ".join(f"{column} = :s_{column}" for column in data)
        return self._execute(
            f"UPDATE {self.table_name} SET {assignments} WHERE {guard}", binds, conn
        )
