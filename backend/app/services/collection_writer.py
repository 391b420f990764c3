"""Batch writes of decoded rows into a destination table."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import MetaData, Table, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchTableError

from app.db.models import JOB_TABLES
from app.utils.sheet_validator import is_blank

logger = logging.getLogger(__name__)


class CollectionWriteError(ValueError):
    """The batch cannot be written to the requested destination."""


class CollectionWriter:
    """Insert or upsert one batch per transaction.

    Each call opens its own transaction on ``engine`` so a failed batch rolls
    back alone and never touches the job record session.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._tables: dict[str, Table] = {}

    def _table(self, conn: Connection, table_name: str) -> Table:
        if table_name in JOB_TABLES:
            raise CollectionWriteError(f"Table '{table_name}' cannot be an import destination")
        if table_name not in self._tables:
            try:
                self._tables[table_name] = Table(table_name, MetaData(), autoload_with=conn)
            except NoSuchTableError as exc:
                raise CollectionWriteError(f"Unknown table '{table_name}'") from exc
        return self._tables[table_name]

    @staticmethod
    def _check_columns(table: Table, rows: Sequence[Mapping[str, Any]]) -> list[str]:
        columns: list[str] = []
        for row in rows:
            for name in row:
                if name not in columns:
                    columns.append(name)
        unknown = [name for name in columns if name not in table.c]
        if unknown:
            raise CollectionWriteError(
                f"Column(s) not found in '{table.name}': {', '.join(unknown)}"
            )
        return columns

    def insert_rows(self, table_name: str, rows: Sequence[Mapping[str, Any]]) -> int:
        if not rows:
            return 0
        with self.engine.begin() as conn:
            table = self._table(conn, table_name)
            self._check_columns(table, rows)
            conn.execute(table.insert(), [dict(row) for row in rows])
        return len(rows)

    def upsert_rows(
        self, table_name: str, rows: Sequence[Mapping[str, Any]], key_field: str
    ) -> int:
        """Update rows whose ``key_field`` already exists, insert the rest."""
        if not rows:
            return 0

        with self.engine.begin() as conn:
            table = self._table(conn, table_name)
            columns = self._check_columns(table, rows)
            if key_field not in table.c:
                raise CollectionWriteError(
                    f"Key field '{key_field}' not found in '{table_name}'"
                )
            key_column = table.c[key_field]

            # Last occurrence of a key wins inside one batch. Rows without a
            # key cannot match anything and are inserted as they are.
            by_key: dict[Any, dict[str, Any]] = {}
            keyless: list[dict[str, Any]] = []
            for row in rows:
                values = {name: row.get(name) for name in columns}
                key = row.get(key_field)
                if is_blank(key):
                    keyless.append(values)
                else:
                    by_key[key] = values

            existing: set[Any] = set()
            if by_key:
                existing = set(
                    conn.execute(select(key_column).where(key_column.in_(list(by_key)))).scalars()
                )
            updated = 0
            for key, values in by_key.items():
                if key not in existing:
                    continue
                changes = {name: value for name, value in values.items() if name != key_field}
                if changes:
                    conn.execute(table.update().where(key_column == key).values(changes))
                updated += 1

            new_rows = [values for key, values in by_key.items() if key not in existing]
            new_rows.extend(keyless)
            if new_rows:
                conn.execute(table.insert(), new_rows)

        logger.debug(
            f"Upserted into {table_name}: {len(new_rows)} inserted, {updated} updated"
        )
        return len(rows)

    def write(
        self,
        table_name: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        with_upsert: bool = False,
        key_field: str | None = None,
    ) -> int:
        if with_upsert and key_field:
            return self.upsert_rows(table_name, rows, key_field)
        return self.insert_rows(table_name, rows)
