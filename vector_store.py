"""PostgreSQL + pgvector storage for enriched arXiv records."""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, NamedTuple

import numpy as np
import psycopg
from pgvector.psycopg import register_vector
from psycopg import sql

from models import HarvestRecord

ARXIV_TABLE = os.getenv("ARXIV_TABLE", "arxiv_records")
EMBEDDING_DIMENSIONS = int(os.getenv("EMBEDDING_DIMENSIONS", "1536"))

LOGGER = logging.getLogger(__name__)


class FieldMapping(NamedTuple):
    """How one HarvestRecord attribute is stored and surfaced in search results."""

    attribute: str
    column: str
    sql_type: str
    search_role: str | None = None


# Single source of truth for the table schema. The first entry is the key.
FIELD_MAPPINGS: tuple[FieldMapping, ...] = (
    FieldMapping("id", "id", "TEXT PRIMARY KEY", search_role="name"),
    FieldMapping("title", "title", "TEXT"),
    FieldMapping("abstract", "abstract", "TEXT", search_role="value"),
    FieldMapping("published_at", "published", "TIMESTAMPTZ"),
    FieldMapping("authors", "authors", "TEXT[]"),
    FieldMapping("categories", "categories", "TEXT[]"),
    FieldMapping("link", "link", "TEXT", search_role="link"),
    FieldMapping("pdf_link", "pdf_link", "TEXT"),
    FieldMapping("embedding", "embedding", "vector({dimensions})"),
)

KEY_FIELD = FIELD_MAPPINGS[0]
VECTOR_FIELD = next(f for f in FIELD_MAPPINGS if f.attribute == "embedding")
DATA_FIELDS = tuple(f for f in FIELD_MAPPINGS if f is not VECTOR_FIELD)


def search_role_attributes() -> dict[str, str]:
    """Map each search result role (name/value/link) to its record attribute."""
    return {f.search_role: f.attribute for f in FIELD_MAPPINGS if f.search_role}


@contextmanager
def open_store(
    dsn: str | None = None,
    table: str | None = None,
    dimensions: int | None = None,
) -> Iterator[ArxivRecordStore]:
    """Connect to Postgres for the duration of a run; the connection is always closed."""
    dsn = dsn or os.getenv("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable is required")

    with psycopg.connect(dsn, autocommit=True) as conn:
        conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        register_vector(conn)
        store = ArxivRecordStore(conn, table=table or ARXIV_TABLE, dimensions=dimensions or EMBEDDING_DIMENSIONS)
        LOGGER.info("Opened record store table=%s dimensions=%s", store.table, store.dimensions)
        yield store
    LOGGER.info("Closed record store connection")


class ArxivRecordStore:
    """Record collection keyed by arXiv id with cosine-distance search."""

    def __init__(self, conn: psycopg.Connection, table: str = ARXIV_TABLE, dimensions: int = EMBEDDING_DIMENSIONS) -> None:
        self._conn = conn
        self.table = table
        self.dimensions = dimensions

    def create_collection_if_not_exists(self) -> None:
        columns = sql.SQL(", ").join(
            sql.SQL("{} {}").format(
                sql.Identifier(f.column),
                sql.SQL(f.sql_type.format(dimensions=self.dimensions)),
            )
            for f in FIELD_MAPPINGS
        )
        statement = sql.SQL("CREATE TABLE IF NOT EXISTS {} ({})").format(sql.Identifier(self.table), columns)
        with self._conn.transaction():
            self._conn.execute(statement)
        LOGGER.info("Ensured table %s exists", self.table)

    def upsert_batch(self, records: Sequence[HarvestRecord]) -> None:
        """Insert or update ``records`` in a single transaction."""
        if not records:
            return

        rows = [_record_to_row(record) for record in records]
        columns = [f.column for f in FIELD_MAPPINGS]
        updates = sql.SQL(", ").join(
            sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(column))
            for column in columns
            if column != KEY_FIELD.column
        )
        statement = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({values}) ON CONFLICT ({key}) DO UPDATE SET {updates}").format(
            table=sql.Identifier(self.table),
            cols=sql.SQL(", ").join(map(sql.Identifier, columns)),
            values=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            key=sql.Identifier(KEY_FIELD.column),
            updates=updates,
        )

        with self._conn.transaction():
            with self._conn.cursor() as cur:
                cur.executemany(statement, rows)

    def search_by_vector(self, vector: Sequence[float], limit: int, offset: int = 0) -> list[HarvestRecord]:
        """Return up to ``limit`` records nearest to ``vector``, skipping ``offset``."""
        statement = sql.SQL("SELECT {cols} FROM {table} ORDER BY {vec} <=> %s LIMIT %s OFFSET %s").format(
            cols=sql.SQL(", ").join(sql.Identifier(f.column) for f in DATA_FIELDS),
            table=sql.Identifier(self.table),
            vec=sql.Identifier(VECTOR_FIELD.column),
        )
        with self._conn.cursor() as cur:
            cur.execute(statement, (np.asarray(vector, dtype=np.float32), limit, offset))
            rows = cur.fetchall()
        return [_row_to_record(row) for row in rows]

    def count(self) -> int:
        statement = sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(self.table))
        with self._conn.cursor() as cur:
            cur.execute(statement)
            (total,) = cur.fetchone()
        return total


def _record_to_row(record: HarvestRecord) -> tuple[Any, ...]:
    if record.embedding is None:
        raise ValueError(f"Record {record.id!r} has no embedding; enrich it before storing")

    values: list[Any] = []
    for f in FIELD_MAPPINGS:
        value = getattr(record, f.attribute)
        if f is KEY_FIELD and not value:
            value = uuid.uuid4().hex
            LOGGER.warning("Record %r has no id; stored under random key %s", record.title, value)
        elif f is VECTOR_FIELD:
            value = np.asarray(value, dtype=np.float32)
        elif isinstance(value, tuple):
            value = list(value)
        values.append(value)
    return tuple(values)


def _row_to_record(row: Sequence[Any]) -> HarvestRecord:
    fields: dict[str, Any] = {}
    for f, value in zip(DATA_FIELDS, row):
        if f.sql_type.endswith("[]"):
            value = tuple(value or ())
        fields[f.attribute] = value
    return HarvestRecord(**fields)
