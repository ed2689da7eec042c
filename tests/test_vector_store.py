from dataclasses import fields
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

import vector_store
from models import HarvestRecord
from vector_store import (
    DATA_FIELDS,
    FIELD_MAPPINGS,
    ArxivRecordStore,
    _row_to_record,
    open_store,
    search_role_attributes,
)

_PUBLISHED = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)


def _record(record_id: str = "2405.00001", embedding: list[float] | None = None) -> HarvestRecord:
    record = HarvestRecord(
        id=record_id,
        title="Paper",
        abstract="abstract",
        published_at=_PUBLISHED,
        link=f"http://arxiv.org/abs/{record_id}",
        authors=("Ada Lovelace",),
        categories=("cs.AI", "cs.CL"),
        pdf_link=None,
    )
    if embedding is not None:
        record.attach_embedding(embedding)
    return record


def _store() -> tuple[ArxivRecordStore, MagicMock]:
    conn = MagicMock()
    return ArxivRecordStore(conn, table="arxiv_records", dimensions=3), conn


def test_field_mappings_cover_every_record_attribute() -> None:
    attributes = {f.name for f in fields(HarvestRecord)}

    assert {m.attribute for m in FIELD_MAPPINGS} == attributes
    assert FIELD_MAPPINGS[0].column == "id"


def test_search_roles() -> None:
    assert search_role_attributes() == {"name": "id", "value": "abstract", "link": "link"}


def test_create_collection_if_not_exists_executes_ddl_in_transaction() -> None:
    store, conn = _store()

    store.create_collection_if_not_exists()
    store.create_collection_if_not_exists()

    assert conn.transaction.call_count == 2
    assert conn.execute.call_count == 2


def test_upsert_batch_runs_one_executemany_in_a_transaction() -> None:
    store, conn = _store()
    records = [_record("a", [0.1, 0.2, 0.3]), _record("b", [0.4, 0.5, 0.6])]

    store.upsert_batch(records)

    conn.transaction.assert_called_once()
    cur = conn.cursor.return_value.__enter__.return_value
    cur.executemany.assert_called_once()
    _, rows = cur.executemany.call_args.args
    assert [row[0] for row in rows] == ["a", "b"]

    first = dict(zip([m.column for m in FIELD_MAPPINGS], rows[0]))
    assert first["published"] == _PUBLISHED
    assert first["authors"] == ["Ada Lovelace"]
    assert first["categories"] == ["cs.AI", "cs.CL"]
    assert first["pdf_link"] is None
    assert isinstance(first["embedding"], np.ndarray)
    assert first["embedding"].tolist() == pytest.approx([0.1, 0.2, 0.3])


def test_upsert_batch_empty_is_noop() -> None:
    store, conn = _store()

    store.upsert_batch([])

    conn.transaction.assert_not_called()


def test_upsert_batch_rejects_records_without_embedding() -> None:
    store, conn = _store()

    with pytest.raises(ValueError, match="no embedding"):
        store.upsert_batch([_record("a")])

    conn.cursor.assert_not_called()


def test_upsert_batch_assigns_random_key_to_id_less_records() -> None:
    store, conn = _store()

    store.upsert_batch([_record("", [0.0, 0.0, 1.0])])

    _, rows = conn.cursor.return_value.__enter__.return_value.executemany.call_args.args
    assert rows[0][0]
    assert len(rows[0][0]) == 32


def test_search_by_vector_maps_rows_to_records() -> None:
    store, conn = _store()
    cur = conn.cursor.return_value.__enter__.return_value
    cur.fetchall.return_value = [
        ("a", "Paper", "abstract", _PUBLISHED, ["Ada"], ["cs.AI"], "http://arxiv.org/abs/a", None),
    ]

    results = store.search_by_vector([1.0, 0.0, 0.0], limit=3, offset=1)

    _, params = cur.execute.call_args.args
    assert params[0].tolist() == [1.0, 0.0, 0.0]
    assert params[1:] == (3, 1)
    assert len(results) == 1
    assert results[0].id == "a"
    assert results[0].authors == ("Ada",)
    assert results[0].embedding is None


def test_row_to_record_uses_data_fields_in_order() -> None:
    row = tuple(f"v{i}" for i in range(len(DATA_FIELDS)))

    record = _row_to_record(row)

    assert record.id == "v0"
    assert record.pdf_link == f"v{len(DATA_FIELDS) - 1}"


def test_count() -> None:
    store, conn = _store()
    conn.cursor.return_value.__enter__.return_value.fetchone.return_value = (42,)

    assert store.count() == 42


def test_open_store_requires_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        with open_store():
            pass


def test_open_store_registers_vector_and_closes_on_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/test")
    connection_cm = MagicMock()
    conn = connection_cm.__enter__.return_value

    with patch("vector_store.psycopg.connect", return_value=connection_cm) as mock_connect, \
         patch("vector_store.register_vector") as mock_register:
        with pytest.raises(RuntimeError, match="boom"):
            with open_store(table="papers", dimensions=8) as store:
                assert store.table == "papers"
                assert store.dimensions == 8
                raise RuntimeError("boom")

    mock_connect.assert_called_once_with("postgresql://localhost/test", autocommit=True)
    conn.execute.assert_called_once_with("CREATE EXTENSION IF NOT EXISTS vector")
    mock_register.assert_called_once_with(conn)
    connection_cm.__exit__.assert_called_once()


def test_default_table_and_dimensions() -> None:
    assert vector_store.ARXIV_TABLE
    assert vector_store.EMBEDDING_DIMENSIONS > 0
