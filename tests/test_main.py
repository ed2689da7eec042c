"""Tests for the CLI commands (main.load / main.main)."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

import main
from cancellation import CancellationToken
from errors import Cancelled, NetworkError
from models import HarvestRecord, PipelineProgress


def _record(record_id: str) -> HarvestRecord:
    return HarvestRecord(
        id=record_id,
        title=f"Paper {record_id}",
        abstract="abstract",
        published_at=datetime(2024, 5, 1, tzinfo=UTC),
        link=f"http://arxiv.org/abs/{record_id}",
    )


def _fake_open_store(store: MagicMock):
    @contextmanager
    def _open():
        yield store

    return _open


def test_parse_args_load_defaults() -> None:
    args = main.parse_args(["load"])

    assert args.command == "load"
    assert args.total == 50
    assert args.topic == "RAG"
    assert args.category == "cs.AI"
    assert args.batch_size == 20
    assert args.dry_run is False


def test_parse_args_query_requires_text() -> None:
    with pytest.raises(SystemExit):
        main.parse_args(["query"])


def test_load_wires_harvest_into_pipeline() -> None:
    records = [_record("a"), _record("b")]
    store = MagicMock()
    token = CancellationToken()

    with patch("main.harvest", return_value=records) as mock_harvest, \
         patch("main.open_store", _fake_open_store(store)), \
         patch("main.enrich_and_store", return_value=PipelineProgress(1, 2, ["a", "b"])) as mock_enrich:
        main.load(total=2, topic="RAG", category="cs.AI", page_size=100, batch_size=20, dry_run=False, cancel_token=token)

    mock_harvest.assert_called_once_with("RAG", category="cs.AI", page_size=100, total_results=2, cancel_token=token)
    args, kwargs = mock_enrich.call_args
    assert args == (records, 20)
    assert kwargs["embed"] is main.embed_texts
    assert kwargs["upsert"] == store.upsert_batch
    assert kwargs["ensure_collection"] == store.create_collection_if_not_exists
    assert kwargs["cancel_token"] is token


def test_load_dry_run_skips_store() -> None:
    with patch("main.harvest", return_value=[_record("a")]), \
         patch("main.open_store") as mock_open, \
         patch("main.enrich_and_store") as mock_enrich:
        main.load(total=1, topic="RAG", category="cs.AI", page_size=100, batch_size=20, dry_run=True, cancel_token=CancellationToken())

    mock_open.assert_not_called()
    mock_enrich.assert_not_called()


def test_main_returns_130_on_cancel() -> None:
    with patch("main.load_dotenv"), \
         patch("main.signal.signal"), \
         patch("main.load", side_effect=Cancelled(stage="harvest", pages_fetched=1)):
        assert main.main(["load"]) == main.EXIT_CANCELLED


def test_main_reraises_other_errors() -> None:
    with patch("main.load_dotenv"), \
         patch("main.signal.signal"), \
         patch("main.load", side_effect=NetworkError("HTTP 503", status_code=503)):
        with pytest.raises(NetworkError):
            main.main(["load"])


def test_second_interrupt_falls_through_to_default_handler() -> None:
    with patch("main.load_dotenv"), \
         patch("main.signal.signal", return_value=main.signal.SIG_DFL) as mock_signal, \
         patch("main.load") as mock_load:
        assert main.main(["load"]) == 0

        handler = mock_signal.call_args_list[0].args[1]
        handler(main.signal.SIGINT, None)

    assert mock_load.call_args.kwargs["cancel_token"].cancelled
    assert mock_signal.call_args_list[1].args == (main.signal.SIGINT, main.signal.SIG_DFL)
    assert mock_signal.call_args_list[2].args == (main.signal.SIGINT, main.signal.default_int_handler)


def test_main_query_prints_answer(capsys: pytest.CaptureFixture[str]) -> None:
    with patch("main.load_dotenv"), \
         patch("main.query", return_value="An answer.") as mock_query:
        assert main.main(["query", "What is RAG?"]) == 0

    mock_query.assert_called_once_with("What is RAG?")
    assert "An answer." in capsys.readouterr().out


def test_query_builds_text_search_over_store() -> None:
    store = MagicMock()

    with patch("main.open_store", _fake_open_store(store)), \
         patch("main.answer_question", return_value="ok") as mock_answer:
        assert main.query("What is RAG?") == "ok"

    question, searcher = mock_answer.call_args.args
    assert question == "What is RAG?"
    assert isinstance(searcher, main.TextSearch)
