"""CLI entrypoint: load arXiv records into Postgres, or ask questions about them."""

from __future__ import annotations

import argparse
import logging
import signal
import sys

from dotenv import load_dotenv

from answer import answer_question
from arxiv_feed import harvest
from cancellation import CancellationToken
from embeddings import embed_texts
from errors import Cancelled
from pipeline import DEFAULT_BATCH_SIZE, enrich_and_store
from retrieval import TextSearch
from vector_store import open_store

EXIT_CANCELLED = 130


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Harvest arXiv abstracts into pgvector and query them")
    commands = parser.add_subparsers(dest="command", required=True)

    load = commands.add_parser("load", help="Load arXiv records into the database")
    load.add_argument("-t", "--total", type=int, default=50, help="Total number of results to load")
    load.add_argument("--topic", default="RAG", help="The topic to search arXiv for")
    load.add_argument("--category", default="cs.AI", help="arXiv category filter (empty for none)")
    load.add_argument("--page-size", type=int, default=100, help="Records requested per API call")
    load.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Records embedded and upserted per batch")
    load.add_argument(
        "--dry-run",
        action="store_true",
        help="Only harvest and log what would be stored, without embedding or database writes",
    )

    query = commands.add_parser("query", help="Ask a question answered from the stored abstracts")
    query.add_argument("query", help="The question to answer")

    return parser.parse_args(argv)


def load(
    total: int,
    topic: str,
    category: str,
    page_size: int,
    batch_size: int,
    dry_run: bool,
    cancel_token: CancellationToken,
) -> None:
    """Harvest, embed and upsert one topic."""
    logging.info("Loading arXiv records for topic '%s'...", topic)
    records = harvest(
        topic,
        category=category,
        page_size=page_size,
        total_results=total,
        cancel_token=cancel_token,
    )
    logging.info("Found %s results", len(records))

    if dry_run:
        for record in records:
            logging.info("[dry-run] Would store %s: %s", record.id, record.title)
        return

    with open_store() as store:
        progress = enrich_and_store(
            records,
            batch_size,
            embed=embed_texts,
            upsert=store.upsert_batch,
            ensure_collection=store.create_collection_if_not_exists,
            cancel_token=cancel_token,
        )
    logging.info("Load complete: batches=%s records=%s", progress.batches_committed, progress.records_committed)


def query(question: str) -> str:
    """Answer one question using the stored abstracts."""
    with open_store() as store:
        searcher = TextSearch(store, embed_texts)
        return answer_question(question, searcher)


def _cancel_on_interrupt(cancel_token: CancellationToken):
    """SIGINT handler: first Ctrl-C stops at the next page or batch boundary, a second one exits."""

    def _handler(signum, frame) -> None:
        cancel_token.cancel()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    return _handler


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the requested command."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)

    try:
        if args.command == "load":
            cancel_token = CancellationToken()
            previous_handler = signal.signal(signal.SIGINT, _cancel_on_interrupt(cancel_token))
            try:
                load(
                    total=args.total,
                    topic=args.topic,
                    category=args.category,
                    page_size=args.page_size,
                    batch_size=args.batch_size,
                    dry_run=args.dry_run,
                    cancel_token=cancel_token,
                )
            finally:
                signal.signal(signal.SIGINT, previous_handler)
        else:
            print(query(args.query))
    except Cancelled as exc:
        logging.warning(
            "Cancelled during %s: pages_fetched=%s batches_committed=%s records_committed=%s",
            exc.stage,
            exc.pages_fetched,
            exc.batches_committed,
            exc.records_committed,
        )
        return EXIT_CANCELLED
    except Exception as exc:
        logging.exception("An error occurred: %s", exc)
        raise

    return 0


if __name__ == "__main__":
    sys.exit(main())
