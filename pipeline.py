"""Batch embedding and storage of harvested records."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from batching import batched
from cancellation import CancellationToken
from errors import BatchFailedError, EmbeddingMismatchError
from models import HarvestRecord, PipelineProgress

DEFAULT_BATCH_SIZE = 20

LOGGER = logging.getLogger(__name__)

EmbedFn = Callable[[list[str]], Sequence[Sequence[float]]]
UpsertFn = Callable[[list[HarvestRecord]], None]


def enrich_and_store(
    records: Sequence[HarvestRecord],
    batch_size: int,
    embed: EmbedFn,
    upsert: UpsertFn,
    *,
    ensure_collection: Callable[[], None] | None = None,
    cancel_token: CancellationToken | None = None,
) -> PipelineProgress:
    """Embed ``records`` batch by batch and upsert each batch before the next.

    Vector ``i`` returned by ``embed`` is attached to record ``i`` of the
    batch. Batches are committed strictly in order, one at a time. A failure
    on batch ``k`` leaves batches ``1..k-1`` committed and raises with the
    progress so far; nothing is rolled back or retried.

    Raises:
        InvalidArgumentError: batch_size is not a positive integer.
        EmbeddingMismatchError: ``embed`` returned the wrong number of vectors.
        BatchFailedError: ``embed`` or ``upsert`` raised for a batch.
        Cancelled: cancel_token fired between batches.
    """
    batches = batched(records, batch_size)
    token = cancel_token or CancellationToken()
    progress = PipelineProgress()

    if ensure_collection is not None:
        ensure_collection()

    for batch_number, batch in enumerate(batches, start=1):
        token.raise_if_cancelled(
            "enrichment",
            batches_committed=progress.batches_committed,
            records_committed=progress.records_committed,
        )
        LOGGER.info("Processing batch %s (%s records)", batch_number, len(batch))

        try:
            vectors = list(embed([record.abstract for record in batch]))
        except Exception as exc:
            raise _batch_failure(f"Embedding failed for batch {batch_number}: {exc}", batch_number, progress) from exc

        if len(vectors) != len(batch):
            raise EmbeddingMismatchError(
                f"Batch {batch_number}: sent {len(batch)} texts, got {len(vectors)} embeddings",
                expected=len(batch),
                actual=len(vectors),
                **_progress_fields(batch_number, progress),
            )
        LOGGER.info("  ...embeddings generated")

        attached: list[HarvestRecord] = []
        step = "Attaching embeddings"
        try:
            for record, vector in zip(batch, vectors):
                record.attach_embedding(list(vector))
                attached.append(record)
            step = "Upsert"
            upsert(batch)
        except Exception as exc:
            # Uncommitted records go back to un-enriched so a resumed run can embed them again.
            for record in attached:
                record.clear_embedding()
            raise _batch_failure(f"{step} failed for batch {batch_number}: {exc}", batch_number, progress) from exc
        LOGGER.info("  ...batch upserted")

        progress.batches_committed += 1
        progress.records_committed += len(batch)
        progress.committed_ids.extend(record.id for record in batch)

    LOGGER.info(
        "Enrichment complete: batches=%s records=%s",
        progress.batches_committed,
        progress.records_committed,
    )
    return progress


def _progress_fields(batch_number: int, progress: PipelineProgress) -> dict:
    return {
        "batch_number": batch_number,
        "batches_committed": progress.batches_committed,
        "records_committed": progress.records_committed,
        "committed_ids": progress.committed_ids,
    }


def _batch_failure(message: str, batch_number: int, progress: PipelineProgress) -> BatchFailedError:
    return BatchFailedError(message, **_progress_fields(batch_number, progress))
