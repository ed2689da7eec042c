"""Exception types raised by the harvest, enrichment and retrieval stages."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for all pipeline failures."""


class InvalidArgumentError(PipelineError, ValueError):
    """Caller passed a value the operation can never accept (not retried)."""


class HarvestError(PipelineError):
    """A harvest aborted; carries how far it got before failing."""

    def __init__(self, message: str, *, pages_fetched: int = 0, records_fetched: int = 0) -> None:
        super().__init__(message)
        self.pages_fetched = pages_fetched
        self.records_fetched = records_fetched


class NetworkError(HarvestError):
    """The search API returned a non-success status or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        pages_fetched: int = 0,
        records_fetched: int = 0,
    ) -> None:
        super().__init__(message, pages_fetched=pages_fetched, records_fetched=records_fetched)
        self.status_code = status_code


class ParseError(HarvestError):
    """A page payload could not be parsed into records."""


class BatchFailedError(PipelineError):
    """Batch ``batch_number`` failed; every earlier batch is already committed."""

    def __init__(
        self,
        message: str,
        *,
        batch_number: int,
        batches_committed: int,
        records_committed: int,
        committed_ids: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.batch_number = batch_number
        self.batches_committed = batches_committed
        self.records_committed = records_committed
        self.committed_ids = list(committed_ids or [])


class EmbeddingMismatchError(BatchFailedError):
    """The embedding service returned a different number of vectors than texts sent."""

    def __init__(self, message: str, *, expected: int, actual: int, **progress) -> None:
        super().__init__(message, **progress)
        self.expected = expected
        self.actual = actual


class Cancelled(PipelineError):
    """Cooperative cancellation was observed at a suspension point."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        *,
        stage: str = "",
        pages_fetched: int = 0,
        batches_committed: int = 0,
        records_committed: int = 0,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.pages_fetched = pages_fetched
        self.batches_committed = batches_committed
        self.records_committed = records_committed
