"""Shared typed models for the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NamedTuple


@dataclass(slots=True)
class HarvestRecord:
    """One arXiv entry as harvested, plus its embedding once enriched.

    Every field except ``embedding`` is fixed at construction. ``embedding``
    starts as None and is attached once by the enrichment pipeline, which
    clears it again if the batch fails before it is stored.
    """

    id: str
    title: str
    abstract: str
    published_at: datetime
    link: str
    authors: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    pdf_link: str | None = None
    embedding: list[float] | None = field(default=None, repr=False)

    def attach_embedding(self, vector: list[float]) -> None:
        if self.embedding is not None:
            raise ValueError(f"Record {self.id!r} already has an embedding")
        self.embedding = [float(v) for v in vector]

    def clear_embedding(self) -> None:
        """Drop an embedding that never reached the store."""
        self.embedding = None


@dataclass(frozen=True, slots=True)
class RetrievalRequest:
    """A bounded search against the record store."""

    query_text: str
    limit: int
    offset: int = 0

    def __post_init__(self) -> None:
        if not self.query_text:
            raise ValueError("query_text must be non-empty")
        if self.limit < 0 or self.offset < 0:
            raise ValueError(f"limit and offset must be non-negative, got {self.limit}/{self.offset}")


class ParamMeta(NamedTuple):
    """Declared metadata for one parameter of a tool function."""

    name: str
    description: str = ""
    required: bool = False
    default: Any = None
    type: type | None = None


class ArgumentValue(NamedTuple):
    """Tagged view of one argument bag entry.

    ``kind`` is one of ``"absent"``, ``"int"``, ``"str"`` or ``"other"``.
    """

    kind: str
    value: Any = None


@dataclass(slots=True)
class PipelineProgress:
    """How much of an enrichment run has been committed to the store."""

    batches_committed: int = 0
    records_committed: int = 0
    committed_ids: list[str] = field(default_factory=list)
