"""Search tool surface: argument resolution and vector-backed text search."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from models import ArgumentValue, HarvestRecord, ParamMeta, RetrievalRequest
from vector_store import search_role_attributes

DEFAULT_COUNT = 2
DEFAULT_SKIP = 0

ARXIV_SEARCH_PARAMETERS: tuple[ParamMeta, ...] = (
    ParamMeta("query", "What to search for", required=True),
    ParamMeta("count", "Number of results", required=True, default=3, type=int),
    ParamMeta("skip", "Number of results to skip", required=False, default=0),
)

_INT_PATTERN = re.compile(r"\s*[+-]?\d+\s*")

LOGGER = logging.getLogger(__name__)


class Searcher(Protocol):
    def search(self, request: RetrievalRequest) -> list[HarvestRecord]: ...


class VectorIndex(Protocol):
    def search_by_vector(self, vector: list[float], limit: int, offset: int = 0) -> list[HarvestRecord]: ...


def classify_argument(arguments: Mapping[str, Any], name: str) -> ArgumentValue:
    """Tag the argument bag entry for ``name`` with its variant."""
    if name not in arguments:
        return ArgumentValue("absent")
    value = arguments[name]
    # bool is an int subclass but never a valid count.
    if isinstance(value, int) and not isinstance(value, bool):
        return ArgumentValue("int", value)
    if isinstance(value, str):
        return ArgumentValue("str", value)
    return ArgumentValue("other", value)


def resolve(
    arguments: Mapping[str, Any],
    declared_params: Sequence[ParamMeta],
    name: str,
    hard_default: int,
) -> int:
    """Resolve an integer parameter: explicit int, numeric string, declared default, hard default."""
    argument = classify_argument(arguments, name)
    if argument.kind == "int":
        return argument.value
    if argument.kind == "str" and _INT_PATTERN.fullmatch(argument.value):
        try:
            return int(argument.value)
        except ValueError:
            # Past the interpreter's int digit limit; treat as unparseable.
            LOGGER.warning("Ignoring oversized numeric %s argument (%s chars)", name, len(argument.value))

    declared = next((param for param in declared_params if param.name == name), None)
    if declared is not None and isinstance(declared.default, int) and not isinstance(declared.default, bool):
        return declared.default

    return hard_default


def build_request(
    arguments: Mapping[str, Any],
    declared_params: Sequence[ParamMeta] = ARXIV_SEARCH_PARAMETERS,
) -> RetrievalRequest | None:
    """Build a search request, or None when no usable query was given."""
    query = arguments.get("query")
    query_text = "" if query is None else str(query)
    if not query_text:
        return None

    limit = resolve(arguments, declared_params, "count", DEFAULT_COUNT)
    offset = resolve(arguments, declared_params, "skip", DEFAULT_SKIP)
    return RetrievalRequest(query_text=query_text, limit=max(limit, 0), offset=max(offset, 0))


def search_arxiv(
    arguments: Mapping[str, Any],
    searcher: Searcher,
    declared_params: Sequence[ParamMeta] = ARXIV_SEARCH_PARAMETERS,
) -> list[dict[str, Any]]:
    """Run the ``arxiv_search`` tool and return name/value/link result objects."""
    request = build_request(arguments, declared_params)
    if request is None:
        LOGGER.info("arxiv_search called without a query; returning no results")
        return []

    LOGGER.info("arxiv_search: query=%r limit=%s offset=%s", request.query_text, request.limit, request.offset)
    records = searcher.search(request)
    return [to_search_result(record) for record in records]


def to_search_result(record: HarvestRecord) -> dict[str, Any]:
    return {role: getattr(record, attribute) for role, attribute in search_role_attributes().items()}


class TextSearch:
    """Embeds a query string and looks up its nearest records in the store."""

    def __init__(self, store: VectorIndex, embed: Callable[[list[str]], Sequence[Sequence[float]]]) -> None:
        self._store = store
        self._embed = embed

    def search(self, request: RetrievalRequest) -> list[HarvestRecord]:
        if request.limit == 0:
            return []
        vectors = self._embed([request.query_text])
        if len(vectors) != 1:
            raise RuntimeError(f"Expected one query embedding, got {len(vectors)}")
        return self._store.search_by_vector(list(vectors[0]), request.limit, request.offset)
