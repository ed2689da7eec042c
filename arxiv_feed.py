"""arXiv search API harvesting helpers."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from xml.etree.ElementTree import Element

import requests
from defusedxml import ElementTree
from defusedxml.common import DefusedXmlException

from cancellation import CancellationToken
from errors import InvalidArgumentError, NetworkError, ParseError
from models import HarvestRecord

ARXIV_API_URL = os.getenv("ARXIV_API_URL", "http://export.arxiv.org/api/query")
# arXiv refuses slices larger than this in a single call.
ARXIV_MAX_RESULTS_PER_REQUEST = 2000
# The arXiv API terms of use ask for a 3 second pause between calls.
ARXIV_REQUEST_DELAY_SECONDS = float(os.getenv("ARXIV_REQUEST_DELAY_SECONDS", "3.0"))
REQUEST_TIMEOUT_SECONDS = 30

ATOM_NS = "{http://www.w3.org/2005/Atom}"

LOGGER = logging.getLogger(__name__)


def harvest(
    query: str,
    category: str = "cs.AI",
    page_size: int = 100,
    total_results: int = 100,
    *,
    cancel_token: CancellationToken | None = None,
    session: requests.Session | None = None,
) -> list[HarvestRecord]:
    """Fetch up to ``total_results`` records matching ``query`` in ``category``.

    Pages are requested newest-updated first, ``page_size`` at a time (capped
    at ARXIV_MAX_RESULTS_PER_REQUEST), with ARXIV_REQUEST_DELAY_SECONDS between
    consecutive requests. The budget is spent by request size, so a short page
    from an exhausted corpus is not topped up.

    Raises:
        InvalidArgumentError: page_size is not positive.
        NetworkError: a page request failed or returned a non-2xx status.
        ParseError: a page was not a well-formed Atom feed.
        Cancelled: cancel_token fired before a request or during a delay.
    """
    if page_size <= 0:
        raise InvalidArgumentError(f"page_size must be positive, got {page_size}")

    page_size = min(page_size, ARXIV_MAX_RESULTS_PER_REQUEST)
    token = cancel_token or CancellationToken()
    http = session or requests

    records: list[HarvestRecord] = []
    offset = 0
    remaining = total_results
    pages = 0

    while remaining > 0:
        current_page_size = min(page_size, remaining)
        token.raise_if_cancelled("harvest", pages_fetched=pages)

        params = {
            "search_query": _build_search_query(query, category),
            "start": offset,
            "max_results": current_page_size,
            "sortBy": "lastUpdatedDate",
            "sortOrder": "descending",
        }

        try:
            response = http.get(ARXIV_API_URL, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            raise NetworkError(
                f"arXiv request failed at start={offset}: {exc}",
                pages_fetched=pages,
                records_fetched=len(records),
            ) from exc

        if not 200 <= response.status_code < 300:
            raise NetworkError(
                f"arXiv returned HTTP {response.status_code} at start={offset}",
                status_code=response.status_code,
                pages_fetched=pages,
                records_fetched=len(records),
            )

        try:
            page = parse_feed(response.text)
        except ParseError as exc:
            raise ParseError(
                f"Malformed arXiv page at start={offset}: {exc}",
                pages_fetched=pages,
                records_fetched=len(records),
            ) from exc

        records.extend(page)
        pages += 1
        offset += current_page_size
        remaining -= current_page_size

        LOGGER.info(
            "arXiv fetch: page=%s start=%s requested=%s received=%s total=%s",
            pages,
            offset - current_page_size,
            current_page_size,
            len(page),
            len(records),
        )

        if remaining > 0:
            token.sleep(ARXIV_REQUEST_DELAY_SECONDS, "harvest", pages_fetched=pages)

    LOGGER.info("arXiv fetch complete: query=%r category=%s pages=%s records=%s", query, category, pages, len(records))
    return records


def _build_search_query(query: str, category: str) -> str:
    search = f'all:"{query}"'
    if category:
        search += f" AND cat:{category}"
    return search


def parse_feed(xml_text: str) -> list[HarvestRecord]:
    """Parse an arXiv Atom feed into records, preserving entry order."""
    try:
        root = ElementTree.fromstring(xml_text)
    except (ElementTree.ParseError, DefusedXmlException) as exc:
        raise ParseError(f"Invalid Atom XML: {exc}") from exc

    if root.tag != f"{ATOM_NS}feed":
        raise ParseError(f"Unexpected root element {root.tag!r}, expected Atom feed")

    return [_parse_entry(entry) for entry in root.findall(f"{ATOM_NS}entry")]


def _parse_entry(entry: Element) -> HarvestRecord:
    link = _text(entry, "id")
    categories = (c.get("term") for c in entry.findall(f"{ATOM_NS}category"))

    return HarvestRecord(
        id=link.rstrip("/").rsplit("/", 1)[-1],
        title=_text(entry, "title"),
        abstract=_text(entry, "summary"),
        published_at=_parse_datetime(_text(entry, "published")),
        link=link,
        authors=tuple(
            _text(author, "name")
            for author in entry.findall(f"{ATOM_NS}author")
            if _text(author, "name")
        ),
        categories=tuple(dict.fromkeys(term for term in categories if term)),
        pdf_link=next(
            (
                link_el.get("href")
                for link_el in entry.findall(f"{ATOM_NS}link")
                if link_el.get("title") == "pdf"
            ),
            None,
        ),
    )


def _text(element: Element, tag: str) -> str:
    # arXiv wraps long titles and abstracts across lines.
    child = element.find(f"{ATOM_NS}{tag}")
    if child is None or child.text is None:
        return ""
    return " ".join(child.text.split())


def _parse_datetime(raw: str) -> datetime:
    if not raw:
        raise ParseError("Entry is missing its published timestamp")

    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ParseError(f"Unparseable published timestamp {raw!r}") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
