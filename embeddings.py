"""OpenAI (or Azure OpenAI) text embeddings for abstracts and queries."""

from __future__ import annotations

import logging
import os

from openai import AzureOpenAI, OpenAI

OPENAI_EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
AZURE_OPENAI_API_VERSION = os.getenv("AZURE_OPENAI_API_VERSION", "2024-06-01")

LOGGER = logging.getLogger(__name__)


def get_client() -> OpenAI:
    """Build an Azure client when AZURE_OPENAI_ENDPOINT is set, a plain OpenAI client otherwise."""
    azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
    if azure_endpoint:
        api_key = os.getenv("AZURE_OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("AZURE_OPENAI_API_KEY environment variable is required")
        return AzureOpenAI(
            api_key=api_key,
            azure_endpoint=azure_endpoint,
            api_version=AZURE_OPENAI_API_VERSION,
        )

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is required")
    return OpenAI(api_key=api_key)


def embed_texts(texts: list[str], client: OpenAI | None = None) -> list[list[float]]:
    """Embed ``texts`` in one request, returning vectors in input order."""
    if not texts:
        return []

    client = client or get_client()
    model = os.getenv("OPENAI_EMBEDDING_MODEL", OPENAI_EMBEDDING_MODEL)
    # The API rejects empty strings; a record without an abstract still needs a vector.
    inputs = [text if text.strip() else " " for text in texts]

    LOGGER.debug("Embedding %s texts with model=%s", len(inputs), model)
    response = client.embeddings.create(model=model, input=inputs)

    data = sorted(response.data, key=lambda item: item.index)
    return [list(item.embedding) for item in data]
