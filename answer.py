"""Answer research questions with a chat model that can call ``arxiv_search``."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from json import JSONDecodeError
from typing import Any

from openai import OpenAI

from embeddings import get_client
from models import ParamMeta
from retrieval import ARXIV_SEARCH_PARAMETERS, Searcher, search_arxiv

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
MAX_TOKENS = 1000
MAX_TOOL_ROUNDS = int(os.getenv("MAX_TOOL_ROUNDS", "5"))

TOOL_NAME = "arxiv_search"
TOOL_DESCRIPTION = "Search for ArXiv abstracts for latest research in computer science topics."

_JSON_TYPES: dict[type, str] = {int: "integer", str: "string", float: "number", bool: "boolean"}

LOGGER = logging.getLogger(__name__)


def build_tool_definition(params: Sequence[ParamMeta] = ARXIV_SEARCH_PARAMETERS) -> dict[str, Any]:
    """Describe the search tool to the model from its parameter metadata."""
    properties: dict[str, Any] = {}
    for param in params:
        json_type = _JSON_TYPES.get(param.type or type(param.default), "string")
        schema: dict[str, Any] = {"type": json_type, "description": param.description}
        if param.default is not None:
            schema["default"] = param.default
        properties[param.name] = schema

    return {
        "type": "function",
        "function": {
            "name": TOOL_NAME,
            "description": TOOL_DESCRIPTION,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": [param.name for param in params if param.required],
            },
        },
    }


def answer_question(question: str, searcher: Searcher, client: OpenAI | None = None) -> str:
    """Let the model search the store as often as it needs, then return its answer."""
    client = client or get_client()
    tools = [build_tool_definition()]
    messages: list[dict[str, Any]] = [{"role": "user", "content": question}]

    LOGGER.info("Answering question with model=%s: %s", OPENAI_MODEL, question)

    for round_number in range(1, MAX_TOOL_ROUNDS + 1):
        response = client.chat.completions.create(
            model=OPENAI_MODEL,
            max_tokens=MAX_TOKENS,
            messages=messages,
            tools=tools,
            tool_choice="auto",
        )
        message = response.choices[0].message
        tool_calls = message.tool_calls or []

        if not tool_calls:
            if not message.content:
                raise RuntimeError("OpenAI returned an empty answer")
            return message.content

        messages.append(
            {
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in tool_calls
                ],
            }
        )
        for call in tool_calls:
            LOGGER.info("Tool round %s: %s(%s)", round_number, call.function.name, call.function.arguments)
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": _run_tool(call.function.name, call.function.arguments, searcher),
                }
            )

    raise RuntimeError(f"No answer after {MAX_TOOL_ROUNDS} tool rounds")


def _run_tool(name: str, raw_arguments: str, searcher: Searcher) -> str:
    if name != TOOL_NAME:
        return json.dumps({"error": f"Unknown tool {name!r}"})

    try:
        arguments = json.loads(raw_arguments or "{}")
    except JSONDecodeError as exc:
        return json.dumps({"error": f"Arguments are not valid JSON: {exc}"})
    if not isinstance(arguments, dict):
        return json.dumps({"error": "Arguments must be a JSON object"})

    results = search_arxiv(arguments, searcher)
    return json.dumps(results)
