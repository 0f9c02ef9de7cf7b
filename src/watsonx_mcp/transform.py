"""Translate between internal request shapes and watsonx.ai payloads."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

CHAT_ROLE_PREFIXES: dict[str, str] = {
    "system": "System",
    "user": "User",
    "assistant": "Assistant",
}

CHAT_STOP_SEQUENCES = ["User:", "System:"]


@dataclass(slots=True)
class WatsonxAPIError(Exception):
    """Represent a watsonx.ai error response."""

    status: int
    message: str
    code: str | None = None

    def __str__(self) -> str:
        prefix = f"{self.code}: " if self.code else ""
        return f"{prefix}{self.message} (HTTP {self.status})"


def error_from_response(response: httpx.Response) -> WatsonxAPIError:
    """Build a ``WatsonxAPIError`` from a failed response body.

    watsonx.ai reports failures as ``{"errors": [{"code", "message"}], ...}``;
    anything else falls back to the raw response text.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            return WatsonxAPIError(
                status=response.status_code,
                message=str(first.get("message", "")) or response.reason_phrase,
                code=first.get("code"),
            )
        if "message" in body:
            return WatsonxAPIError(status=response.status_code, message=str(body["message"]))

    text = response.text.strip()[:200] or response.reason_phrase
    return WatsonxAPIError(status=response.status_code, message=text)


def translate_watsonx_fault(error: WatsonxAPIError) -> dict[str, Any]:
    """Convert a watsonx.ai error into a structured payload."""

    retryable = error.status in {429, 503, 504}
    return {
        "code": f"watsonx:{error.code or error.status}",
        "message": error.message,
        "retryable": retryable,
        "domain": "watsonx",
    }


def format_chat_prompt(messages: Iterable[Mapping[str, Any]]) -> str:
    """Flatten chat messages into a single completion prompt.

    Each message becomes ``Role: content``; unknown roles contribute their
    content unprefixed. The prompt ends with an open ``Assistant:`` turn.
    """
    lines: list[str] = []
    for message in messages:
        content = str(message.get("content", ""))
        prefix = CHAT_ROLE_PREFIXES.get(str(message.get("role", "")))
        lines.append(f"{prefix}: {content}" if prefix else content)
    return "\n\n".join(lines) + "\n\nAssistant:"


def first_generated_text(payload: Mapping[str, Any]) -> str:
    """Return the first candidate's generated text, or an empty string."""
    results = payload.get("results") or []
    if not results:
        return ""
    return str(results[0].get("generated_text") or "")
