"""Normalization of provider result payloads.

Each output line of a batch job arrives in one of a handful of shapes. The
shapes are modeled explicitly; ``classify`` picks the shape of a raw line and
``normalize`` turns it into a ResultRecord with one function per shape.

Known shapes:

    normalized        {"correlation_token": ..., "content": "..."}
    direct            {"custom_id": ..., "response": "..."}
    chat_completion   {"custom_id": ..., "choices": [{"message": {"content": "..."}}]}
    envelope_text     {"custom_id": ..., "response": {"body": "<JSON text>"}}
    envelope_object   {"custom_id": ..., "response": {"status_code": 200, "body": {...}}}
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from docbatch.batch.models import ResultRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedPayload:
    token: str
    content: Any
    kind: str = "normalized"


@dataclass(frozen=True)
class DirectPayload:
    token: str
    response: str
    kind: str = "direct"


@dataclass(frozen=True)
class ChatCompletionPayload:
    token: str
    completion: Dict[str, Any]
    kind: str = "chat_completion"


@dataclass(frozen=True)
class EnvelopeTextPayload:
    token: str
    status_code: Optional[int]
    body: str
    kind: str = "envelope_text"


@dataclass(frozen=True)
class EnvelopeObjectPayload:
    token: str
    status_code: Optional[int]
    body: Dict[str, Any]
    kind: str = "envelope_object"


Payload = Union[
    NormalizedPayload,
    DirectPayload,
    ChatCompletionPayload,
    EnvelopeTextPayload,
    EnvelopeObjectPayload,
]


def classify(raw: Any) -> Optional[Payload]:
    """Return the payload shape of one raw result, or None if unrecognized."""
    if not isinstance(raw, dict):
        return None

    if "correlation_token" in raw and "content" in raw:
        return NormalizedPayload(token=str(raw["correlation_token"]), content=raw["content"])

    token = raw.get("custom_id")
    if not token:
        return None
    token = str(token)

    if isinstance(raw.get("choices"), list):
        return ChatCompletionPayload(token=token, completion=raw)

    response = raw.get("response")
    if isinstance(response, str):
        return DirectPayload(token=token, response=response)
    if isinstance(response, dict):
        body = response.get("body")
        status_code = response.get("status_code")
        if isinstance(body, str):
            return EnvelopeTextPayload(token=token, status_code=status_code, body=body)
        if isinstance(body, dict):
            return EnvelopeObjectPayload(token=token, status_code=status_code, body=body)
    return None


def _completion_text(completion: Dict[str, Any]) -> Optional[str]:
    choices = completion.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


def _status_ok(token: str, status_code: Optional[int]) -> bool:
    if status_code is not None and status_code != 200:
        logger.warning(f"Result {token} has provider status {status_code}; ignoring it")
        return False
    return True


def _from_normalized(payload: NormalizedPayload) -> Optional[str]:
    return payload.content if isinstance(payload.content, str) else None


def _from_direct(payload: DirectPayload) -> Optional[str]:
    return payload.response


def _from_chat_completion(payload: ChatCompletionPayload) -> Optional[str]:
    return _completion_text(payload.completion)


def _from_envelope_text(payload: EnvelopeTextPayload) -> Optional[str]:
    if not _status_ok(payload.token, payload.status_code):
        return None
    try:
        body = json.loads(payload.body)
    except json.JSONDecodeError as e:
        logger.debug(f"Failed to parse response body of {payload.token}: {e}")
        return None
    return _completion_text(body) if isinstance(body, dict) else None


def _from_envelope_object(payload: EnvelopeObjectPayload) -> Optional[str]:
    if not _status_ok(payload.token, payload.status_code):
        return None
    return _completion_text(payload.body)


_EXTRACTORS: Dict[str, Callable[[Any], Optional[str]]] = {
    "normalized": _from_normalized,
    "direct": _from_direct,
    "chat_completion": _from_chat_completion,
    "envelope_text": _from_envelope_text,
    "envelope_object": _from_envelope_object,
}


def normalize(raw: Any) -> Optional[ResultRecord]:
    """Convert one raw provider result into a ResultRecord.

    Returns None (and logs why) for unrecognized shapes and for results
    that carry no text content.
    """
    payload = classify(raw)
    if payload is None:
        logger.warning(f"Unrecognized result shape: {json.dumps(raw)[:100] if _jsonable(raw) else raw!r}")
        return None
    content = _EXTRACTORS[payload.kind](payload)
    if not content:
        logger.warning(f"Result {payload.token} ({payload.kind}) has no content")
        return None
    return ResultRecord(correlation_token=payload.token, content=content)


def _jsonable(raw: Any) -> bool:
    try:
        json.dumps(raw)
    except (TypeError, ValueError):
        return False
    return True


_FENCE_OPEN = re.compile(r"\A\s*```[\w+.-]*[ \t]*\r?\n")
_FENCE_CLOSE = re.compile(r"\r?\n```[ \t]*\s*\Z")


def clean_response(text: str) -> str:
    """Strip a surrounding markdown code fence from generated code.

    Only a fence that opens the text is removed, together with the fence
    that closes it. Keeps the original text when stripping would drop more
    than half of it.
    """
    if not _FENCE_OPEN.match(text):
        return text
    cleaned = _FENCE_OPEN.sub("", text, count=1)
    cleaned = _FENCE_CLOSE.sub("\n", cleaned, count=1)
    if len(cleaned.strip()) < len(text.strip()) / 2:
        logger.warning("Significant content loss after cleaning response, using original")
        return text
    return cleaned
