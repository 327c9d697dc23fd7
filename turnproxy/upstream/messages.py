"""Build the runtime turn request from an OpenAI chat completions payload."""

import logging
from typing import Any, Mapping, Optional

from ..core.exceptions import InvalidRequestError
from ..core.models import ModelResolver
from .base import TurnRequest

logger = logging.getLogger("turnproxy")


def _content_to_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, Mapping):
        for key in ("text", "content"):
            value = content.get(key)
            if isinstance(value, str):
                return value
        return ""
    if isinstance(content, list):
        parts = [_content_to_text(item) for item in content]
        return "\n".join(part for part in parts if part)
    return ""


def merge_messages(messages: list[Any]) -> Optional[str]:
    """Join the conversation into one ``role: content`` block per message.

    Messages whose content is empty or whitespace are skipped. Returns
    ``None`` when no message carries any content.
    """
    parts = []
    for message in messages:
        if not isinstance(message, Mapping):
            continue
        content = _content_to_text(message.get("content"))
        if not content.strip():
            continue
        role = message.get("role") or "user"
        parts.append(f"{role}: {content}")
    if not parts:
        return None
    return "\n".join(parts)


def build_turn_request(
    payload: Mapping[str, Any],
    resolver: ModelResolver,
    request_id: Optional[str] = None,
) -> TurnRequest:
    """Validate a chat completions payload and turn it into a ``TurnRequest``.

    Raises:
        InvalidRequestError: missing model, missing messages, or no content.
        ConfigurationError: the model cannot be resolved.
    """
    model = payload.get("model")
    if not isinstance(model, str) or not model.strip():
        raise InvalidRequestError(
            "You must provide a model parameter", code="missing_parameter"
        )

    messages = payload.get("messages")
    if not messages or not isinstance(messages, list):
        raise InvalidRequestError(
            "You must provide a messages array", code="missing_parameter"
        )

    conversation_id = payload.get("conversation_id")
    if conversation_id is not None and not isinstance(conversation_id, str):
        raise InvalidRequestError(
            "conversation_id must be a string", code="invalid_parameter"
        )

    upstream_model = resolver.resolve(model)

    prompt = merge_messages(messages)
    if prompt is None:
        raise InvalidRequestError("no user content found", code="empty_messages")

    if upstream_model != model:
        logger.info("[%s] Mapping model %s -> %s", request_id, model, upstream_model)

    return TurnRequest(
        model=upstream_model,
        client_model=model,
        messages=[dict(m) for m in messages if isinstance(m, Mapping)],
        prompt=prompt,
        conversation_id=conversation_id or None,
        request_id=request_id,
    )
