"""
OpenAI chat-completions client

Used for event/news analysis and EN<->AR translation. The key stays
server-side; the browser only ever sees our JSON.

Auth:
    OPENAI_API_KEY → api_key
"""

import logging

from openai import OpenAI, OpenAIError

from config import settings
from errors import ServiceNotConfiguredError, UpstreamError

logger = logging.getLogger(__name__)

SERVICE = "OpenAI"

_client = None


def _get_client() -> OpenAI:
    """Return cached OpenAI client, creating on first call."""
    global _client
    if _client is None:
        if not settings.openai_api_key:
            raise ServiceNotConfiguredError(SERVICE, "OPENAI_API_KEY")
        _client = OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.openai_timeout_seconds,
            max_retries=1,
        )
    return _client


def is_configured() -> bool:
    return bool(settings.openai_api_key)


def complete(
    messages: list[dict],
    temperature: float = 0.1,
    max_tokens: int = 150,
) -> str:
    """
    Call the chat model with messages, return assistant response text.
    """
    client = _get_client()

    try:
        completion = client.chat.completions.create(
            model=settings.openai_model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except OpenAIError as e:
        logger.error("OpenAI completion failed: %s", e)
        raise UpstreamError(SERVICE, getattr(e, "status_code", None), detail=str(e)) from e

    content = completion.choices[0].message.content
    if content is None:
        raise UpstreamError(SERVICE, detail="Model returned empty response (no content)")
    return content
