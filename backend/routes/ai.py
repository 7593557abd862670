"""AI routes — event/news analysis, EN<->AR translation and the chat assistant.

All three responses are cached per category and rate limited per client. Error
bodies are localized for Arabic callers and carry a fallback field so the
widget always has something to render.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from errors import (
    MarketFeedError,
    RateLimitExceededError,
    ServiceNotConfiguredError,
    UnknownCategoryError,
)
from routes.deps import client_id, get_optimizer
from services import eodhd, openai_client
from services.api_optimizer import APIOptimizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

Language = Literal["en", "ar"]

ANALYSIS_KEY_CHARS = 100

# Quotes injected into every chat prompt so the model never has to guess prices
CHAT_SYMBOLS = ["XAUUSD.FOREX", "EURUSD.FOREX", "GBPUSD.FOREX", "USDJPY.FOREX", "BTC-USD.CC", "GSPC.INDX"]

SYSTEM_PROMPTS = {
    "en": (
        "Summarize this event/news and its likely market effect in a short, honest, "
        "and clear way. Only base analysis on the event content, never randomize, never "
        "guess. Focus on what a trader needs to know. Deliver clear benefit, no complexity."
    ),
    "ar": (
        "لخص هذا الحدث/الخبر وتأثيره المحتمل على السوق بطريقة قصيرة وصادقة وواضحة. "
        "اعتمد فقط على محتوى الحدث، لا تخمن. ركز على ما يحتاج المتداول لمعرفته."
    ),
}

MESSAGES = {
    "en": {
        "missing_text": "Text content is required",
        "not_configured": "OpenAI API key not configured",
        "rate_limited": "Rate limit exceeded. Please try again later.",
        "unavailable": "AI analysis currently unavailable",
        "translation_failed": "Translation service unavailable",
        "missing_message": "Message is required",
        "chat_failed": "Sorry, I'm experiencing technical difficulties. Please try again.",
    },
    "ar": {
        "missing_text": "النص مطلوب",
        "not_configured": "مفتاح OpenAI غير مُعدّ",
        "rate_limited": "تجاوز الحد المسموح من الطلبات. يرجى المحاولة لاحقاً.",
        "unavailable": "تحليل الذكاء الاصطناعي غير متاح حاليًا",
        "translation_failed": "خدمة الترجمة غير متاحة",
        "missing_message": "الرسالة مطلوبة",
        "chat_failed": "عذراً، أواجه صعوبات تقنية. يرجى المحاولة مرة أخرى.",
    },
}


class AnalysisRequest(BaseModel):
    text: str = ""
    language: Language = "en"
    type: Literal["event", "news"] = "news"


class TranslationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    target_language: Language = Field("ar", alias="targetLanguage")


class ChatRequest(BaseModel):
    message: str = ""
    language: Language = "ar"


def _messages(language: str) -> dict:
    return MESSAGES["ar" if language == "ar" else "en"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(exc: MarketFeedError, language: str, message_key: str, fallback: dict) -> JSONResponse:
    """Localized JSON error that keeps the error's status code and retry hint."""
    messages = _messages(language)
    body = {"error": messages[message_key], **fallback}
    headers = None
    if isinstance(exc, RateLimitExceededError):
        body["error"] = messages["rate_limited"]
        body["retryAfter"] = exc.retry_after
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, ServiceNotConfiguredError):
        body["error"] = messages["not_configured"]
    return JSONResponse(body, status_code=exc.status_code, headers=headers)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@router.post("/ai-analysis")
async def ai_analysis(
    body: AnalysisRequest,
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
):
    """Short market-impact summary of an economic event or news item."""
    language = body.language
    messages = _messages(language)
    text = body.text.strip()
    if not text:
        return JSONResponse({"error": messages["missing_text"]}, status_code=400)

    user_prompt = f"Economic Event: {text}" if body.type == "event" else f"News: {text}"

    async def _analyze() -> dict:
        raw = await asyncio.to_thread(
            openai_client.complete,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPTS["ar" if language == "ar" else "en"]},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=150,
        )
        return {
            "analysis": raw.strip(),
            "language": language,
            "type": body.type,
            "timestamp": _now_iso(),
        }

    try:
        if not openai_client.is_configured():
            raise ServiceNotConfiguredError(openai_client.SERVICE, "OPENAI_API_KEY")
        return await optimizer.fetch_through(
            "analysis",
            {"text": text[:ANALYSIS_KEY_CHARS], "language": language, "type": body.type},
            client,
            _analyze,
        )
    except UnknownCategoryError:
        raise
    except MarketFeedError as e:
        return _error_response(e, language, "unavailable", {"analysis": messages["unavailable"]})


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------

@router.post("/translate")
async def translate(
    body: TranslationRequest,
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
):
    """Translate text to Arabic (default) or English. Falls back to the original text."""
    target = body.target_language
    messages = _messages(target)
    text = body.text.strip()
    if not text:
        return JSONResponse({"error": messages["missing_text"], "translatedText": ""}, status_code=400)

    language_name = "Arabic" if target == "ar" else "English"

    async def _translate() -> dict:
        raw = await asyncio.to_thread(
            openai_client.complete,
            messages=[{"role": "user", "content": f'Translate the following text to {language_name}: "{text}"'}],
            max_tokens=200,
        )
        return {
            "translatedText": raw.strip() or text,
            "originalText": text,
            "targetLanguage": target,
            "timestamp": _now_iso(),
        }

    try:
        if not openai_client.is_configured():
            raise ServiceNotConfiguredError(openai_client.SERVICE, "OPENAI_API_KEY")
        return await optimizer.fetch_through("translation", {"text": text, "target": target}, client, _translate)
    except UnknownCategoryError:
        raise
    except MarketFeedError as e:
        return _error_response(e, target, "translation_failed", {"translatedText": text})


# ---------------------------------------------------------------------------
# Chat assistant
# ---------------------------------------------------------------------------

def _format_quote(quote: dict) -> str:
    price = quote.get("price")
    price_text = f"{price:,.4f}" if isinstance(price, (int, float)) else "n/a"
    return f"{quote.get('symbol')}: {price_text} ({quote.get('changePct', 0.0):+.2f}%)"


async def _market_context(optimizer: APIOptimizer, client: str) -> list[dict]:
    """Live quotes for the chat prompt. Best effort: chat still works without them."""
    if not eodhd.is_configured():
        return []
    try:
        return await optimizer.fetch_through(
            "prices",
            {"symbols": ",".join(CHAT_SYMBOLS)},
            client,
            lambda: eodhd.get_prices(CHAT_SYMBOLS),
        )
    except UnknownCategoryError:
        raise
    except MarketFeedError as e:
        logger.warning("Chat market context unavailable: %s", e)
        return []


@router.post("/chat")
async def chat(
    body: ChatRequest,
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
):
    """Liirat assistant: answers market questions grounded in live quotes."""
    language = body.language
    messages = _messages(language)
    message = body.message.strip()
    if not message:
        return JSONResponse({"error": messages["missing_message"]}, status_code=400)

    async def _reply() -> dict:
        market_data = await _market_context(optimizer, client)
        quotes = "\n".join(_format_quote(q) for q in market_data) or "No live quotes available."
        system_prompt = (
            "You are Liirat News AI Assistant, providing financial and economic information.\n\n"
            f"CURRENT LIVE MARKET DATA:\n{quotes}\n\n"
            "Use only the exact prices above and never guess a price. Stay within economic "
            "and market topics, keep answers concise, and reply in "
            f"{'Arabic' if language == 'ar' else 'English'}."
        )
        raw = await asyncio.to_thread(
            openai_client.complete,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": message},
            ],
            temperature=0.3,
            max_tokens=1000,
        )
        return {
            "response": raw.strip(),
            "language": language,
            "marketData": market_data,
            "timestamp": _now_iso(),
            "realTime": True,
        }

    try:
        if not openai_client.is_configured():
            raise ServiceNotConfiguredError(openai_client.SERVICE, "OPENAI_API_KEY")
        return await optimizer.fetch_through("chat", {"language": language, "message": message}, client, _reply)
    except UnknownCategoryError:
        raise
    except MarketFeedError as e:
        return _error_response(e, language, "chat_failed", {"response": messages["chat_failed"]})
