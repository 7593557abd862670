"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MarketFeedError(Exception):
    """Base exception with HTTP status code and a machine-readable code."""

    def __init__(self, message: str, status_code: int = 500, code: str = "INTERNAL_ERROR"):
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    def to_dict(self) -> dict:
        return {"ok": False, "code": self.code, "error": str(self)}


class MissingParameterError(MarketFeedError):
    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or f"Missing required parameter ({code})", status_code=400, code=code)


class RateLimitExceededError(MarketFeedError):
    def __init__(self, category: str, retry_after: int = 60, message: str | None = None):
        super().__init__(
            message or "Rate limit exceeded. Please try again later.",
            status_code=429,
            code="RATE_LIMITED",
        )
        self.category = category
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryAfter"] = self.retry_after
        return body


class UpstreamError(MarketFeedError):
    def __init__(self, service: str, upstream_status: int | None = None, detail: str = ""):
        super().__init__(
            f"{service} request failed" + (f" with status {upstream_status}" if upstream_status else ""),
            status_code=502,
            code="UPSTREAM_ERROR",
        )
        self.service = service
        self.upstream_status = upstream_status
        self.detail = detail

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["detail"] = self.detail
        return body


class ServiceNotConfiguredError(MarketFeedError):
    def __init__(self, service: str, env_var: str):
        super().__init__(
            f"{service} is not configured: {env_var} is not set",
            status_code=503,
            code="NOT_CONFIGURED",
        )


class UnknownCategoryError(MarketFeedError):
    def __init__(self, category: str, known: set[str]):
        super().__init__(
            f"Unknown cache/rate-limit category: {category!r}. Known: {sorted(known)}",
            status_code=500,
            code="UNKNOWN_CATEGORY",
        )
        self.category = category


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limited(_request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            exc.to_dict(),
            status_code=exc.status_code,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(UnknownCategoryError)
    async def handle_unknown_category(_request: Request, exc: UnknownCategoryError):
        logger.error("Optimizer misconfiguration: %s", exc)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(MarketFeedError)
    async def handle_market_feed_error(_request: Request, exc: MarketFeedError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"ok": False, "code": "BAD_REQUEST", "error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"ok": False, "code": "INTERNAL_ERROR", "error": "Internal server error"},
            status_code=500,
        )
