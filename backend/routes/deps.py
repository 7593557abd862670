"""Request-scoped dependencies shared by the routers."""

from fastapi import Request

from config import settings
from services.api_optimizer import APIOptimizer, get_client_id


def get_optimizer(request: Request) -> APIOptimizer:
    """The app-wide optimizer created in `create_app`."""
    return request.app.state.optimizer


def client_id(request: Request) -> str:
    return get_client_id(request, trust_forwarded_for=settings.trust_forwarded_for)
