"""API package exports."""

from speecheval.api.middleware import CorrelationIdMiddleware
from speecheval.api.routes import router

__all__ = ["router", "CorrelationIdMiddleware"]
