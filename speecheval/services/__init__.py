"""Services package exports."""

from speecheval.services.logging_service import configure_logging, content_hash, get_logger

__all__ = [
    "configure_logging",
    "content_hash",
    "get_logger",
]
