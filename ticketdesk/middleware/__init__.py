"""
Middleware modules
"""
from .logging_middleware import LoggingMiddleware
from .auth import verify_interaction_signature

__all__ = ["LoggingMiddleware", "verify_interaction_signature"]
