"""HTTP route boundary (FastAPI)."""

from .app import build_pipeline, create_app, default_stages, error_response, to_http_response
from .auth import TrustedHeaderAuthenticator

__all__ = [
    "TrustedHeaderAuthenticator",
    "build_pipeline",
    "create_app",
    "default_stages",
    "error_response",
    "to_http_response",
]
