"""Authentication protocol used by the route boundary."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from unichat.models.context import Session


@runtime_checkable
class Authenticator(Protocol):
    """Resolves the caller's session from an inbound HTTP request."""

    async def authenticate(self, request: Any) -> Session | None:
        """Return the session, or ``None`` when the caller is anonymous."""
        ...
