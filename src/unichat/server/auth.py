"""Authenticators for deployments behind an identity-aware proxy."""

from __future__ import annotations

from fastapi import Request

from unichat.models.context import Session


class TrustedHeaderAuthenticator:
    """Reads the caller's identity from headers set by an upstream proxy.

    Only safe when the service is reachable exclusively through a proxy
    that authenticates users and overwrites these headers.
    """

    def __init__(
        self,
        user_header: str = "X-User-Id",
        name_header: str = "X-User-Name",
        email_header: str = "X-User-Email",
    ) -> None:
        self.user_header = user_header
        self.name_header = name_header
        self.email_header = email_header

    async def authenticate(self, request: Request) -> Session | None:
        user_id = request.headers.get(self.user_header, "").strip()
        if not user_id:
            return None
        return Session(
            user_id=user_id,
            display_name=request.headers.get(self.name_header),
            email=request.headers.get(self.email_header),
        )
