"""Blob storage protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BlobStorage(Protocol):
    """Read access to uploaded files."""

    async def get_size(self, url: str) -> int:
        """Return the size of the blob at *url* in bytes, without downloading it."""
        ...

    async def download(self, url: str) -> bytes:
        """Download the blob at *url*."""
        ...
