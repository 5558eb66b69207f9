"""Blob storage over plain HTTP."""

from __future__ import annotations

import logging
from collections.abc import Callable
from urllib.parse import urljoin

import httpx

from unichat.logsafe import sanitize_for_log

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5


class HttpBlobStorage:
    """:class:`~unichat.protocols.storage.BlobStorage` that reads blobs with httpx.

    Relative ``/api/...`` paths are resolved against ``base_url``.  One
    ``httpx.AsyncClient`` is kept for the life of the object so connections
    are pooled across requests; call :meth:`aclose` on shutdown.

    Redirects are followed by hand, at most ``MAX_REDIRECTS`` deep, and each
    target must pass ``url_allowed`` (the same host allowlist the file
    processor applies to the original URL).  Without ``url_allowed`` no
    redirect is followed.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 60.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        url_allowed: Callable[[str], bool] | None = None,
    ) -> None:
        self._base_url = base_url
        self._url_allowed = url_allowed
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    def __repr__(self) -> str:
        return f"HttpBlobStorage(base_url={self._base_url!r})"

    def _resolve(self, url: str) -> str:
        if url.startswith("/") and self._base_url:
            return urljoin(self._base_url, url)
        return url

    async def _send(self, method: str, url: str) -> httpx.Response:
        target = self._resolve(url)
        for _ in range(MAX_REDIRECTS + 1):
            resp = await self._client.request(method, target, follow_redirects=False)
            if not resp.is_redirect:
                resp.raise_for_status()
                return resp
            location = urljoin(target, resp.headers["Location"])
            if self._url_allowed is None or not self._url_allowed(location):
                logger.warning(
                    "Refusing blob redirect from %s to %s",
                    sanitize_for_log(target), sanitize_for_log(location),
                )
                msg = f"Blob redirect to a disallowed location: {location}"
                raise httpx.HTTPStatusError(msg, request=resp.request, response=resp)
            target = location
        msg = f"Too many redirects fetching {url}"
        raise httpx.TooManyRedirects(msg, request=resp.request)

    async def get_size(self, url: str) -> int:
        resp = await self._send("HEAD", url)
        length = resp.headers.get("Content-Length")
        if length is None:
            msg = f"No Content-Length for {sanitize_for_log(url)}"
            raise ValueError(msg)
        return int(length)

    async def download(self, url: str) -> bytes:
        resp = await self._send("GET", url)
        logger.debug("Downloaded %d bytes from %s", len(resp.content), sanitize_for_log(url))
        return resp.content

    async def aclose(self) -> None:
        await self._client.aclose()
