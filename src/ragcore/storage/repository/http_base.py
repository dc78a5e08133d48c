from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from ragcore.core.errors import BackendIOError

from .base import BaseRepository


class HttpRepository(BaseRepository):
    """
    Base for repositories that talk to a REST backend through httpx.

    Every transport error, unexpected status code or undecodable body is
    re-raised as BackendIOError with the original exception chained.
    """

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.headers = dict(headers or {})
        self.auth = auth
        self._owns_client = client is None
        self._client: httpx.AsyncClient | None = client
        self._bound_loop: asyncio.AbstractEventLoop | None = None
        # clients left behind by a loop change, closed by aclose()
        self._stale_clients: list[httpx.AsyncClient] = []

    # ------------ client management -----------------
    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.url, timeout=self.timeout, headers=self.headers, auth=self.auth
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        """
        Ensure we have an httpx.AsyncClient bound to the *current* event loop.
        A client passed in by the caller is used as-is.
        """
        if not self._owns_client:
            assert self._client is not None
            return self._client

        loop = asyncio.get_running_loop()
        if self._client is None or self._bound_loop is not loop:
            # do not aclose() a client created on another loop
            if self._client is not None:
                self._stale_clients.append(self._client)
            self._client = self._new_client()
            self._bound_loop = loop
        return self._client

    async def aclose(self) -> None:
        if not self._owns_client:
            return
        stale, self._stale_clients = self._stale_clients, []
        for client in stale:
            try:
                await client.aclose()
            except RuntimeError as e:
                # its loop is gone; the transport is dropped with it
                self.logger.debug("could not close stale client: %s", e)
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._bound_loop = None

    # ------------ request helpers -------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        allow: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request; 2xx and any status in `allow` are returned, the rest raise.
        """
        client = await self._ensure_client()
        try:
            r = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise BackendIOError(
                f"{method} {path}: {e}", backend=self.backend, operation=operation
            ) from e

        if r.is_success or r.status_code in allow:
            return r
        raise BackendIOError(
            f"{method} {path} returned {r.status_code}: {r.text[:500]}",
            backend=self.backend,
            operation=operation,
        )

    def _json(self, r: httpx.Response, *, operation: str) -> Any:
        try:
            return r.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BackendIOError(
                f"malformed JSON response: {r.text[:200]!r}",
                backend=self.backend,
                operation=operation,
            ) from e
