"""User directory client over HTTP.

Looks users up with ``GET {base_url}/users/{user_id}``. A 404 means the user
does not exist; every other failure raises DirectoryLookupError, which the
enrichment and timezone layers degrade on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Self
from urllib.parse import quote

import aiohttp

from notify_dispatch.core.errors import DirectoryLookupError
from notify_dispatch.types import DirectoryUser
from notify_dispatch.utils.sanitization import sanitize_url

__all__ = ["HttpUserDirectory", "parse_directory_user"]


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def parse_directory_user(user_id: str, body: Mapping[str, object]) -> DirectoryUser:
    """Build a DirectoryUser from a directory JSON payload.

    Both ``user_type`` and ``userType`` spellings are accepted.
    """
    metadata = body.get("metadata")
    return DirectoryUser(
        user_id=_optional_str(body.get("id")) or user_id,
        email=_optional_str(body.get("email")),
        phone=_optional_str(body.get("phone")),
        user_type=_optional_str(body.get("user_type", body.get("userType"))),
        timezone=_optional_str(body.get("timezone")),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},  # pyright: ignore[reportUnknownArgumentType]  # JSON boundary
    )


class HttpUserDirectory:
    """Async user directory client backed by an aiohttp session.

    Example:
        >>> async with HttpUserDirectory("https://users.internal") as directory:
        ...     user = await directory.get_by_id("u-1")
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 5.0,
        headers: Mapping[str, str] | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            msg = "timeout_seconds must be greater than zero"
            raise ValueError(msg)
        self._base_url: str = base_url.rstrip("/")
        self._timeout_seconds: float = timeout_seconds
        self._headers: dict[str, str] = dict(headers or {})
        self._session: aiohttp.ClientSession | None = session
        self._owns_session: bool = session is None
        self._logger: logging.Logger = logging.getLogger(__name__)

    async def __aenter__(self) -> Self:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
                headers=self._headers,
            )
            self._owns_session = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def get_by_id(self, user_id: str) -> DirectoryUser | None:
        """Fetch one user; None when the directory answers 404.

        Raises:
            DirectoryLookupError: On timeouts, connection errors, non-404 error
                statuses or malformed bodies
        """
        if self._session is None:
            msg = "Directory session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)

        url = f"{self._base_url}/users/{quote(user_id, safe='')}"
        try:
            async with asyncio.timeout(self._timeout_seconds):
                async with self._session.get(url) as response:
                    if response.status == 404:
                        return None
                    if response.status >= 400:
                        msg = f"Directory returned HTTP {response.status} for {sanitize_url(url)}"
                        raise DirectoryLookupError(msg)
                    body: object = await response.json()  # pyright: ignore[reportAny]  # aiohttp returns Any
        except TimeoutError as exc:
            self._logger.warning("Directory lookup timed out after %.1fs", self._timeout_seconds)
            msg = f"Directory lookup timed out after {self._timeout_seconds:.1f}s"
            raise DirectoryLookupError(msg) from exc
        except (aiohttp.ClientError, ValueError) as exc:
            self._logger.warning("Directory lookup failed for %s: %s", sanitize_url(url), exc)
            msg = f"Directory lookup failed: {type(exc).__name__}"
            raise DirectoryLookupError(msg) from exc

        if not isinstance(body, Mapping):
            msg = "Directory returned a non-object body"
            raise DirectoryLookupError(msg)
        return parse_directory_user(user_id, body)  # pyright: ignore[reportUnknownArgumentType]  # JSON boundary
