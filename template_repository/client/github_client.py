"""Async GitHub contents API client using httpx."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Protocol

import httpx

from template_repository.config import RepositoryConfig
from template_repository.errors import RemoteError

logger = logging.getLogger("template_repository.client")


class RemoteFetcher(Protocol):
    """What the loader needs from a remote repository."""

    async def list_directory(self, path: str) -> list[dict[str, Any]]: ...

    async def read_file(self, path: str) -> bytes: ...


class GitHubContentsClient:
    """Thin async wrapper around GET /repos/{owner}/{name}/contents/{path}.

    One request per call, no caching and no retries; retry policy belongs
    to the caller. Use as an async context manager so the underlying
    connection pool is closed.
    """

    def __init__(self, config: RepositoryConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_url,
            headers=config.headers,
            timeout=httpx.Timeout(config.timeout, connect=10.0),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubContentsClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_contents(self, path: str) -> Any:
        url = f"/repos/{self._config.repo}/contents/{path}"
        try:
            r = await self._client.get(url, params={"ref": self._config.branch})
            r.raise_for_status()
            return r.json()
        except httpx.HTTPStatusError as e:
            logger.error("GET %s -> %s", url, e.response.status_code)
            raise RemoteError(
                f"GitHub API error: {e.response.status_code} {e.response.reason_phrase}",
                status_code=e.response.status_code,
                path=path,
            ) from e
        except httpx.HTTPError as e:
            logger.error("GET %s failed: %s", url, e)
            raise RemoteError(f"GitHub request failed: {e}", path=path) from e
        except ValueError as e:
            raise RemoteError(f"GitHub returned a non-JSON body for {path}", path=path) from e

    # ==================================================================
    # CONTENTS
    # ==================================================================

    async def list_directory(self, path: str) -> list[dict[str, Any]]:
        contents = await self._get_contents(path)
        if not isinstance(contents, list):
            raise RemoteError(f"Expected directory listing for {path}", path=path)
        return contents

    async def read_file(self, path: str) -> bytes:
        """Fetch a file and strip the base64 transport envelope."""
        file = await self._get_contents(path)
        if (
            not isinstance(file, dict)
            or file.get("type") != "file"
            or not isinstance(file.get("content"), str)
            or not file["content"]
        ):
            raise RemoteError(f"Expected file content for {path}", path=path)
        encoding = file.get("encoding", "base64")
        if encoding != "base64":
            raise RemoteError(f"Unsupported content encoding {encoding!r} for {path}", path=path)
        try:
            # GitHub wraps base64 content at 60 columns
            return base64.b64decode(file["content"].replace("\n", ""), validate=True)
        except (binascii.Error, ValueError) as e:
            raise RemoteError(f"Invalid base64 content for {path}", path=path) from e
