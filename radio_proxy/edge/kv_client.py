"""
Cloudflare Workers KV client.

Writes edge records through the Cloudflare REST API.
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

logger = logging.getLogger(__name__)

# KV rejects expirations closer than this to the current time
MIN_EXPIRATION_TTL_S = 60


class KVWriteError(Exception):
    """Writing to the edge store failed."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class CloudflareKVClient:
    """Workers KV namespace client using the account-scoped REST API."""

    API_BASE = "https://api.cloudflare.com/client/v4"

    def __init__(
        self,
        account_id: str,
        namespace_id: str,
        api_token: str,
        api_base: Optional[str] = None,
        timeout_s: float = 10,
    ):
        """
        Initialize KV client.

        Args:
            account_id: Cloudflare account ID
            namespace_id: KV namespace ID
            api_token: API token with Workers KV write permission
            api_base: Override for the API base URL
            timeout_s: Per-request timeout in seconds
        """
        self.account_id = account_id
        self.namespace_id = namespace_id
        self._api_token = api_token
        self._api_base = (api_base or self.API_BASE).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "CloudflareKVClient":
        """Async context manager entry."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit."""
        await self.close()

    def _new_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            headers={"Authorization": f"Bearer {self._api_token}"},
            timeout=self._timeout,
        )

    async def open(self) -> None:
        if self._session is None:
            self._session = self._new_session()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def value_url(self, key: str) -> str:
        return (
            f"{self._api_base}/accounts/{self.account_id}/storage/kv/namespaces/"
            f"{self.namespace_id}/values/{quote(key, safe='')}"
        )

    async def put(self, key: str, value: str, expiration: Optional[int] = None) -> None:
        """
        Write a value.

        Args:
            key: KV key
            value: Value body
            expiration: Absolute expiry in epoch seconds

        Raises:
            KVWriteError: If the request failed or the API reported failure
        """
        params = {}
        if expiration is not None:
            params["expiration"] = str(expiration)

        url = self.value_url(key)
        try:
            session = self._session
            close_session = False
            if session is None:
                session = self._new_session()
                close_session = True
            try:
                async with session.put(
                    url,
                    params=params,
                    data=value.encode(),
                    headers={"Content-Type": "text/plain"},
                ) as resp:
                    body = await self._read_json(resp)
                    if resp.status != 200 or not body.get("success", False):
                        errors = body.get("errors") or []
                        detail = "; ".join(
                            str(e.get("message", e)) if isinstance(e, dict) else str(e)
                            for e in errors
                        )
                        raise KVWriteError(
                            f"KV write for {key} failed: HTTP {resp.status}"
                            + (f" ({detail})" if detail else ""),
                            status=resp.status,
                        )
            finally:
                if close_session:
                    await session.close()
        except aiohttp.ClientError as e:
            raise KVWriteError(f"KV write for {key} failed: {type(e).__name__}: {e}") from e
        except asyncio.TimeoutError as e:
            raise KVWriteError(f"KV write for {key} timed out") from e

        logger.debug(f"Wrote KV key {key}")

    async def _read_json(self, resp: aiohttp.ClientResponse) -> dict[str, Any]:
        try:
            data = await resp.json(content_type=None)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
