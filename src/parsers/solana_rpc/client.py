"""Solana JSON-RPC 2.0 client over httpx.

Transport and error classification live on the client. Rate-limit retry is
opt-in through ``retry_rate_limited`` so each caller picks its own ceiling.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from loguru import logger

# JSON-RPC error codes providers use for throttling
RATE_LIMIT_CODES = {429, -32429, -32005}

T = TypeVar("T")


class RpcError(Exception):
    """Terminal JSON-RPC or HTTP error."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class RpcRateLimitedError(RpcError):
    """HTTP 429 or a throttling JSON-RPC error code."""


class SolanaRpcClient:
    """Async JSON-RPC client for a Solana node (Helius or any public RPC)."""

    def __init__(self, rpc_url: str, *, timeout: float = 15.0, commitment: str = "confirmed") -> None:
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._client = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: list | dict) -> Any:
        """Issue one JSON-RPC call and return its ``result``.

        Raises RpcRateLimitedError on throttling, RpcError on any other
        RPC-level failure, httpx.HTTPError on transport failure.
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        resp = await self._client.post(self._rpc_url, json=payload)

        if resp.status_code == 429:
            raise RpcRateLimitedError(f"{method}: HTTP 429", code=429)
        if resp.status_code != 200:
            raise RpcError(f"{method}: HTTP {resp.status_code}", code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise RpcError(f"{method}: invalid JSON response") from e

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if code in RATE_LIMIT_CODES:
                raise RpcRateLimitedError(f"{method}: {message}", code=code)
            logger.debug(f"[RPC] {method} error {code}: {message}")
            raise RpcError(f"{method}: {message}", code=code)

        return data.get("result")

    async def get_account_info(self, address: str) -> dict | None:
        """Return the account ``value`` (data as [base64, "base64"]) or None."""
        result = await self.call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self._commitment}],
        )
        if not result:
            return None
        return result.get("value")

    async def get_token_accounts_by_owner(self, owner: str, program_id: str) -> list[dict]:
        result = await self.call(
            "getTokenAccountsByOwner",
            [
                owner,
                {"programId": program_id},
                {"encoding": "jsonParsed", "commitment": self._commitment},
            ],
        )
        if not result:
            return []
        return result.get("value", [])

    async def get_program_accounts(
        self,
        program_id: str,
        *,
        filters: list[dict],
        data_slice: dict | None = None,
    ) -> list[dict]:
        config: dict[str, Any] = {"encoding": "base64", "filters": filters}
        if data_slice is not None:
            config["dataSlice"] = data_slice
        result = await self.call("getProgramAccounts", [program_id, config])
        return result or []

    async def get_asset(self, asset_id: str) -> dict | None:
        """Fetch asset metadata via the Helius DAS ``getAsset`` method."""
        return await self.call(
            "getAsset",
            {
                "id": asset_id,
                "options": {
                    "showInscription": False,
                    "showFungible": False,
                    "showCollectionMetadata": False,
                    "showUnverifiedCollections": False,
                },
            },
        )


async def retry_rate_limited(
    call: Callable[[], Awaitable[T]],
    *,
    label: str,
    max_attempts: int = 5,
    cooldown_sec: float = 1.0,
) -> T:
    """Run ``call``, waiting out rate limits up to ``max_attempts`` times.

    Re-raises the last RpcRateLimitedError once attempts are spent. Any
    other error propagates on the first occurrence.
    """
    for attempt in range(max_attempts):
        try:
            return await call()
        except RpcRateLimitedError:
            if attempt == max_attempts - 1:
                raise
            logger.debug(f"[RPC] Rate limit hit on {label}, waiting {cooldown_sec:.0f}s")
            await asyncio.sleep(cooldown_sec)
    raise RpcRateLimitedError(f"{label}: no attempts configured")
