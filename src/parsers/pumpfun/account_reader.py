"""Read pump.fun BondingCurve accounts and resolve their token mint.

Every read returns None for "data temporarily unavailable". None never
means the bonding curve does not exist.
"""

import base64
import binascii
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from loguru import logger
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from src.parsers.pumpfun.constants import (
    BONDING_CURVE_SEED,
    PUMP_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from src.parsers.pumpfun.decoder import MalformedPayloadError, decode_bonding_curve
from src.parsers.pumpfun.models import BondingCurveAccount
from src.parsers.solana_rpc.client import RpcError, SolanaRpcClient, retry_rate_limited

T = TypeVar("T")


class BondingCurveReader:
    """Fetches and decodes bonding curve state via chain RPC."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        *,
        program_id: str = PUMP_PROGRAM_ID,
        max_attempts: int = 5,
        cooldown_sec: float = 1.0,
    ) -> None:
        self._rpc = rpc
        self._program_id = program_id
        self._max_attempts = max_attempts
        self._cooldown = cooldown_sec

    async def _with_cooldown(self, label: str, call: Callable[[], Awaitable[T]]) -> T:
        return await retry_rate_limited(
            call, label=label, max_attempts=self._max_attempts, cooldown_sec=self._cooldown
        )

    async def fetch_bonding_curve(self, address: str) -> BondingCurveAccount | None:
        """getAccountInfo + decode. None on any failure."""
        try:
            value = await self._with_cooldown(
                "getAccountInfo", lambda: self._rpc.get_account_info(address)
            )
        except (RpcError, httpx.HTTPError) as e:
            logger.warning(f"[BCURVE] getAccountInfo failed for {address[:12]}: {e}")
            return None

        if not value:
            logger.info(f"[BCURVE] No account info for {address[:12]}")
            return None

        try:
            raw = value["data"][0]
            return decode_bonding_curve(base64.b64decode(raw))
        except (KeyError, IndexError, TypeError, binascii.Error, MalformedPayloadError) as e:
            logger.warning(f"[BCURVE] Malformed bonding curve {address[:12]}: {e}")
            return None

    async def fetch_mint_from_bonding_curve_ata(self, address: str) -> str | None:
        """Resolve the mint held by the bonding curve's single SPL token account.

        Zero or several token accounts is a logical invariant violation:
        logged as a warning, not retried.
        """
        try:
            accounts = await self._with_cooldown(
                "getTokenAccountsByOwner",
                lambda: self._rpc.get_token_accounts_by_owner(address, TOKEN_PROGRAM_ID),
            )
        except (RpcError, httpx.HTTPError) as e:
            logger.warning(f"[BCURVE] getTokenAccountsByOwner failed for {address[:12]}: {e}")
            return None

        if len(accounts) != 1:
            logger.warning(
                f"[BCURVE] Bonding curve {address[:12]} owns {len(accounts)} SPL token "
                f"accounts, expected exactly 1"
            )
            return None

        try:
            return accounts[0]["account"]["data"]["parsed"]["info"]["mint"]
        except (KeyError, TypeError) as e:
            logger.warning(f"[BCURVE] Unparseable token account for {address[:12]}: {e}")
            return None

    def derive_bonding_curve_address(self, mint: str) -> str:
        """PDA of the bonding curve for ``mint`` (seeds: "bonding-curve", mint)."""
        pda, _bump = Pubkey.find_program_address(
            [BONDING_CURVE_SEED, bytes(Pubkey.from_string(mint))],
            Pubkey.from_string(self._program_id),
        )
        return str(pda)
