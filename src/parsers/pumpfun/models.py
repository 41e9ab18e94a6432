"""Pydantic v2 models for pump.fun events, accounts and persisted tokens.

u64 amounts are carried as decimal strings so no consumer ever sees a float.
"""

from datetime import datetime

from pydantic import BaseModel

from src.parsers.pumpfun.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL


class CreateEvent(BaseModel):
    """Decoded CreateEvent from a "Program data:" log line."""

    name: str
    symbol: str
    uri: str
    mint: str
    bonding_curve: str
    user: str
    creator: str
    timestamp: int
    virtual_token_reserves: str
    virtual_sol_reserves: str
    real_token_reserves: str
    token_total_supply: str

    model_config = {"extra": "ignore"}


class BondingCurveAccount(BaseModel):
    """Decoded on-chain BondingCurve account snapshot. Never cached."""

    virtual_token_reserves: str
    virtual_sol_reserves: str
    real_token_reserves: str
    real_sol_reserves: str
    token_total_supply: str
    complete: bool
    creator: str

    model_config = {"extra": "ignore"}


class TokenMetadata(BaseModel):
    """Off-chain JSON metadata resolved from a token's URI."""

    name: str = DEFAULT_TOKEN_NAME
    symbol: str = DEFAULT_TOKEN_SYMBOL
    uri: str = ""
    description: str = ""
    image: str = ""

    model_config = {"extra": "ignore"}


# Fields compared when deciding whether an upsert actually changes a row
CONTENT_FIELDS = ("complete", "creator", "name", "symbol", "uri", "description", "image")


class TokenRecord(BaseModel):
    """The persisted unit, identical in both stores."""

    bonding_curve_address: str
    token_address: str
    complete: bool = False
    creator: str
    name: str = DEFAULT_TOKEN_NAME
    symbol: str = DEFAULT_TOKEN_SYMBOL
    uri: str = ""
    description: str = ""
    image: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "ignore"}

    @classmethod
    def from_create_event(
        cls, event: CreateEvent, metadata: TokenMetadata | None
    ) -> "TokenRecord":
        """Build a fresh record from a live CreateEvent.

        Name/symbol come from the event itself; metadata only supplies the
        descriptive fields. Missing metadata persists empty strings.
        """
        return cls(
            bonding_curve_address=event.bonding_curve,
            token_address=event.mint,
            complete=False,
            creator=event.creator,
            name=event.name or DEFAULT_TOKEN_NAME,
            symbol=event.symbol or DEFAULT_TOKEN_SYMBOL,
            uri=event.uri,
            description=metadata.description if metadata else "",
            image=metadata.image if metadata else "",
        )

    @classmethod
    def from_bonding_curve(
        cls,
        bonding_curve_address: str,
        token_address: str,
        curve: BondingCurveAccount,
        metadata: TokenMetadata | None,
    ) -> "TokenRecord":
        meta = metadata or TokenMetadata()
        return cls(
            bonding_curve_address=bonding_curve_address,
            token_address=token_address,
            complete=curve.complete,
            creator=curve.creator,
            name=meta.name or DEFAULT_TOKEN_NAME,
            symbol=meta.symbol or DEFAULT_TOKEN_SYMBOL,
            uri=meta.uri,
            description=meta.description,
            image=meta.image,
        )

    def merged_onto(self, existing: "TokenRecord") -> "TokenRecord":
        """Return this record as it should be stored over ``existing``.

        ``complete`` is one-way: a stored True is never downgraded.
        """
        return self.model_copy(
            update={
                "complete": self.complete or existing.complete,
                "created_at": existing.created_at,
                "updated_at": existing.updated_at,
            }
        )

    def differs_from(self, other: "TokenRecord") -> bool:
        return any(getattr(self, f) != getattr(other, f) for f in CONTENT_FIELDS)
