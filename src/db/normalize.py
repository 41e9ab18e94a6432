"""Field normalisation for copying tokens between stores.

Values arriving from either store (or from legacy documents) are coerced
through a closed set of accepted types. Anything else becomes "" and is
logged, never stringified blindly.
"""

import base64
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal

from loguru import logger
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from src.parsers.pumpfun.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL
from src.parsers.pumpfun.models import TokenRecord

# Legacy documents used camelCase keys
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "bonding_curve_address": ("bonding_curve_address", "bondingCurveAddress"),
    "token_address": ("token_address", "tokenAddress"),
    "complete": ("complete",),
    "creator": ("creator",),
    "name": ("name",),
    "symbol": ("symbol",),
    "uri": ("uri",),
    "description": ("description",),
    "image": ("image",),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
}


def to_safe_string(value: object) -> str:
    """Coerce str / int / Decimal / bytes / Pubkey to str.

    None and unsupported types yield "".
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return str(int(value))
        return format(value, "f")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode()
    if isinstance(value, Pubkey):
        return str(value)
    logger.warning(f"[SYNC] Unsupported value type {type(value).__name__}, using empty string")
    return ""


def to_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, Decimal)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "t", "yes")
    return False


def to_datetime(value: object) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _pick(raw: Mapping, field: str) -> object:
    for key in _FIELD_ALIASES[field]:
        if key in raw:
            return raw[key]
    return None


def normalize_record(raw: Mapping | TokenRecord) -> TokenRecord:
    """Build a clean TokenRecord from a store row or loose document."""
    if isinstance(raw, TokenRecord):
        raw = raw.model_dump()

    return TokenRecord(
        bonding_curve_address=to_safe_string(_pick(raw, "bonding_curve_address")),
        token_address=to_safe_string(_pick(raw, "token_address")),
        complete=to_bool(_pick(raw, "complete")),
        creator=to_safe_string(_pick(raw, "creator")),
        name=to_safe_string(_pick(raw, "name")) or DEFAULT_TOKEN_NAME,
        symbol=to_safe_string(_pick(raw, "symbol")) or DEFAULT_TOKEN_SYMBOL,
        uri=to_safe_string(_pick(raw, "uri")),
        description=to_safe_string(_pick(raw, "description")),
        image=to_safe_string(_pick(raw, "image")),
        created_at=to_datetime(_pick(raw, "created_at")),
        updated_at=to_datetime(_pick(raw, "updated_at")),
    )
