"""Decode pump.fun CreateEvent log payloads and BondingCurve account data.

Both use Anchor's Borsh layout, little-endian:
  u64/i64  8 bytes
  bool     1 byte
  pubkey   32 bytes
  string   u32 length prefix + utf-8 bytes

CreateEvent (after the 8-byte discriminator):
  name, symbol, uri (string)
  mint, bonding_curve, user, creator (pubkey)
  timestamp (i64)
  virtual_token_reserves, virtual_sol_reserves,
  real_token_reserves, token_total_supply (u64)

Newer program versions append fields after token_total_supply; trailing
bytes are ignored.

BondingCurve account: discriminator, 5 x u64, complete (bool), creator (pubkey).
"""

import base64
import binascii
import struct
from dataclasses import dataclass
from enum import Enum

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from src.parsers.pumpfun.constants import (
    BONDING_CURVE_ACCOUNT_SIZE,
    BONDING_CURVE_DISCRIMINATOR,
    CREATE_EVENT_DISCRIMINATOR,
    PROGRAM_DATA_MARKER,
)
from src.parsers.pumpfun.models import BondingCurveAccount, CreateEvent


class MalformedPayloadError(ValueError):
    """Discriminator matched but the remaining bytes do not fit the layout."""


class DecodeStatus(Enum):
    MATCHED = "matched"
    NOT_MATCHED = "not_matched"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class DecodeResult:
    status: DecodeStatus
    event: CreateEvent | None = None
    error: str | None = None

    @property
    def matched(self) -> bool:
        return self.status is DecodeStatus.MATCHED


NOT_MATCHED = DecodeResult(DecodeStatus.NOT_MATCHED)


class _BorshReader:
    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = data
        self._offset = offset

    def _take(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._data):
            raise MalformedPayloadError(
                f"need {size} bytes at offset {self._offset}, have {len(self._data) - self._offset}"
            )
        chunk = self._data[self._offset : end]
        self._offset = end
        return chunk

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def i64(self) -> int:
        return struct.unpack("<q", self._take(8))[0]

    def boolean(self) -> bool:
        value = self._take(1)[0]
        if value > 1:
            raise MalformedPayloadError(f"invalid bool byte {value}")
        return value == 1

    def pubkey(self) -> str:
        return str(Pubkey.from_bytes(self._take(32)))

    def string(self) -> str:
        length = self.u32()
        return self._take(length).decode("utf-8", errors="replace")


def decode_create_event(payload: bytes) -> CreateEvent:
    """Decode a full CreateEvent payload (discriminator included).

    Raises MalformedPayloadError if the discriminator is wrong or the
    payload is truncated.
    """
    if payload[:8] != CREATE_EVENT_DISCRIMINATOR:
        raise MalformedPayloadError("not a CreateEvent discriminator")

    reader = _BorshReader(payload, offset=8)
    return CreateEvent(
        name=reader.string(),
        symbol=reader.string(),
        uri=reader.string(),
        mint=reader.pubkey(),
        bonding_curve=reader.pubkey(),
        user=reader.pubkey(),
        creator=reader.pubkey(),
        timestamp=reader.i64(),
        virtual_token_reserves=str(reader.u64()),
        virtual_sol_reserves=str(reader.u64()),
        real_token_reserves=str(reader.u64()),
        token_total_supply=str(reader.u64()),
    )


def extract_program_data(log_line: str) -> bytes | None:
    """Return the base64-decoded bytes after "Program data:", or None."""
    _, marker, rest = log_line.partition(PROGRAM_DATA_MARKER)
    if not marker:
        return None
    try:
        return base64.b64decode(rest.strip(), validate=True)
    except (binascii.Error, ValueError):
        return None


def try_decode_create_event(log_line: str) -> DecodeResult:
    """Match and decode a CreateEvent from a single log line. Never raises.

    NOT_MATCHED covers lines without the marker, undecodable base64, short
    payloads and other event types. MALFORMED means the discriminator
    matched but the payload did not fit the layout.
    """
    payload = extract_program_data(log_line)
    if payload is None or len(payload) < 8:
        return NOT_MATCHED

    if payload[:8] != CREATE_EVENT_DISCRIMINATOR:
        return NOT_MATCHED

    try:
        event = decode_create_event(payload)
    except (MalformedPayloadError, ValueError, struct.error) as e:
        return DecodeResult(DecodeStatus.MALFORMED, error=str(e))

    return DecodeResult(DecodeStatus.MATCHED, event=event)


def decode_bonding_curve(data: bytes) -> BondingCurveAccount:
    """Decode raw BondingCurve account bytes.

    Raises MalformedPayloadError on short data or wrong discriminator.
    """
    if len(data) < BONDING_CURVE_ACCOUNT_SIZE:
        raise MalformedPayloadError(
            f"bonding curve data too short: {len(data)} < {BONDING_CURVE_ACCOUNT_SIZE}"
        )
    if data[:8] != BONDING_CURVE_DISCRIMINATOR:
        raise MalformedPayloadError("wrong bonding curve discriminator")

    reader = _BorshReader(data, offset=8)
    return BondingCurveAccount(
        virtual_token_reserves=str(reader.u64()),
        virtual_sol_reserves=str(reader.u64()),
        real_token_reserves=str(reader.u64()),
        real_sol_reserves=str(reader.u64()),
        token_total_supply=str(reader.u64()),
        complete=reader.boolean(),
        creator=reader.pubkey(),
    )
