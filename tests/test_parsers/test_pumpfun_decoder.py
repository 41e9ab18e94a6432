"""Test pump.fun CreateEvent and BondingCurve decoders."""

import base64
import os

import pytest

from src.parsers.pumpfun.constants import CREATE_EVENT_DISCRIMINATOR
from src.parsers.pumpfun.decoder import (
    DecodeStatus,
    MalformedPayloadError,
    decode_bonding_curve,
    decode_create_event,
    extract_program_data,
    try_decode_create_event,
)
from tests.helpers import (
    BONDING_CURVE,
    CREATOR,
    MINT,
    USER,
    build_bonding_curve_data,
    build_create_event_payload,
    program_data_line,
)


def test_decodes_known_field_values():
    payload = build_create_event_payload(
        name="Moon Cat",
        symbol="MCAT",
        uri="https://ipfs.example/mcat.json",
        timestamp=1_712_345_678,
        virtual_token_reserves=2**64 - 1,
    )
    result = try_decode_create_event(program_data_line(payload))

    assert result.status is DecodeStatus.MATCHED
    event = result.event
    assert event is not None
    assert event.name == "Moon Cat"
    assert event.symbol == "MCAT"
    assert event.uri == "https://ipfs.example/mcat.json"
    assert event.mint == MINT
    assert event.bonding_curve == BONDING_CURVE
    assert event.user == USER
    assert event.creator == CREATOR
    assert event.timestamp == 1_712_345_678
    # u64 max survives as an exact decimal string
    assert event.virtual_token_reserves == "18446744073709551615"
    assert event.virtual_sol_reserves == "30000000000"
    assert event.real_token_reserves == "793100000000000"
    assert event.token_total_supply == "1000000000000000"


def test_strings_are_length_prefixed_not_fixed_width():
    long_name = "N" * 300
    payload = build_create_event_payload(name=long_name, symbol="", uri="")
    event = decode_create_event(payload)
    assert event.name == long_name
    assert event.symbol == ""
    assert event.mint == MINT


def test_trailing_bytes_are_ignored():
    payload = build_create_event_payload() + b"\x00" * 40
    assert try_decode_create_event(program_data_line(payload)).matched


@pytest.mark.parametrize(
    "prefix",
    [
        bytes(8),
        bytes([27, 114, 169, 77, 222, 235, 99, 119]),
        bytes([118, 99, 235, 222, 77, 169, 114, 27]),
        os.urandom(8),
    ],
)
def test_discriminator_gate(prefix):
    if prefix == CREATE_EVENT_DISCRIMINATOR:
        pytest.skip("random prefix collided with the discriminator")
    valid_body = build_create_event_payload()[8:]
    for body in (valid_body, b"", b"\xff" * 500):
        result = try_decode_create_event(program_data_line(prefix + body))
        assert result.status is DecodeStatus.NOT_MATCHED
        assert result.event is None


def test_line_without_marker_is_not_matched():
    line = "Program 6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P invoke [1]"
    assert try_decode_create_event(line).status is DecodeStatus.NOT_MATCHED


def test_short_payload_is_not_matched():
    line = program_data_line(CREATE_EVENT_DISCRIMINATOR[:7])
    assert try_decode_create_event(line).status is DecodeStatus.NOT_MATCHED


def test_invalid_base64_is_not_matched():
    assert extract_program_data("Program data: !!!not base64!!!") is None
    result = try_decode_create_event("Program data: !!!not base64!!!")
    assert result.status is DecodeStatus.NOT_MATCHED


def test_truncated_payload_is_malformed():
    payload = build_create_event_payload()[:60]
    result = try_decode_create_event(program_data_line(payload))
    assert result.status is DecodeStatus.MALFORMED
    assert result.event is None
    assert result.error


def test_oversized_string_length_is_malformed():
    payload = CREATE_EVENT_DISCRIMINATOR + (10_000).to_bytes(4, "little") + b"abc"
    result = try_decode_create_event(program_data_line(payload))
    assert result.status is DecodeStatus.MALFORMED


def test_extract_program_data_strips_whitespace():
    payload = build_create_event_payload()
    line = f"Program data:   {base64.b64encode(payload).decode()}  "
    assert extract_program_data(line) == payload


def test_decode_bonding_curve():
    curve = decode_bonding_curve(build_bonding_curve_data(complete=True))
    assert curve.complete is True
    assert curve.creator == CREATOR
    assert curve.virtual_token_reserves == "1073000000000000"
    assert curve.real_sol_reserves == "0"
    assert curve.token_total_supply == "1000000000000000"


def test_decode_bonding_curve_rejects_short_data():
    with pytest.raises(MalformedPayloadError):
        decode_bonding_curve(build_bonding_curve_data()[:40])


def test_decode_bonding_curve_rejects_wrong_discriminator():
    data = bytearray(build_bonding_curve_data())
    data[0] ^= 0xFF
    with pytest.raises(MalformedPayloadError):
        decode_bonding_curve(bytes(data))
