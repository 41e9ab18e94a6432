"""Pump.fun program constants."""

PUMP_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

# Anchor event log prefix; everything after it is base64
PROGRAM_DATA_MARKER = "Program data:"

# First 8 bytes of the CreateEvent payload (Anchor event discriminator)
CREATE_EVENT_DISCRIMINATOR = bytes([27, 114, 169, 77, 222, 235, 99, 118])

# First 8 bytes of BondingCurve account data (Anchor account discriminator)
BONDING_CURVE_DISCRIMINATOR = bytes([23, 183, 248, 55, 96, 216, 172, 96])

# 8 discriminator + 5 x u64 + bool + creator pubkey
BONDING_CURVE_ACCOUNT_SIZE = 81

# PDA seed for mint -> bonding curve derivation
BONDING_CURVE_SEED = b"bonding-curve"

DEFAULT_TOKEN_NAME = "Unknown Token"
DEFAULT_TOKEN_SYMBOL = "UNKNOWN"
