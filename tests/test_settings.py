"""Tests for endpoint resolution in settings."""

from config.settings import Settings


def test_defaults():
    s = Settings(_env_file=None)
    assert s.pump_program_id == "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
    assert s.log_commitment == "confirmed"
    assert s.secondary_flush_interval_sec == 300
    assert s.backfill_batch_size == 100
    assert s.sync_chunk_size == 1000


def test_public_rpc_fallback(monkeypatch):
    for var in ("HELIUS_API_KEY", "HELIUS_RPC_URL", "HELIUS_WS_URL", "SOLANA_RPC_URL"):
        monkeypatch.delenv(var, raising=False)
    s = Settings(_env_file=None)
    assert s.rpc_url == "https://api.mainnet-beta.solana.com"
    assert s.ws_url == "wss://api.mainnet-beta.solana.com"


def test_helius_key_builds_both_urls(monkeypatch):
    monkeypatch.delenv("HELIUS_RPC_URL", raising=False)
    monkeypatch.delenv("HELIUS_WS_URL", raising=False)
    s = Settings(_env_file=None, helius_api_key="abc")
    assert s.rpc_url == "https://mainnet.helius-rpc.com/?api-key=abc"
    assert s.ws_url == "wss://mainnet.helius-rpc.com/?api-key=abc"


def test_explicit_urls_win():
    s = Settings(
        _env_file=None,
        helius_api_key="abc",
        helius_rpc_url="https://rpc.example",
        helius_ws_url="wss://ws.example",
    )
    assert s.rpc_url == "https://rpc.example"
    assert s.ws_url == "wss://ws.example"
