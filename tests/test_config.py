"""
Tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from tapwallet.config import FundingPolicy, Settings
from tapwallet.constants import DEFAULT_FEE_RATE, DEFAULT_NETWORK_ID, DUST_THRESHOLD


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    # Keep a developer's .env or exported variables out of the tests
    monkeypatch.chdir(tmp_path)
    for name in ("NETWORK", "FEE_RATE", "FUNDING_POLICY", "KEY_INDEX", "NETWORK_ID"):
        monkeypatch.delenv(f"TAPWALLET_{name}", raising=False)


def test_defaults():
    settings = Settings()
    assert settings.network == "dev"
    assert settings.network_id == DEFAULT_NETWORK_ID
    assert settings.fee_rate == DEFAULT_FEE_RATE
    assert settings.dust_threshold == DUST_THRESHOLD
    assert settings.funding_policy is FundingPolicy.IMMEDIATE


def test_environment(monkeypatch):
    monkeypatch.setenv("TAPWALLET_NETWORK", "prod")
    monkeypatch.setenv("TAPWALLET_FEE_RATE", "25")
    monkeypatch.setenv("TAPWALLET_FUNDING_POLICY", "wait")

    settings = Settings()
    assert settings.network == "prod"
    assert settings.fee_rate == 25
    assert settings.funding_policy is FundingPolicy.WAIT


def test_env_file(tmp_path):
    (tmp_path / ".env").write_text("TAPWALLET_KEY_INDEX=4\n")
    assert Settings().key_index == 4


@pytest.mark.parametrize(
    "overrides",
    [
        {"network": "mainnet"},
        {"fee_rate": 0},
        {"key_index": -1},
        {"network_id": 0x80000000},
        {"funding_poll_attempts": 0},
    ],
)
def test_invalid(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)
