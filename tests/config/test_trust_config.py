from __future__ import annotations

from datetime import timedelta

import pytest

from plantrust.config import DEFAULT_TRUST_CONFIG, ConfigurationError, TrustConfig, get_trust_config


def test_defaults() -> None:
    assert DEFAULT_TRUST_CONFIG.verification_ttl == timedelta(days=180)
    assert DEFAULT_TRUST_CONFIG.sybil_window == timedelta(days=30)
    assert DEFAULT_TRUST_CONFIG.min_verifications_for_consensus == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"verification_ttl": timedelta(0)},
        {"sybil_window": timedelta(days=-1)},
        {"min_verifications_for_consensus": 0},
        {"cleanup_batch_size": 0},
        {"recalculation_batch_size": -5},
        {"recent_window": timedelta(0)},
    ],
)
def test_invalid_thresholds_are_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(ConfigurationError):
        TrustConfig(**overrides)  # type: ignore[arg-type]


def test_batch_sizes_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLANTRUST_CLEANUP_BATCH_SIZE", "250")
    monkeypatch.setenv("PLANTRUST_RECALCULATION_BATCH_SIZE", " ")

    config = get_trust_config()

    assert config.cleanup_batch_size == 250
    assert config.recalculation_batch_size == DEFAULT_TRUST_CONFIG.recalculation_batch_size
    assert config.verification_ttl == DEFAULT_TRUST_CONFIG.verification_ttl


def test_batch_size_must_be_numeric(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLANTRUST_CLEANUP_BATCH_SIZE", "lots")

    with pytest.raises(ConfigurationError, match="PLANTRUST_CLEANUP_BATCH_SIZE"):
        get_trust_config()


def test_batch_size_from_environment_is_validated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLANTRUST_RECALCULATION_BATCH_SIZE", "0")

    with pytest.raises(ConfigurationError):
        get_trust_config()
