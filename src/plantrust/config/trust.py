"""Thresholds governing confidence, consensus and evidence retention."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Final

from .errors import ConfigurationError

# 6 months of 30 days; derived from ~12% annual provider network turnover.
VERIFICATION_TTL: Final[timedelta] = timedelta(days=180)
SYBIL_PREVENTION_WINDOW: Final[timedelta] = timedelta(days=30)
# Three independent verifications reach expert-level agreement (kappa ~0.58).
MIN_VERIFICATIONS_FOR_CONSENSUS: Final[int] = 3
DEFAULT_CLEANUP_BATCH_SIZE: Final[int] = 1000
DEFAULT_RECALCULATION_BATCH_SIZE: Final[int] = 100
RECENT_ACTIVITY_WINDOW: Final[timedelta] = timedelta(hours=24)


@dataclass(frozen=True, slots=True)
class TrustConfig:
    """Immutable thresholds handed to the scorer, guard and lifecycle manager."""

    verification_ttl: timedelta = VERIFICATION_TTL
    sybil_window: timedelta = SYBIL_PREVENTION_WINDOW
    min_verifications_for_consensus: int = MIN_VERIFICATIONS_FOR_CONSENSUS
    cleanup_batch_size: int = DEFAULT_CLEANUP_BATCH_SIZE
    recalculation_batch_size: int = DEFAULT_RECALCULATION_BATCH_SIZE
    recent_window: timedelta = RECENT_ACTIVITY_WINDOW

    def __post_init__(self) -> None:
        if self.verification_ttl <= timedelta(0):
            raise ConfigurationError("verification_ttl must be positive")
        if self.sybil_window < timedelta(0):
            raise ConfigurationError("sybil_window must be non-negative")
        if self.min_verifications_for_consensus < 1:
            raise ConfigurationError("min_verifications_for_consensus must be at least 1")
        if self.cleanup_batch_size < 1:
            raise ConfigurationError("cleanup_batch_size must be at least 1")
        if self.recalculation_batch_size < 1:
            raise ConfigurationError("recalculation_batch_size must be at least 1")
        if self.recent_window <= timedelta(0):
            raise ConfigurationError("recent_window must be positive")


DEFAULT_TRUST_CONFIG: Final[TrustConfig] = TrustConfig()


def _int_from_env(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def get_trust_config() -> TrustConfig:
    """Return the default thresholds with batch-size overrides from the environment.

    Retention and consensus thresholds are fixed; only the batch sizes used by
    scheduled jobs can be tuned per deployment.
    """

    config = DEFAULT_TRUST_CONFIG
    cleanup = _int_from_env("PLANTRUST_CLEANUP_BATCH_SIZE")
    if cleanup is not None:
        config = replace(config, cleanup_batch_size=cleanup)
    recalculation = _int_from_env("PLANTRUST_RECALCULATION_BATCH_SIZE")
    if recalculation is not None:
        config = replace(config, recalculation_batch_size=recalculation)
    return config
