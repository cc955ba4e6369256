"""Deterministic confidence scoring for provider/plan acceptance facts.

A score is the sum of four bounded factors:

* data source authority (0-25)
* recency of the last verification, decaying per specialty (0-30)
* maturity of the verification count (0-25)
* community agreement from up/down votes (0-20)

Nothing here touches storage or the wall clock; callers pass ``now``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from plantrust.config import DEFAULT_TRUST_CONFIG, ConfigurationError
from plantrust.domain.clock import ensure_aware
from plantrust.domain.errors import ValidationError
from plantrust.domain.model import (
    ConfidenceFactors,
    ConfidenceLevel,
    DataSource,
    SpecialtyCategory,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from plantrust.config import TrustConfig

MAX_DATA_SOURCE_SCORE: Final[int] = 25
MAX_RECENCY_SCORE: Final[int] = 30
MAX_VERIFICATION_SCORE: Final[int] = 25
MAX_AGREEMENT_SCORE: Final[int] = 20
UNKNOWN_SOURCE_SCORE: Final[int] = 10
NEUTRAL_AGREEMENT_SCORE: Final[int] = 10
REVERIFY_FRACTION: Final[float] = 0.8

DEFAULT_SOURCE_WEIGHTS: Final[Mapping[DataSource, int]] = MappingProxyType(
    {
        DataSource.CMS_NPPES: 25,
        DataSource.CMS_PLAN_FINDER: 25,
        DataSource.CARRIER_API: 20,
        DataSource.PROVIDER_PORTAL: 20,
        DataSource.ENRICHMENT: 20,
        DataSource.USER_UPLOAD: 15,
        DataSource.PHONE_CALL: 15,
        DataSource.CROWDSOURCE: 15,
        DataSource.AUTOMATED: 10,
    }
)

# Mental health networks churn fastest; hospital-based rosters are the most stable.
DEFAULT_FRESHNESS_THRESHOLDS: Final[Mapping[SpecialtyCategory, timedelta]] = MappingProxyType(
    {
        SpecialtyCategory.MENTAL_HEALTH: timedelta(days=30),
        SpecialtyCategory.PRIMARY_CARE: timedelta(days=60),
        SpecialtyCategory.SPECIALIST: timedelta(days=60),
        SpecialtyCategory.HOSPITAL_BASED: timedelta(days=90),
        SpecialtyCategory.OTHER: timedelta(days=60),
    }
)

_SPECIALTY_KEYWORDS: Final[tuple[tuple[SpecialtyCategory, tuple[str, ...]], ...]] = (
    (
        SpecialtyCategory.MENTAL_HEALTH,
        (
            "psychiatr",
            "psycholog",
            "mental health",
            "behavioral health",
            "counselor",
            "therapist",
        ),
    ),
    (
        SpecialtyCategory.PRIMARY_CARE,
        (
            "family medicine",
            "family practice",
            "internal medicine",
            "general practice",
            "primary care",
        ),
    ),
    (
        SpecialtyCategory.HOSPITAL_BASED,
        ("hospital", "radiology", "anesthesiology", "pathology", "emergency medicine"),
    ),
)

# Ratio floors checked top-down; anything below the last one scores zero.
_AGREEMENT_STEPS: Final[tuple[tuple[float, int], ...]] = (
    (1.0, 20),
    (0.8, 15),
    (0.6, 10),
    (0.4, 5),
)

_LEVEL_FLOORS: Final[tuple[tuple[int, ConfidenceLevel], ...]] = (
    (91, ConfidenceLevel.VERY_HIGH),
    (76, ConfidenceLevel.HIGH),
    (51, ConfidenceLevel.MEDIUM),
    (26, ConfidenceLevel.LOW),
)


def categorize_specialty(specialty: str | None) -> SpecialtyCategory:
    """Map free-text specialty or taxonomy wording onto a freshness category."""

    if specialty is None or not specialty.strip():
        return SpecialtyCategory.OTHER
    lowered = specialty.lower()
    for category, keywords in _SPECIALTY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return SpecialtyCategory.SPECIALIST


@dataclass(frozen=True, slots=True)
class ConfidenceInput:
    data_source: DataSource | None
    last_verified_at: datetime | None
    verification_count: int
    upvotes: int = 0
    downvotes: int = 0
    specialty: str | None = None


@dataclass(frozen=True, slots=True)
class ConfidenceMetadata:
    specialty_category: SpecialtyCategory
    freshness_threshold_days: int
    days_since_verification: int | None
    days_until_stale: int | None
    is_stale: bool
    recommend_reverification: bool
    explanation: str


@dataclass(frozen=True, slots=True)
class ConfidenceResult:
    score: int
    level: ConfidenceLevel
    factors: ConfidenceFactors
    metadata: ConfidenceMetadata


class ConfidenceScorer:
    """Score acceptance facts from their evidence.

    Lookup tables are checked once at construction so that a missing
    ``DataSource`` or ``SpecialtyCategory`` entry fails loudly instead of
    silently falling back to a default at scoring time.
    """

    def __init__(
        self,
        config: TrustConfig = DEFAULT_TRUST_CONFIG,
        *,
        source_weights: Mapping[DataSource, int] = DEFAULT_SOURCE_WEIGHTS,
        freshness_thresholds: Mapping[SpecialtyCategory, timedelta] = DEFAULT_FRESHNESS_THRESHOLDS,
    ) -> None:
        missing_sources = set(DataSource) - set(source_weights)
        if missing_sources:
            names = ", ".join(sorted(source.value for source in missing_sources))
            raise ConfigurationError(f"Source weights missing for: {names}")
        for source, weight in source_weights.items():
            if not 0 <= weight <= MAX_DATA_SOURCE_SCORE:
                raise ConfigurationError(
                    f"Weight for {source.value} must be within 0-{MAX_DATA_SOURCE_SCORE}"
                )
        missing_categories = set(SpecialtyCategory) - set(freshness_thresholds)
        if missing_categories:
            names = ", ".join(sorted(category.value for category in missing_categories))
            raise ConfigurationError(f"Freshness thresholds missing for: {names}")
        for category, threshold in freshness_thresholds.items():
            if threshold <= timedelta(0):
                raise ConfigurationError(
                    f"Freshness threshold for {category.value} must be positive"
                )

        self._config = config
        self._source_weights = MappingProxyType(dict(source_weights))
        self._freshness_thresholds = MappingProxyType(dict(freshness_thresholds))

    @property
    def min_verifications(self) -> int:
        return self._config.min_verifications_for_consensus

    def score(self, evidence: ConfidenceInput, *, now: datetime) -> ConfidenceResult:
        if evidence.verification_count < 0:
            raise ValidationError("verification_count must be non-negative")
        if evidence.upvotes < 0 or evidence.downvotes < 0:
            raise ValidationError("vote tallies must be non-negative")

        now = ensure_aware(now)
        category = categorize_specialty(evidence.specialty)
        threshold = self._freshness_thresholds[category]
        elapsed = (
            None
            if evidence.last_verified_at is None
            else now - ensure_aware(evidence.last_verified_at)
        )

        factors = ConfidenceFactors(
            data_source_score=self.data_source_score(evidence.data_source),
            recency_score=self.recency_score(elapsed, threshold),
            verification_score=self.verification_score(evidence.verification_count),
            agreement_score=self.agreement_score(evidence.upvotes, evidence.downvotes),
        )
        total = max(0, min(100, factors.total))
        level = self.level_for(total, evidence.verification_count)
        metadata = self._metadata(category, threshold, elapsed, evidence, level, total)
        return ConfidenceResult(score=total, level=level, factors=factors, metadata=metadata)

    def data_source_score(self, source: DataSource | None) -> int:
        if source is None:
            return UNKNOWN_SOURCE_SCORE
        return self._source_weights.get(source, UNKNOWN_SOURCE_SCORE)

    def recency_score(self, elapsed: timedelta | None, threshold: timedelta) -> int:
        """Linear decay from full marks at zero elapsed time to nothing at twice the threshold."""

        if elapsed is None:
            return 0
        if elapsed <= timedelta(0):
            return MAX_RECENCY_SCORE
        remaining = 1 - elapsed / (threshold * 2)
        if remaining <= 0:
            return 0
        return round(MAX_RECENCY_SCORE * remaining)

    def verification_score(self, count: int) -> int:
        if count <= 0:
            return 0
        minimum = self.min_verifications
        if count >= minimum:
            return MAX_VERIFICATION_SCORE
        steps = max(minimum - 2, 1)
        return min(15, round(10 + 5 * (count - 1) / steps))

    def agreement_score(self, upvotes: int, downvotes: int) -> int:
        total = upvotes + downvotes
        if total == 0:
            return NEUTRAL_AGREEMENT_SCORE
        ratio = upvotes / total
        for floor, points in _AGREEMENT_STEPS:
            if ratio >= floor:
                return points
        return 0

    def level_for(self, score: int, verification_count: int) -> ConfidenceLevel:
        level = ConfidenceLevel.VERY_LOW
        for floor, candidate in _LEVEL_FLOORS:
            if score >= floor:
                level = candidate
                break
        if 0 < verification_count < self.min_verifications and level in (
            ConfidenceLevel.VERY_HIGH,
            ConfidenceLevel.HIGH,
        ):
            return ConfidenceLevel.MEDIUM
        return level

    def _metadata(
        self,
        category: SpecialtyCategory,
        threshold: timedelta,
        elapsed: timedelta | None,
        evidence: ConfidenceInput,
        level: ConfidenceLevel,
        score: int,
    ) -> ConfidenceMetadata:
        threshold_days = threshold.days
        if elapsed is None:
            days_since = None
            days_until_stale = None
            is_stale = True
            recommend = True
        else:
            days_since = max(0, math.floor(elapsed / timedelta(days=1)))
            days_until_stale = max(0, threshold_days - days_since)
            is_stale = elapsed > threshold
            recommend = is_stale or elapsed > threshold * REVERIFY_FRACTION
        return ConfidenceMetadata(
            specialty_category=category,
            freshness_threshold_days=threshold_days,
            days_since_verification=days_since,
            days_until_stale=days_until_stale,
            is_stale=is_stale,
            recommend_reverification=recommend,
            explanation=self._explain(category, threshold_days, days_since, evidence, level, score),
        )

    def _explain(
        self,
        category: SpecialtyCategory,
        threshold_days: int,
        days_since: int | None,
        evidence: ConfidenceInput,
        level: ConfidenceLevel,
        score: int,
    ) -> str:
        parts = [f"Confidence {score}/100 ({level.value.replace('_', ' ')})."]
        if days_since is None:
            parts.append("This acceptance has never been verified.")
        elif days_since > threshold_days:
            parts.append(
                f"Last verified {days_since} days ago, beyond the {threshold_days}-day "
                f"freshness window for {category.value.replace('_', ' ')} providers."
            )
        else:
            parts.append(f"Last verified {days_since} days ago.")
        count = evidence.verification_count
        minimum = self.min_verifications
        if count == 0:
            parts.append("No community verifications yet.")
        elif count < minimum:
            parts.append(
                f"{count} of {minimum} verifications needed for consensus; "
                "confidence is capped at medium."
            )
        else:
            parts.append(f"Verified by {count} independent submissions.")
        votes = evidence.upvotes + evidence.downvotes
        if votes:
            parts.append(f"{evidence.upvotes} of {votes} votes agree.")
        return " ".join(parts)


__all__ = [
    "DEFAULT_FRESHNESS_THRESHOLDS",
    "DEFAULT_SOURCE_WEIGHTS",
    "ConfidenceInput",
    "ConfidenceMetadata",
    "ConfidenceResult",
    "ConfidenceScorer",
    "categorize_specialty",
]
