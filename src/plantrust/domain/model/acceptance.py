"""The trust-bearing provider/plan acceptance fact."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from plantrust.domain.model.entity import Entity
from plantrust.domain.model.enums import AcceptanceStatus, DataSource

if TYPE_CHECKING:
    from uuid import UUID

MIN_SCORE = 0
MAX_SCORE = 100


@dataclass(frozen=True, slots=True)
class ConfidenceFactors:
    """Snapshot of the four sub-scores behind a confidence score."""

    data_source_score: int
    recency_score: int
    verification_score: int
    agreement_score: int

    @property
    def total(self) -> int:
        return (
            self.data_source_score
            + self.recency_score
            + self.verification_score
            + self.agreement_score
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "data_source_score": self.data_source_score,
            "recency_score": self.recency_score,
            "verification_score": self.verification_score,
            "agreement_score": self.agreement_score,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, int]) -> ConfidenceFactors:
        return cls(
            data_source_score=int(payload["data_source_score"]),
            recency_score=int(payload["recency_score"]),
            verification_score=int(payload["verification_score"]),
            agreement_score=int(payload["agreement_score"]),
        )


@dataclass(eq=False, kw_only=True)
class ProviderPlanAcceptance(Entity):
    """Whether a provider accepts a plan (optionally at one location), with its trust.

    ``expires_at`` of ``None`` marks a legacy row written before expiration existed;
    such rows are always treated as live.
    """

    provider_npi: str
    plan_id: str
    location_id: UUID | None = None
    acceptance_status: AcceptanceStatus = AcceptanceStatus.UNKNOWN
    confidence_score: int = 0
    confidence_factors: ConfidenceFactors | None = None
    verification_count: int = 0
    last_verified_at: datetime | None = None
    expires_at: datetime | None = None
    data_source: DataSource | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if not MIN_SCORE <= self.confidence_score <= MAX_SCORE:
            raise ValueError(f"confidence_score out of range: {self.confidence_score}")
        if self.verification_count < 0:
            raise ValueError("verification_count must be non-negative")
        if self.expires_at is not None and self.expires_at < self.created_at:
            raise ValueError("expires_at must not precede created_at")

    def apply_confidence(self, score: int, factors: ConfidenceFactors, *, at: datetime) -> None:
        if not MIN_SCORE <= score <= MAX_SCORE:
            raise ValueError(f"confidence_score out of range: {score}")
        self.confidence_score = score
        self.confidence_factors = factors
        self.updated_at = at

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now
