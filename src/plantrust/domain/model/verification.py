"""Crowdsourced verification audit records and the votes cast on them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final

from plantrust.domain.model.entity import Entity
from plantrust.domain.model.enums import (
    AcceptanceStatus,
    DataSource,
    VerificationType,
    VoteDirection,
)

if TYPE_CHECKING:
    from uuid import UUID

# Anti-abuse signals; stored for auditing only and never handed back to callers.
IDENTIFYING_FIELDS: Final[frozenset[str]] = frozenset({"source_ip", "user_agent", "submitted_by"})


@dataclass(eq=False, kw_only=True)
class VerificationLog(Entity):
    """One physical submission event.

    Provider, plan and acceptance references survive as ``None`` when their parent
    row is removed so the audit trail outlives the fact it describes.
    """

    provider_npi: str | None
    plan_id: str | None
    acceptance_id: UUID | None = None
    verification_type: VerificationType = VerificationType.PLAN_ACCEPTANCE
    verification_source: DataSource = DataSource.CROWDSOURCE
    previous_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    notes: str | None = None
    evidence_url: str | None = None
    is_approved: bool | None = None
    source_ip: str | None = None
    user_agent: str | None = None
    submitted_by: str | None = None
    upvotes: int = 0
    downvotes: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    expires_at: datetime | None = None

    @property
    def submitted_status(self) -> AcceptanceStatus | None:
        if not self.new_value:
            return None
        raw = self.new_value.get("acceptance_status")
        return AcceptanceStatus(raw) if raw else None

    def public_view(self) -> PublicVerification:
        return PublicVerification(
            id=self.id,
            provider_npi=self.provider_npi,
            plan_id=self.plan_id,
            acceptance_id=self.acceptance_id,
            verification_type=self.verification_type,
            verification_source=self.verification_source,
            previous_value=dict(self.previous_value) if self.previous_value else None,
            new_value=dict(self.new_value) if self.new_value else None,
            notes=self.notes,
            evidence_url=self.evidence_url,
            is_approved=self.is_approved,
            upvotes=self.upvotes,
            downvotes=self.downvotes,
            created_at=self.created_at,
            expires_at=self.expires_at,
        )


@dataclass(frozen=True, slots=True)
class PublicVerification:
    """A verification as it may be displayed: no IP, user agent or submitter."""

    id: UUID
    provider_npi: str | None
    plan_id: str | None
    acceptance_id: UUID | None
    verification_type: VerificationType
    verification_source: DataSource
    previous_value: dict[str, Any] | None
    new_value: dict[str, Any] | None
    notes: str | None
    evidence_url: str | None
    is_approved: bool | None
    upvotes: int
    downvotes: int
    created_at: datetime
    expires_at: datetime | None


@dataclass(eq=False, kw_only=True)
class VoteLog(Entity):
    verification_id: UUID
    source_ip: str
    direction: VoteDirection
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass(frozen=True, slots=True)
class VerificationStats:
    total: int
    approved: int
    pending: int
    by_type: dict[VerificationType, int]
    recent_count: int
