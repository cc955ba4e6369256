"""Ports for persisting trust evidence and directory records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from plantrust.domain.model import (
    DirectoryRecord,
    ImportConflict,
    InsurancePlan,
    PracticeLocation,
    Provider,
    ProviderPlanAcceptance,
    VerificationLog,
    VoteLog,
)

if TYPE_CHECKING:
    from datetime import datetime, timedelta
    from uuid import UUID

    from plantrust.domain.lifecycle import NotExpiredFilter
    from plantrust.domain.model import (
        ConflictStatus,
        RecordType,
        VerificationStats,
        VoteDirection,
    )


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class ProviderLookup(Protocol):
    """Read access to the provider directory needed by the trust core."""

    def exists(self, npi: str) -> bool: ...

    def specialty(self, npi: str) -> str | None: ...


@runtime_checkable
class PlanLookup(Protocol):
    def exists(self, plan_id: str) -> bool: ...


@runtime_checkable
class ExpiringRepository(Protocol):
    """Retention operations shared by every table carrying ``expires_at``.

    ``expired`` always means ``expires_at <= now``; rows with no expiration
    never expire.
    """

    table_name: str

    def count(self) -> int: ...

    def count_with_expiration(self) -> int: ...

    def count_expired(self, now: datetime) -> int: ...

    def count_expiring_between(self, start: datetime, end: datetime) -> int:
        """Count rows with ``start < expires_at <= end``."""
        ...

    def delete_expired_batch(self, now: datetime, limit: int) -> int: ...

    def count_missing_expiration(self) -> int: ...

    def backfill_expirations(self, ttl: timedelta) -> int: ...


@runtime_checkable
class DirectoryRecordRepository[TRecord: DirectoryRecord](
    Repository[TRecord], Protocol
):
    """Directory records addressed by the identifier an import run uses."""

    def get(self, record_id: str) -> TRecord | None: ...

    def count_enriched(self) -> int: ...


@runtime_checkable
class ProviderRepository(DirectoryRecordRepository[Provider], ProviderLookup, Protocol):
    """Repository contract for providers."""


@runtime_checkable
class PracticeLocationRepository(DirectoryRecordRepository[PracticeLocation], Protocol):
    """Repository contract for practice locations."""


@runtime_checkable
class PlanRepository(Repository[InsurancePlan], PlanLookup, Protocol):
    def get(self, plan_id: str) -> InsurancePlan | None: ...


@runtime_checkable
class AcceptanceRepository(Repository[ProviderPlanAcceptance], ExpiringRepository, Protocol):
    def get(self, acceptance_id: UUID) -> ProviderPlanAcceptance | None: ...

    def find(
        self, provider_npi: str, plan_id: str, location_id: UUID | None = None
    ) -> ProviderPlanAcceptance | None:
        """Return the acceptance for exactly this key; ``None`` location means location-less."""
        ...

    def record_verification(
        self, acceptance: ProviderPlanAcceptance, *, at: datetime, restart: bool = False
    ) -> None:
        """Atomically bump ``verification_count`` and stamp ``last_verified_at``.

        With ``restart`` the count is set to 1 instead, for acceptances whose
        evidence has all expired.
        """
        ...

    def count_verified(self) -> int: ...

    def list_verified_after(
        self, after_id: UUID | None, limit: int
    ) -> list[ProviderPlanAcceptance]:
        """Keyset page of acceptances with at least one verification, ordered by id."""
        ...


@runtime_checkable
class VerificationRepository(Repository[VerificationLog], ExpiringRepository, Protocol):
    def get(self, verification_id: UUID) -> VerificationLog | None: ...

    def has_recent_submission(
        self,
        provider_npi: str,
        plan_id: str,
        *,
        since: datetime,
        source_ip: str | None,
        submitted_by: str | None,
        live: NotExpiredFilter,
    ) -> bool: ...

    def list_for_pair(
        self, provider_npi: str, plan_id: str, *, live: NotExpiredFilter | None
    ) -> list[VerificationLog]:
        """Verifications of the pair, newest first; ``live=None`` includes expired rows."""
        ...

    def list_recent(
        self,
        limit: int,
        *,
        provider_npi: str | None = None,
        plan_id: str | None = None,
        live: NotExpiredFilter | None,
    ) -> list[VerificationLog]: ...

    def increment_vote(self, verification: VerificationLog, direction: VoteDirection) -> None: ...

    def move_vote(
        self,
        verification: VerificationLog,
        *,
        from_direction: VoteDirection,
        to_direction: VoteDirection,
    ) -> None: ...

    def stats(self, *, recent_since: datetime) -> VerificationStats: ...


@runtime_checkable
class VoteRepository(Repository[VoteLog], Protocol):
    def get(self, verification_id: UUID, source_ip: str) -> VoteLog | None: ...

    def change_direction(self, vote: VoteLog, direction: VoteDirection) -> None: ...


@runtime_checkable
class ConflictRepository(Repository[ImportConflict], Protocol):
    def get(self, conflict_id: UUID) -> ImportConflict | None: ...

    def add_unless_exists(self, entity: ImportConflict) -> bool:
        """Insert ``entity``; ``False`` when an identical conflict already exists."""
        ...

    def exists_for(
        self,
        record_type: RecordType,
        target_record_id: str,
        field_name: str,
        incoming_value: str | None,
    ) -> bool: ...

    def mark_resolved(
        self, conflict: ImportConflict, status: ConflictStatus, *, at: datetime
    ) -> bool:
        """Move a pending conflict to ``status``; ``False`` when it was no longer pending."""
        ...

    def list_pending(
        self, limit: int, *, record_type: RecordType | None = None
    ) -> list[ImportConflict]: ...

    def count_pending(self) -> int: ...


__all__ = [
    "AcceptanceRepository",
    "ConflictRepository",
    "DirectoryRecordRepository",
    "ExpiringRepository",
    "PlanLookup",
    "PlanRepository",
    "PracticeLocationRepository",
    "ProviderLookup",
    "ProviderRepository",
    "Repository",
    "VerificationRepository",
    "VoteRepository",
]
