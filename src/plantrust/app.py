"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from logging import getLogger
from typing import TYPE_CHECKING

from plantrust.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyImportUnitOfWork,
    SqlAlchemyTrustUnitOfWork,
    is_started,
    startup,
)
from plantrust.config import get_trust_config
from plantrust.domain.consensus import ConsensusAggregator
from plantrust.domain.import_conflicts import ImportConflictResolver
from plantrust.domain.lifecycle import TTLLifecycleManager
from plantrust.domain.model import DataSource
from plantrust.domain.ports.unit_of_work import ImportUnitOfWork, TrustUnitOfWork

if TYPE_CHECKING:
    from uuid import UUID

    from plantrust.config import TrustConfig
    from plantrust.domain.consensus import (
        DecayRecalculationStats,
        SubmissionResult,
        VoteResult,
    )
    from plantrust.domain.import_conflicts import ImportBatchResult, PreImportCheck, RecordUpdate
    from plantrust.domain.lifecycle import BackfillReport, CleanupResult, ExpirationStats
    from plantrust.domain.model import ConflictStatus, ImportConflict, RecordType, VoteDirection

TrustUnitOfWorkFactory = Callable[[], TrustUnitOfWork]
ImportUnitOfWorkFactory = Callable[[], ImportUnitOfWork]


log = getLogger(__name__)


def _ensure_started() -> None:
    if not is_started():
        startup()


def build_consensus_aggregator(
    *,
    unit_of_work_factory: TrustUnitOfWorkFactory | None = None,
    config: TrustConfig | None = None,
) -> ConsensusAggregator:
    if unit_of_work_factory is None:
        _ensure_started()
    return ConsensusAggregator(
        unit_of_work_factory or SqlAlchemyTrustUnitOfWork,
        config=config or get_trust_config(),
    )


def build_lifecycle_manager(
    *,
    unit_of_work_factory: TrustUnitOfWorkFactory | None = None,
    config: TrustConfig | None = None,
) -> TTLLifecycleManager:
    if unit_of_work_factory is None:
        _ensure_started()
    return TTLLifecycleManager(
        unit_of_work_factory or SqlAlchemyTrustUnitOfWork,
        config=config or get_trust_config(),
    )


def build_conflict_resolver(
    *, unit_of_work_factory: ImportUnitOfWorkFactory | None = None
) -> ImportConflictResolver:
    if unit_of_work_factory is None:
        _ensure_started()
    return ImportConflictResolver(unit_of_work_factory or SqlAlchemyImportUnitOfWork)


def submit_verification(
    provider_npi: str,
    plan_id: str,
    *,
    accepts: bool,
    source_ip: str | None = None,
    submitted_by: str | None = None,
    location_id: UUID | None = None,
    notes: str | None = None,
    evidence_url: str | None = None,
    unit_of_work_factory: TrustUnitOfWorkFactory | None = None,
) -> SubmissionResult:
    aggregator = build_consensus_aggregator(unit_of_work_factory=unit_of_work_factory)
    return aggregator.submit(
        provider_npi,
        plan_id,
        accepts=accepts,
        source_ip=source_ip,
        submitted_by=submitted_by,
        location_id=location_id,
        notes=notes,
        evidence_url=evidence_url,
    )


def vote_on_verification(
    verification_id: UUID,
    direction: VoteDirection,
    *,
    source_ip: str,
    unit_of_work_factory: TrustUnitOfWorkFactory | None = None,
) -> VoteResult:
    aggregator = build_consensus_aggregator(unit_of_work_factory=unit_of_work_factory)
    return aggregator.vote(verification_id, direction, source_ip=source_ip)


def cleanup_expired(
    *,
    dry_run: bool = False,
    batch_size: int | None = None,
    unit_of_work_factory: TrustUnitOfWorkFactory | None = None,
) -> CleanupResult:
    """Remove expired verification evidence and acceptance records."""

    manager = build_lifecycle_manager(unit_of_work_factory=unit_of_work_factory)
    log.info("Starting expired evidence cleanup: dry_run=%s, batch_size=%s", dry_run, batch_size)
    return manager.cleanup_expired(dry_run=dry_run, batch_size=batch_size)


def expiration_stats(
    *, unit_of_work_factory: TrustUnitOfWorkFactory | None = None
) -> ExpirationStats:
    manager = build_lifecycle_manager(unit_of_work_factory=unit_of_work_factory)
    return manager.get_expiration_stats()


def backfill_expirations(
    *,
    apply: bool = False,
    unit_of_work_factory: TrustUnitOfWorkFactory | None = None,
) -> BackfillReport:
    manager = build_lifecycle_manager(unit_of_work_factory=unit_of_work_factory)
    return manager.backfill_expirations(apply=apply)


def recalculate_confidence(
    *,
    dry_run: bool = False,
    limit: int | None = None,
    batch_size: int | None = None,
    unit_of_work_factory: TrustUnitOfWorkFactory | None = None,
) -> DecayRecalculationStats:
    """Apply recency decay to every verified acceptance."""

    aggregator = build_consensus_aggregator(unit_of_work_factory=unit_of_work_factory)
    return aggregator.recalculate_scores(dry_run=dry_run, limit=limit, batch_size=batch_size)


def apply_import_batch(
    updates: Iterable[RecordUpdate],
    *,
    incoming_source: DataSource = DataSource.CMS_NPPES,
    unit_of_work_factory: ImportUnitOfWorkFactory | None = None,
) -> ImportBatchResult:
    resolver = build_conflict_resolver(unit_of_work_factory=unit_of_work_factory)
    return resolver.apply_batch(updates, incoming_source=incoming_source)


def list_pending_conflicts(
    *,
    limit: int = 50,
    record_type: RecordType | None = None,
    unit_of_work_factory: ImportUnitOfWorkFactory | None = None,
) -> list[ImportConflict]:
    resolver = build_conflict_resolver(unit_of_work_factory=unit_of_work_factory)
    return resolver.pending_conflicts(limit, record_type=record_type)


def resolve_import_conflict(
    conflict_id: UUID,
    outcome: ConflictStatus,
    *,
    unit_of_work_factory: ImportUnitOfWorkFactory | None = None,
) -> ImportConflict:
    resolver = build_conflict_resolver(unit_of_work_factory=unit_of_work_factory)
    return resolver.resolve_conflict(conflict_id, outcome)


def pre_import_check(
    *, unit_of_work_factory: ImportUnitOfWorkFactory | None = None
) -> PreImportCheck:
    resolver = build_conflict_resolver(unit_of_work_factory=unit_of_work_factory)
    return resolver.pre_import_check()
