"""Expiration lifecycle for verification evidence and acceptance records.

Evidence goes stale: provider networks turn over, so every acceptance and
verification carries an ``expires_at`` set ``verification_ttl`` after it was
last confirmed. This module computes those timestamps, provides the
"not expired" predicate that live queries filter on, and runs the retention
jobs (bounded cleanup, statistics and the one-off backfill of legacy rows).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from plantrust.config import DEFAULT_TRUST_CONFIG
from plantrust.domain.clock import ensure_aware, utcnow
from plantrust.domain.errors import ValidationError
from plantrust.domain.ports.unit_of_work import TrustUnitOfWork

if TYPE_CHECKING:
    from datetime import datetime

    from plantrust.config import TrustConfig
    from plantrust.domain.clock import Clock
    from plantrust.domain.ports.persistence import ExpiringRepository
    from plantrust.domain.ports.unit_of_work import TrustRepositories

UnitOfWorkFactory = Callable[[], TrustUnitOfWork]

EXPIRING_SOON_WINDOW = timedelta(days=7)
EXPIRING_LATER_WINDOW = timedelta(days=30)

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotExpiredFilter:
    """Predicate for live evidence as of ``now``.

    ``expires_at`` of ``None`` is legacy data written before expiration existed
    and always counts as live. Repositories translate the same rule into SQL.
    """

    now: datetime

    def __call__(self, expires_at: datetime | None) -> bool:
        return expires_at is None or expires_at > self.now


@dataclass(frozen=True, slots=True)
class TableExpirationStats:
    total: int
    with_expiration: int
    expired: int
    expiring_within_7_days: int
    expiring_within_30_days: int


@dataclass(frozen=True, slots=True)
class ExpirationStats:
    generated_at: datetime
    tables: dict[str, TableExpirationStats]


@dataclass(slots=True)
class CleanupResult:
    dry_run: bool
    expired: dict[str, int] = field(default_factory=dict[str, int])
    deleted: dict[str, int] = field(default_factory=dict[str, int])

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())


@dataclass(frozen=True, slots=True)
class BackfillTableReport:
    total: int
    missing_before: int
    updated: int = 0
    missing_after: int | None = None


@dataclass(frozen=True, slots=True)
class BackfillReport:
    applied: bool
    tables: dict[str, BackfillTableReport]


def _expiring_repositories(repositories: TrustRepositories) -> tuple[ExpiringRepository, ...]:
    # Verification logs go first so their acceptance links are cleared by the
    # store before the acceptances themselves are removed.
    return (repositories.verifications, repositories.acceptances)


class TTLLifecycleManager:
    """Expiration timestamps, live-evidence filtering and retention jobs."""

    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        *,
        config: TrustConfig = DEFAULT_TRUST_CONFIG,
        clock: Clock = utcnow,
    ) -> None:
        self._uow_factory = unit_of_work_factory
        self._config = config
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._config.verification_ttl

    def get_expiration_date(self, now: datetime | None = None) -> datetime:
        anchor = ensure_aware(now) if now is not None else self._clock()
        return anchor + self.ttl

    def not_expired_filter(self, now: datetime | None = None) -> NotExpiredFilter:
        return NotExpiredFilter(now=ensure_aware(now) if now is not None else self._clock())

    def cleanup_expired(
        self, *, dry_run: bool = False, batch_size: int | None = None
    ) -> CleanupResult:
        """Delete expired rows in bounded rounds, one transaction per round.

        A table stops once a round deletes fewer than ``batch_size`` rows or the
        count taken at the start has been reached, so rows that expire while the
        job runs are left for the next run.
        """

        size = batch_size if batch_size is not None else self._config.cleanup_batch_size
        if size < 1:
            raise ValidationError("batch_size must be at least 1")
        now = self._clock()
        result = CleanupResult(dry_run=dry_run)

        with self._uow_factory() as uow:
            for repository in _expiring_repositories(uow.repositories):
                result.expired[repository.table_name] = repository.count_expired(now)

        if dry_run:
            log.info("Cleanup dry run: expired=%s", result.expired)
            result.deleted = dict.fromkeys(result.expired, 0)
            return result

        for table_name, expired in result.expired.items():
            result.deleted[table_name] = self._delete_table(table_name, expired, now, size)

        log.info("Cleanup finished: expired=%s, deleted=%s", result.expired, result.deleted)
        return result

    def _delete_table(self, table_name: str, expired: int, now: datetime, batch_size: int) -> int:
        deleted = 0
        while deleted < expired:
            with self._uow_factory() as uow:
                repository = next(
                    repo
                    for repo in _expiring_repositories(uow.repositories)
                    if repo.table_name == table_name
                )
                removed = repository.delete_expired_batch(now, min(batch_size, expired - deleted))
                uow.commit()
            deleted += removed
            log.debug(
                "Deleted %s expired rows from %s (%s/%s)", removed, table_name, deleted, expired
            )
            if removed < batch_size:
                break
        return deleted

    def get_expiration_stats(self, now: datetime | None = None) -> ExpirationStats:
        moment = ensure_aware(now) if now is not None else self._clock()
        soon = moment + EXPIRING_SOON_WINDOW
        later = moment + EXPIRING_LATER_WINDOW
        tables: dict[str, TableExpirationStats] = {}
        with self._uow_factory() as uow:
            for repository in _expiring_repositories(uow.repositories):
                tables[repository.table_name] = TableExpirationStats(
                    total=repository.count(),
                    with_expiration=repository.count_with_expiration(),
                    expired=repository.count_expired(moment),
                    expiring_within_7_days=repository.count_expiring_between(moment, soon),
                    expiring_within_30_days=repository.count_expiring_between(soon, later),
                )
        return ExpirationStats(generated_at=moment, tables=tables)

    def backfill_expirations(self, *, apply: bool = False) -> BackfillReport:
        """Give legacy rows an expiration derived from when they were last confirmed.

        Acceptances use ``last_verified_at`` falling back to ``created_at``;
        verification logs use ``created_at``. Every table is updated in a
        single transaction so a failure leaves no table half-migrated.
        """

        with self._uow_factory() as uow:
            before = {
                repository.table_name: BackfillTableReport(
                    total=repository.count(),
                    missing_before=repository.count_missing_expiration(),
                )
                for repository in _expiring_repositories(uow.repositories)
            }
            if not apply:
                log.info("Backfill analysis only: %s", before)
                return BackfillReport(applied=False, tables=before)

            tables: dict[str, BackfillTableReport] = {}
            for repository in _expiring_repositories(uow.repositories):
                analysed = before[repository.table_name]
                updated = (
                    repository.backfill_expirations(self.ttl) if analysed.missing_before else 0
                )
                tables[repository.table_name] = BackfillTableReport(
                    total=analysed.total,
                    missing_before=analysed.missing_before,
                    updated=updated,
                    missing_after=repository.count_missing_expiration(),
                )
            uow.commit()

        log.info("Backfill applied: %s", tables)
        return BackfillReport(applied=True, tables=tables)


__all__ = [
    "BackfillReport",
    "BackfillTableReport",
    "CleanupResult",
    "ExpirationStats",
    "NotExpiredFilter",
    "TTLLifecycleManager",
    "TableExpirationStats",
]
