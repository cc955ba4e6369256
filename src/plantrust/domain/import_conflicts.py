"""Reconcile bulk registry imports with directory records that were already improved.

Raw imports are authoritative for most fields but stale for a few that
enrichment or verification routinely corrects. Once a record is enriched,
those protected fields are no longer overwritten; differing incoming values
are parked as :class:`ImportConflict` rows for an operator to resolve.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

from plantrust.domain.clock import utcnow
from plantrust.domain.errors import AlreadyResolvedError, NotFoundError, ValidationError
from plantrust.domain.model import (
    ConflictStatus,
    DataSource,
    ImportConflict,
    RecordType,
    record_class_for,
)
from plantrust.domain.ports.unit_of_work import ImportUnitOfWork

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from plantrust.domain.clock import Clock
    from plantrust.domain.model import DirectoryRecord
    from plantrust.domain.ports.persistence import DirectoryRecordRepository
    from plantrust.domain.ports.unit_of_work import ImportRepositories

UnitOfWorkFactory = Callable[[], ImportUnitOfWork]

PROTECTED_FIELDS: Final[Mapping[RecordType, frozenset[str]]] = {
    RecordType.PROVIDER: frozenset({"credential", "primary_specialty"}),
    RecordType.PRACTICE_LOCATION: frozenset({"address_line2", "zip_code", "phone", "fax"}),
}

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RecordUpdate:
    """Field values an import run wants to write to one directory record."""

    record_type: RecordType
    record_id: str
    fields: Mapping[str, str | None]


@dataclass(slots=True)
class ImportBatchResult:
    created: int = 0
    updated_fields: int = 0
    unchanged_fields: int = 0
    conflicts_created: int = 0
    conflicts_existing: int = 0
    conflicts: list[ImportConflict] = field(default_factory=list[ImportConflict])


@dataclass(frozen=True, slots=True)
class PreImportCheck:
    enriched_providers: int
    enriched_locations: int
    pending_conflicts: int

    @property
    def has_protected_data(self) -> bool:
        return bool(self.enriched_providers or self.enriched_locations)


def _repository_for(
    repositories: ImportRepositories, record_type: RecordType
) -> DirectoryRecordRepository[DirectoryRecord]:
    if record_type is RecordType.PROVIDER:
        return repositories.providers
    return repositories.locations


class ImportConflictResolver:
    def __init__(self, unit_of_work_factory: UnitOfWorkFactory, *, clock: Clock = utcnow) -> None:
        self._uow_factory = unit_of_work_factory
        self._clock = clock

    def apply_batch(
        self,
        updates: Iterable[RecordUpdate],
        *,
        incoming_source: DataSource = DataSource.CMS_NPPES,
    ) -> ImportBatchResult:
        """Write each record update in its own transaction."""

        result = ImportBatchResult()
        for update in updates:
            with self._uow_factory() as uow:
                self._apply_update(uow.repositories, update, incoming_source, result)
                uow.commit()
        log.info(
            "Import batch applied: created=%s, updated_fields=%s, unchanged_fields=%s, "
            "conflicts_created=%s, conflicts_existing=%s",
            result.created,
            result.updated_fields,
            result.unchanged_fields,
            result.conflicts_created,
            result.conflicts_existing,
        )
        return result

    def _apply_update(
        self,
        repos: ImportRepositories,
        update: RecordUpdate,
        incoming_source: DataSource,
        result: ImportBatchResult,
    ) -> None:
        repository = _repository_for(repos, update.record_type)
        record = repository.get(update.record_id)
        if record is None:
            record_cls = record_class_for(update.record_type)
            repository.add(record_cls.for_import(update.record_id, update.fields, incoming_source))
            result.created += 1
            return

        protected = PROTECTED_FIELDS[update.record_type] if record.is_enriched else frozenset()
        now = self._clock()
        for name, incoming in update.fields.items():
            current = record.field_value(name)
            if current == incoming:
                result.unchanged_fields += 1
                continue
            if name not in protected or current is None:
                record.assign(name, incoming)
                result.updated_fields += 1
                continue
            if repos.conflicts.exists_for(update.record_type, update.record_id, name, incoming):
                result.conflicts_existing += 1
                continue
            conflict = ImportConflict(
                record_type=update.record_type,
                target_record_id=update.record_id,
                field_name=name,
                current_value=current,
                incoming_value=incoming,
                current_source=record.data_source,
                incoming_source=incoming_source,
                created_at=now,
            )
            if not repos.conflicts.add_unless_exists(conflict):
                result.conflicts_existing += 1
                continue
            result.conflicts_created += 1
            result.conflicts.append(conflict)
            log.info(
                "Import conflict on %s %s.%s: keeping %r over incoming %r",
                update.record_type,
                update.record_id,
                name,
                current,
                incoming,
            )

    def resolve_conflict(
        self, conflict_id: UUID, outcome: ConflictStatus, *, now: datetime | None = None
    ) -> ImportConflict:
        """Move a pending conflict to its terminal state, applying the incoming value if chosen."""

        moment = now or self._clock()
        with self._uow_factory() as uow:
            repos = uow.repositories
            conflict = repos.conflicts.get(conflict_id)
            if conflict is None:
                raise NotFoundError(f"Import conflict {conflict_id} not found")
            conflict.ensure_resolvable(outcome)
            if not repos.conflicts.mark_resolved(conflict, outcome, at=moment):
                raise AlreadyResolvedError(f"Conflict {conflict_id} was resolved concurrently")
            if outcome is ConflictStatus.ACCEPT_INCOMING:
                record = _repository_for(repos, conflict.record_type).get(conflict.target_record_id)
                if record is None:
                    raise NotFoundError(
                        f"{conflict.record_type} {conflict.target_record_id} no longer exists"
                    )
                record.assign(conflict.field_name, conflict.incoming_value)
            uow.commit()

        log.info("Resolved import conflict %s as %s", conflict_id, outcome)
        return conflict

    def pending_conflicts(
        self, limit: int = 50, *, record_type: RecordType | None = None
    ) -> list[ImportConflict]:
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        with self._uow_factory() as uow:
            return uow.repositories.conflicts.list_pending(limit, record_type=record_type)

    def pre_import_check(self) -> PreImportCheck:
        """Summarise what a raw import could clobber before one is started."""

        with self._uow_factory() as uow:
            repos = uow.repositories
            check = PreImportCheck(
                enriched_providers=repos.providers.count_enriched(),
                enriched_locations=repos.locations.count_enriched(),
                pending_conflicts=repos.conflicts.count_pending(),
            )
        if check.has_protected_data:
            log.warning(
                "%s enriched providers and %s enriched locations will have protected fields "
                "preserved; %s conflicts are still pending",
                check.enriched_providers,
                check.enriched_locations,
                check.pending_conflicts,
            )
        return check


__all__ = [
    "PROTECTED_FIELDS",
    "ImportBatchResult",
    "ImportConflictResolver",
    "PreImportCheck",
    "RecordUpdate",
]
