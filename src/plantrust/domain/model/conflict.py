"""Disagreements between a bulk import and an already-enriched directory record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from plantrust.domain.errors import AlreadyResolvedError, ValidationError
from plantrust.domain.model.entity import Entity
from plantrust.domain.model.enums import ConflictStatus, DataSource, RecordType


@dataclass(eq=False, kw_only=True)
class ImportConflict(Entity):
    record_type: RecordType
    target_record_id: str
    field_name: str
    current_value: str | None
    incoming_value: str | None
    current_source: DataSource | None = None
    incoming_source: DataSource = DataSource.CMS_NPPES
    status: ConflictStatus = ConflictStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    resolved_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is ConflictStatus.PENDING

    def ensure_resolvable(self, outcome: ConflictStatus) -> None:
        """Raise unless this conflict may move from pending to ``outcome``."""

        if outcome is ConflictStatus.PENDING:
            raise ValidationError("A conflict cannot be resolved back to pending")
        if not self.is_pending:
            raise AlreadyResolvedError(
                f"Conflict {self.id} was already resolved as {self.status.value}"
            )
