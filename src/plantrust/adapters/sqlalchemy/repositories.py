"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import uuid
from logging import getLogger
from typing import TYPE_CHECKING, Any, ClassVar, cast

from sqlalchemy import ColumnElement, and_, case, delete, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from plantrust.adapters.sqlalchemy.mappings import (
    acceptance_table,
    import_conflict_table,
    insurance_plan_table,
    practice_location_table,
    provider_table,
    verification_log_table,
    vote_log_table,
)
from plantrust.domain.errors import DuplicateVoteError
from plantrust.domain.model import (
    ConflictStatus,
    DataSource,
    ImportConflict,
    InsurancePlan,
    PracticeLocation,
    Provider,
    ProviderPlanAcceptance,
    VerificationLog,
    VerificationStats,
    VerificationType,
    VoteDirection,
    VoteLog,
)

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from sqlalchemy import Table
    from sqlalchemy.orm import Session

    from plantrust.domain.lifecycle import NotExpiredFilter
    from plantrust.domain.model import RecordType

log = getLogger(__name__)


def not_expired_clause(table: Table, live: NotExpiredFilter) -> ColumnElement[bool]:
    """SQL form of :class:`NotExpiredFilter` for ``table.expires_at``."""

    return or_(table.c.expires_at.is_(None), table.c.expires_at > live.now)


def _enriched_clause(table: Table) -> ColumnElement[bool]:
    return or_(table.c.data_source != DataSource.CMS_NPPES, table.c.enriched_at.is_not(None))


class SqlAlchemyExpiringRepository:
    """Retention queries shared by every table with an ``expires_at`` column."""

    table: ClassVar[Table]

    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def table_name(self) -> str:
        return self.table.name

    def _count(self, *criteria: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.table)
        if criteria:
            stmt = stmt.where(*criteria)
        return int(self.session.execute(stmt).scalar_one())

    def count(self) -> int:
        return self._count()

    def count_with_expiration(self) -> int:
        return self._count(self.table.c.expires_at.is_not(None))

    def count_expired(self, now: datetime) -> int:
        return self._count(self.table.c.expires_at <= now)

    def count_expiring_between(self, start: datetime, end: datetime) -> int:
        return self._count(self.table.c.expires_at > start, self.table.c.expires_at <= end)

    def count_missing_expiration(self) -> int:
        return self._count(self.table.c.expires_at.is_(None))

    def delete_expired_batch(self, now: datetime, limit: int) -> int:
        ids = (
            select(self.table.c.id)
            .where(self.table.c.expires_at <= now)
            .order_by(self.table.c.expires_at)
            .limit(limit)
        )
        result = self.session.execute(delete(self.table).where(self.table.c.id.in_(ids)))
        return int(cast(Any, result).rowcount or 0)

    def backfill_expirations(self, ttl: timedelta) -> int:
        # Timestamp arithmetic differs per dialect; compute the new values in Python.
        anchor = self._backfill_anchor()
        rows = self.session.execute(
            select(self.table.c.id, anchor).where(self.table.c.expires_at.is_(None))
        ).all()
        for row_id, anchored_at in rows:
            self.session.execute(
                update(self.table)
                .where(self.table.c.id == row_id)
                .values(expires_at=anchored_at + ttl)
            )
        return len(rows)

    def _backfill_anchor(self) -> ColumnElement[Any]:
        return self.table.c.created_at


class SqlAlchemyProviderRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Provider) -> None:
        self.session.add(entity)

    def get(self, record_id: str) -> Provider | None:
        return self.session.get(Provider, record_id)

    def exists(self, npi: str) -> bool:
        stmt = select(exists().where(provider_table.c.npi == npi))
        return bool(self.session.execute(stmt).scalar())

    def specialty(self, npi: str) -> str | None:
        stmt = select(provider_table.c.primary_specialty).where(provider_table.c.npi == npi)
        return self.session.execute(stmt).scalar_one_or_none()

    def count_enriched(self) -> int:
        stmt = select(func.count()).select_from(provider_table).where(
            _enriched_clause(provider_table)
        )
        return int(self.session.execute(stmt).scalar_one())


class SqlAlchemyPracticeLocationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: PracticeLocation) -> None:
        self.session.add(entity)

    def get(self, record_id: str) -> PracticeLocation | None:
        try:
            location_id = uuid.UUID(record_id)
        except ValueError:
            return None
        return self.session.get(PracticeLocation, location_id)

    def count_enriched(self) -> int:
        stmt = select(func.count()).select_from(practice_location_table).where(
            _enriched_clause(practice_location_table)
        )
        return int(self.session.execute(stmt).scalar_one())


class SqlAlchemyPlanRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: InsurancePlan) -> None:
        self.session.add(entity)

    def get(self, plan_id: str) -> InsurancePlan | None:
        return self.session.get(InsurancePlan, plan_id)

    def exists(self, plan_id: str) -> bool:
        stmt = select(exists().where(insurance_plan_table.c.plan_id == plan_id))
        return bool(self.session.execute(stmt).scalar())


class SqlAlchemyAcceptanceRepository(SqlAlchemyExpiringRepository):
    table = acceptance_table

    def add(self, entity: ProviderPlanAcceptance) -> None:
        """Insert immediately so dependent rows can reference it and key races surface here."""

        self.session.add(entity)
        self.session.flush()

    def get(self, acceptance_id: uuid.UUID) -> ProviderPlanAcceptance | None:
        return self.session.get(ProviderPlanAcceptance, acceptance_id)

    def find(
        self, provider_npi: str, plan_id: str, location_id: uuid.UUID | None = None
    ) -> ProviderPlanAcceptance | None:
        location_clause = (
            acceptance_table.c.location_id.is_(None)
            if location_id is None
            else acceptance_table.c.location_id == location_id
        )
        stmt = select(ProviderPlanAcceptance).where(
            acceptance_table.c.provider_npi == provider_npi,
            acceptance_table.c.plan_id == plan_id,
            location_clause,
        )
        return self.session.execute(stmt).scalars().first()

    def record_verification(
        self, acceptance: ProviderPlanAcceptance, *, at: datetime, restart: bool = False
    ) -> None:
        self.session.flush()
        count = 1 if restart else acceptance_table.c.verification_count + 1
        self.session.execute(
            update(acceptance_table)
            .where(acceptance_table.c.id == acceptance.id)
            .values(verification_count=count, last_verified_at=at)
        )
        self.session.refresh(
            acceptance, attribute_names=["verification_count", "last_verified_at"]
        )

    def count_verified(self) -> int:
        return self._count(acceptance_table.c.verification_count >= 1)

    def list_verified_after(
        self, after_id: uuid.UUID | None, limit: int
    ) -> list[ProviderPlanAcceptance]:
        stmt = (
            select(ProviderPlanAcceptance)
            .where(acceptance_table.c.verification_count >= 1)
            .order_by(acceptance_table.c.id)
            .limit(limit)
        )
        if after_id is not None:
            stmt = stmt.where(acceptance_table.c.id > after_id)
        return list(self.session.execute(stmt).scalars())

    def _backfill_anchor(self) -> ColumnElement[Any]:
        return func.coalesce(acceptance_table.c.last_verified_at, acceptance_table.c.created_at)


class SqlAlchemyVerificationRepository(SqlAlchemyExpiringRepository):
    table = verification_log_table

    _TALLY_COLUMNS: ClassVar[dict[VoteDirection, str]] = {
        VoteDirection.UP: "upvotes",
        VoteDirection.DOWN: "downvotes",
    }

    def add(self, entity: VerificationLog) -> None:
        self.session.add(entity)

    def get(self, verification_id: uuid.UUID) -> VerificationLog | None:
        return self.session.get(VerificationLog, verification_id)

    def has_recent_submission(
        self,
        provider_npi: str,
        plan_id: str,
        *,
        since: datetime,
        source_ip: str | None,
        submitted_by: str | None,
        live: NotExpiredFilter,
    ) -> bool:
        identities: list[ColumnElement[bool]] = []
        if source_ip:
            identities.append(verification_log_table.c.source_ip == source_ip)
        if submitted_by:
            identities.append(verification_log_table.c.submitted_by == submitted_by)
        if not identities:
            return False
        stmt = select(
            exists().where(
                verification_log_table.c.provider_npi == provider_npi,
                verification_log_table.c.plan_id == plan_id,
                verification_log_table.c.created_at >= since,
                not_expired_clause(verification_log_table, live),
                or_(*identities),
            )
        )
        return bool(self.session.execute(stmt).scalar())

    def list_for_pair(
        self, provider_npi: str, plan_id: str, *, live: NotExpiredFilter | None
    ) -> list[VerificationLog]:
        stmt = (
            select(VerificationLog)
            .where(
                verification_log_table.c.provider_npi == provider_npi,
                verification_log_table.c.plan_id == plan_id,
            )
            .order_by(verification_log_table.c.created_at.desc())
        )
        if live is not None:
            stmt = stmt.where(not_expired_clause(verification_log_table, live))
        return list(self.session.execute(stmt).scalars())

    def list_recent(
        self,
        limit: int,
        *,
        provider_npi: str | None = None,
        plan_id: str | None = None,
        live: NotExpiredFilter | None,
    ) -> list[VerificationLog]:
        stmt = (
            select(VerificationLog)
            .order_by(verification_log_table.c.created_at.desc())
            .limit(limit)
        )
        if provider_npi is not None:
            stmt = stmt.where(verification_log_table.c.provider_npi == provider_npi)
        if plan_id is not None:
            stmt = stmt.where(verification_log_table.c.plan_id == plan_id)
        if live is not None:
            stmt = stmt.where(not_expired_clause(verification_log_table, live))
        return list(self.session.execute(stmt).scalars())

    def increment_vote(self, verification: VerificationLog, direction: VoteDirection) -> None:
        column = self._TALLY_COLUMNS[direction]
        self._update_tallies(verification, {column: verification_log_table.c[column] + 1})

    def move_vote(
        self,
        verification: VerificationLog,
        *,
        from_direction: VoteDirection,
        to_direction: VoteDirection,
    ) -> None:
        if from_direction is to_direction:
            return
        source = self._TALLY_COLUMNS[from_direction]
        target = self._TALLY_COLUMNS[to_direction]
        self._update_tallies(
            verification,
            {
                source: case(
                    (verification_log_table.c[source] > 0, verification_log_table.c[source] - 1),
                    else_=0,
                ),
                target: verification_log_table.c[target] + 1,
            },
        )

    def _update_tallies(self, verification: VerificationLog, values: dict[str, Any]) -> None:
        self.session.flush()
        self.session.execute(
            update(verification_log_table)
            .where(verification_log_table.c.id == verification.id)
            .values(**values)
        )
        self.session.refresh(verification, attribute_names=["upvotes", "downvotes"])

    def stats(self, *, recent_since: datetime) -> VerificationStats:
        table = verification_log_table
        total = self._count()
        approved = self._count(table.c.is_approved.is_(True))
        pending = self._count(table.c.is_approved.is_(None))
        recent = self._count(table.c.created_at >= recent_since)
        rows = self.session.execute(
            select(table.c.verification_type, func.count()).group_by(table.c.verification_type)
        ).all()
        by_type = {VerificationType(kind): int(count) for kind, count in rows}
        return VerificationStats(
            total=total,
            approved=approved,
            pending=pending,
            by_type=by_type,
            recent_count=recent,
        )


class SqlAlchemyVoteRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: VoteLog) -> None:
        """Insert immediately so the unique (verification, ip) constraint decides races."""

        self.session.add(entity)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateVoteError(
                f"A vote from {entity.source_ip} on {entity.verification_id} already exists"
            ) from exc

    def get(self, verification_id: uuid.UUID, source_ip: str) -> VoteLog | None:
        stmt = select(VoteLog).where(
            vote_log_table.c.verification_id == verification_id,
            vote_log_table.c.source_ip == source_ip,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def change_direction(self, vote: VoteLog, direction: VoteDirection) -> None:
        vote.direction = direction


class SqlAlchemyConflictRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: ImportConflict) -> None:
        self.session.add(entity)

    def add_unless_exists(self, entity: ImportConflict) -> bool:
        """Insert inside a savepoint; ``False`` when the unique key already holds a row."""

        try:
            with self.session.begin_nested():
                self.session.add(entity)
        except IntegrityError:
            log.debug(
                "Conflict on %s %s.%s already logged",
                entity.record_type,
                entity.target_record_id,
                entity.field_name,
            )
            return False
        return True

    def get(self, conflict_id: uuid.UUID) -> ImportConflict | None:
        return self.session.get(ImportConflict, conflict_id)

    def exists_for(
        self,
        record_type: RecordType,
        target_record_id: str,
        field_name: str,
        incoming_value: str | None,
    ) -> bool:
        table = import_conflict_table
        value_clause = (
            table.c.incoming_value.is_(None)
            if incoming_value is None
            else table.c.incoming_value == incoming_value
        )
        stmt = select(
            exists().where(
                and_(
                    table.c.record_type == record_type,
                    table.c.target_record_id == target_record_id,
                    table.c.field_name == field_name,
                    value_clause,
                )
            )
        )
        return bool(self.session.execute(stmt).scalar())

    def mark_resolved(
        self, conflict: ImportConflict, status: ConflictStatus, *, at: datetime
    ) -> bool:
        self.session.flush()
        result = self.session.execute(
            update(import_conflict_table)
            .where(
                import_conflict_table.c.id == conflict.id,
                import_conflict_table.c.status == ConflictStatus.PENDING,
            )
            .values(status=status, resolved_at=at)
        )
        self.session.refresh(conflict, attribute_names=["status", "resolved_at"])
        return int(cast(Any, result).rowcount or 0) == 1

    def list_pending(
        self, limit: int, *, record_type: RecordType | None = None
    ) -> list[ImportConflict]:
        stmt = (
            select(ImportConflict)
            .where(import_conflict_table.c.status == ConflictStatus.PENDING)
            .order_by(import_conflict_table.c.created_at)
            .limit(limit)
        )
        if record_type is not None:
            stmt = stmt.where(import_conflict_table.c.record_type == record_type)
        return list(self.session.execute(stmt).scalars())

    def count_pending(self) -> int:
        stmt = (
            select(func.count())
            .select_from(import_conflict_table)
            .where(import_conflict_table.c.status == ConflictStatus.PENDING)
        )
        return int(self.session.execute(stmt).scalar_one())


if TYPE_CHECKING:
    from plantrust.domain.ports.persistence import (
        AcceptanceRepository,
        ConflictRepository,
        PlanRepository,
        PracticeLocationRepository,
        ProviderRepository,
        VerificationRepository,
        VoteRepository,
    )

    _session_stub = cast("Session", object())
    _provider_repo: ProviderRepository = SqlAlchemyProviderRepository(_session_stub)
    _location_repo: PracticeLocationRepository = SqlAlchemyPracticeLocationRepository(_session_stub)
    _plan_repo: PlanRepository = SqlAlchemyPlanRepository(_session_stub)
    _acceptance_repo: AcceptanceRepository = SqlAlchemyAcceptanceRepository(_session_stub)
    _verification_repo: VerificationRepository = SqlAlchemyVerificationRepository(_session_stub)
    _vote_repo: VoteRepository = SqlAlchemyVoteRepository(_session_stub)
    _conflict_repo: ConflictRepository = SqlAlchemyConflictRepository(_session_stub)
