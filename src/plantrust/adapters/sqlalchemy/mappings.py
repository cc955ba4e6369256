"""SQLAlchemy mapping metadata for the plantrust domain model."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
    orm,
)

from plantrust.domain.model import (
    AcceptanceStatus,
    ConfidenceFactors,
    ConflictStatus,
    DataSource,
    ImportConflict,
    InsurancePlan,
    PracticeLocation,
    Provider,
    ProviderPlanAcceptance,
    RecordType,
    VerificationLog,
    VerificationType,
    VoteDirection,
    VoteLog,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class ConfidenceFactorsType(TypeDecorator[ConfidenceFactors]):
    """Store the factor snapshot as a JSON object in a text column."""

    impl = Text
    cache_ok = True

    def process_bind_param(
        self, value: ConfidenceFactors | None, dialect: Dialect
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(value.as_dict(), sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> ConfidenceFactors | None:
        _ = dialect
        if value is None:
            return None
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return None
        return ConfidenceFactors.from_dict(cast(dict[str, Any], loaded))


def _enum(enum_cls: type[Any]) -> Enum:
    return Enum(enum_cls, native_enum=False, length=32)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Directory tables -------------------------------------------------------------

provider_table = Table(
    "provider",
    mapper_registry.metadata,
    Column("npi", String(10), primary_key=True),
    Column("entity_type", String(16), nullable=True),
    Column("first_name", String, nullable=True),
    Column("last_name", String, nullable=True),
    Column("organization_name", String, nullable=True),
    Column("credential", String, nullable=True),
    Column("primary_specialty", String, nullable=True),
    Column("data_source", _enum(DataSource), nullable=False),
    Column("enriched_at", UTCDateTime(), nullable=True),
)

insurance_plan_table = Table(
    "insurance_plan",
    mapper_registry.metadata,
    Column("plan_id", String(64), primary_key=True),
    Column("plan_name", String, nullable=True),
    Column("issuer_name", String, nullable=True),
)

practice_location_table = Table(
    "practice_location",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "provider_npi",
        String(10),
        ForeignKey("provider.npi", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("address_line1", String, nullable=True),
    Column("address_line2", String, nullable=True),
    Column("city", String, nullable=True),
    Column("state", String(2), nullable=True),
    Column("zip_code", String(10), nullable=True),
    Column("phone", String(20), nullable=True),
    Column("fax", String(20), nullable=True),
    Column("data_source", _enum(DataSource), nullable=False),
    Column("enriched_at", UTCDateTime(), nullable=True),
)

# Trust tables -----------------------------------------------------------------

acceptance_table = Table(
    "provider_plan_acceptance",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "provider_npi",
        String(10),
        ForeignKey("provider.npi", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "plan_id",
        String(64),
        ForeignKey("insurance_plan.plan_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "location_id",
        UUIDColumnType,
        ForeignKey("practice_location.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column("acceptance_status", _enum(AcceptanceStatus), nullable=False),
    Column("confidence_score", Integer, nullable=False, default=0),
    Column("confidence_factors", ConfidenceFactorsType(), nullable=True),
    Column("verification_count", Integer, nullable=False, default=0),
    Column("last_verified_at", UTCDateTime(), nullable=True),
    Column("expires_at", UTCDateTime(), nullable=True, index=True),
    Column("data_source", _enum(DataSource), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=True),
    UniqueConstraint("provider_npi", "plan_id", "location_id"),
)

# NULL location ids are distinct to a plain unique constraint.
Index(
    "uq_provider_plan_acceptance_no_location",
    acceptance_table.c.provider_npi,
    acceptance_table.c.plan_id,
    unique=True,
    sqlite_where=acceptance_table.c.location_id.is_(None),
    postgresql_where=acceptance_table.c.location_id.is_(None),
)

verification_log_table = Table(
    "verification_log",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "provider_npi",
        String(10),
        ForeignKey("provider.npi", ondelete="SET NULL"),
        nullable=True,
    ),
    Column(
        "plan_id",
        String(64),
        ForeignKey("insurance_plan.plan_id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column(
        "acceptance_id",
        UUIDColumnType,
        ForeignKey("provider_plan_acceptance.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    ),
    Column("verification_type", _enum(VerificationType), nullable=False),
    Column("verification_source", _enum(DataSource), nullable=False),
    Column("previous_value", JSON, nullable=True),
    Column("new_value", JSON, nullable=True),
    Column("notes", Text, nullable=True),
    Column("evidence_url", String(500), nullable=True),
    Column("is_approved", Boolean, nullable=True),
    Column("source_ip", String(64), nullable=True, index=True),
    Column("user_agent", String(500), nullable=True),
    Column("submitted_by", String(200), nullable=True),
    Column("upvotes", Integer, nullable=False, default=0),
    Column("downvotes", Integer, nullable=False, default=0),
    Column("created_at", UTCDateTime(), nullable=False, index=True),
    Column("expires_at", UTCDateTime(), nullable=True, index=True),
    Index(
        "ix_verification_log_pair_created",
        "provider_npi",
        "plan_id",
        "created_at",
    ),
)

vote_log_table = Table(
    "vote_log",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "verification_id",
        UUIDColumnType,
        ForeignKey("verification_log.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("source_ip", String(64), nullable=False),
    Column("direction", _enum(VoteDirection), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("verification_id", "source_ip"),
)

import_conflict_table = Table(
    "import_conflict",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("record_type", _enum(RecordType), nullable=False),
    Column("target_record_id", String(64), nullable=False),
    Column("field_name", String(64), nullable=False),
    Column("current_value", Text, nullable=True),
    Column("incoming_value", Text, nullable=True),
    Column("current_source", _enum(DataSource), nullable=True),
    Column("incoming_source", _enum(DataSource), nullable=False),
    Column("status", _enum(ConflictStatus), nullable=False, index=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("resolved_at", UTCDateTime(), nullable=True),
    UniqueConstraint("record_type", "target_record_id", "field_name", "incoming_value"),
)

EXPIRING_TABLES: tuple[Table, ...] = (verification_log_table, acceptance_table)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Provider, provider_table)
    mapper_registry.map_imperatively(InsurancePlan, insurance_plan_table)
    mapper_registry.map_imperatively(PracticeLocation, practice_location_table)
    mapper_registry.map_imperatively(ProviderPlanAcceptance, acceptance_table)
    mapper_registry.map_imperatively(VerificationLog, verification_log_table)
    mapper_registry.map_imperatively(VoteLog, vote_log_table)
    mapper_registry.map_imperatively(ImportConflict, import_conflict_table)

    orm.configure_mappers()
    return mapper_registry


def _enforce_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    _ = connection_record
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
    finally:
        cursor.close()


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Make SQLite honour ON DELETE clauses on every connection the engine opens."""

    if engine.dialect.name != "sqlite":
        return
    if not event.contains(engine, "connect", _enforce_foreign_keys):
        event.listen(engine, "connect", _enforce_foreign_keys)
