from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from typing import TYPE_CHECKING

from sqlalchemy import inspect

from plantrust.adapters.sqlalchemy import mapper_registry, start_mappers
from plantrust.adapters.sqlalchemy.mappings import ConfidenceFactorsType, UTCDateTime
from plantrust.domain.model import ConfidenceFactors
from tests.helpers.clock import NOW
from tests.helpers.records import make_acceptance, make_plan, make_provider

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session


def test_start_mappers_is_idempotent() -> None:
    # First invocation happens in the sqlite_engine fixture; calling again should be harmless.
    start_mappers()
    start_mappers()


def test_migration_creates_every_mapped_table(sqlite_engine: Engine) -> None:
    inspector = inspect(sqlite_engine)
    table_names = set(inspector.get_table_names())

    assert set(mapper_registry.metadata.tables) <= table_names
    assert "alembic_version" in table_names
    index_names = {index["name"] for index in inspector.get_indexes("provider_plan_acceptance")}
    assert "uq_provider_plan_acceptance_no_location" in index_names
    assert "ix_provider_plan_acceptance_expires_at" in index_names


def test_utc_datetime_normalises_offsets() -> None:
    column_type = UTCDateTime()
    plus_two = datetime(2025, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    bound = column_type.process_bind_param(plus_two, dialect=None)  # type: ignore[arg-type]
    loaded = column_type.process_result_value(
        datetime(2025, 6, 1, 12, 0),  # noqa: DTZ001
        dialect=None,  # type: ignore[arg-type]
    )

    assert bound == datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
    assert bound is not None
    assert bound.tzinfo is UTC
    assert loaded == datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def test_confidence_factors_ignore_non_object_json() -> None:
    column_type = ConfidenceFactorsType()

    assert column_type.process_result_value("[1, 2]", dialect=None) is None  # type: ignore[arg-type]
    assert column_type.process_bind_param(None, dialect=None) is None  # type: ignore[arg-type]


def test_acceptance_factors_survive_storage(sqlite_session: Session) -> None:
    sqlite_session.add(make_provider())
    sqlite_session.add(make_plan())
    sqlite_session.commit()
    acceptance = make_acceptance(created_at=NOW, expires_at=NOW + timedelta(days=180))
    factors = ConfidenceFactors(
        data_source_score=15, recency_score=30, verification_score=10, agreement_score=10
    )
    acceptance.apply_confidence(factors.total, factors, at=NOW)
    acceptance_id = acceptance.id
    sqlite_session.add(acceptance)
    sqlite_session.commit()
    sqlite_session.expunge_all()

    stored = sqlite_session.get(type(acceptance), acceptance_id)

    assert stored is not None
    assert stored.confidence_factors == factors
    assert stored.confidence_score == 65
    assert stored.created_at == NOW
    assert stored.created_at.tzinfo is not None
