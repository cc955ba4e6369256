from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from plantrust.adapters.sqlalchemy import enable_sqlite_foreign_keys, start_mappers
from plantrust.adapters.sqlalchemy.migrations import upgrade_head
from plantrust.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyImportUnitOfWork,
    SqlAlchemyTrustUnitOfWork,
    shutdown,
    startup,
)
from tests.helpers.clock import NOW, FixedClock

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    enable_sqlite_foreign_keys(engine)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def trust_uow(sqlite_engine: Engine) -> Iterator[Callable[[], SqlAlchemyTrustUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyTrustUnitOfWork:
        return SqlAlchemyTrustUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def import_uow(
    sqlite_engine: Engine,
    trust_uow: Callable[[], SqlAlchemyTrustUnitOfWork],
) -> Callable[[], SqlAlchemyImportUnitOfWork]:
    _ = sqlite_engine, trust_uow

    def factory() -> SqlAlchemyImportUnitOfWork:
        return SqlAlchemyImportUnitOfWork()

    return factory
