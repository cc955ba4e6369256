from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, func, select

from plantrust.adapters.sqlalchemy.mappings import provider_table
from plantrust.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyImportUnitOfWork,
    SqlAlchemyTrustUnitOfWork,
    StartupError,
    is_started,
    shutdown,
    startup,
)
from tests.helpers.records import NPI, make_provider

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyTrustUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert is_started() is True

    with SqlAlchemyImportUnitOfWork() as uow:
        uow.repositories.providers.add(make_provider())
        uow.commit()

    with engine_b.connect() as connection:
        stored = connection.execute(select(func.count()).select_from(provider_table))
        assert stored.scalar_one() == 1


def test_shutdown_resets_state(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    shutdown()

    assert is_started() is False
    with pytest.raises(StartupError):
        SqlAlchemyImportUnitOfWork()


def test_unit_of_work_cannot_be_entered_twice(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyTrustUnitOfWork()

    with uow, pytest.raises(StartupError), uow:
        pass


def test_repositories_unavailable_outside_context(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyTrustUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_unit_of_work_persists_on_commit(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with SqlAlchemyImportUnitOfWork() as uow:
        uow.repositories.providers.add(make_provider())
        uow.commit()

    with SqlAlchemyTrustUnitOfWork() as uow:
        assert uow.repositories.providers.exists(NPI)


def test_unit_of_work_rolls_back_on_error(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with pytest.raises(RuntimeError), SqlAlchemyImportUnitOfWork() as uow:
        uow.repositories.providers.add(make_provider())
        raise RuntimeError("boom")

    with SqlAlchemyTrustUnitOfWork() as uow:
        assert not uow.repositories.providers.exists(NPI)


def test_uncommitted_work_is_discarded(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with SqlAlchemyImportUnitOfWork() as uow:
        uow.repositories.providers.add(make_provider())

    with SqlAlchemyTrustUnitOfWork() as uow:
        assert not uow.repositories.providers.exists(NPI)
