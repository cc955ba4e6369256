"""Engine lifecycle and units of work over SQLAlchemy sessions.

``startup`` prepares the single process-wide engine: SQLite foreign keys,
mapper registration and the Alembic head revision. Each unit of work then
opens its own session and hands services the repositories for one
transaction. Anything not committed is rolled back when the block exits.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from plantrust.adapters.sqlalchemy.mappings import enable_sqlite_foreign_keys, start_mappers
from plantrust.adapters.sqlalchemy.migrations import upgrade_head
from plantrust.adapters.sqlalchemy.repositories import (
    SqlAlchemyAcceptanceRepository,
    SqlAlchemyConflictRepository,
    SqlAlchemyPlanRepository,
    SqlAlchemyPracticeLocationRepository,
    SqlAlchemyProviderRepository,
    SqlAlchemyVerificationRepository,
    SqlAlchemyVoteRepository,
)
from plantrust.config import get_database_config
from plantrust.domain.ports.unit_of_work import (
    ImportRepositories,
    RepositoryCollection,
    TrustRepositories,
)

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """The trust database was used before ``startup`` or configured twice."""


@dataclass(slots=True)
class _Database:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = None

    def bind(self, engine: Engine | None) -> None:
        if self.engine is not None and self.engine is not engine:
            self.engine.dispose()
        self.engine = engine
        self.sessions = (
            sessionmaker(bind=engine, expire_on_commit=False) if engine is not None else None
        )

    def require_sessions(self) -> sessionmaker[Session]:
        if self.sessions is None:
            raise StartupError(
                "No trust database configured; call plantrust.adapters.sqlalchemy."
                "unit_of_work.startup() first"
            )
        return self.sessions


_DATABASE = _Database()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the trust database and bring its schema to the latest revision.

    A second call raises :class:`StartupError` unless ``force`` is set, in which
    case the previous engine is disposed and replaced.
    """

    if _DATABASE.engine is not None and not force:
        raise StartupError("Trust database already configured; pass force=True to replace it")

    target = engine or create_engine(database_uri or get_database_config().uri, future=True)
    enable_sqlite_foreign_keys(target)
    start_mappers()
    upgrade_head(engine=target)
    _DATABASE.bind(target)
    log.debug("Trust database bound to %s", target.url.render_as_string(hide_password=True))


def is_started() -> bool:
    return _DATABASE.engine is not None


def shutdown() -> None:
    _DATABASE.bind(None)


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """One session and one transaction, exposing a typed repository collection."""

    def __init__(self) -> None:
        self._sessions = _DATABASE.require_sessions()
        self._session: Session | None = None
        self._repositories: TRepositories | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        self._session = self._sessions()
        self._repositories = self._build_repositories(self._session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self._active_session()
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    def commit(self) -> None:
        self._active_session().commit()

    def rollback(self) -> None:
        self._active_session().rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._repositories is None:
            raise StartupError("Repositories are only available inside the unit of work block")
        return self._repositories

    def _active_session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not open")
        return self._session


class SqlAlchemyTrustUnitOfWork(BaseSqlAlchemyUnitOfWork[TrustRepositories]):
    """Unit of work for submissions, votes, scoring and retention jobs."""

    def _build_repositories(self, session: Session) -> TrustRepositories:
        return TrustRepositories(
            providers=SqlAlchemyProviderRepository(session),
            plans=SqlAlchemyPlanRepository(session),
            acceptances=SqlAlchemyAcceptanceRepository(session),
            verifications=SqlAlchemyVerificationRepository(session),
            votes=SqlAlchemyVoteRepository(session),
        )


class SqlAlchemyImportUnitOfWork(BaseSqlAlchemyUnitOfWork[ImportRepositories]):
    """Unit of work for bulk import writes and conflict resolution."""

    def _build_repositories(self, session: Session) -> ImportRepositories:
        return ImportRepositories(
            providers=SqlAlchemyProviderRepository(session),
            locations=SqlAlchemyPracticeLocationRepository(session),
            conflicts=SqlAlchemyConflictRepository(session),
        )


if TYPE_CHECKING:
    from plantrust.domain.ports.unit_of_work import ImportUnitOfWork, TrustUnitOfWork

    _uow_trust_check: TrustUnitOfWork = SqlAlchemyTrustUnitOfWork()
    _uow_import_check: ImportUnitOfWork = SqlAlchemyImportUnitOfWork()
