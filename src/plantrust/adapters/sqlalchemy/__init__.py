"""SQLAlchemy adapter package for plantrust."""

from __future__ import annotations

from .mappings import enable_sqlite_foreign_keys, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyAcceptanceRepository,
    SqlAlchemyConflictRepository,
    SqlAlchemyPlanRepository,
    SqlAlchemyPracticeLocationRepository,
    SqlAlchemyProviderRepository,
    SqlAlchemyVerificationRepository,
    SqlAlchemyVoteRepository,
)

__all__ = [
    "SqlAlchemyAcceptanceRepository",
    "SqlAlchemyConflictRepository",
    "SqlAlchemyPlanRepository",
    "SqlAlchemyPracticeLocationRepository",
    "SqlAlchemyProviderRepository",
    "SqlAlchemyVerificationRepository",
    "SqlAlchemyVoteRepository",
    "enable_sqlite_foreign_keys",
    "mapper_registry",
    "start_mappers",
]
