"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import (
    AcceptanceRepository,
    ConflictRepository,
    DirectoryRecordRepository,
    ExpiringRepository,
    PlanLookup,
    PlanRepository,
    PracticeLocationRepository,
    ProviderLookup,
    ProviderRepository,
    Repository,
    VerificationRepository,
    VoteRepository,
)
from .unit_of_work import (
    ImportRepositories,
    ImportUnitOfWork,
    RepositoryCollection,
    TrustRepositories,
    TrustUnitOfWork,
    UnitOfWork,
)

__all__ = [
    "AcceptanceRepository",
    "ConflictRepository",
    "DirectoryRecordRepository",
    "ExpiringRepository",
    "ImportRepositories",
    "ImportUnitOfWork",
    "PlanLookup",
    "PlanRepository",
    "PracticeLocationRepository",
    "ProviderLookup",
    "ProviderRepository",
    "Repository",
    "RepositoryCollection",
    "TrustRepositories",
    "TrustUnitOfWork",
    "UnitOfWork",
    "VerificationRepository",
    "VoteRepository",
]
