"""Public domain model surface."""

from __future__ import annotations

from plantrust.domain.model.acceptance import ConfidenceFactors, ProviderPlanAcceptance
from plantrust.domain.model.conflict import ImportConflict
from plantrust.domain.model.directory import (
    DirectoryRecord,
    InsurancePlan,
    PracticeLocation,
    Provider,
    record_class_for,
)
from plantrust.domain.model.entity import Entity, new_id
from plantrust.domain.model.enums import (
    AcceptanceStatus,
    ConfidenceLevel,
    ConflictStatus,
    DataSource,
    RecordType,
    SpecialtyCategory,
    VerificationType,
    VoteDirection,
)
from plantrust.domain.model.verification import (
    PublicVerification,
    VerificationLog,
    VerificationStats,
    VoteLog,
)

__all__ = [  # noqa: RUF022
    # base
    "Entity",
    "new_id",
    # enums
    "AcceptanceStatus",
    "ConfidenceLevel",
    "ConflictStatus",
    "DataSource",
    "RecordType",
    "SpecialtyCategory",
    "VerificationType",
    "VoteDirection",
    # trust
    "ConfidenceFactors",
    "ProviderPlanAcceptance",
    "VerificationLog",
    "PublicVerification",
    "VerificationStats",
    "VoteLog",
    # directory
    "DirectoryRecord",
    "Provider",
    "InsurancePlan",
    "PracticeLocation",
    "record_class_for",
    # import conflicts
    "ImportConflict",
]
