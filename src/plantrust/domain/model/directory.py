"""Directory records written by bulk imports and improved by enrichment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID

from plantrust.domain.model.entity import Entity
from plantrust.domain.model.enums import DataSource, RecordType

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

RAW_IMPORT_SOURCES: frozenset[DataSource] = frozenset({DataSource.CMS_NPPES})


class DirectoryRecord:
    """Shared behaviour for records a bulk import may touch field by field."""

    RECORD_TYPE: ClassVar[RecordType]
    IMPORTABLE_FIELDS: ClassVar[frozenset[str]]

    data_source: DataSource
    enriched_at: datetime | None

    @property
    def record_id(self) -> str:
        raise NotImplementedError

    @property
    def is_enriched(self) -> bool:
        return self.data_source not in RAW_IMPORT_SOURCES or self.enriched_at is not None

    def field_value(self, name: str) -> str | None:
        self._check_field(name)
        return getattr(self, name)

    def assign(self, name: str, value: str | None) -> None:
        self._check_field(name)
        setattr(self, name, value)

    @classmethod
    def _check_field(cls, name: str) -> None:
        if name not in cls.IMPORTABLE_FIELDS:
            raise ValueError(f"{cls.RECORD_TYPE.value} has no importable field {name!r}")


@dataclass(eq=False, kw_only=True)
class Provider(DirectoryRecord):
    RECORD_TYPE: ClassVar[RecordType] = RecordType.PROVIDER
    IMPORTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "entity_type",
            "first_name",
            "last_name",
            "organization_name",
            "credential",
            "primary_specialty",
        }
    )

    npi: str
    entity_type: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    organization_name: str | None = None
    credential: str | None = None
    primary_specialty: str | None = None
    data_source: DataSource = DataSource.CMS_NPPES
    enriched_at: datetime | None = None

    @property
    def record_id(self) -> str:
        return self.npi

    @classmethod
    def for_import(
        cls, record_id: str, fields: Mapping[str, str | None], source: DataSource
    ) -> Provider:
        for name in fields:
            cls._check_field(name)
        return cls(npi=record_id, data_source=source, **fields)


@dataclass(eq=False, kw_only=True)
class InsurancePlan:
    plan_id: str
    plan_name: str | None = None
    issuer_name: str | None = None


@dataclass(eq=False, kw_only=True)
class PracticeLocation(Entity, DirectoryRecord):
    RECORD_TYPE: ClassVar[RecordType] = RecordType.PRACTICE_LOCATION
    IMPORTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "provider_npi",
            "address_line1",
            "address_line2",
            "city",
            "state",
            "zip_code",
            "phone",
            "fax",
        }
    )

    provider_npi: str
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    phone: str | None = None
    fax: str | None = None
    data_source: DataSource = DataSource.CMS_NPPES
    enriched_at: datetime | None = None

    @property
    def record_id(self) -> str:
        return str(self.id)

    @classmethod
    def for_import(
        cls, record_id: str, fields: Mapping[str, str | None], source: DataSource
    ) -> PracticeLocation:
        for name in fields:
            cls._check_field(name)
        values = dict(fields)
        provider_npi = values.pop("provider_npi", None)
        if not provider_npi:
            raise ValueError("A new practice location needs provider_npi")
        return cls(id=UUID(record_id), provider_npi=provider_npi, data_source=source, **values)


def record_class_for(record_type: RecordType) -> type[Provider] | type[PracticeLocation]:
    if record_type is RecordType.PROVIDER:
        return Provider
    return PracticeLocation
