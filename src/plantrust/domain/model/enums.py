"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class AcceptanceStatus(StrEnum):
    ACCEPTED = "accepted"
    NOT_ACCEPTED = "not_accepted"
    PENDING = "pending"
    UNKNOWN = "unknown"


class DataSource(StrEnum):
    """Origin tag of a record, ordered roughly by authority."""

    CMS_NPPES = "cms_nppes"
    CMS_PLAN_FINDER = "cms_plan_finder"
    CARRIER_API = "carrier_api"
    PROVIDER_PORTAL = "provider_portal"
    ENRICHMENT = "enrichment"
    USER_UPLOAD = "user_upload"
    PHONE_CALL = "phone_call"
    CROWDSOURCE = "crowdsource"
    AUTOMATED = "automated"


class SpecialtyCategory(StrEnum):
    MENTAL_HEALTH = "mental_health"
    PRIMARY_CARE = "primary_care"
    SPECIALIST = "specialist"
    HOSPITAL_BASED = "hospital_based"
    OTHER = "other"


class ConfidenceLevel(StrEnum):
    VERY_HIGH = "very_high"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


class VerificationType(StrEnum):
    PLAN_ACCEPTANCE = "plan_acceptance"
    PROVIDER_INFO = "provider_info"
    CONTACT_INFO = "contact_info"
    STATUS_CHANGE = "status_change"
    NEW_PLAN = "new_plan"


class VoteDirection(StrEnum):
    UP = "up"
    DOWN = "down"


class ConflictStatus(StrEnum):
    PENDING = "pending"
    KEEP_CURRENT = "keep_current"
    ACCEPT_INCOMING = "accept_incoming"
    MANUAL = "manual"


class RecordType(StrEnum):
    """Directory record kinds a bulk import can write to."""

    PROVIDER = "provider"
    PRACTICE_LOCATION = "practice_location"
