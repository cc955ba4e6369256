"""Initial schema: directory records, trust evidence and import conflicts.

Revision ID: 0001
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from plantrust.adapters.sqlalchemy.mappings import ConfidenceFactorsType, UTCDateTime

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUM = sa.String(32)


def upgrade() -> None:
    op.create_table(
        "provider",
        sa.Column("npi", sa.String(10), nullable=False),
        sa.Column("entity_type", sa.String(16), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("organization_name", sa.String(), nullable=True),
        sa.Column("credential", sa.String(), nullable=True),
        sa.Column("primary_specialty", sa.String(), nullable=True),
        sa.Column("data_source", ENUM, nullable=False),
        sa.Column("enriched_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("npi", name=op.f("pk_provider")),
    )
    op.create_table(
        "insurance_plan",
        sa.Column("plan_id", sa.String(64), nullable=False),
        sa.Column("plan_name", sa.String(), nullable=True),
        sa.Column("issuer_name", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("plan_id", name=op.f("pk_insurance_plan")),
    )
    op.create_table(
        "practice_location",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider_npi", sa.String(10), nullable=False),
        sa.Column("address_line1", sa.String(), nullable=True),
        sa.Column("address_line2", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("state", sa.String(2), nullable=True),
        sa.Column("zip_code", sa.String(10), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("fax", sa.String(20), nullable=True),
        sa.Column("data_source", ENUM, nullable=False),
        sa.Column("enriched_at", UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["provider_npi"],
            ["provider.npi"],
            name=op.f("fk_practice_location_provider_npi_provider"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_practice_location")),
    )
    op.create_index(
        op.f("ix_practice_location_provider_npi"),
        "practice_location",
        ["provider_npi"],
    )

    op.create_table(
        "provider_plan_acceptance",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider_npi", sa.String(10), nullable=False),
        sa.Column("plan_id", sa.String(64), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("acceptance_status", ENUM, nullable=False),
        sa.Column("confidence_score", sa.Integer(), nullable=False),
        sa.Column("confidence_factors", ConfidenceFactorsType(), nullable=True),
        sa.Column("verification_count", sa.Integer(), nullable=False),
        sa.Column("last_verified_at", UTCDateTime(), nullable=True),
        sa.Column("expires_at", UTCDateTime(), nullable=True),
        sa.Column("data_source", ENUM, nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["provider_npi"],
            ["provider.npi"],
            name=op.f("fk_provider_plan_acceptance_provider_npi_provider"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["plan_id"],
            ["insurance_plan.plan_id"],
            name=op.f("fk_provider_plan_acceptance_plan_id_insurance_plan"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["location_id"],
            ["practice_location.id"],
            name=op.f("fk_provider_plan_acceptance_location_id_practice_location"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_provider_plan_acceptance")),
        sa.UniqueConstraint(
            "provider_npi",
            "plan_id",
            "location_id",
            name=op.f("uq_provider_plan_acceptance_provider_npi"),
        ),
    )
    op.create_index(
        op.f("ix_provider_plan_acceptance_expires_at"),
        "provider_plan_acceptance",
        ["expires_at"],
    )
    op.create_index(
        "uq_provider_plan_acceptance_no_location",
        "provider_plan_acceptance",
        ["provider_npi", "plan_id"],
        unique=True,
        sqlite_where=sa.text("location_id IS NULL"),
        postgresql_where=sa.text("location_id IS NULL"),
    )

    op.create_table(
        "verification_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider_npi", sa.String(10), nullable=True),
        sa.Column("plan_id", sa.String(64), nullable=True),
        sa.Column("acceptance_id", sa.Uuid(), nullable=True),
        sa.Column("verification_type", ENUM, nullable=False),
        sa.Column("verification_source", ENUM, nullable=False),
        sa.Column("previous_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("evidence_url", sa.String(500), nullable=True),
        sa.Column("is_approved", sa.Boolean(), nullable=True),
        sa.Column("source_ip", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("submitted_by", sa.String(200), nullable=True),
        sa.Column("upvotes", sa.Integer(), nullable=False),
        sa.Column("downvotes", sa.Integer(), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("expires_at", UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["provider_npi"],
            ["provider.npi"],
            name=op.f("fk_verification_log_provider_npi_provider"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["plan_id"],
            ["insurance_plan.plan_id"],
            name=op.f("fk_verification_log_plan_id_insurance_plan"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["acceptance_id"],
            ["provider_plan_acceptance.id"],
            name=op.f("fk_verification_log_acceptance_id_provider_plan_acceptance"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_verification_log")),
    )
    op.create_index(
        op.f("ix_verification_log_acceptance_id"), "verification_log", ["acceptance_id"]
    )
    op.create_index(op.f("ix_verification_log_source_ip"), "verification_log", ["source_ip"])
    op.create_index(op.f("ix_verification_log_created_at"), "verification_log", ["created_at"])
    op.create_index(op.f("ix_verification_log_expires_at"), "verification_log", ["expires_at"])
    op.create_index(
        "ix_verification_log_pair_created",
        "verification_log",
        ["provider_npi", "plan_id", "created_at"],
    )

    op.create_table(
        "vote_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("verification_id", sa.Uuid(), nullable=False),
        sa.Column("source_ip", sa.String(64), nullable=False),
        sa.Column("direction", ENUM, nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["verification_id"],
            ["verification_log.id"],
            name=op.f("fk_vote_log_verification_id_verification_log"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_vote_log")),
        sa.UniqueConstraint(
            "verification_id",
            "source_ip",
            name=op.f("uq_vote_log_verification_id"),
        ),
    )

    op.create_table(
        "import_conflict",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_type", ENUM, nullable=False),
        sa.Column("target_record_id", sa.String(64), nullable=False),
        sa.Column("field_name", sa.String(64), nullable=False),
        sa.Column("current_value", sa.Text(), nullable=True),
        sa.Column("incoming_value", sa.Text(), nullable=True),
        sa.Column("current_source", ENUM, nullable=True),
        sa.Column("incoming_source", ENUM, nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("resolved_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_import_conflict")),
        sa.UniqueConstraint(
            "record_type",
            "target_record_id",
            "field_name",
            "incoming_value",
            name=op.f("uq_import_conflict_record_type"),
        ),
    )
    op.create_index(op.f("ix_import_conflict_status"), "import_conflict", ["status"])


def downgrade() -> None:
    op.drop_index(op.f("ix_import_conflict_status"), table_name="import_conflict")
    op.drop_table("import_conflict")
    op.drop_table("vote_log")
    op.drop_index("ix_verification_log_pair_created", table_name="verification_log")
    op.drop_index(op.f("ix_verification_log_expires_at"), table_name="verification_log")
    op.drop_index(op.f("ix_verification_log_created_at"), table_name="verification_log")
    op.drop_index(op.f("ix_verification_log_source_ip"), table_name="verification_log")
    op.drop_index(op.f("ix_verification_log_acceptance_id"), table_name="verification_log")
    op.drop_table("verification_log")
    op.drop_index(
        "uq_provider_plan_acceptance_no_location", table_name="provider_plan_acceptance"
    )
    op.drop_index(
        op.f("ix_provider_plan_acceptance_expires_at"), table_name="provider_plan_acceptance"
    )
    op.drop_table("provider_plan_acceptance")
    op.drop_index(op.f("ix_practice_location_provider_npi"), table_name="practice_location")
    op.drop_table("practice_location")
    op.drop_table("insurance_plan")
    op.drop_table("provider")
