"""create registration tables

Revision ID: a7c3e9f1b2d4
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration:
1. Creates the user_role and applicant_status enum types
2. Creates users (founders and platform admins)
3. Creates applicants, claims, guardian_tokens and kyc_documents

Child tables reference applicants with ON DELETE CASCADE so a guardian
rejection removes the whole registration in one delete. Applicants
reference users with ON DELETE CASCADE as well.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c3e9f1b2d4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

USER_ROLES = ("platform_admin", "founder")
APPLICANT_STATUSES = (
    "pending_guardian",
    "pending_documents",
    "under_review",
    "verified",
    "rejected",
)


def upgrade() -> None:
    """Create registration tables."""
    user_role_enum = postgresql.ENUM(*USER_ROLES, name="user_role", create_type=False)
    user_role_enum.create(op.get_bind(), checkfirst=True)

    applicant_status_enum = postgresql.ENUM(
        *APPLICANT_STATUSES, name="applicant_status", create_type=False
    )
    applicant_status_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("role", user_role_enum, nullable=False, server_default="founder"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "applicants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=False),
        # Applicant details
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        # Guardian
        sa.Column("guardian_name", sa.String(length=100), nullable=False),
        sa.Column("guardian_email", sa.String(length=255), nullable=False),
        # Lifecycle
        sa.Column(
            "status",
            applicant_status_enum,
            nullable=False,
            server_default="pending_guardian",
        ),
        sa.Column("review_locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("guardian_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("documents_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_applicants_user_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", name="uq_applicants_user_id"),
    )
    op.create_index("ix_applicants_status", "applicants", ["status"], unique=False)

    op.create_table(
        "claims",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("claim_name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("registered", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("external_record_ref", sa.String(length=255), nullable=True),
        sa.Column("ownership_token", sa.String(length=40), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["applicant_id"],
            ["applicants.id"],
            name="fk_claims_applicant_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("applicant_id", name="uq_claims_applicant_id"),
        sa.UniqueConstraint("ownership_token", name="uq_claims_ownership_token"),
    )
    op.create_index("ix_claims_claim_name", "claims", ["claim_name"], unique=False)

    op.create_table(
        "guardian_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["applicant_id"],
            ["applicants.id"],
            name="fk_guardian_tokens_applicant_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("token_hash", name="uq_guardian_tokens_token_hash"),
    )
    op.create_index(
        "ix_guardian_tokens_applicant_id", "guardian_tokens", ["applicant_id"], unique=False
    )

    op.create_table(
        "kyc_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("selfie_ref", sa.String(length=500), nullable=False),
        sa.Column("document_ref", sa.String(length=500), nullable=False),
        sa.Column(
            "uploaded_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["applicant_id"],
            ["applicants.id"],
            name="fk_kyc_documents_applicant_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("applicant_id", name="uq_kyc_documents_applicant_id"),
    )


def downgrade() -> None:
    """Drop registration tables."""
    op.drop_table("kyc_documents")

    op.drop_index("ix_guardian_tokens_applicant_id", table_name="guardian_tokens")
    op.drop_table("guardian_tokens")

    op.drop_index("ix_claims_claim_name", table_name="claims")
    op.drop_table("claims")

    op.drop_index("ix_applicants_status", table_name="applicants")
    op.drop_table("applicants")

    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

    postgresql.ENUM(*APPLICANT_STATUSES, name="applicant_status").drop(
        op.get_bind(), checkfirst=True
    )
    postgresql.ENUM(*USER_ROLES, name="user_role").drop(op.get_bind(), checkfirst=True)
