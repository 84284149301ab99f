"""
Registration Models

Database models for minor applicants, their startup-name claims,
guardian consent tokens and transient KYC documents.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timint.core.database import Base


class ApplicantStatus(str, enum.Enum):
    """Lifecycle state of an applicant."""

    PENDING_GUARDIAN = "pending_guardian"
    PENDING_DOCUMENTS = "pending_documents"
    UNDER_REVIEW = "under_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


class KycStatus(str, enum.Enum):
    """Identity review status as shown to applicants and admins."""

    NOT_SUBMITTED = "not_submitted"
    UNDER_REVIEW = "under_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


GUARDIAN_APPROVED_STATUSES = frozenset(
    {
        ApplicantStatus.PENDING_DOCUMENTS,
        ApplicantStatus.UNDER_REVIEW,
        ApplicantStatus.VERIFIED,
        ApplicantStatus.REJECTED,
    }
)

_KYC_STATUS_BY_STATUS = {
    ApplicantStatus.PENDING_GUARDIAN: KycStatus.NOT_SUBMITTED,
    ApplicantStatus.PENDING_DOCUMENTS: KycStatus.NOT_SUBMITTED,
    ApplicantStatus.UNDER_REVIEW: KycStatus.UNDER_REVIEW,
    ApplicantStatus.VERIFIED: KycStatus.VERIFIED,
    ApplicantStatus.REJECTED: KycStatus.REJECTED,
}


def kyc_status_for(status: ApplicantStatus) -> KycStatus:
    return _KYC_STATUS_BY_STATUS[status]


class Applicant(Base):
    """
    A minor registering a startup-name claim.

    `status` is the single source of truth for the lifecycle;
    `guardian_approved` and `kyc_status` are derived from it.
    """

    __tablename__ = "applicants"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Founder account created alongside the registration
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Applicant details
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)

    # Guardian
    guardian_name: Mapped[str] = mapped_column(String(100), nullable=False)
    guardian_email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Lifecycle
    status: Mapped[ApplicantStatus] = mapped_column(
        Enum(
            ApplicantStatus,
            name="applicant_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=ApplicantStatus.PENDING_GUARDIAN,
    )
    # Set while an admin decision is in flight
    review_locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    guardian_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    documents_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    claim: Mapped["Claim"] = relationship(
        "Claim",
        back_populates="applicant",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    guardian_tokens: Mapped[list["GuardianToken"]] = relationship(
        "GuardianToken", back_populates="applicant", cascade="all, delete-orphan"
    )
    kyc_document: Mapped["KycDocument | None"] = relationship(
        "KycDocument",
        back_populates="applicant",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_applicants_status", "status"),)

    @property
    def guardian_approved(self) -> bool:
        return self.status in GUARDIAN_APPROVED_STATUSES

    @property
    def kyc_status(self) -> KycStatus:
        return kyc_status_for(self.status)


class Claim(Base):
    """
    The startup-name registration owned by an applicant.

    `registered` is only set together with both external references,
    in the same write that moves the applicant to VERIFIED.
    """

    __tablename__ = "claims"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applicants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    claim_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external_record_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ownership_token: Mapped[str | None] = mapped_column(String(40), nullable=True, unique=True)
    registered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    applicant: Mapped["Applicant"] = relationship("Applicant", back_populates="claim")

    __table_args__ = (Index("ix_claims_claim_name", "claim_name"),)


class GuardianToken(Base):
    """
    Single-use guardian consent credential.

    Only the SHA-256 hash of the token is stored; the plain value is emailed.
    Tokens expire 24 hours after issue.
    """

    __tablename__ = "guardian_tokens"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applicants.id", ondelete="CASCADE"),
        nullable=False,
    )

    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    applicant: Mapped["Applicant"] = relationship("Applicant", back_populates="guardian_tokens")

    __table_args__ = (Index("ix_guardian_tokens_applicant_id", "applicant_id"),)

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None


class KycDocument(Base):
    """
    Selfie and identity document references awaiting manual review.

    Rows and blobs are deleted as the first step of the admin decision.
    """

    __tablename__ = "kyc_documents"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applicants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    selfie_ref: Mapped[str] = mapped_column(String(500), nullable=False)
    document_ref: Mapped[str] = mapped_column(String(500), nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    applicant: Mapped["Applicant"] = relationship("Applicant", back_populates="kyc_document")
