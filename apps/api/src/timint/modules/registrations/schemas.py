"""
Registration Schemas

Pydantic schemas for request validation and response serialization.
"""

import re
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from timint.modules.registrations.models import ApplicantStatus, KycStatus

MIN_APPLICANT_AGE = 13
MAX_APPLICANT_AGE = 17

PHONE_PATTERN = re.compile(r"^[\+]?[(]?[0-9]{3}[)]?[-\s\.]?[0-9]{3}[-\s\.]?[0-9]{4,6}$")


class RegistrationCreate(BaseModel):
    """Request body for POST /registrations."""

    # Applicant
    name: str = Field(..., min_length=2, max_length=100)
    age: int = Field(..., ge=MIN_APPLICANT_AGE, le=MAX_APPLICANT_AGE)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    address: str = Field(..., min_length=10, max_length=500)
    phone: str = Field(..., max_length=20)

    # Guardian
    guardian_name: str = Field(..., min_length=2, max_length=100)
    guardian_email: EmailStr

    # Claim
    claim_name: str = Field(..., min_length=2, max_length=100)
    description: str | None = Field(None, max_length=1000)

    @field_validator("name", "guardian_name", "claim_name", "address")
    @classmethod
    def strip_required_text(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 2:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("invalid phone number format")
        return value

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not re.search(r"[A-Z]", value):
            raise ValueError("password must contain an uppercase letter")
        if not re.search(r"[a-z]", value):
            raise ValueError("password must contain a lowercase letter")
        if not re.search(r"[0-9]", value):
            raise ValueError("password must contain a number")
        return value


class RegistrationResponse(BaseModel):
    """Response after submitting a registration."""

    id: UUID
    status: ApplicantStatus
    message: str = "Registration submitted. We've emailed your guardian for consent."
    guardian_link_expires_at: datetime


class GuardianDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class GuardianTokenView(BaseModel):
    """What the guardian sees when opening the consent link."""

    applicant_id: UUID
    applicant_name: str
    applicant_age: int
    guardian_name: str
    claim_name: str
    description: str | None = None
    status: ApplicantStatus
    guardian_approved: bool
    expires_at: datetime


class GuardianDecisionRequest(BaseModel):
    action: GuardianDecision


class GuardianDecisionResponse(BaseModel):
    action: GuardianDecision
    status: ApplicantStatus | None = None  # None once the registration is deleted
    message: str


class DocumentUploadResponse(BaseModel):
    id: UUID
    status: ApplicantStatus
    kyc_status: KycStatus
    message: str = "Documents uploaded. Your registration is now under review."


class ResendGuardianEmailRequest(BaseModel):
    applicant_id: UUID
    email: EmailStr


class ResendGuardianEmailResponse(BaseModel):
    message: str = "Guardian email resent successfully."
    expires_at: datetime


class ClaimResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_name: str
    description: str | None = None
    registered: bool
    registration_id: str
    external_record_ref: str | None = None
    ownership_token: str | None = None
    registered_at: datetime | None = None


class RegistrationStatusResponse(BaseModel):
    """Founder dashboard view of their own registration."""

    id: UUID
    name: str
    status: ApplicantStatus
    guardian_approved: bool
    kyc_status: KycStatus
    submitted_at: datetime
    claim: ClaimResponse


# ============================================
# Admin schemas
# ============================================


class ReviewQueueItem(BaseModel):
    """An applicant awaiting identity review, with temporary document URLs."""

    id: UUID
    name: str
    age: int
    email: str
    guardian_name: str
    guardian_email: str
    claim_name: str
    submitted_at: datetime
    documents_submitted_at: datetime | None = None
    selfie_url: str | None = None
    document_url: str | None = None


class ReviewQueueResponse(BaseModel):
    items: list[ReviewQueueItem]
    total: int
    url_expires_in: int


class ApplicantDetailResponse(BaseModel):
    id: UUID
    name: str
    age: int
    email: str
    address: str
    phone: str
    guardian_name: str
    guardian_email: str
    status: ApplicantStatus
    guardian_approved: bool
    kyc_status: KycStatus
    submitted_at: datetime
    guardian_approved_at: datetime | None = None
    documents_submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None
    claim: ClaimResponse


class ApproveResponse(BaseModel):
    id: UUID
    status: ApplicantStatus
    registration_id: str
    ownership_token: str
    external_record_ref: str
    message: str = "Registration approved. Documents deleted and ownership token issued."


class RejectResponse(BaseModel):
    id: UUID
    status: ApplicantStatus
    message: str = "Registration rejected. Documents deleted."
