"""
Registrations Repository

Database operations for applicants, claims, guardian tokens and KYC documents.

Design Principles:
- Single responsibility - only database operations, no business logic
- Every status change goes through validate_transition
- Admin decisions use conditional updates so only one caller can win
- Timezone-aware datetime handling (UTC)
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Applicant, ApplicantStatus, Claim, GuardianToken, KycDocument
from .schemas import RegistrationCreate

# Valid status transitions - the only way an applicant can move
APPLICANT_TRANSITIONS: dict[ApplicantStatus, set[ApplicantStatus]] = {
    ApplicantStatus.PENDING_GUARDIAN: {
        ApplicantStatus.PENDING_DOCUMENTS,  # Guardian approved
    },
    ApplicantStatus.PENDING_DOCUMENTS: {
        ApplicantStatus.UNDER_REVIEW,  # Documents uploaded
    },
    ApplicantStatus.UNDER_REVIEW: {
        ApplicantStatus.VERIFIED,  # Admin approved
        ApplicantStatus.REJECTED,  # Admin rejected
    },
    # Terminal states - no transitions allowed
    ApplicantStatus.VERIFIED: set(),
    ApplicantStatus.REJECTED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: ApplicantStatus, new_status: ApplicantStatus):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = APPLICANT_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def validate_transition(current_status: ApplicantStatus, new_status: ApplicantStatus) -> None:
    """
    Check a status change against the transition table.

    Re-setting the current status is allowed (idempotent writes).

    Raises:
        InvalidStatusTransitionError: If the change is not allowed
    """
    if new_status == current_status:
        return
    if new_status not in APPLICANT_TRANSITIONS.get(current_status, set()):
        raise InvalidStatusTransitionError(current_status, new_status)


# ============================================
# Applicant / Claim
# ============================================


async def create_applicant(
    db: AsyncSession,
    *,
    user_id: str,
    data: RegistrationCreate,
) -> Applicant:
    """Create a new applicant in PENDING_GUARDIAN."""

    applicant = Applicant(
        user_id=user_id,
        name=data.name,
        age=data.age,
        email=data.email.lower(),
        address=data.address,
        phone=data.phone,
        guardian_name=data.guardian_name,
        guardian_email=data.guardian_email.lower(),
        status=ApplicantStatus.PENDING_GUARDIAN,
    )

    db.add(applicant)
    await db.commit()
    await db.refresh(applicant)

    return applicant


async def create_claim(
    db: AsyncSession,
    *,
    applicant_id: UUID,
    claim_name: str,
    description: str | None,
) -> Claim:
    """Create the claim for an applicant."""

    claim = Claim(
        applicant_id=applicant_id,
        claim_name=claim_name,
        description=description,
        registered=False,
    )

    db.add(claim)
    await db.commit()
    await db.refresh(claim)

    return claim


async def get_by_id(db: AsyncSession, id: UUID) -> Applicant | None:
    """Get applicant by ID."""
    return await db.get(Applicant, id, populate_existing=True)


async def get_by_user_id(db: AsyncSession, user_id: str | UUID) -> Applicant | None:
    """Get the applicant owned by a founder account."""
    result = await db.execute(select(Applicant).where(Applicant.user_id == str(user_id)))
    return result.scalar_one_or_none()


async def get_claim_for_applicant(db: AsyncSession, applicant_id: UUID) -> Claim | None:
    result = await db.execute(select(Claim).where(Claim.applicant_id == applicant_id))
    return result.scalar_one_or_none()


async def get_claim_by_id(db: AsyncSession, claim_id: UUID) -> Claim | None:
    return await db.get(Claim, claim_id, populate_existing=True)


async def delete_applicant(db: AsyncSession, id: UUID) -> bool:
    """
    Delete an applicant.

    Claim, guardian tokens and KYC document rows go with it (ON DELETE CASCADE).

    Returns:
        True if a row was deleted
    """
    result = await db.execute(delete(Applicant).where(Applicant.id == id))
    await db.commit()
    return result.rowcount > 0


async def update_status(
    db: AsyncSession,
    id: UUID,
    status: ApplicantStatus,
    **kwargs,
) -> Applicant:
    """
    Update applicant status and optional fields.

    Args:
        db: Database session
        id: Applicant UUID
        status: New status to set
        **kwargs: Additional fields to update (e.g., guardian_approved_at)

    Returns:
        Updated Applicant

    Raises:
        ValueError: If applicant not found
        InvalidStatusTransitionError: If status transition is not allowed
    """
    applicant = await get_by_id(db, id)
    if not applicant:
        raise ValueError(f"Applicant {id} not found")

    validate_transition(applicant.status, status)

    applicant.status = status

    for key, value in kwargs.items():
        if hasattr(applicant, key):
            setattr(applicant, key, value)

    await db.commit()
    await db.refresh(applicant)

    return applicant


async def mark_documents_submitted(
    db: AsyncSession,
    id: UUID,
    submitted_at: datetime,
) -> bool:
    """
    Move PENDING_DOCUMENTS -> UNDER_REVIEW and consume the applicant's
    outstanding guardian tokens in one transaction.

    Returns:
        False if the applicant was no longer in PENDING_DOCUMENTS
    """
    validate_transition(ApplicantStatus.PENDING_DOCUMENTS, ApplicantStatus.UNDER_REVIEW)

    result = await db.execute(
        update(Applicant)
        .where(
            Applicant.id == id,
            Applicant.status == ApplicantStatus.PENDING_DOCUMENTS,
        )
        .values(
            status=ApplicantStatus.UNDER_REVIEW,
            documents_submitted_at=submitted_at,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        return False

    await db.execute(
        update(GuardianToken)
        .where(
            GuardianToken.applicant_id == id,
            GuardianToken.consumed_at.is_(None),
        )
        .values(consumed_at=submitted_at)
    )
    await db.commit()
    return True


# ============================================
# Admin review lock
# ============================================


async def claim_review_lock(
    db: AsyncSession,
    id: UUID,
    now: datetime,
    stale_before: datetime,
) -> bool:
    """
    Take the admin decision lock for an applicant under review.

    Succeeds only if the applicant is UNDER_REVIEW and nobody holds a
    fresh lock. Exactly one concurrent caller gets True.
    """
    result = await db.execute(
        update(Applicant)
        .where(
            Applicant.id == id,
            Applicant.status == ApplicantStatus.UNDER_REVIEW,
            or_(
                Applicant.review_locked_at.is_(None),
                Applicant.review_locked_at < stale_before,
            ),
        )
        .values(review_locked_at=now)
    )
    await db.commit()
    return result.rowcount == 1


async def release_review_lock(db: AsyncSession, id: UUID) -> None:
    """Release the decision lock so the decision can be retried."""
    await db.rollback()
    await db.execute(
        update(Applicant)
        .where(
            Applicant.id == id,
            Applicant.status == ApplicantStatus.UNDER_REVIEW,
        )
        .values(review_locked_at=None)
    )
    await db.commit()


async def complete_review(
    db: AsyncSession,
    id: UUID,
    status: ApplicantStatus,
    *,
    reviewed_by: UUID | None,
    reviewed_at: datetime,
    claim_fields: dict | None = None,
) -> Applicant | None:
    """
    Record the admin decision and clear the lock.

    The applicant and claim updates commit together, conditional on the
    applicant still being UNDER_REVIEW.

    Returns:
        The updated applicant, or None if it had already left UNDER_REVIEW
    """
    validate_transition(ApplicantStatus.UNDER_REVIEW, status)

    result = await db.execute(
        update(Applicant)
        .where(
            Applicant.id == id,
            Applicant.status == ApplicantStatus.UNDER_REVIEW,
        )
        .values(
            status=status,
            review_locked_at=None,
            reviewed_by=reviewed_by,
            reviewed_at=reviewed_at,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        return None

    if claim_fields:
        await db.execute(update(Claim).where(Claim.applicant_id == id).values(**claim_fields))

    await db.commit()
    return await get_by_id(db, id)


async def get_under_review(
    db: AsyncSession,
    *,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Applicant], int]:
    """
    Get applicants awaiting identity review, oldest submission first.

    Returns:
        Tuple of (applicants, total count)
    """
    query = select(Applicant).where(Applicant.status == ApplicantStatus.UNDER_REVIEW)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar() or 0

    result = await db.execute(
        query.order_by(Applicant.documents_submitted_at.asc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total


# ============================================
# GuardianToken Repository
# ============================================


async def create_token(
    db: AsyncSession,
    *,
    applicant_id: UUID,
    token_hash: str,
    issued_at: datetime,
    expires_at: datetime,
) -> GuardianToken:
    """Create a new guardian token (hash only)."""

    token = GuardianToken(
        applicant_id=applicant_id,
        token_hash=token_hash,
        issued_at=issued_at,
        expires_at=expires_at,
    )

    db.add(token)
    await db.commit()
    await db.refresh(token)

    return token


async def get_token_by_hash(db: AsyncSession, token_hash: str) -> GuardianToken | None:
    result = await db.execute(select(GuardianToken).where(GuardianToken.token_hash == token_hash))
    return result.scalar_one_or_none()


async def delete_tokens_for_applicant(db: AsyncSession, applicant_id: UUID) -> None:
    await db.execute(delete(GuardianToken).where(GuardianToken.applicant_id == applicant_id))
    await db.commit()


# ============================================
# KYC Document Repository
# ============================================


async def create_kyc_documents(
    db: AsyncSession,
    *,
    applicant_id: UUID,
    selfie_ref: str,
    document_ref: str,
) -> KycDocument:
    """
    Record the uploaded document pair.

    The unique applicant_id constraint rejects a second concurrent upload.
    """
    documents = KycDocument(
        applicant_id=applicant_id,
        selfie_ref=selfie_ref,
        document_ref=document_ref,
    )

    db.add(documents)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(documents)

    return documents


async def get_kyc_documents(db: AsyncSession, applicant_id: UUID) -> KycDocument | None:
    result = await db.execute(select(KycDocument).where(KycDocument.applicant_id == applicant_id))
    return result.scalar_one_or_none()


async def delete_kyc_documents(db: AsyncSession, applicant_id: UUID) -> bool:
    """Delete the document pair record. Missing rows are not an error."""
    result = await db.execute(delete(KycDocument).where(KycDocument.applicant_id == applicant_id))
    await db.commit()
    return result.rowcount > 0
