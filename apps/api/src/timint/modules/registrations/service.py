"""
Registrations Service Layer

Guardian consent and KYC lifecycle for minor founders.
Orchestrates the repository, document storage, the external ledger and
email notifications.

Lifecycle:
    PENDING_GUARDIAN -> PENDING_DOCUMENTS -> UNDER_REVIEW -> VERIFIED | REJECTED

1. Submission:
   - Create the founder account, applicant and claim (compensating deletes on failure)
   - Mint a 24h guardian token and email the guardian (best effort)

2. Guardian decision (via emailed token):
   - approve: PENDING_GUARDIAN -> PENDING_DOCUMENTS, token stays usable for upload
   - reject: applicant, claim, tokens and account are deleted

3. Document upload:
   - Requires PENDING_DOCUMENTS; stores selfie + ID, moves to UNDER_REVIEW
   - Consumes the guardian token

4. Admin decision:
   - Single winner via a conditional review lock
   - Documents are always purged first
   - approve: ledger record, ownership token, VERIFIED
   - reject: REJECTED, rows kept

Security considerations:
- Guardian tokens use secrets.token_urlsafe (256 bits) and are stored as SHA-256 hashes
- No token, password or document content is logged
- Resend is rate limited via Redis and fails closed without it
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from timint.core import email
from timint.core.database import get_db
from timint.core.ledger import Ledger, RegistrationRecord, get_ledger
from timint.core.security import hash_password
from timint.core.storage import BlobStore, get_blob_store
from timint.modules.registrations import repository
from timint.modules.registrations.helpers import (
    create_registration_signature,
    generate_guardian_token,
    generate_ownership_token,
    hash_token,
    registration_id,
    timestamp_ms,
)
from timint.modules.registrations.models import (
    Applicant,
    ApplicantStatus,
    Claim,
    GuardianToken,
    KycStatus,
)
from timint.modules.registrations.schemas import (
    ApplicantDetailResponse,
    ApproveResponse,
    ClaimResponse,
    DocumentUploadResponse,
    GuardianDecision,
    GuardianDecisionResponse,
    GuardianTokenView,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationStatusResponse,
    RejectResponse,
    ResendGuardianEmailResponse,
    ReviewQueueItem,
    ReviewQueueResponse,
)
from timint.modules.users.models import UserRole
from timint.modules.users.repository import UserRepository, split_name

logger = logging.getLogger(__name__)

# Constants
GUARDIAN_TOKEN_TTL = timedelta(hours=24)
REVIEW_LOCK_TTL = timedelta(minutes=10)
SIGNED_URL_TTL_SECONDS = 3600

MAX_DOCUMENT_BYTES = 5 * 1024 * 1024
ALLOWED_DOCUMENT_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
}

# Rate limiting constants
RESEND_RATE_LIMIT_MAX_REQUESTS = 3
RESEND_RATE_LIMIT_WINDOW_SECONDS = 3600


def utc_now() -> datetime:
    return datetime.now(UTC)


# ============================================
# Errors
# ============================================


class RegistrationServiceError(Exception):
    """Base exception for registration service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class RegistrationNotFoundError(RegistrationServiceError):
    """Raised when an applicant is not found."""

    def __init__(self, applicant_id: UUID | None = None):
        message = (
            f"Registration {applicant_id} not found" if applicant_id else "Registration not found"
        )
        super().__init__(message=message, error_code="REGISTRATION_NOT_FOUND", status_code=404)


class DuplicateRegistrationError(RegistrationServiceError):
    def __init__(self):
        super().__init__(
            message="An account with this email already exists.",
            error_code="DUPLICATE_REGISTRATION",
            status_code=409,
        )


class TokenNotFoundError(RegistrationServiceError):
    """Raised when a guardian token is unknown or its registration is gone."""

    def __init__(self):
        super().__init__(
            message="This verification link is invalid or the registration no longer exists.",
            error_code="TOKEN_NOT_FOUND",
            status_code=404,
        )


class TokenExpiredError(RegistrationServiceError):
    def __init__(self):
        super().__init__(
            message="This verification link has expired. Please ask for a new one.",
            error_code="TOKEN_EXPIRED",
            status_code=410,
        )


class TokenAlreadyUsedError(RegistrationServiceError):
    def __init__(self):
        super().__init__(
            message="This verification link has already been used.",
            error_code="TOKEN_ALREADY_USED",
            status_code=409,
        )


class InvalidRegistrationStateError(RegistrationServiceError):
    """Raised when the applicant is not in the state an operation requires."""

    def __init__(self, message: str, expected_state: str | None = None):
        detail = message
        if expected_state:
            detail = f"{message} Expected state: {expected_state}"
        super().__init__(message=detail, error_code="INVALID_REGISTRATION_STATE", status_code=409)


class InvalidDocumentError(RegistrationServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="INVALID_DOCUMENT", status_code=400)


class InvalidEmailError(RegistrationServiceError):
    """Raised when the provided email doesn't match the registration."""

    def __init__(self):
        super().__init__(
            message="Email does not match the registration",
            error_code="INVALID_EMAIL",
            status_code=403,
        )


class DependencyFailureError(RegistrationServiceError):
    """
    Raised when storage, the ledger or the database fails mid-operation.

    The message is generic; details go to the log only.
    """

    def __init__(self, message: str = "A required service is unavailable. Please try again later."):
        super().__init__(message=message, error_code="SERVICE_UNAVAILABLE", status_code=503)


class RateLimitExceededError(RegistrationServiceError):
    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        minutes = max(1, retry_after_seconds // 60)
        super().__init__(
            message=f"Too many resend requests. Please try again in {minutes} minute(s).",
            error_code="RATE_LIMIT_EXCEEDED",
            status_code=429,
        )


# ============================================
# Upload payload
# ============================================


@dataclass(frozen=True)
class UploadedDocument:
    """An image received from the client."""

    filename: str
    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return ALLOWED_DOCUMENT_TYPES[self.content_type]


def _validate_document(document: UploadedDocument, label: str) -> None:
    if document.content_type not in ALLOWED_DOCUMENT_TYPES:
        raise InvalidDocumentError(f"The {label} must be a JPG or PNG image.")
    if not document.data:
        raise InvalidDocumentError(f"The {label} file is empty.")
    if len(document.data) > MAX_DOCUMENT_BYTES:
        raise InvalidDocumentError(f"The {label} must be under 5MB.")


def _claim_response(claim: Claim) -> ClaimResponse:
    return ClaimResponse(
        id=claim.id,
        claim_name=claim.claim_name,
        description=claim.description,
        registered=claim.registered,
        registration_id=registration_id(str(claim.id)),
        external_record_ref=claim.external_record_ref,
        ownership_token=claim.ownership_token,
        registered_at=claim.registered_at,
    )


class RegistrationService:
    """
    Registration lifecycle manager.

    Collaborators are passed in so tests can substitute fakes:

    Args:
        db: Database session handed to the repositories
        blob_store: KYC document storage
        ledger: External registration ledger
        repo: Registration repository (module-level functions)
        accounts: Founder account repository
        notifier: Email functions (send_guardian_verification, send_kyc_approved, ...)
        clock: Returns the current aware UTC datetime
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        blob_store: BlobStore,
        ledger: Ledger,
        repo=None,
        accounts=None,
        notifier=None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.blob_store = blob_store
        self.ledger = ledger
        self.repository = repo if repo is not None else repository
        self.accounts = accounts if accounts is not None else UserRepository
        self.notifier = notifier if notifier is not None else email
        self.clock = clock or utc_now

    # ============================================
    # Submission
    # ============================================

    async def submit(self, data: RegistrationCreate) -> RegistrationResponse:
        """
        Submit a new registration.

        Input has already been validated by RegistrationCreate, so nothing
        is written for malformed requests.

        Raises:
            DuplicateRegistrationError: If the email already has an account
            DependencyFailureError: If any record could not be created (all rolled back)
        """
        logger.info("Processing registration submission")

        if await self.accounts.email_exists(self.db, data.email):
            logger.warning("Registration rejected: email already registered")
            raise DuplicateRegistrationError()

        first_name, last_name = split_name(data.name)
        user = None
        applicant: Applicant | None = None
        try:
            user = await self.accounts.create(
                self.db,
                email=data.email,
                password_hash=hash_password(data.password),
                first_name=first_name,
                last_name=last_name,
                role=UserRole.FOUNDER,
            )
            applicant = await self.repository.create_applicant(self.db, user_id=user.id, data=data)
            await self.repository.create_claim(
                self.db,
                applicant_id=applicant.id,
                claim_name=data.claim_name,
                description=data.description,
            )
            plain_token, expires_at = await self._issue_guardian_token(applicant.id)
        except Exception as e:
            logger.error(f"Registration submission failed, rolling back: {e}", exc_info=True)
            await self._rollback_submission(
                user.id if user else None, applicant.id if applicant else None
            )
            raise DependencyFailureError(
                "Your registration could not be saved. Please try again later."
            ) from e

        logger.info(f"Created applicant {applicant.id} with claim '{data.claim_name}'")

        await self._send_guardian_email(applicant, data.claim_name, plain_token)

        return RegistrationResponse(
            id=applicant.id,
            status=applicant.status,
            guardian_link_expires_at=expires_at,
        )

    async def _issue_guardian_token(self, applicant_id: UUID) -> tuple[str, datetime]:
        """Mint a token; only its hash is stored. Returns (plain token, expiry)."""
        plain_token = generate_guardian_token()
        issued_at = self.clock()
        expires_at = issued_at + GUARDIAN_TOKEN_TTL

        await self.repository.create_token(
            self.db,
            applicant_id=applicant_id,
            token_hash=hash_token(plain_token),
            issued_at=issued_at,
            expires_at=expires_at,
        )
        logger.info(f"Created guardian token for applicant {applicant_id}")
        return plain_token, expires_at

    async def _rollback_submission(self, user_id: str | None, applicant_id: UUID | None) -> None:
        """Compensating deletes for a half-written submission."""
        try:
            await self.db.rollback()
            if applicant_id is not None:
                await self.repository.delete_applicant(self.db, applicant_id)
            if user_id is not None:
                await self.accounts.delete(self.db, user_id)
        except Exception as e:
            logger.error(
                f"Compensating delete failed for user {user_id} / applicant {applicant_id}: {e}",
                exc_info=True,
            )

    async def _send_guardian_email(self, applicant: Applicant, claim_name: str, token: str) -> None:
        # Non-blocking - log error but don't fail the request
        try:
            sent = await self.notifier.send_guardian_verification(
                to_email=applicant.guardian_email,
                guardian_name=applicant.guardian_name,
                applicant_name=applicant.name,
                applicant_age=applicant.age,
                claim_name=claim_name,
                token=token,
            )
            if not sent:
                logger.error(f"Failed to send guardian email for applicant {applicant.id}")
        except Exception as e:
            logger.error(f"Exception sending guardian email for applicant {applicant.id}: {e}")

    # ============================================
    # Guardian token
    # ============================================

    async def resolve_guardian_token(self, token: str) -> tuple[GuardianToken, Applicant]:
        """
        Look up a guardian token. Pure read.

        Raises:
            TokenNotFoundError: Unknown token, or its applicant was deleted
            TokenExpiredError: now >= expires_at
            TokenAlreadyUsedError: Token was consumed
        """
        guardian_token = await self.repository.get_token_by_hash(self.db, hash_token(token))

        if guardian_token is None:
            logger.warning("Guardian token validation failed: token not found")
            raise TokenNotFoundError()

        if self.clock() >= guardian_token.expires_at:
            logger.warning(f"Guardian token expired for applicant {guardian_token.applicant_id}")
            raise TokenExpiredError()

        if guardian_token.consumed_at is not None:
            logger.warning(f"Guardian token already used for applicant {guardian_token.applicant_id}")
            raise TokenAlreadyUsedError()

        applicant = await self.repository.get_by_id(self.db, guardian_token.applicant_id)
        if applicant is None:
            logger.warning(f"Guardian token points at missing applicant {guardian_token.applicant_id}")
            raise TokenNotFoundError()

        return guardian_token, applicant

    async def get_guardian_view(self, token: str) -> GuardianTokenView:
        """Return the registration summary shown on the guardian consent page."""
        guardian_token, applicant = await self.resolve_guardian_token(token)
        claim = await self._get_claim(applicant.id)

        return GuardianTokenView(
            applicant_id=applicant.id,
            applicant_name=applicant.name,
            applicant_age=applicant.age,
            guardian_name=applicant.guardian_name,
            claim_name=claim.claim_name,
            description=claim.description,
            status=applicant.status,
            guardian_approved=applicant.guardian_approved,
            expires_at=guardian_token.expires_at,
        )

    async def guardian_decide(
        self,
        token: str,
        decision: GuardianDecision,
    ) -> GuardianDecisionResponse:
        """
        Apply the guardian's approve/reject decision.

        Approve is idempotent and leaves the token usable for the upload step.
        Reject deletes the registration; repeating it raises TokenNotFoundError.

        Raises:
            TokenNotFoundError / TokenExpiredError / TokenAlreadyUsedError
            InvalidRegistrationStateError: If documents were already submitted
        """
        _, applicant = await self.resolve_guardian_token(token)

        if decision == GuardianDecision.APPROVE:
            return await self._guardian_approve(applicant)
        return await self._guardian_reject(applicant)

    async def _guardian_approve(self, applicant: Applicant) -> GuardianDecisionResponse:
        if applicant.status == ApplicantStatus.PENDING_DOCUMENTS:
            logger.info(f"Guardian approval repeated for applicant {applicant.id} (no-op)")
        elif applicant.status == ApplicantStatus.PENDING_GUARDIAN:
            await self.repository.update_status(
                self.db,
                applicant.id,
                ApplicantStatus.PENDING_DOCUMENTS,
                guardian_approved_at=self.clock(),
            )
            logger.info(f"Applicant {applicant.id} moved to PENDING_DOCUMENTS")
        else:
            raise InvalidRegistrationStateError(
                "This registration has already moved past guardian approval.",
                expected_state=ApplicantStatus.PENDING_GUARDIAN.value,
            )

        return GuardianDecisionResponse(
            action=GuardianDecision.APPROVE,
            status=ApplicantStatus.PENDING_DOCUMENTS,
            message="Thank you. The registration is approved and identity documents can now be uploaded.",
        )

    async def _guardian_reject(self, applicant: Applicant) -> GuardianDecisionResponse:
        if applicant.status not in (
            ApplicantStatus.PENDING_GUARDIAN,
            ApplicantStatus.PENDING_DOCUMENTS,
        ):
            raise InvalidRegistrationStateError(
                "This registration can no longer be declined by the guardian."
            )

        # Account first; applicant, claim and tokens cascade from it
        try:
            account_deleted = await self.accounts.delete(self.db, applicant.user_id)
            applicant_deleted = await self.repository.delete_applicant(self.db, applicant.id)
        except Exception as e:
            logger.error(f"Deleting declined registration {applicant.id} failed: {e}")
            raise DependencyFailureError(
                "Failed to delete the registration. Please try again later."
            ) from e
        if not (account_deleted or applicant_deleted):
            raise TokenNotFoundError()

        logger.info(f"Guardian rejected applicant {applicant.id}; registration deleted")

        return GuardianDecisionResponse(
            action=GuardianDecision.REJECT,
            status=None,
            message="The registration has been declined and all of its data deleted.",
        )

    # ============================================
    # Document upload
    # ============================================

    async def upload_documents_with_token(
        self,
        token: str,
        selfie: UploadedDocument,
        document: UploadedDocument,
    ) -> DocumentUploadResponse:
        """Upload documents through the guardian link."""
        _, applicant = await self.resolve_guardian_token(token)
        return await self.upload_documents(applicant, selfie, document)

    async def upload_documents_for_user(
        self,
        user_id: UUID | str,
        selfie: UploadedDocument,
        document: UploadedDocument,
    ) -> DocumentUploadResponse:
        """Upload documents from the founder's own account."""
        applicant = await self.repository.get_by_user_id(self.db, user_id)
        if applicant is None:
            raise RegistrationNotFoundError()
        return await self.upload_documents(applicant, selfie, document)

    async def upload_documents(
        self,
        applicant: Applicant,
        selfie: UploadedDocument,
        document: UploadedDocument,
    ) -> DocumentUploadResponse:
        """
        Store the selfie and ID document and move the applicant to UNDER_REVIEW.

        Raises:
            InvalidDocumentError: Wrong type, empty or over 5MB
            InvalidRegistrationStateError: Guardian approval missing, or already submitted
            DependencyFailureError: Storage or database failure (no blobs left behind)
        """
        if applicant.status == ApplicantStatus.PENDING_GUARDIAN:
            logger.warning(f"Upload refused for applicant {applicant.id}: guardian not approved")
            raise InvalidRegistrationStateError(
                "Guardian approval is required before documents can be uploaded.",
                expected_state=ApplicantStatus.PENDING_DOCUMENTS.value,
            )
        if applicant.status != ApplicantStatus.PENDING_DOCUMENTS:
            logger.warning(
                f"Upload refused for applicant {applicant.id}: status={applicant.status.value}"
            )
            raise InvalidRegistrationStateError(
                "Documents have already been submitted for this registration.",
                expected_state=ApplicantStatus.PENDING_DOCUMENTS.value,
            )

        _validate_document(selfie, "selfie")
        _validate_document(document, "document")

        now = self.clock()
        ts = timestamp_ms(now)

        try:
            selfie_ref = await self.blob_store.put(
                f"{applicant.user_id}/selfie-{ts}.{selfie.extension}",
                selfie.data,
                selfie.content_type,
            )
        except Exception as e:
            logger.error(f"Selfie upload failed for applicant {applicant.id}: {e}")
            raise DependencyFailureError("Failed to upload selfie. Please try again later.") from e

        try:
            document_ref = await self.blob_store.put(
                f"{applicant.user_id}/document-{ts}.{document.extension}",
                document.data,
                document.content_type,
            )
        except Exception as e:
            logger.error(f"Document upload failed for applicant {applicant.id}: {e}")
            await self._delete_blobs([selfie_ref])
            raise DependencyFailureError(
                "Failed to upload document. Please try again later."
            ) from e

        try:
            await self.repository.create_kyc_documents(
                self.db,
                applicant_id=applicant.id,
                selfie_ref=selfie_ref,
                document_ref=document_ref,
            )
        except Exception as e:
            logger.error(f"Saving document pair failed for applicant {applicant.id}: {e}")
            await self._delete_blobs([selfie_ref, document_ref])
            raise DependencyFailureError(
                "Failed to save document info. Please try again later."
            ) from e

        moved = await self.repository.mark_documents_submitted(self.db, applicant.id, now)
        if not moved:
            logger.warning(f"Applicant {applicant.id} changed state during upload; discarding")
            await self.repository.delete_kyc_documents(self.db, applicant.id)
            await self._delete_blobs([selfie_ref, document_ref])
            raise InvalidRegistrationStateError(
                "Documents have already been submitted for this registration."
            )

        logger.info(f"Applicant {applicant.id} moved to UNDER_REVIEW; guardian token consumed")

        return DocumentUploadResponse(
            id=applicant.id,
            status=ApplicantStatus.UNDER_REVIEW,
            kyc_status=KycStatus.UNDER_REVIEW,
        )

    async def _delete_blobs(self, refs: list[str]) -> None:
        """Delete uploaded blobs after a failed upload step."""
        for ref in refs:
            try:
                await self.blob_store.delete(ref)
            except Exception as e:
                logger.error(f"Failed to clean up uploaded object {ref}: {e}")

    # ============================================
    # Resend guardian email
    # ============================================

    async def resend_guardian_email(
        self,
        applicant_id: UUID,
        applicant_email: str,
        redis_client: Redis | None,
    ) -> ResendGuardianEmailResponse:
        """
        Replace the guardian token and resend the consent email.

        Raises:
            RegistrationNotFoundError: If the applicant doesn't exist
            InvalidEmailError: If the email doesn't match the applicant
            InvalidRegistrationStateError: If the guardian already decided
            RateLimitExceededError: More than 3 requests per hour
            RegistrationServiceError: Redis unavailable (fail closed)
        """
        logger.info(f"Processing guardian email resend for applicant {applicant_id}")

        applicant = await self.repository.get_by_id(self.db, applicant_id)
        if applicant is None:
            raise RegistrationNotFoundError(applicant_id)

        if applicant_email.lower() != applicant.email.lower():
            logger.warning(f"Email mismatch on resend for applicant {applicant_id}")
            raise InvalidEmailError()

        if applicant.status != ApplicantStatus.PENDING_GUARDIAN:
            raise InvalidRegistrationStateError(
                "The guardian has already responded to this registration.",
                expected_state=ApplicantStatus.PENDING_GUARDIAN.value,
            )

        # Fail closed: without Redis we cannot stop email bombing
        if redis_client is None:
            logger.error("Redis unavailable for rate limiting - failing request (security)")
            raise RegistrationServiceError(
                message="Service temporarily unavailable. Please try again later.",
                error_code="SERVICE_UNAVAILABLE",
                status_code=503,
            )
        await _check_resend_rate_limit(redis_client, applicant_id)

        await self.repository.delete_tokens_for_applicant(self.db, applicant_id)
        plain_token, expires_at = await self._issue_guardian_token(applicant_id)

        claim = await self._get_claim(applicant_id)
        await self._send_guardian_email(applicant, claim.claim_name, plain_token)

        return ResendGuardianEmailResponse(expires_at=expires_at)

    # ============================================
    # Founder views
    # ============================================

    async def get_status_for_user(self, user_id: UUID | str) -> RegistrationStatusResponse:
        applicant = await self.repository.get_by_user_id(self.db, user_id)
        if applicant is None:
            raise RegistrationNotFoundError()
        claim = await self._get_claim(applicant.id)

        return RegistrationStatusResponse(
            id=applicant.id,
            name=applicant.name,
            status=applicant.status,
            guardian_approved=applicant.guardian_approved,
            kyc_status=applicant.kyc_status,
            submitted_at=applicant.submitted_at,
            claim=_claim_response(claim),
        )

    async def _get_claim(self, applicant_id: UUID) -> Claim:
        claim = await self.repository.get_claim_for_applicant(self.db, applicant_id)
        if claim is None:
            logger.error(f"Applicant {applicant_id} has no claim")
            raise RegistrationNotFoundError(applicant_id)
        return claim

    # ============================================
    # Admin review
    # ============================================

    async def admin_review_queue(self, *, skip: int = 0, limit: int = 20) -> ReviewQueueResponse:
        """Applicants under review with signed document URLs."""
        applicants, total = await self.repository.get_under_review(self.db, skip=skip, limit=limit)

        items = []
        for applicant in applicants:
            claim = await self._get_claim(applicant.id)
            documents = await self.repository.get_kyc_documents(self.db, applicant.id)
            selfie_url = document_url = None
            if documents is not None:
                selfie_url = await self._signed_url(documents.selfie_ref)
                document_url = await self._signed_url(documents.document_ref)

            items.append(
                ReviewQueueItem(
                    id=applicant.id,
                    name=applicant.name,
                    age=applicant.age,
                    email=applicant.email,
                    guardian_name=applicant.guardian_name,
                    guardian_email=applicant.guardian_email,
                    claim_name=claim.claim_name,
                    submitted_at=applicant.submitted_at,
                    documents_submitted_at=applicant.documents_submitted_at,
                    selfie_url=selfie_url,
                    document_url=document_url,
                )
            )

        return ReviewQueueResponse(items=items, total=total, url_expires_in=SIGNED_URL_TTL_SECONDS)

    async def _signed_url(self, ref: str) -> str | None:
        try:
            return await self.blob_store.signed_url(ref, SIGNED_URL_TTL_SECONDS)
        except Exception as e:
            logger.error(f"Failed to sign URL for {ref}: {e}")
            return None

    async def admin_get_detail(self, applicant_id: UUID) -> ApplicantDetailResponse:
        applicant = await self.repository.get_by_id(self.db, applicant_id)
        if applicant is None:
            raise RegistrationNotFoundError(applicant_id)
        claim = await self._get_claim(applicant_id)

        return ApplicantDetailResponse(
            id=applicant.id,
            name=applicant.name,
            age=applicant.age,
            email=applicant.email,
            address=applicant.address,
            phone=applicant.phone,
            guardian_name=applicant.guardian_name,
            guardian_email=applicant.guardian_email,
            status=applicant.status,
            guardian_approved=applicant.guardian_approved,
            kyc_status=applicant.kyc_status,
            submitted_at=applicant.submitted_at,
            guardian_approved_at=applicant.guardian_approved_at,
            documents_submitted_at=applicant.documents_submitted_at,
            reviewed_at=applicant.reviewed_at,
            reviewed_by=applicant.reviewed_by,
            claim=_claim_response(claim),
        )

    async def _begin_decision(self, applicant_id: UUID, action: str) -> Applicant:
        """Check the applicant is reviewable and take the decision lock."""
        applicant = await self.repository.get_by_id(self.db, applicant_id)
        if applicant is None:
            logger.warning(f"Applicant not found: {applicant_id}")
            raise RegistrationNotFoundError(applicant_id)

        if applicant.status != ApplicantStatus.UNDER_REVIEW:
            logger.warning(f"Cannot {action} applicant {applicant_id}: status={applicant.status.value}")
            raise InvalidRegistrationStateError(
                f"Cannot {action} a registration in '{applicant.status.value}' status.",
                expected_state=ApplicantStatus.UNDER_REVIEW.value,
            )

        now = self.clock()
        locked = await self.repository.claim_review_lock(
            self.db, applicant_id, now, now - REVIEW_LOCK_TTL
        )
        if not locked:
            logger.warning(f"Decision on applicant {applicant_id} already in progress or made")
            raise InvalidRegistrationStateError(
                "Another administrator has already decided or is deciding this registration."
            )

        return applicant

    async def _purge_documents(self, applicant_id: UUID) -> None:
        """
        Delete the document pair (blobs, then record).

        Absence is fine: a retried approval finds nothing to delete.
        """
        documents = await self.repository.get_kyc_documents(self.db, applicant_id)
        if documents is None:
            logger.info(f"No documents to purge for applicant {applicant_id}")
            return

        try:
            await self.blob_store.delete(documents.selfie_ref)
            await self.blob_store.delete(documents.document_ref)
            await self.repository.delete_kyc_documents(self.db, applicant_id)
        except Exception as e:
            logger.error(f"Document purge failed for applicant {applicant_id}: {e}", exc_info=True)
            raise DependencyFailureError(
                "Identity documents could not be deleted. Please try again later."
            ) from e

        logger.info(f"Purged documents for applicant {applicant_id}")

    async def _release_lock(self, applicant_id: UUID) -> None:
        try:
            await self.repository.release_review_lock(self.db, applicant_id)
        except Exception as e:
            logger.error(f"Failed to release review lock for applicant {applicant_id}: {e}")

    async def admin_approve(self, applicant_id: UUID, admin_id: UUID) -> ApproveResponse:
        """
        Approve a registration.

        Order: purge documents, submit ledger record, derive ownership token,
        mark VERIFIED/registered, then notify. A ledger failure leaves the
        documents deleted and the applicant UNDER_REVIEW, so the call can be
        repeated.

        Raises:
            RegistrationNotFoundError: Unknown applicant
            InvalidRegistrationStateError: Not UNDER_REVIEW, or another decision won
            DependencyFailureError: Storage or ledger failure
        """
        logger.info(f"Admin {admin_id} approving applicant {applicant_id}")

        applicant = await self._begin_decision(applicant_id, "approve")

        try:
            await self._purge_documents(applicant_id)

            claim = await self._get_claim(applicant_id)
            approved_at = self.clock()
            ts = timestamp_ms(approved_at)

            record = RegistrationRecord(
                claim_name=claim.claim_name,
                applicant_id=str(applicant_id),
                applicant_name=applicant.name,
                guardian_name=applicant.guardian_name,
                timestamp_ms=ts,
                signature=create_registration_signature(
                    claim.claim_name, str(applicant_id), applicant.guardian_name, ts
                ),
            )
            try:
                external_ref = await self.ledger.submit(record)
            except Exception as e:
                logger.error(f"Ledger submission failed for applicant {applicant_id}: {e}")
                raise DependencyFailureError(
                    "The registration could not be recorded. Please retry the approval later."
                ) from e

            ownership_token = generate_ownership_token(
                claim.claim_name, str(applicant_id), ts, external_ref
            )

            updated = await self.repository.complete_review(
                self.db,
                applicant_id,
                ApplicantStatus.VERIFIED,
                reviewed_by=admin_id,
                reviewed_at=approved_at,
                claim_fields={
                    "registered": True,
                    "external_record_ref": external_ref,
                    "ownership_token": ownership_token,
                    "registered_at": approved_at,
                },
            )
            if updated is None:
                raise InvalidRegistrationStateError(
                    "Another administrator has already decided this registration."
                )
        except Exception:
            await self._release_lock(applicant_id)
            raise

        logger.info(f"Applicant {applicant_id} VERIFIED with token {ownership_token}")

        try:
            await self.accounts.mark_verified(self.db, applicant.user_id)
        except Exception as e:
            logger.error(f"Failed to flag account verified for applicant {applicant_id}: {e}")

        reg_id = registration_id(str(claim.id))
        try:
            sent = await self.notifier.send_kyc_approved(
                to_email=applicant.email,
                applicant_name=applicant.name,
                claim_name=claim.claim_name,
                ownership_token=ownership_token,
                registration_id=reg_id,
            )
            if not sent:
                logger.error(f"Failed to send approval email for applicant {applicant_id}")
        except Exception as e:
            logger.error(f"Exception sending approval email for applicant {applicant_id}: {e}")

        return ApproveResponse(
            id=applicant_id,
            status=ApplicantStatus.VERIFIED,
            registration_id=reg_id,
            ownership_token=ownership_token,
            external_record_ref=external_ref,
        )

    async def admin_reject(self, applicant_id: UUID, admin_id: UUID) -> RejectResponse:
        """
        Reject a registration after identity review.

        Documents are purged; the applicant and claim rows are kept as REJECTED.
        """
        logger.info(f"Admin {admin_id} rejecting applicant {applicant_id}")

        applicant = await self._begin_decision(applicant_id, "reject")

        try:
            await self._purge_documents(applicant_id)
            updated = await self.repository.complete_review(
                self.db,
                applicant_id,
                ApplicantStatus.REJECTED,
                reviewed_by=admin_id,
                reviewed_at=self.clock(),
            )
            if updated is None:
                raise InvalidRegistrationStateError(
                    "Another administrator has already decided this registration."
                )
        except Exception:
            await self._release_lock(applicant_id)
            raise

        logger.info(f"Applicant {applicant_id} REJECTED")

        try:
            claim = await self._get_claim(applicant_id)
            await self.notifier.send_kyc_rejected(
                to_email=applicant.email,
                applicant_name=applicant.name,
                claim_name=claim.claim_name,
            )
        except Exception as e:
            logger.error(f"Failed to send rejection email for applicant {applicant_id}: {e}")

        return RejectResponse(id=applicant_id, status=ApplicantStatus.REJECTED)


async def _check_resend_rate_limit(redis_client, applicant_id: UUID) -> None:
    """
    Enforce 3 resends per hour per applicant.

    Key: resend_guardian:{applicant_id}, counter with a 1 hour TTL.

    Raises:
        RateLimitExceededError: If rate limit is exceeded
    """
    rate_limit_key = f"resend_guardian:{applicant_id}"

    current_count = await redis_client.get(rate_limit_key)

    if current_count is not None and int(current_count) >= RESEND_RATE_LIMIT_MAX_REQUESTS:
        ttl = await redis_client.ttl(rate_limit_key)
        retry_after = max(ttl, 60)
        logger.warning(f"Resend rate limit exceeded for applicant {applicant_id}")
        raise RateLimitExceededError(retry_after_seconds=retry_after)

    pipe = redis_client.pipeline()
    pipe.incr(rate_limit_key)
    pipe.expire(rate_limit_key, RESEND_RATE_LIMIT_WINDOW_SECONDS)
    await pipe.execute()


def get_registration_service(
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    ledger: Ledger = Depends(get_ledger),
) -> RegistrationService:
    """FastAPI dependency wiring the lifecycle to its production collaborators."""
    return RegistrationService(db, blob_store=blob_store, ledger=ledger)
