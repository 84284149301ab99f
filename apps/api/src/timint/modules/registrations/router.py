"""
Registrations Router

API endpoints for the minor registration flow.

Endpoints:
- POST /registrations - Submit a registration (public)
- GET /registrations/me - Founder's own registration status
- POST /registrations/me/documents - Founder uploads identity documents
- POST /registrations/resend-guardian-email - Resend the guardian consent email (public)
- GET /guardian/{token} - Guardian consent page data (public, token is the credential)
- POST /guardian/{token}/decision - Guardian approves or rejects
- POST /guardian/{token}/documents - Identity document upload via the guardian link

Security:
- Guardian endpoints authenticate with the emailed single-use token
- Resend is rate limited via Redis and fails closed without it
- Uploads accept JPG/PNG up to 5MB
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from redis.asyncio import Redis

from timint.core.auth import AuthenticatedUser, get_current_user
from timint.core.redis import get_redis
from timint.modules.registrations.schemas import (
    DocumentUploadResponse,
    GuardianDecisionRequest,
    GuardianDecisionResponse,
    GuardianTokenView,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationStatusResponse,
    ResendGuardianEmailRequest,
    ResendGuardianEmailResponse,
)
from timint.modules.registrations.service import (
    MAX_DOCUMENT_BYTES,
    RateLimitExceededError,
    RegistrationService,
    RegistrationServiceError,
    UploadedDocument,
    get_registration_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()
guardian_router = APIRouter()


def _to_http_exception(e: RegistrationServiceError) -> HTTPException:
    """Convert service errors to HTTPExceptions."""
    headers = None
    if isinstance(e, RateLimitExceededError):
        headers = {"Retry-After": str(e.retry_after_seconds)}
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
        headers=headers,
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


async def _read_upload(upload: UploadFile) -> UploadedDocument:
    # Read one byte past the limit so oversize files are detected without buffering them whole
    data = await upload.read(MAX_DOCUMENT_BYTES + 1)
    return UploadedDocument(
        filename=upload.filename or "",
        content_type=(upload.content_type or "").lower(),
        data=data,
    )


_TOKEN_ERROR_RESPONSES = {
    404: {
        "description": "Token unknown or registration deleted",
        "content": {
            "application/json": {
                "example": {
                    "error": "TOKEN_NOT_FOUND",
                    "message": "This verification link is invalid or the registration no longer exists.",
                }
            }
        },
    },
    409: {"description": "Token already used, or registration in the wrong state"},
    410: {
        "description": "Token expired",
        "content": {
            "application/json": {
                "example": {
                    "error": "TOKEN_EXPIRED",
                    "message": "This verification link has expired. Please ask for a new one.",
                }
            }
        },
    },
}


# ============================================
# Public registration endpoints
# ============================================


@router.post(
    "",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Registration",
    description="""
Register a startup name as a founder aged 13-17.

Creates the founder account, the applicant record and the claim, then emails
the guardian a consent link valid for 24 hours.

**Lifecycle:** `pending_guardian` -> `pending_documents` -> `under_review` -> `verified` | `rejected`

**Validation:**
- Age must be between 13 and 17 inclusive
- Password needs upper case, lower case and a digit
- Nothing is stored when validation fails
""",
    responses={
        201: {
            "description": "Registration created",
            "model": RegistrationResponse,
        },
        409: {
            "description": "Email already registered",
            "content": {
                "application/json": {
                    "example": {
                        "error": "DUPLICATE_REGISTRATION",
                        "message": "An account with this email already exists.",
                    }
                }
            },
        },
        422: {"description": "Validation error - e.g. age outside 13-17"},
        503: {"description": "A record could not be created; nothing was kept"},
    },
)
async def submit_registration(
    data: RegistrationCreate,
    registrations: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    """
    Submit a new registration.

    Raises:
        HTTPException 409: If the email already has an account
        HTTPException 503: If creation failed and was rolled back
    """
    try:
        response = await registrations.submit(data)
        logger.info(f"Registration submitted: id={response.id}")
        return response

    except RegistrationServiceError as e:
        logger.warning(f"Registration submission refused: {e.error_code}")
        raise _to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error submitting registration: {e}")
        raise _internal_error() from e


@router.post(
    "/resend-guardian-email",
    response_model=ResendGuardianEmailResponse,
    summary="Resend Guardian Email",
    description="""
Issue a new guardian consent link and email it.

Previous links stop working. Allowed only while the registration is
`pending_guardian`.

**Rate Limiting:** 3 requests per hour per registration. Returns 503 when
rate limiting is unavailable.
""",
    responses={
        200: {"description": "Email resent", "model": ResendGuardianEmailResponse},
        403: {"description": "Email does not match the registration"},
        404: {"description": "Registration not found"},
        409: {"description": "Guardian already responded"},
        429: {"description": "Rate limit exceeded"},
        503: {"description": "Rate limiting unavailable"},
    },
)
async def resend_guardian_email(
    data: ResendGuardianEmailRequest,
    registrations: RegistrationService = Depends(get_registration_service),
    redis_client: Redis | None = Depends(get_redis),
) -> ResendGuardianEmailResponse:
    try:
        return await registrations.resend_guardian_email(
            data.applicant_id, data.email, redis_client
        )

    except RegistrationServiceError as e:
        logger.warning(f"Resend refused for applicant {data.applicant_id}: {e.error_code}")
        raise _to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error resending guardian email: {e}")
        raise _internal_error() from e


# ============================================
# Founder endpoints
# ============================================


@router.get(
    "/me",
    response_model=RegistrationStatusResponse,
    summary="My Registration",
    description="""
Get the authenticated founder's registration, including the derived
`guardian_approved` flag, `kyc_status` and the claim's ownership token
once verified.
""",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        404: {"description": "No registration for this account"},
    },
)
async def get_my_registration(
    user: AuthenticatedUser = Depends(get_current_user),
    registrations: RegistrationService = Depends(get_registration_service),
) -> RegistrationStatusResponse:
    try:
        return await registrations.get_status_for_user(user.id)

    except RegistrationServiceError as e:
        raise _to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error loading registration for user {user.id}: {e}")
        raise _internal_error() from e


@router.post(
    "/me/documents",
    response_model=DocumentUploadResponse,
    summary="Upload Identity Documents",
    description="""
Upload a selfie and an identity document (JPG or PNG, max 5MB each).

**Requirements:**
- Guardian must have approved (status `pending_documents`)

**Effects:**
- Status changes to `under_review`
- The guardian link stops working
""",
    responses={
        400: {"description": "Invalid file type or size"},
        401: {"description": "Unauthorized - invalid or missing token"},
        404: {"description": "No registration for this account"},
        409: {"description": "Guardian approval missing, or documents already submitted"},
        503: {"description": "Storage unavailable; nothing was kept"},
    },
)
async def upload_my_documents(
    selfie: UploadFile = File(..., description="Selfie holding the ID document"),
    document: UploadFile = File(..., description="Government or school ID"),
    user: AuthenticatedUser = Depends(get_current_user),
    registrations: RegistrationService = Depends(get_registration_service),
) -> DocumentUploadResponse:
    try:
        return await registrations.upload_documents_for_user(
            user.id, await _read_upload(selfie), await _read_upload(document)
        )

    except RegistrationServiceError as e:
        logger.warning(f"Document upload refused for user {user.id}: {e.error_code}")
        raise _to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error uploading documents for user {user.id}: {e}")
        raise _internal_error() from e


# ============================================
# Guardian endpoints
# ============================================


@guardian_router.get(
    "/{token}",
    response_model=GuardianTokenView,
    summary="View Registration as Guardian",
    description="""
Load the registration a guardian is asked to consent to.

Read only; the token is not consumed.
""",
    responses=_TOKEN_ERROR_RESPONSES,
)
async def get_guardian_view(
    token: str,
    registrations: RegistrationService = Depends(get_registration_service),
) -> GuardianTokenView:
    try:
        return await registrations.get_guardian_view(token)

    except RegistrationServiceError as e:
        raise _to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error loading guardian view: {e}")
        raise _internal_error() from e


@guardian_router.post(
    "/{token}/decision",
    response_model=GuardianDecisionResponse,
    summary="Guardian Decision",
    description="""
Approve or reject the registration.

- `approve`: status moves to `pending_documents`. Repeating it is a no-op.
  The same link is then used to upload documents.
- `reject`: the registration, claim and founder account are deleted.
  The link no longer resolves afterwards.
""",
    responses=_TOKEN_ERROR_RESPONSES,
)
async def guardian_decision(
    token: str,
    data: GuardianDecisionRequest,
    registrations: RegistrationService = Depends(get_registration_service),
) -> GuardianDecisionResponse:
    try:
        response = await registrations.guardian_decide(token, data.action)
        logger.info(f"Guardian decision recorded: {data.action.value}")
        return response

    except RegistrationServiceError as e:
        logger.warning(f"Guardian decision refused: {e.error_code}")
        raise _to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error recording guardian decision: {e}")
        raise _internal_error() from e


@guardian_router.post(
    "/{token}/documents",
    response_model=DocumentUploadResponse,
    summary="Upload Identity Documents via Guardian Link",
    description="""
Upload a selfie and an identity document after guardian approval.

Consumes the guardian link.
""",
    responses={
        **_TOKEN_ERROR_RESPONSES,
        400: {"description": "Invalid file type or size"},
        503: {"description": "Storage unavailable; nothing was kept"},
    },
)
async def upload_documents_with_token(
    token: str,
    selfie: UploadFile = File(...),
    document: UploadFile = File(...),
    registrations: RegistrationService = Depends(get_registration_service),
) -> DocumentUploadResponse:
    try:
        return await registrations.upload_documents_with_token(
            token, await _read_upload(selfie), await _read_upload(document)
        )

    except RegistrationServiceError as e:
        logger.warning(f"Guardian-link upload refused: {e.error_code}")
        raise _to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error uploading documents: {e}")
        raise _internal_error() from e
