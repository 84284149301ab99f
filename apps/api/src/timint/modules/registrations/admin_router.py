"""
Registrations Admin Router

API endpoints for platform administrators reviewing identity documents.
All endpoints require authentication and platform_admin role.

Endpoints:
- GET /admin/registrations/review-queue - Registrations awaiting review, with signed document URLs
- GET /admin/registrations/{id} - Registration details
- POST /admin/registrations/{id}/approve - Approve, record on the ledger, issue ownership token
- POST /admin/registrations/{id}/reject - Reject

Security:
- All endpoints require valid JWT token with platform_admin role
- Document URLs expire after one hour
- Exactly one concurrent decision per registration succeeds
- Rate limiting on action endpoints to prevent abuse
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from timint.core.auth import AuthenticatedUser, get_current_admin_user
from timint.core.rate_limit import enforce_rate_limit
from timint.modules.registrations.schemas import (
    ApplicantDetailResponse,
    ApproveResponse,
    RejectResponse,
    ReviewQueueResponse,
)
from timint.modules.registrations.service import (
    RegistrationService,
    RegistrationServiceError,
    get_registration_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_APPROVE = (10, 60)  # 10 approvals per minute
RATE_LIMIT_REJECT = (10, 60)  # 10 rejections per minute


async def _check_admin_rate_limit(
    admin: AuthenticatedUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Check rate limit for an admin action.

    Raises:
        HTTPException: 429 with Retry-After when the limit is exceeded
    """
    await enforce_rate_limit(f"admin:{action}:{admin.id}", limit, window_seconds)


def _handle_service_error(e: RegistrationServiceError) -> HTTPException:
    """Convert service errors to HTTPExceptions."""
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.get(
    "/review-queue",
    response_model=ReviewQueueResponse,
    summary="Review Queue",
    description="""
Registrations in `under_review`, oldest document submission first.

Each item carries presigned URLs for the selfie and ID document, valid for
`url_expires_in` seconds. A URL is null if it could not be signed.

**Access:** Platform admin only
""",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not a platform admin"},
    },
)
async def get_review_queue(
    skip: int = Query(0, ge=0, description="Number of items to skip"),
    limit: int = Query(20, ge=1, le=100, description="Number of items to return"),
    admin: AuthenticatedUser = Depends(get_current_admin_user),
    registrations: RegistrationService = Depends(get_registration_service),
) -> ReviewQueueResponse:
    try:
        queue = await registrations.admin_review_queue(skip=skip, limit=limit)
        logger.info(f"Admin {admin.id} loaded review queue: {queue.total} pending")
        return queue

    except RegistrationServiceError as e:
        raise _handle_service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error loading review queue: {e}")
        raise _internal_error() from e


@router.get(
    "/{applicant_id}",
    response_model=ApplicantDetailResponse,
    summary="Registration Details",
    description="""
Full registration details including applicant, guardian and claim.

**Access:** Platform admin only
""",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not a platform admin"},
        404: {"description": "Registration not found"},
    },
)
async def get_registration_detail(
    applicant_id: UUID,
    admin: AuthenticatedUser = Depends(get_current_admin_user),
    registrations: RegistrationService = Depends(get_registration_service),
) -> ApplicantDetailResponse:
    try:
        return await registrations.admin_get_detail(applicant_id)

    except RegistrationServiceError as e:
        logger.warning(f"Admin {admin.id} detail lookup failed for {applicant_id}: {e.error_code}")
        raise _handle_service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error loading registration {applicant_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{applicant_id}/approve",
    response_model=ApproveResponse,
    summary="Approve Registration",
    description="""
Approve a registration after identity review.

**Requirements:**
- Registration must be in `under_review`

**Effects (in order):**
1. Identity documents are deleted from storage
2. A registration record is pinned to the public ledger
3. An ownership token `TMIT-{timestamp}-{hex}` is issued
4. Status changes to `verified` and the claim is marked registered
5. Approval email sent to the founder

If the ledger is unavailable the call fails with 503 and can be retried;
documents stay deleted.

**Access:** Platform admin only
""",
    responses={
        200: {"description": "Registration approved", "model": ApproveResponse},
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not a platform admin"},
        404: {"description": "Registration not found"},
        409: {"description": "Not under review, or another decision already won"},
        429: {"description": "Rate limit exceeded"},
        503: {"description": "Storage or ledger unavailable - retry later"},
    },
)
async def approve_registration(
    applicant_id: UUID,
    admin: AuthenticatedUser = Depends(get_current_admin_user),
    registrations: RegistrationService = Depends(get_registration_service),
) -> ApproveResponse:
    # Rate limiting: 10 approvals per minute per admin
    await _check_admin_rate_limit(admin, "approve", *RATE_LIMIT_APPROVE)

    try:
        response = await registrations.admin_approve(applicant_id, admin.id)
        logger.info(f"Admin {admin.id} approved registration {applicant_id}")
        return response

    except RegistrationServiceError as e:
        logger.warning(f"Approval of {applicant_id} by admin {admin.id} failed: {e.error_code}")
        raise _handle_service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error approving registration {applicant_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{applicant_id}/reject",
    response_model=RejectResponse,
    summary="Reject Registration",
    description="""
Reject a registration after identity review.

**Requirements:**
- Registration must be in `under_review`

**Effects:**
- Identity documents are deleted from storage
- Status changes to `rejected`; the record is kept
- Rejection email sent to the founder

**Access:** Platform admin only
""",
    responses={
        200: {"description": "Registration rejected", "model": RejectResponse},
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not a platform admin"},
        404: {"description": "Registration not found"},
        409: {"description": "Not under review, or another decision already won"},
        429: {"description": "Rate limit exceeded"},
        503: {"description": "Storage unavailable - retry later"},
    },
)
async def reject_registration(
    applicant_id: UUID,
    admin: AuthenticatedUser = Depends(get_current_admin_user),
    registrations: RegistrationService = Depends(get_registration_service),
) -> RejectResponse:
    # Rate limiting: 10 rejections per minute per admin
    await _check_admin_rate_limit(admin, "reject", *RATE_LIMIT_REJECT)

    try:
        response = await registrations.admin_reject(applicant_id, admin.id)
        logger.info(f"Admin {admin.id} rejected registration {applicant_id}")
        return response

    except RegistrationServiceError as e:
        logger.warning(f"Rejection of {applicant_id} by admin {admin.id} failed: {e.error_code}")
        raise _handle_service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error rejecting registration {applicant_id}: {e}")
        raise _internal_error() from e
