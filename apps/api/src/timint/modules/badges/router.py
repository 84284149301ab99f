"""
Badges Router

Endpoints:
- POST /badges/token - Issue a domain-locked badge token (founder)
- POST /badges/verify - Verify an embedded badge (public)
- GET /badges/{claim_id} - Public badge page data
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from timint.core.auth import AuthenticatedUser, get_current_user
from timint.core.database import get_db
from timint.core.rate_limit import enforce_rate_limit
from timint.modules.badges import service
from timint.modules.badges.schemas import (
    BadgeInfoResponse,
    BadgeTokenRequest,
    BadgeTokenResponse,
    BadgeVerifyRequest,
    BadgeVerifyResponse,
)
from timint.modules.badges.service import BadgeServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_ISSUE = (20, 3600)  # 20 badge tokens per hour per founder


def _handle_service_error(e: BadgeServiceError) -> HTTPException:
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


@router.post(
    "/token",
    response_model=BadgeTokenResponse,
    summary="Issue Badge Token",
    description="""
Issue a badge token locked to a domain, plus an HTML embed snippet.

The badge also works on subdomains of the given domain. Tokens are valid for
one year. Requires a registered claim.
""",
    responses={
        400: {"description": "Invalid domain format"},
        401: {"description": "Unauthorized - invalid or missing token"},
        404: {"description": "No registered claim"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def issue_badge_token(
    data: BadgeTokenRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> BadgeTokenResponse:
    await enforce_rate_limit(f"badge:issue:{user.id}", *RATE_LIMIT_ISSUE)

    try:
        return await service.issue_badge(db, user.id, data.domain)

    except BadgeServiceError as e:
        raise _handle_service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error issuing badge for user {user.id}: {e}")
        raise _internal_error() from e


@router.post(
    "/verify",
    response_model=BadgeVerifyResponse,
    summary="Verify Badge",
    description="""
Verify a badge token as embedded on a third-party page.

The `Referer` header, when present, must be the token's domain or a
subdomain of it. Requests without a referer are accepted.
""",
    responses={
        403: {"description": "Invalid or expired token, or used on the wrong domain"},
        404: {"description": "Claim not found or not registered"},
    },
)
async def verify_badge(
    data: BadgeVerifyRequest,
    referer: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> BadgeVerifyResponse:
    try:
        return await service.verify_badge(db, data.token, referer)

    except BadgeServiceError as e:
        raise _handle_service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error verifying badge: {e}")
        raise _internal_error() from e


@router.get(
    "/{claim_id}",
    response_model=BadgeInfoResponse,
    summary="Badge Page",
    description="Public registration details shown when a badge is clicked.",
    responses={404: {"description": "Claim not found or not registered"}},
)
async def get_badge(
    claim_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> BadgeInfoResponse:
    try:
        return await service.get_public_badge(db, claim_id)

    except BadgeServiceError as e:
        raise _handle_service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error loading badge {claim_id}: {e}")
        raise _internal_error() from e
