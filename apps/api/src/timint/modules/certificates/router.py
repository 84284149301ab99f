"""
Certificates Router

Endpoints:
- GET /certificates/me - Download the registration certificate (founder)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from timint.core.auth import AuthenticatedUser, get_current_user
from timint.core.database import get_db
from timint.modules.certificates import service
from timint.modules.certificates.service import CertificateServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/me",
    summary="Download Certificate",
    description="""
Download the registration certificate as an A4 PDF.

Available once the registration is `verified`.
""",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Certificate PDF"},
        401: {"description": "Unauthorized - invalid or missing token"},
        404: {"description": "No registration for this account"},
        409: {"description": "Registration not verified yet"},
    },
)
async def download_certificate(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        pdf_bytes, filename = await service.generate_certificate_for_user(db, user.id)

    except CertificateServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={
                "error": e.error_code,
                "message": e.message,
            },
        ) from e
    except Exception as e:
        logger.exception(f"Unexpected error generating certificate for user {user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred. Please try again later.",
            },
        ) from e

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
