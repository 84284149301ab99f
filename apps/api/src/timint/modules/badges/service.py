"""
Badges Service Layer

Domain-locked badge tokens that founders embed on their own website.

A badge token is an HS256 JWT signed with BADGE_JWT_SECRET carrying
{claim_id, domain, applicant_id} and valid for one year. Verification
checks the signature, expiry and, when the browser sends one, that the
Referer hostname is the token's domain or a subdomain of it.
"""

import logging
import re
from datetime import UTC, datetime, timedelta
from html import escape
from typing import Any
from urllib.parse import urlparse
from uuid import UUID

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from timint.core.config import settings
from timint.modules.badges.schemas import (
    BadgeInfoResponse,
    BadgeTokenResponse,
    BadgeVerifyResponse,
)
from timint.modules.registrations import repository as registrations_repository
from timint.modules.registrations.helpers import registration_id

logger = logging.getLogger(__name__)

BADGE_ALGORITHM = "HS256"
DOMAIN_PATTERN = re.compile(r"^[a-z0-9]+([\-\.]{1}[a-z0-9]+)*\.[a-z]{2,}$", re.IGNORECASE)


class BadgeServiceError(Exception):
    """Base exception for badge service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InvalidDomainError(BadgeServiceError):
    def __init__(self):
        super().__init__(
            message="Invalid domain format.",
            error_code="INVALID_DOMAIN",
            status_code=400,
        )


class NoRegisteredClaimError(BadgeServiceError):
    def __init__(self):
        super().__init__(
            message="No registered claim found. Complete verification first.",
            error_code="NO_REGISTERED_CLAIM",
            status_code=404,
        )


class InvalidBadgeTokenError(BadgeServiceError):
    def __init__(self, message: str = "Invalid or expired badge token."):
        super().__init__(message=message, error_code="INVALID_BADGE_TOKEN", status_code=403)


class ClaimNotRegisteredError(BadgeServiceError):
    def __init__(self):
        super().__init__(
            message="Claim not found or not registered.",
            error_code="CLAIM_NOT_REGISTERED",
            status_code=404,
        )


# ============================================
# Tokens
# ============================================


def normalize_domain(domain: str) -> str:
    """
    Validate and lowercase a badge domain.

    Raises:
        InvalidDomainError: If the value is not a bare hostname
    """
    candidate = domain.strip()
    if not DOMAIN_PATTERN.match(candidate):
        raise InvalidDomainError()
    return candidate.lower()


def create_badge_token(
    claim_id: UUID | str,
    domain: str,
    applicant_id: UUID | str,
    *,
    now: datetime | None = None,
    secret: str | None = None,
) -> tuple[str, datetime]:
    """
    Sign a badge token.

    Returns:
        Tuple of (token, expiry)
    """
    issued_at = now or datetime.now(UTC)
    expires_at = issued_at + timedelta(days=settings.badge_token_expire_days)
    payload = {
        "claim_id": str(claim_id),
        "domain": domain,
        "applicant_id": str(applicant_id),
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(payload, secret or settings.badge_jwt_secret, algorithm=BADGE_ALGORITHM)
    return token, expires_at


def decode_badge_token(token: str, secret: str | None = None) -> dict[str, Any] | None:
    """
    Decode and verify a badge token.

    Returns:
        The payload, or None if the signature is bad or the token expired
    """
    try:
        return jwt.decode(
            token,
            secret or settings.badge_jwt_secret,
            algorithms=[BADGE_ALGORITHM],
            options={"require": ["exp", "claim_id", "domain"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Badge token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid badge token: {e}")
        return None


def check_referer(domain: str, referer: str | None) -> tuple[bool, str | None]:
    """
    Check the embedding page against the token's domain.

    A missing referer is accepted. Otherwise the referer hostname must
    equal the domain or end with ".{domain}".

    Returns:
        Tuple of (valid, error message)
    """
    if not referer:
        return True, None

    hostname = urlparse(referer).hostname
    if not hostname:
        return False, "Invalid referer URL"

    if hostname == domain or hostname.endswith(f".{domain}"):
        return True, None

    return False, f"Token only valid for {domain}, used on {hostname}"


def build_embed_code(claim_id: UUID | str, token: str) -> str:
    """HTML snippet founders paste into their site."""
    href = escape(f"{settings.frontend_url}/badge/{claim_id}?token={token}", quote=True)
    return (
        f'<a href="{href}" target="_blank" rel="noopener" '
        'style="display: inline-flex; align-items: center; gap: 6px; padding: 8px 12px; '
        "background: #0D1E33; color: white; text-decoration: none; border-radius: 6px; "
        'font-size: 14px; font-family: sans-serif;">&#10003; Verified by TiMint Finance</a>'
    )


# ============================================
# Operations
# ============================================


async def issue_badge(db: AsyncSession, user_id: UUID | str, domain: str) -> BadgeTokenResponse:
    """
    Issue a badge token for the founder's registered claim.

    Raises:
        InvalidDomainError: If the domain is malformed
        NoRegisteredClaimError: If the founder has no registered claim
    """
    normalized = normalize_domain(domain)

    applicant = await registrations_repository.get_by_user_id(db, user_id)
    claim = None
    if applicant is not None:
        claim = await registrations_repository.get_claim_for_applicant(db, applicant.id)

    if claim is None or not claim.registered:
        logger.warning(f"Badge refused for user {user_id}: no registered claim")
        raise NoRegisteredClaimError()

    token, expires_at = create_badge_token(claim.id, normalized, applicant.id)
    logger.info(f"Issued badge token for claim {claim.id} on {normalized}")

    return BadgeTokenResponse(
        token=token,
        domain=normalized,
        embed_code=build_embed_code(claim.id, token),
        expires_at=expires_at,
    )


async def verify_badge(db: AsyncSession, token: str, referer: str | None) -> BadgeVerifyResponse:
    """
    Verify an embedded badge.

    Raises:
        InvalidBadgeTokenError: Bad signature, expired, or wrong domain
        ClaimNotRegisteredError: The claim is gone or no longer registered
    """
    payload = decode_badge_token(token)
    if payload is None:
        raise InvalidBadgeTokenError()

    domain = payload["domain"]
    valid, error = check_referer(domain, referer)
    if not valid:
        logger.warning(f"Badge domain check failed: {error}")
        raise InvalidBadgeTokenError(error)

    try:
        claim_id = UUID(payload["claim_id"])
    except ValueError as e:
        raise InvalidBadgeTokenError() from e

    claim = await registrations_repository.get_claim_by_id(db, claim_id)
    if claim is None or not claim.registered:
        raise ClaimNotRegisteredError()

    return BadgeVerifyResponse(claim_id=claim.id, domain=domain, claim_name=claim.claim_name)


async def get_public_badge(db: AsyncSession, claim_id: UUID) -> BadgeInfoResponse:
    """Badge page data. Only registered claims are public."""
    claim = await registrations_repository.get_claim_by_id(db, claim_id)
    if claim is None or not claim.registered:
        raise ClaimNotRegisteredError()

    return BadgeInfoResponse(
        claim_id=claim.id,
        claim_name=claim.claim_name,
        registration_id=registration_id(str(claim.id)),
        ownership_token=claim.ownership_token,
        registered_at=claim.registered_at,
    )
