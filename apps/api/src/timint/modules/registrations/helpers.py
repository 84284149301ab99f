"""
Registration Helpers

Token hashing, ownership token derivation and registration signatures.
These are pure functions shared by the service layer and the badge and
certificate modules.

OWNERSHIP_TOKEN_PATTERN and verify_registration_signature are public
verification helpers. The API does not call them itself; operators use them
to audit a token or a pinned registration record.
"""

import hashlib
import hmac
import json
import re
import secrets
from datetime import datetime

from timint.core.config import settings

GUARDIAN_TOKEN_BYTES = 32  # 256 bits of entropy when using token_urlsafe

OWNERSHIP_TOKEN_PATTERN = re.compile(r"^TMIT-\d{13}-[A-F0-9]{8}$")
_HEX8 = re.compile(r"^[0-9a-fA-F]{8}$")


def hash_token(token: str) -> str:
    """
    Hash a guardian token for storage using SHA-256.

    Returns:
        Hex-encoded SHA-256 hash of the token
    """
    return hashlib.sha256(token.encode()).hexdigest()


def generate_guardian_token() -> str:
    """Generate an unguessable URL-safe guardian token."""
    return secrets.token_urlsafe(GUARDIAN_TOKEN_BYTES)


def timestamp_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _hex8_from_reference(external_ref: str) -> str:
    """
    Eight uppercase hex characters identifying an external reference.

    Transaction hashes (optionally 0x-prefixed) contribute their own leading
    hex digits; other references (IPFS content ids) are digested first.
    """
    candidate = external_ref[2:] if external_ref.lower().startswith("0x") else external_ref
    head = candidate[:8]
    if _HEX8.match(head):
        return head.upper()
    return hashlib.sha256(external_ref.encode()).hexdigest()[:8].upper()


def generate_ownership_token(
    claim_name: str,
    applicant_id: str,
    ts_ms: int,
    external_ref: str | None = None,
) -> str:
    """
    Derive the TMIT ownership token for an approved claim.

    Format: TMIT-{13 digit ms timestamp}-{8 uppercase hex}
    """
    if external_ref:
        suffix = _hex8_from_reference(external_ref)
    else:
        digest_input = f"{claim_name}:{applicant_id}:{ts_ms}"
        suffix = hashlib.sha256(digest_input.encode()).hexdigest()[:8].upper()
    return f"TMIT-{ts_ms:013d}-{suffix}"


def registration_id(claim_id: str) -> str:
    """Short human-facing id, e.g. TMT-1A2B3C4D. Display only."""
    return f"TMT-{str(claim_id)[:8].upper()}"


def _signature_payload(claim_name: str, applicant_id: str, guardian_name: str, ts_ms: int) -> bytes:
    payload = {"c": claim_name, "u": applicant_id, "g": guardian_name, "t": ts_ms}
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode()


def create_registration_signature(
    claim_name: str,
    applicant_id: str,
    guardian_name: str,
    ts_ms: int,
    key: str | None = None,
) -> str:
    """HMAC-SHA256 (hex) over the registration facts."""
    secret = (key or settings.token_encryption_key).encode()
    return hmac.new(
        secret,
        _signature_payload(claim_name, applicant_id, guardian_name, ts_ms),
        hashlib.sha256,
    ).hexdigest()


def verify_registration_signature(
    claim_name: str,
    applicant_id: str,
    guardian_name: str,
    ts_ms: int,
    signature: str,
    key: str | None = None,
) -> bool:
    """Check a pinned registration record against its HMAC signature."""
    expected = create_registration_signature(claim_name, applicant_id, guardian_name, ts_ms, key)
    return hmac.compare_digest(expected, signature)

