"""
Unit tests for registration helpers.

These tests cover:
- Guardian token hashing and generation
- Ownership token derivation (external reference and fallback)
- Registration id formatting
- Registration signatures
"""

import hashlib
from datetime import UTC, datetime

from timint.modules.registrations.helpers import (
    OWNERSHIP_TOKEN_PATTERN,
    create_registration_signature,
    generate_guardian_token,
    generate_ownership_token,
    hash_token,
    registration_id,
    timestamp_ms,
    verify_registration_signature,
)

TS = 1767225600000  # 2026-01-01T00:00:00Z


class TestGuardianTokens:
    def test_hash_token_is_sha256_hex(self):
        assert hash_token("abc") == hashlib.sha256(b"abc").hexdigest()
        assert len(hash_token("abc")) == 64

    def test_hash_token_differs_from_plain_value(self):
        token = generate_guardian_token()
        assert hash_token(token) != token

    def test_generated_tokens_are_unique_and_long(self):
        tokens = {generate_guardian_token() for _ in range(50)}
        assert len(tokens) == 50
        assert all(len(t) >= 43 for t in tokens)


class TestTimestamp:
    def test_timestamp_ms(self):
        assert timestamp_ms(datetime(2026, 1, 1, tzinfo=UTC)) == TS


class TestOwnershipToken:
    def test_hex_transaction_hash_with_prefix(self):
        token = generate_ownership_token("Acme", "user-1", TS, "0xabcdef1234567890")
        assert token == f"TMIT-{TS}-ABCDEF12"

    def test_hex_reference_without_prefix(self):
        token = generate_ownership_token("Acme", "user-1", TS, "deadbeefcafe")
        assert token == f"TMIT-{TS}-DEADBEEF"

    def test_content_identifier_is_digested(self):
        cid = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"
        token = generate_ownership_token("Acme", "user-1", TS, cid)

        expected = hashlib.sha256(cid.encode()).hexdigest()[:8].upper()
        assert token == f"TMIT-{TS}-{expected}"
        assert OWNERSHIP_TOKEN_PATTERN.match(token)

    def test_fallback_without_reference(self):
        token = generate_ownership_token("Acme", "user-1", TS)

        expected = hashlib.sha256(f"Acme:user-1:{TS}".encode()).hexdigest()[:8].upper()
        assert token == f"TMIT-{TS}-{expected}"

    def test_fallback_is_deterministic(self):
        assert generate_ownership_token("Acme", "u", TS) == generate_ownership_token("Acme", "u", TS)

    def test_format_always_matches_pattern(self):
        for ref in [None, "0x1234abcd", "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"]:
            assert OWNERSHIP_TOKEN_PATTERN.match(generate_ownership_token("X", "y", TS, ref))

    def test_pattern_rejects_lowercase_and_short_timestamps(self):
        assert not OWNERSHIP_TOKEN_PATTERN.match(f"TMIT-{TS}-abcdef12")
        assert not OWNERSHIP_TOKEN_PATTERN.match("TMIT-123-ABCDEF12")
        assert not OWNERSHIP_TOKEN_PATTERN.match(f"TMT-{TS}-ABCDEF12")


class TestRegistrationId:
    def test_uses_first_eight_characters_uppercased(self):
        assert registration_id("1a2b3c4d-5e6f-7081-92a3-b4c5d6e7f809") == "TMT-1A2B3C4D"


class TestRegistrationSignature:
    def test_signature_verifies(self):
        sig = create_registration_signature("Acme", "user-1", "Guardian", TS, key="k")
        assert verify_registration_signature("Acme", "user-1", "Guardian", TS, sig, key="k")

    def test_signature_rejects_tampered_fields(self):
        sig = create_registration_signature("Acme", "user-1", "Guardian", TS, key="k")
        assert not verify_registration_signature("Acme2", "user-1", "Guardian", TS, sig, key="k")
        assert not verify_registration_signature("Acme", "user-1", "Guardian", TS + 1, sig, key="k")

    def test_signature_depends_on_key(self):
        assert create_registration_signature(
            "Acme", "u", "g", TS, key="a"
        ) != create_registration_signature("Acme", "u", "g", TS, key="b")

