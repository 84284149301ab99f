"""
Tests for admin identity review.

These tests cover:
- Approve ordering (documents purged before the ledger record)
- Ledger and storage failures leave the applicant retryable
- Single-winner decisions under concurrency
- Reject keeps rows but deletes documents
- Review queue with signed document URLs
"""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from timint.modules.registrations.helpers import (
    OWNERSHIP_TOKEN_PATTERN,
    generate_ownership_token,
    timestamp_ms,
    verify_registration_signature,
)
from timint.modules.registrations.models import ApplicantStatus, KycStatus
from timint.modules.registrations.service import (
    REVIEW_LOCK_TTL,
    SIGNED_URL_TTL_SECONDS,
    DependencyFailureError,
    InvalidRegistrationStateError,
    RegistrationNotFoundError,
)


def _index(events: list[str], prefix: str) -> int:
    return next(i for i, e in enumerate(events) if e.startswith(prefix))


class TestAdminApprove:
    """Tests for RegistrationService.admin_approve."""

    @pytest.mark.asyncio
    async def test_approve_registers_claim(
        self, registrations, under_review, admin_id, repo, ledger, clock
    ):
        result = await registrations.admin_approve(under_review, admin_id)

        ts = timestamp_ms(clock.now)
        expected_token = generate_ownership_token(
            "Engine Labs", str(under_review), ts, ledger.reference
        )
        assert result.status == ApplicantStatus.VERIFIED
        assert result.ownership_token == expected_token
        assert OWNERSHIP_TOKEN_PATTERN.match(result.ownership_token)
        assert result.registration_id.startswith("TMT-")

        applicant = repo.applicants[under_review]
        assert applicant.status == ApplicantStatus.VERIFIED
        assert applicant.kyc_status == KycStatus.VERIFIED
        assert applicant.reviewed_by == admin_id
        assert applicant.review_locked_at is None

        claim = repo.claims[under_review]
        assert claim.registered is True
        assert claim.ownership_token == expected_token
        assert claim.external_record_ref == result.external_record_ref
        assert claim.registered_at == clock.now

    @pytest.mark.asyncio
    async def test_documents_purged_before_ledger_submission(
        self, registrations, under_review, admin_id, events, blob_store, repo
    ):
        events.clear()

        await registrations.admin_approve(under_review, admin_id)

        lock = _index(events, "repo.claim_review_lock")
        selfie_delete = _index(events, "blob.delete:")
        record_delete = _index(events, "repo.delete_kyc_documents")
        ledger_submit = _index(events, "ledger.submit")
        complete = _index(events, "repo.complete_review")

        assert lock < selfie_delete < record_delete < ledger_submit < complete
        assert blob_store.objects == {}
        assert under_review not in repo.documents

    @pytest.mark.asyncio
    async def test_ledger_record_is_signed(self, registrations, under_review, admin_id, ledger):
        await registrations.admin_approve(under_review, admin_id)

        record = ledger.records[0]
        assert record.claim_name == "Engine Labs"
        assert record.guardian_name == "Anne Byron"
        assert verify_registration_signature(
            record.claim_name,
            record.applicant_id,
            record.guardian_name,
            record.timestamp_ms,
            record.signature,
        )

    @pytest.mark.asyncio
    async def test_notifies_founder_and_flags_account(
        self, registrations, under_review, admin_id, notifier, accounts, repo
    ):
        result = await registrations.admin_approve(under_review, admin_id)

        assert notifier.approved_emails[0]["ownership_token"] == result.ownership_token
        assert notifier.approved_emails[0]["to_email"] == "ada@example.com"
        assert accounts.users[repo.applicants[under_review].user_id].is_verified is True

    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_approval(
        self, registrations, under_review, admin_id, notifier, repo
    ):
        notifier.fail = True

        result = await registrations.admin_approve(under_review, admin_id)

        assert result.status == ApplicantStatus.VERIFIED
        assert repo.applicants[under_review].status == ApplicantStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_ledger_failure_leaves_applicant_retryable(
        self, registrations, under_review, admin_id, ledger, blob_store, repo, events
    ):
        ledger.fail = True

        with pytest.raises(DependencyFailureError) as exc_info:
            await registrations.admin_approve(under_review, admin_id)

        assert exc_info.value.status_code == 503
        applicant = repo.applicants[under_review]
        assert applicant.status == ApplicantStatus.UNDER_REVIEW
        assert applicant.review_locked_at is None
        assert repo.claims[under_review].registered is False
        # Documents stay deleted
        assert blob_store.objects == {}
        assert under_review not in repo.documents

        ledger.fail = False
        events.clear()
        result = await registrations.admin_approve(under_review, admin_id)

        assert result.status == ApplicantStatus.VERIFIED
        assert not any(e.startswith("blob.delete:") for e in events)
        assert len(ledger.records) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_aborts_before_ledger(
        self, registrations, under_review, admin_id, ledger, blob_store, repo
    ):
        blob_store.fail_delete = True

        with pytest.raises(DependencyFailureError):
            await registrations.admin_approve(under_review, admin_id)

        assert ledger.records == []
        assert repo.applicants[under_review].status == ApplicantStatus.UNDER_REVIEW
        assert repo.applicants[under_review].review_locked_at is None

    @pytest.mark.asyncio
    async def test_approve_already_verified(self, registrations, under_review, admin_id):
        await registrations.admin_approve(under_review, admin_id)

        with pytest.raises(InvalidRegistrationStateError) as exc_info:
            await registrations.admin_approve(under_review, admin_id)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_approve_before_documents(self, registrations, approved_by_guardian, admin_id):
        applicant_id, _ = approved_by_guardian

        with pytest.raises(InvalidRegistrationStateError):
            await registrations.admin_approve(applicant_id, admin_id)

    @pytest.mark.asyncio
    async def test_approve_unknown_applicant(self, registrations, admin_id):
        with pytest.raises(RegistrationNotFoundError) as exc_info:
            await registrations.admin_approve(uuid4(), admin_id)

        assert exc_info.value.status_code == 404


class TestConcurrentDecisions:
    """Only one admin decision can win."""

    @pytest.mark.asyncio
    async def test_concurrent_approvals_have_one_winner(
        self, registrations, under_review, ledger, repo
    ):
        results = await asyncio.gather(
            registrations.admin_approve(under_review, uuid4()),
            registrations.admin_approve(under_review, uuid4()),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidRegistrationStateError)
        assert len(ledger.records) == 1
        assert repo.claims[under_review].ownership_token == successes[0].ownership_token

    @pytest.mark.asyncio
    async def test_concurrent_approve_and_reject(self, registrations, under_review, ledger, repo):
        results = await asyncio.gather(
            registrations.admin_approve(under_review, uuid4()),
            registrations.admin_reject(under_review, uuid4()),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidRegistrationStateError)
        assert repo.applicants[under_review].status in (
            ApplicantStatus.VERIFIED,
            ApplicantStatus.REJECTED,
        )

    @pytest.mark.asyncio
    async def test_fresh_lock_blocks_decision(self, registrations, under_review, admin_id, repo, clock):
        repo.applicants[under_review].review_locked_at = clock.now - timedelta(minutes=2)

        with pytest.raises(InvalidRegistrationStateError):
            await registrations.admin_approve(under_review, admin_id)

    @pytest.mark.asyncio
    async def test_stale_lock_is_reclaimed(self, registrations, under_review, admin_id, repo, clock):
        repo.applicants[under_review].review_locked_at = clock.now - REVIEW_LOCK_TTL - timedelta(
            seconds=1
        )

        result = await registrations.admin_approve(under_review, admin_id)

        assert result.status == ApplicantStatus.VERIFIED


class TestAdminReject:
    """Tests for RegistrationService.admin_reject."""

    @pytest.mark.asyncio
    async def test_reject_deletes_documents_keeps_rows(
        self, registrations, under_review, admin_id, repo, blob_store, ledger, notifier
    ):
        result = await registrations.admin_reject(under_review, admin_id)

        assert result.status == ApplicantStatus.REJECTED
        applicant = repo.applicants[under_review]
        assert applicant.status == ApplicantStatus.REJECTED
        assert applicant.reviewed_by == admin_id
        assert repo.claims[under_review].registered is False
        assert repo.claims[under_review].ownership_token is None
        assert under_review not in repo.documents
        assert blob_store.objects == {}
        assert ledger.records == []
        assert len(notifier.rejected_emails) == 1

    @pytest.mark.asyncio
    async def test_reject_not_under_review(self, registrations, submitted, admin_id):
        response, _ = submitted

        with pytest.raises(InvalidRegistrationStateError) as exc_info:
            await registrations.admin_reject(response.id, admin_id)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_reject_unknown_applicant(self, registrations, admin_id):
        with pytest.raises(RegistrationNotFoundError):
            await registrations.admin_reject(uuid4(), admin_id)

    @pytest.mark.asyncio
    async def test_cannot_approve_after_reject(self, registrations, under_review, admin_id):
        await registrations.admin_reject(under_review, admin_id)

        with pytest.raises(InvalidRegistrationStateError):
            await registrations.admin_approve(under_review, admin_id)


class TestReviewQueue:
    @pytest.mark.asyncio
    async def test_queue_lists_applicants_with_signed_urls(self, registrations, under_review, repo):
        queue = await registrations.admin_review_queue()

        assert queue.total == 1
        assert queue.url_expires_in == SIGNED_URL_TTL_SECONDS
        item = queue.items[0]
        assert item.id == under_review
        assert item.claim_name == "Engine Labs"
        documents = repo.documents[under_review]
        assert documents.selfie_ref in item.selfie_url
        assert documents.document_ref in item.document_url

    @pytest.mark.asyncio
    async def test_signing_failure_yields_no_url(self, registrations, under_review, blob_store):
        blob_store.fail_sign = True

        queue = await registrations.admin_review_queue()

        assert queue.items[0].selfie_url is None
        assert queue.items[0].document_url is None

    @pytest.mark.asyncio
    async def test_queue_excludes_decided_applicants(self, registrations, under_review, admin_id):
        await registrations.admin_reject(under_review, admin_id)

        queue = await registrations.admin_review_queue()

        assert queue.total == 0
        assert queue.items == []

    @pytest.mark.asyncio
    async def test_detail(self, registrations, under_review):
        detail = await registrations.admin_get_detail(under_review)

        assert detail.address == "12 Engine Road, London"
        assert detail.guardian_email == "anne@example.com"
        assert detail.status == ApplicantStatus.UNDER_REVIEW
        assert detail.claim.registered is False

    @pytest.mark.asyncio
    async def test_detail_unknown(self, registrations):
        with pytest.raises(RegistrationNotFoundError):
            await registrations.admin_get_detail(uuid4())
