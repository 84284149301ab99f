"""
Fixtures for registrations tests.

The lifecycle service is exercised against in-memory fakes of its
collaborators. Every fake appends to a shared `events` list so tests can
assert on the order of side effects.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from timint.modules.registrations.models import (
    Applicant,
    ApplicantStatus,
    Claim,
    GuardianToken,
    KycDocument,
)
from timint.modules.registrations.repository import validate_transition
from timint.modules.registrations.schemas import GuardianDecision, RegistrationCreate
from timint.modules.registrations.service import RegistrationService, UploadedDocument
from timint.modules.users.models import User

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

CID = "bafkreigh2akiscaildcqabsyg3dfr6chu3fgpregiymsck7e7aqa4s52zy"


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeRepository:
    """In-memory stand-in for the registrations repository module."""

    def __init__(self, events: list[str], clock: FakeClock):
        self.events = events
        self.clock = clock
        self.applicants: dict = {}
        self.claims: dict = {}
        self.tokens: dict = {}
        self.documents: dict = {}
        self.failures: dict[str, Exception] = {}

    async def _enter(self, name: str) -> None:
        # Yield so concurrent callers interleave between operations
        await asyncio.sleep(0)
        self.events.append(f"repo.{name}")
        if name in self.failures:
            raise self.failures[name]

    # Applicant / Claim

    async def create_applicant(self, db, *, user_id, data):
        await self._enter("create_applicant")
        applicant = Applicant(
            id=uuid4(),
            user_id=user_id,
            name=data.name,
            age=data.age,
            email=data.email.lower(),
            address=data.address,
            phone=data.phone,
            guardian_name=data.guardian_name,
            guardian_email=data.guardian_email.lower(),
            status=ApplicantStatus.PENDING_GUARDIAN,
            review_locked_at=None,
            submitted_at=self.clock(),
            guardian_approved_at=None,
            documents_submitted_at=None,
            reviewed_at=None,
            reviewed_by=None,
        )
        self.applicants[applicant.id] = applicant
        return applicant

    async def create_claim(self, db, *, applicant_id, claim_name, description):
        await self._enter("create_claim")
        claim = Claim(
            id=uuid4(),
            applicant_id=applicant_id,
            claim_name=claim_name,
            description=description,
            registered=False,
            external_record_ref=None,
            ownership_token=None,
            registered_at=None,
        )
        self.claims[applicant_id] = claim
        return claim

    async def get_by_id(self, db, id):
        await self._enter("get_by_id")
        return self.applicants.get(id)

    async def get_by_user_id(self, db, user_id):
        await self._enter("get_by_user_id")
        for applicant in self.applicants.values():
            if str(applicant.user_id) == str(user_id):
                return applicant
        return None

    async def get_claim_for_applicant(self, db, applicant_id):
        await self._enter("get_claim_for_applicant")
        return self.claims.get(applicant_id)

    async def get_claim_by_id(self, db, claim_id):
        await self._enter("get_claim_by_id")
        for claim in self.claims.values():
            if claim.id == claim_id:
                return claim
        return None

    async def delete_applicant(self, db, id):
        await self._enter("delete_applicant")
        if id not in self.applicants:
            return False
        del self.applicants[id]
        self.claims.pop(id, None)
        self.documents.pop(id, None)
        for token_hash in [h for h, t in self.tokens.items() if t.applicant_id == id]:
            del self.tokens[token_hash]
        return True

    async def update_status(self, db, id, status, **kwargs):
        await self._enter("update_status")
        applicant = self.applicants[id]
        validate_transition(applicant.status, status)
        applicant.status = status
        for key, value in kwargs.items():
            setattr(applicant, key, value)
        return applicant

    async def mark_documents_submitted(self, db, id, submitted_at):
        await self._enter("mark_documents_submitted")
        applicant = self.applicants.get(id)
        if applicant is None or applicant.status != ApplicantStatus.PENDING_DOCUMENTS:
            return False
        applicant.status = ApplicantStatus.UNDER_REVIEW
        applicant.documents_submitted_at = submitted_at
        for token in self.tokens.values():
            if token.applicant_id == id and token.consumed_at is None:
                token.consumed_at = submitted_at
        return True

    # Admin review lock

    async def claim_review_lock(self, db, id, now, stale_before):
        await self._enter("claim_review_lock")
        applicant = self.applicants.get(id)
        if applicant is None or applicant.status != ApplicantStatus.UNDER_REVIEW:
            return False
        if applicant.review_locked_at is not None and applicant.review_locked_at >= stale_before:
            return False
        applicant.review_locked_at = now
        return True

    async def release_review_lock(self, db, id):
        await self._enter("release_review_lock")
        applicant = self.applicants.get(id)
        if applicant is not None and applicant.status == ApplicantStatus.UNDER_REVIEW:
            applicant.review_locked_at = None

    async def complete_review(self, db, id, status, *, reviewed_by, reviewed_at, claim_fields=None):
        await self._enter("complete_review")
        applicant = self.applicants.get(id)
        if applicant is None or applicant.status != ApplicantStatus.UNDER_REVIEW:
            return None
        validate_transition(applicant.status, status)
        applicant.status = status
        applicant.review_locked_at = None
        applicant.reviewed_by = reviewed_by
        applicant.reviewed_at = reviewed_at
        for key, value in (claim_fields or {}).items():
            setattr(self.claims[id], key, value)
        return applicant

    async def get_under_review(self, db, *, skip=0, limit=20):
        await self._enter("get_under_review")
        pending = [
            a for a in self.applicants.values() if a.status == ApplicantStatus.UNDER_REVIEW
        ]
        pending.sort(key=lambda a: a.documents_submitted_at)
        return pending[skip : skip + limit], len(pending)

    # Guardian tokens

    async def create_token(self, db, *, applicant_id, token_hash, issued_at, expires_at):
        await self._enter("create_token")
        token = GuardianToken(
            id=uuid4(),
            applicant_id=applicant_id,
            token_hash=token_hash,
            issued_at=issued_at,
            expires_at=expires_at,
            consumed_at=None,
        )
        self.tokens[token_hash] = token
        return token

    async def get_token_by_hash(self, db, token_hash):
        await self._enter("get_token_by_hash")
        return self.tokens.get(token_hash)

    async def delete_tokens_for_applicant(self, db, applicant_id):
        await self._enter("delete_tokens_for_applicant")
        for token_hash in [h for h, t in self.tokens.items() if t.applicant_id == applicant_id]:
            del self.tokens[token_hash]

    # KYC documents

    async def create_kyc_documents(self, db, *, applicant_id, selfie_ref, document_ref):
        await self._enter("create_kyc_documents")
        if applicant_id in self.documents:
            raise RuntimeError("duplicate key value violates unique constraint")
        documents = KycDocument(
            id=uuid4(),
            applicant_id=applicant_id,
            selfie_ref=selfie_ref,
            document_ref=document_ref,
        )
        self.documents[applicant_id] = documents
        return documents

    async def get_kyc_documents(self, db, applicant_id):
        await self._enter("get_kyc_documents")
        return self.documents.get(applicant_id)

    async def delete_kyc_documents(self, db, applicant_id):
        await self._enter("delete_kyc_documents")
        return self.documents.pop(applicant_id, None) is not None


class FakeAccounts:
    """In-memory stand-in for UserRepository."""

    def __init__(self, events: list[str]):
        self.events = events
        self.users: dict[str, User] = {}
        self.fail_delete = False

    async def email_exists(self, db, email):
        return any(u.email == email.lower() for u in self.users.values())

    async def create(self, db, *, email, password_hash, first_name, last_name, role, **kwargs):
        self.events.append("accounts.create")
        user = User(
            id=str(uuid4()),
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=True,
            is_verified=False,
        )
        self.users[user.id] = user
        return user

    async def delete(self, db, user_id):
        self.events.append("accounts.delete")
        if self.fail_delete:
            raise RuntimeError("database unavailable")
        return self.users.pop(str(user_id), None) is not None

    async def mark_verified(self, db, user_id):
        self.events.append("accounts.mark_verified")
        self.users[str(user_id)].is_verified = True


class FakeBlobStore:
    def __init__(self, events: list[str]):
        self.events = events
        self.objects: dict[str, bytes] = {}
        self.fail_put_prefix: str | None = None
        self.fail_delete = False
        self.fail_sign = False

    async def put(self, key, data, content_type):
        self.events.append(f"blob.put:{key}")
        name = key.split("/", 1)[1]
        if self.fail_put_prefix and name.startswith(self.fail_put_prefix):
            raise RuntimeError("storage unavailable")
        self.objects[key] = data
        return key

    async def delete(self, key):
        self.events.append(f"blob.delete:{key}")
        if self.fail_delete:
            raise RuntimeError("storage unavailable")
        self.objects.pop(key, None)

    async def signed_url(self, key, ttl_seconds):
        if self.fail_sign:
            raise RuntimeError("signing failed")
        return f"https://storage.example.com/{key}?expires={ttl_seconds}"


class FakeLedger:
    def __init__(self, events: list[str]):
        self.events = events
        self.records = []
        self.fail = False
        self.reference = CID

    async def submit(self, record):
        await asyncio.sleep(0)
        self.events.append("ledger.submit")
        if self.fail:
            raise RuntimeError("ledger timeout")
        self.records.append(record)
        return self.reference


class FakeNotifier:
    """Captures outgoing emails, including the plain guardian token."""

    def __init__(self, events: list[str]):
        self.events = events
        self.guardian_emails: list[dict] = []
        self.approved_emails: list[dict] = []
        self.rejected_emails: list[dict] = []
        self.fail = False

    async def send_guardian_verification(self, **kwargs):
        self.events.append("email.guardian")
        if self.fail:
            raise RuntimeError("email provider down")
        self.guardian_emails.append(kwargs)
        return True

    async def send_kyc_approved(self, **kwargs):
        self.events.append("email.approved")
        if self.fail:
            raise RuntimeError("email provider down")
        self.approved_emails.append(kwargs)
        return True

    async def send_kyc_rejected(self, **kwargs):
        self.events.append("email.rejected")
        if self.fail:
            raise RuntimeError("email provider down")
        self.rejected_emails.append(kwargs)
        return True

    @property
    def last_token(self) -> str:
        return self.guardian_emails[-1]["token"]


@pytest.fixture(autouse=True)
def fast_password_hashing():
    """bcrypt is deliberately slow; lifecycle tests don't need real hashes."""
    with patch(
        "timint.modules.registrations.service.hash_password",
        side_effect=lambda password: f"hashed:{password}",
    ):
        yield


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.ttl = AsyncMock(return_value=3600)
    redis.pipeline = MagicMock()
    pipe = AsyncMock()
    pipe.incr = MagicMock()
    pipe.expire = MagicMock()
    pipe.execute = AsyncMock()
    redis.pipeline.return_value = pipe
    return redis


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo(events, clock) -> FakeRepository:
    return FakeRepository(events, clock)


@pytest.fixture
def accounts(events) -> FakeAccounts:
    return FakeAccounts(events)


@pytest.fixture
def blob_store(events) -> FakeBlobStore:
    return FakeBlobStore(events)


@pytest.fixture
def ledger(events) -> FakeLedger:
    return FakeLedger(events)


@pytest.fixture
def notifier(events) -> FakeNotifier:
    return FakeNotifier(events)


@pytest.fixture
def registrations(mock_db, repo, accounts, blob_store, ledger, notifier, clock):
    """RegistrationService wired to in-memory fakes."""
    return RegistrationService(
        mock_db,
        blob_store=blob_store,
        ledger=ledger,
        repo=repo,
        accounts=accounts,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def registration_data() -> RegistrationCreate:
    return RegistrationCreate(
        name="Ada Lovelace",
        age=15,
        email="ada@example.com",
        password="Analytical1",
        address="12 Engine Road, London",
        phone="555-123-4567",
        guardian_name="Anne Byron",
        guardian_email="anne@example.com",
        claim_name="Engine Labs",
        description="Computing machines for everyone",
    )


@pytest.fixture
def selfie() -> UploadedDocument:
    return UploadedDocument(filename="selfie.jpg", content_type="image/jpeg", data=JPEG_BYTES)


@pytest.fixture
def id_document() -> UploadedDocument:
    return UploadedDocument(filename="id.png", content_type="image/png", data=PNG_BYTES)


@pytest.fixture
def admin_id():
    return uuid4()


@pytest.fixture
async def submitted(registrations, registration_data, notifier):
    """A fresh registration in PENDING_GUARDIAN. Returns (response, plain token)."""
    response = await registrations.submit(registration_data)
    return response, notifier.last_token


@pytest.fixture
async def approved_by_guardian(registrations, submitted):
    """A registration in PENDING_DOCUMENTS. Returns (applicant id, plain token)."""
    response, token = submitted
    await registrations.guardian_decide(token, GuardianDecision.APPROVE)
    return response.id, token


@pytest.fixture
async def under_review(registrations, approved_by_guardian, selfie, id_document):
    """A registration in UNDER_REVIEW with documents stored. Returns the applicant id."""
    applicant_id, token = approved_by_guardian
    await registrations.upload_documents_with_token(token, selfie, id_document)
    return applicant_id
