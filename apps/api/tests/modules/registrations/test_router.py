"""
HTTP-level tests for the registration routers.

The service is replaced with a mock; these tests check request validation,
error mapping and the shape of responses.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from timint.core.auth import AuthenticatedUser, get_current_admin_user
from timint.core.redis import get_redis
from timint.modules.registrations import admin_router, guardian_router, router
from timint.modules.registrations.models import ApplicantStatus, KycStatus
from timint.modules.registrations.schemas import DocumentUploadResponse, RegistrationResponse
from timint.modules.registrations.service import (
    InvalidRegistrationStateError,
    RateLimitExceededError,
    TokenExpiredError,
    UploadedDocument,
    get_registration_service,
)


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def admin():
    return AuthenticatedUser(id=uuid4(), email="admin@example.com", role="platform_admin")


@pytest.fixture
def client(service, admin):
    app = FastAPI()
    app.include_router(router, prefix="/registrations")
    app.include_router(guardian_router, prefix="/guardian")
    app.include_router(admin_router, prefix="/admin/registrations")
    app.dependency_overrides[get_registration_service] = lambda: service
    app.dependency_overrides[get_redis] = lambda: None
    app.dependency_overrides[get_current_admin_user] = lambda: admin
    return TestClient(app)


def _payload(**overrides) -> dict:
    payload = {
        "name": "Ada Lovelace",
        "age": 15,
        "email": "ada@example.com",
        "password": "Analytical1",
        "address": "12 Engine Road, London",
        "phone": "555-123-4567",
        "guardian_name": "Anne Byron",
        "guardian_email": "anne@example.com",
        "claim_name": "Engine Labs",
    }
    payload.update(overrides)
    return payload


class TestSubmitEndpoint:
    def test_created(self, client, service):
        applicant_id = uuid4()
        service.submit = AsyncMock(
            return_value=RegistrationResponse(
                id=applicant_id,
                status=ApplicantStatus.PENDING_GUARDIAN,
                guardian_link_expires_at=datetime(2026, 3, 2, tzinfo=UTC),
            )
        )

        response = client.post("/registrations", json=_payload())

        assert response.status_code == 201
        assert response.json()["id"] == str(applicant_id)
        assert response.json()["status"] == "pending_guardian"

    def test_underage_rejected_without_calling_service(self, client, service):
        service.submit = AsyncMock()

        response = client.post("/registrations", json=_payload(age=12))

        assert response.status_code == 422
        service.submit.assert_not_called()

    def test_unexpected_error_is_internal(self, client, service):
        service.submit = AsyncMock(side_effect=RuntimeError("boom"))

        response = client.post("/registrations", json=_payload())

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "INTERNAL_ERROR"
        assert "boom" not in response.text


class TestGuardianEndpoints:
    def test_expired_token(self, client, service):
        service.get_guardian_view = AsyncMock(side_effect=TokenExpiredError())

        response = client.get("/guardian/some-token")

        assert response.status_code == 410
        assert response.json()["detail"]["error"] == "TOKEN_EXPIRED"

    def test_invalid_decision(self, client, service):
        service.guardian_decide = AsyncMock()

        response = client.post("/guardian/some-token/decision", json={"action": "maybe"})

        assert response.status_code == 422
        service.guardian_decide.assert_not_called()

    def test_upload_passes_files_to_service(self, client, service):
        applicant_id = uuid4()
        service.upload_documents_with_token = AsyncMock(
            return_value=DocumentUploadResponse(
                id=applicant_id,
                status=ApplicantStatus.UNDER_REVIEW,
                kyc_status=KycStatus.UNDER_REVIEW,
            )
        )

        response = client.post(
            "/guardian/some-token/documents",
            files={
                "selfie": ("selfie.jpg", b"\xff\xd8\xff", "image/jpeg"),
                "document": ("id.png", b"\x89PNG", "image/png"),
            },
        )

        assert response.status_code == 200
        assert response.json()["kyc_status"] == "under_review"
        token, selfie, document = service.upload_documents_with_token.call_args.args
        assert token == "some-token"
        assert selfie == UploadedDocument("selfie.jpg", "image/jpeg", b"\xff\xd8\xff")
        assert document.content_type == "image/png"


class TestResendEndpoint:
    def test_rate_limited_sets_retry_after(self, client, service):
        service.resend_guardian_email = AsyncMock(
            side_effect=RateLimitExceededError(retry_after_seconds=1800)
        )

        response = client.post(
            "/registrations/resend-guardian-email",
            json={"applicant_id": str(uuid4()), "email": "ada@example.com"},
        )

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "1800"
        assert response.json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"


class TestAdminEndpoints:
    def test_conflicting_decision(self, client, service, admin):
        applicant_id = uuid4()
        service.admin_approve = AsyncMock(
            side_effect=InvalidRegistrationStateError("Another administrator has already decided.")
        )

        response = client.post(f"/admin/registrations/{applicant_id}/approve")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "INVALID_REGISTRATION_STATE"
        service.admin_approve.assert_awaited_once_with(applicant_id, admin.id)

    def test_invalid_applicant_id(self, client, service):
        service.admin_reject = AsyncMock()

        response = client.post("/admin/registrations/not-a-uuid/reject")

        assert response.status_code == 422
        service.admin_reject.assert_not_called()
