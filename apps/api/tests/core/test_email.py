"""
Tests for the Resend email helpers.
"""

from unittest.mock import patch

import pytest

from timint.core import email


class TestMaskEmail:
    def test_masks_local_part(self):
        assert email.mask_email("jane.doe@example.com") == "j***@example.com"

    def test_single_character_local_part(self):
        assert email.mask_email("j@example.com") == "*@example.com"

    def test_invalid_email(self):
        assert email.mask_email("not-an-email") == "***"


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_without_api_key_logs_instead(self):
        with (
            patch.object(email.resend, "api_key", None),
            patch.object(email.resend.Emails, "send") as mock_send,
        ):
            sent = await email.send_email("anne@example.com", "Subject", "<p>Hi</p>")

        assert sent is True
        mock_send.assert_not_called()

    @pytest.mark.asyncio
    async def test_sends_through_resend(self):
        with (
            patch.object(email.resend, "api_key", "re_test"),
            patch.object(email.resend.Emails, "send", return_value={"id": "email-1"}) as mock_send,
        ):
            sent = await email.send_email("anne@example.com", "Subject", "<p>Hi</p>", "Hi")

        assert sent is True
        params = mock_send.call_args.args[0]
        assert params["to"] == ["anne@example.com"]
        assert params["text"] == "Hi"

    @pytest.mark.asyncio
    async def test_provider_failure_returns_false(self):
        with (
            patch.object(email.resend, "api_key", "re_test"),
            patch.object(email.resend.Emails, "send", side_effect=RuntimeError("down")),
        ):
            sent = await email.send_email("anne@example.com", "Subject", "<p>Hi</p>")

        assert sent is False

    @pytest.mark.asyncio
    async def test_guardian_email_escapes_names(self):
        with patch.object(email, "send_email", return_value=True) as mock_send:
            await email.send_guardian_verification(
                to_email="anne@example.com",
                guardian_name="Anne <Byron>",
                applicant_name="Ada",
                applicant_age=15,
                claim_name="Engine & Co",
                token="tok123",
            )

        html = mock_send.call_args.kwargs["html_content"]
        assert "Anne &lt;Byron&gt;" in html
        assert "Engine &amp; Co" in html
        assert "/verify-guardian/tok123" in html
