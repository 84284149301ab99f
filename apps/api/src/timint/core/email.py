"""
Email Service using Resend

Handles sending emails for the registration flow:
guardian consent requests and KYC decisions.
"""

import asyncio
import logging
from html import escape

import resend

from timint.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

EMAIL_FROM = settings.email_from
FRONTEND_URL = settings.frontend_url
EMAIL_TIMEOUT_SECONDS = 15

_STYLES = """
        body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
        .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
        .header { color: #0d1e33; margin-bottom: 24px; }
        .button { display: inline-block; background-color: #0d1e33; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
        .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
        .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def mask_email(email: str) -> str:
    """
    Mask an email address for logs.

    Example: jane.doe@example.com -> j***@example.com
    """
    if "@" not in email:
        return "***"

    local, domain = email.split("@", 1)
    masked_local = "*" if len(local) <= 1 else f"{local[0]}***"
    return f"{masked_local}@{domain}"


def _wrap_html(body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLES}</style>
    </head>
    <body>
        <div class="container">
            {body}
            <div class="footer">
                <p>TiMint Finance - Startup name registry for young founders</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: str | None = None,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email
        text_content: Optional plain-text alternative

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {mask_email(to_email)} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            params["text"] = text_content

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.wait_for(
            asyncio.to_thread(resend.Emails.send, params),
            timeout=EMAIL_TIMEOUT_SECONDS,
        )
        logger.info(f"Email sent successfully to {mask_email(to_email)}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {mask_email(to_email)}: {e}")
        return False


async def send_guardian_verification(
    to_email: str,
    guardian_name: str,
    applicant_name: str,
    applicant_age: int,
    claim_name: str,
    token: str,
) -> bool:
    """Ask the guardian to approve or reject a minor's registration."""
    safe_guardian = escape(guardian_name)
    safe_applicant = escape(applicant_name)
    safe_claim = escape(claim_name)

    verification_url = f"{FRONTEND_URL}/verify-guardian/{token}"
    html_content = _wrap_html(
        f"""
            <h1 class="header">Guardian Consent Required</h1>

            <p>Dear {safe_guardian},</p>

            <p>{safe_applicant} (age {applicant_age}) has asked to register the startup name
            <strong>{safe_claim}</strong> on TiMint Finance and listed you as their guardian.</p>

            <div class="info-box">
                <p>As their guardian you can approve or decline this registration.
                After approval, identity documents are uploaded for a one-time manual review
                and deleted as soon as the review is complete.</p>
            </div>

            <a href="{verification_url}" class="button">Review Registration</a>

            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #3b82f6;">{verification_url}</p>

            <p><strong>This link expires in 24 hours.</strong></p>

            <p>If you don't recognise this request, you can decline it from the link above.</p>
        """
    )
    text_content = (
        f"Dear {guardian_name},\n\n"
        f"{applicant_name} (age {applicant_age}) has asked to register the startup name "
        f'"{claim_name}" on TiMint Finance and listed you as their guardian.\n\n'
        f"Review the registration here: {verification_url}\n\n"
        "This link expires in 24 hours.\n"
    )
    return await send_email(
        to_email=to_email,
        subject="Verify Your Teen's Startup Registration - TiMint Finance",
        html_content=html_content,
        text_content=text_content,
    )


async def send_kyc_approved(
    to_email: str,
    applicant_name: str,
    claim_name: str,
    ownership_token: str,
    registration_id: str,
) -> bool:
    """Tell the applicant their claim is registered."""
    safe_applicant = escape(applicant_name)
    safe_claim = escape(claim_name)
    dashboard_url = f"{FRONTEND_URL}/dashboard"

    html_content = _wrap_html(
        f"""
            <h1 class="header">Your Startup is Verified!</h1>

            <p>Hello {safe_applicant},</p>

            <p><strong>{safe_claim}</strong> is now registered on TiMint Finance.</p>

            <div class="info-box">
                <p><strong>Registration ID:</strong> {registration_id}</p>
                <p><strong>Ownership Token:</strong> {ownership_token}</p>
            </div>

            <p>Your identity documents have been permanently deleted.</p>

            <a href="{dashboard_url}" class="button">Download Certificate</a>
        """
    )
    text_content = (
        f"Hello {applicant_name},\n\n"
        f'"{claim_name}" is now registered on TiMint Finance.\n\n'
        f"Registration ID: {registration_id}\n"
        f"Ownership Token: {ownership_token}\n\n"
        f"Download your certificate: {dashboard_url}\n"
    )
    return await send_email(
        to_email=to_email,
        subject="Your Startup is Verified - TiMint Finance",
        html_content=html_content,
        text_content=text_content,
    )


async def send_kyc_rejected(
    to_email: str,
    applicant_name: str,
    claim_name: str,
) -> bool:
    """Tell the applicant their identity review was not successful."""
    safe_applicant = escape(applicant_name)
    safe_claim = escape(claim_name)

    html_content = _wrap_html(
        f"""
            <h1 class="header">Verification Unsuccessful</h1>

            <p>Hello {safe_applicant},</p>

            <p>We could not verify the identity documents submitted for
            <strong>{safe_claim}</strong>. The documents have been deleted.</p>

            <p>If you believe this is a mistake, please contact support.</p>
        """
    )
    text_content = (
        f"Hello {applicant_name},\n\n"
        f'We could not verify the identity documents submitted for "{claim_name}". '
        "The documents have been deleted.\n"
    )
    return await send_email(
        to_email=to_email,
        subject="Verification Update - TiMint Finance",
        html_content=html_content,
        text_content=text_content,
    )
