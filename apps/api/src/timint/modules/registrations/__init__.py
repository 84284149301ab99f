"""
Registrations Module

Startup-name registration for founders aged 13-17:
1. Submission creates the founder account, applicant and claim
2. Guardian consent via a single-use emailed link (24-hour expiry)
3. Selfie + ID upload, then manual identity review by a platform admin
4. Approval records the registration on IPFS and issues a TMIT ownership token

API Endpoints:
- POST /registrations - Submit a registration
- GET /registrations/me - Founder's registration status
- POST /registrations/me/documents - Upload identity documents
- POST /registrations/resend-guardian-email - Resend guardian email
- GET /guardian/{token} - Guardian consent page
- POST /guardian/{token}/decision - Guardian approves or rejects
- POST /guardian/{token}/documents - Upload documents via the guardian link
- /admin/registrations/... - Review queue and decisions (platform admin)

Security Features:
- SHA-256 token hashing (tokens never stored in plain text)
- Identity documents deleted before any admin decision is recorded
- Single-winner admin decisions via a conditional review lock
- Rate limiting with fail-closed behavior for resends (requires Redis)
"""

from .admin_router import router as admin_router
from .router import guardian_router, router

__all__ = ["router", "guardian_router", "admin_router"]
