"""
Certificates Service Layer

Renders the registration certificate PDF for a verified founder.

The PDF is built in memory with reportlab platypus and streamed back
directly. Rendering is CPU bound, so it runs in a worker thread.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from html import escape
from uuid import UUID

from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)
from sqlalchemy.ext.asyncio import AsyncSession

from timint.modules.registrations import repository as registrations_repository
from timint.modules.registrations.helpers import registration_id

logger = logging.getLogger(__name__)

# Brand colors
NAVY = HexColor("#0B2545")
BLUE = HexColor("#134074")
SLATE = HexColor("#475569")
MUTED = HexColor("#64748B")
BORDER = HexColor("#E2E8F0")
NOTICE_BG = HexColor("#FEF3C7")
NOTICE_TEXT = HexColor("#92400E")

LEGAL_NOTICE = (
    "This certificate does not constitute government incorporation, does not replace "
    "trademarks or statutory company registration. It serves as digital proof of ownership, "
    "guardianship approval, and registry record within the TiMint ecosystem."
)

DISCLAIMER_POINTS = [
    "Does NOT constitute legal business incorporation",
    "Does NOT replace trademark registration",
    "Does NOT grant exclusive commercial rights",
]


class CertificateServiceError(Exception):
    """Base exception for certificate errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class CertificateNotFoundError(CertificateServiceError):
    def __init__(self):
        super().__init__(
            message="No registration found for this account.",
            error_code="REGISTRATION_NOT_FOUND",
            status_code=404,
        )


class CertificateNotAvailableError(CertificateServiceError):
    def __init__(self):
        super().__init__(
            message="A certificate is available once the registration is verified.",
            error_code="INVALID_REGISTRATION_STATE",
            status_code=409,
        )


@dataclass(frozen=True)
class CertificateData:
    claim_name: str
    registration_id: str
    ownership_token: str
    founder_name: str
    guardian_name: str
    kyc_status: str
    registered_at: datetime
    external_record_ref: str


def _build_styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "title",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=20,
            leading=24,
            textColor=NAVY,
            alignment=TA_CENTER,
            spaceAfter=4,
        ),
        "subtitle": ParagraphStyle(
            "subtitle",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=9,
            textColor=MUTED,
            alignment=TA_CENTER,
            spaceAfter=20,
        ),
        "certify": ParagraphStyle(
            "certify",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=11,
            textColor=NAVY,
            alignment=TA_CENTER,
            spaceAfter=6,
        ),
        "claim": ParagraphStyle(
            "claim",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=18,
            leading=22,
            textColor=BLUE,
            alignment=TA_CENTER,
            spaceAfter=8,
        ),
        "section": ParagraphStyle(
            "section",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=12,
            textColor=NAVY,
            spaceBefore=14,
            spaceAfter=4,
        ),
        "body": ParagraphStyle(
            "body",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=10,
            leading=14,
            textColor=SLATE,
            alignment=TA_JUSTIFY,
            spaceAfter=6,
        ),
        "label": ParagraphStyle(
            "label",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=9,
            textColor=MUTED,
        ),
        "value": ParagraphStyle(
            "value",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=10,
            textColor=NAVY,
        ),
        "notice": ParagraphStyle(
            "notice",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=9,
            leading=12,
            textColor=NOTICE_TEXT,
            alignment=TA_JUSTIFY,
        ),
        "footer": ParagraphStyle(
            "footer",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=10,
            textColor=NAVY,
            alignment=TA_CENTER,
        ),
    }


def _detail_table(rows: list[tuple[str, str]], styles: dict[str, ParagraphStyle]) -> Table:
    data = [
        [Paragraph(escape(label), styles["label"]), Paragraph(escape(value), styles["value"])]
        for label, value in rows
    ]
    table = Table(data, colWidths=[1.9 * inch, 4.6 * inch])
    table.setStyle(
        TableStyle(
            [
                ("LINEBELOW", (0, 0), (-1, -1), 0.5, BORDER),
                ("TOPPADDING", (0, 0), (-1, -1), 4),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def _section(title: str, styles: dict[str, ParagraphStyle]) -> list:
    return [
        Paragraph(title, styles["section"]),
        HRFlowable(width="100%", thickness=0.5, color=BORDER, spaceAfter=6),
    ]


def render_certificate(data: CertificateData) -> bytes:
    """
    Build the certificate PDF.

    Returns:
        PDF as bytes
    """
    styles = _build_styles()
    issued_on = data.registered_at.strftime("%B %d, %Y")

    story = [
        Paragraph("CERTIFICATE OF DIGITAL STARTUP REGISTRATION", styles["title"]),
        Paragraph("TiMint Finance Digital Registry", styles["subtitle"]),
        Paragraph("THIS IS TO CERTIFY THAT", styles["certify"]),
        Paragraph(escape(data.claim_name), styles["claim"]),
        Paragraph(
            f"has been recorded and registered within the TiMint Finance Digital Registry on "
            f"{issued_on}, following guardian approval and identity verification.",
            styles["body"],
        ),
    ]

    story += _section("FOUNDER DETAILS", styles)
    story.append(
        _detail_table(
            [
                ("Founder Name", data.founder_name),
                ("Guardian (Parent)", data.guardian_name),
                ("Guardian Approval", "Approved"),
                ("KYC Status", data.kyc_status.replace("_", " ").title()),
            ],
            styles,
        )
    )

    story += _section("OWNERSHIP & CONTROL DECLARATION", styles)
    story.append(
        Paragraph(
            f"This registration confirms that {escape(data.founder_name)} is recognized as the "
            f"Founder and Digital Owner of the startup name {escape(data.claim_name)} within "
            "the TiMint ecosystem. As the Founder is currently a minor, guardianship "
            "responsibilities remain with the verified guardian until the Founder reaches "
            "the age of 18 years.",
            styles["body"],
        )
    )

    story += _section("REGISTRY DETAILS", styles)
    story.append(
        _detail_table(
            [
                ("Registration ID", data.registration_id),
                ("TMIT Token", data.ownership_token),
                ("Ledger Record", data.external_record_ref),
                ("Date of Issue", issued_on),
            ],
            styles,
        )
    )
    story.append(Spacer(1, 18))

    notice = Table(
        [[Paragraph(f"<b>LEGAL NOTICE</b><br/>{LEGAL_NOTICE}", styles["notice"])]],
        colWidths=[6.5 * inch],
    )
    notice.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, -1), NOTICE_BG),
                ("LEFTPADDING", (0, 0), (-1, -1), 10),
                ("RIGHTPADDING", (0, 0), (-1, -1), 10),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]
        )
    )
    story.append(notice)
    story.append(Spacer(1, 24))
    story.append(Paragraph("AUTHORIZED BY<br/>Registrar, Digital Startups<br/>TiMint Finance", styles["footer"]))

    story.append(PageBreak())
    story.append(Paragraph("LEGAL DISCLAIMER", styles["title"]))
    story.append(Spacer(1, 12))
    story.append(
        Paragraph(
            "TiMint Finance is a private digital registry and does not represent a government "
            "authority. This document is intended solely as digital proof of startup name "
            "registration within the TiMint ecosystem. This registration:",
            styles["body"],
        )
    )
    for point in DISCLAIMER_POINTS:
        story.append(Paragraph(point, styles["body"], bulletText="•"))

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.7 * inch,
        bottomMargin=0.7 * inch,
        title=f"TiMint Certificate - {data.claim_name}",
        author="TiMint Finance",
    )
    doc.build(story)

    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


async def generate_certificate_for_user(
    db: AsyncSession,
    user_id: UUID | str,
) -> tuple[bytes, str]:
    """
    Render the certificate for the founder's registered claim.

    Returns:
        Tuple of (PDF bytes, download filename)

    Raises:
        CertificateNotFoundError: No registration for the account
        CertificateNotAvailableError: Claim not registered yet
    """
    applicant = await registrations_repository.get_by_user_id(db, user_id)
    if applicant is None:
        raise CertificateNotFoundError()

    claim = await registrations_repository.get_claim_for_applicant(db, applicant.id)
    if claim is None:
        raise CertificateNotFoundError()
    if not claim.registered:
        logger.warning(f"Certificate refused for applicant {applicant.id}: claim not registered")
        raise CertificateNotAvailableError()

    reg_id = registration_id(str(claim.id))
    data = CertificateData(
        claim_name=claim.claim_name,
        registration_id=reg_id,
        ownership_token=claim.ownership_token,
        founder_name=applicant.name,
        guardian_name=applicant.guardian_name,
        kyc_status=applicant.kyc_status.value,
        registered_at=claim.registered_at,
        external_record_ref=claim.external_record_ref,
    )

    pdf_bytes = await asyncio.to_thread(render_certificate, data)
    logger.info(f"Generated certificate for claim {claim.id}")

    return pdf_bytes, f"TiMint-Certificate-{reg_id}.pdf"
