"""
Badge Schemas

Pydantic schemas for domain-locked "Verified by TiMint" badges.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class BadgeTokenRequest(BaseModel):
    domain: str = Field(..., min_length=4, max_length=253, examples=["example.com"])


class BadgeTokenResponse(BaseModel):
    token: str
    domain: str
    embed_code: str
    expires_at: datetime


class BadgeVerifyRequest(BaseModel):
    token: str = Field(..., min_length=1)


class BadgeVerifyResponse(BaseModel):
    verified: bool = True
    claim_id: UUID
    domain: str
    claim_name: str


class BadgeInfoResponse(BaseModel):
    """Public badge page data for a registered claim."""

    claim_id: UUID
    claim_name: str
    registration_id: str
    ownership_token: str
    registered_at: datetime | None = None
