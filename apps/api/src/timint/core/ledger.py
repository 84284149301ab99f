"""
External Registration Ledger

Publishes approved registrations to the Pinata pinning service and
returns the content identifier (CID) as the external record reference.

Calls carry a bounded timeout and are never retried here; a failed
submission surfaces as LedgerError and the admin can re-run the approval.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

import httpx

from timint.core.config import settings

logger = logging.getLogger(__name__)

REGISTRY_NAME = "TiMint Finance"


class LedgerError(Exception):
    """Raised when the ledger cannot accept a registration record."""


@dataclass(frozen=True)
class RegistrationRecord:
    """Data published for an approved claim."""

    claim_name: str
    applicant_id: str
    applicant_name: str
    guardian_name: str
    timestamp_ms: int
    signature: str

    def to_document(self) -> dict:
        registered = datetime.fromtimestamp(self.timestamp_ms / 1000, tz=UTC)
        return {
            "name": self.applicant_name,
            "company": self.claim_name,
            "owner": self.applicant_id,
            "guardian": self.guardian_name,
            "timestamp": self.timestamp_ms,
            "registered": registered.isoformat().replace("+00:00", "Z"),
            "signature": self.signature,
            "registry": REGISTRY_NAME,
        }


class Ledger(Protocol):
    """Contract the registration lifecycle needs from the ledger."""

    async def submit(self, record: RegistrationRecord) -> str: ...


class PinataLedger:
    """Ledger implementation that pins the record as JSON on IPFS via Pinata."""

    PIN_JSON_PATH = "/pinning/pinJSONToIPFS"

    def __init__(
        self,
        jwt_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.jwt_token = jwt_token if jwt_token is not None else settings.pinata_jwt
        self.base_url = base_url or settings.pinata_api_url
        self.timeout = timeout or settings.ledger_timeout_seconds
        self._transport = transport

    async def submit(self, record: RegistrationRecord) -> str:
        """
        Pin the registration record.

        Returns:
            The IPFS content identifier

        Raises:
            LedgerError: If Pinata is not configured, unreachable or rejects the pin
        """
        if not self.jwt_token:
            logger.error("PINATA_JWT not configured - cannot submit registration record")
            raise LedgerError("Ledger is not configured")

        body = {
            "pinataContent": record.to_document(),
            "pinataMetadata": {"name": f"timint-{record.applicant_id}"},
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    self.PIN_JSON_PATH,
                    json=body,
                    headers={"Authorization": f"Bearer {self.jwt_token}"},
                )
                resp.raise_for_status()
                cid = resp.json().get("IpfsHash")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Ledger submission failed for applicant {record.applicant_id}: {e}")
            raise LedgerError("Ledger submission failed") from e

        if not cid:
            logger.error(f"Ledger response missing IpfsHash for applicant {record.applicant_id}")
            raise LedgerError("Ledger returned no reference")

        logger.info(f"Pinned registration for applicant {record.applicant_id}: {cid}")
        return cid


def get_ledger() -> Ledger:
    """FastAPI dependency for the registration ledger."""
    return PinataLedger()
