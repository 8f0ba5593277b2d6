"""Client for the external tax id registry (CNPJá `office` endpoint)."""

import enum
import logging
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

# Registry answers that mean "this tax id is not valid / not known"
NOT_FOUND_STATUSES = {400, 404, 422}


class RegistryStatus(BaseModel):
    id: Optional[int] = None
    text: Optional[str] = None


class RegistryCompany(BaseModel):
    name: Optional[str] = None
    status: Optional[RegistryStatus] = None


class RegistryRecord(BaseModel):
    """Subset of the registry payload used by the creation gate. Never persisted."""
    tax_id: Optional[str] = Field(None, alias="taxId")
    active: Optional[bool] = None
    company: Optional[RegistryCompany] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("tax_id", mode="before")
    @classmethod
    def _tax_id_as_text(cls, value):
        # Some registry answers carry the tax id as a JSON number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class LookupStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


class RegistryLookup(BaseModel):
    """
    Tagged outcome of a registry lookup.
    `record` is only set when the status is FOUND.
    """
    status: LookupStatus
    record: Optional[RegistryRecord] = None
    detail: Optional[str] = None


class RegistryClient:
    """
    Looks up tax ids against the registry.

    Constructed once per application and handed to the company workflow;
    `transport` lets tests swap the network for an httpx.MockTransport.
    """

    def __init__(self, base_url: str, api_key: Optional[str], transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url
        self.api_key = api_key
        self._transport = transport

    def _headers(self) -> dict:
        # The registry expects the raw key as the Authorization value
        return {"Authorization": self.api_key} if self.api_key else {}

    async def lookup(self, tax_id: str) -> RegistryLookup:
        """
        GET {base_url}/office/{tax_id}.
        Never raises: every failure is folded into NOT_FOUND or UNAVAILABLE.
        """
        path = f"office/{quote(tax_id, safe='')}"
        logger.info(f"Consulting registry for tax id: {tax_id}")

        async with httpx.AsyncClient(base_url=self.base_url, headers=self._headers(), transport=self._transport) as client:
            try:
                response = await client.get(path)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code in NOT_FOUND_STATUSES:
                    logger.warning(f"Registry has no valid record for tax id {tax_id} (status {status_code}).")
                    return RegistryLookup(status=LookupStatus.NOT_FOUND, detail=f"Registry status {status_code}")
                logger.error(f"Registry error for tax id {tax_id}: status {status_code} - {exc.response.text}")
                return RegistryLookup(status=LookupStatus.UNAVAILABLE, detail=f"Registry status {status_code}")
            except httpx.RequestError as exc:
                logger.error(f"Connection error contacting registry for tax id {tax_id}: {exc}")
                return RegistryLookup(status=LookupStatus.UNAVAILABLE, detail=str(exc))

        try:
            record = RegistryRecord.model_validate(response.json())
        except ValueError as exc:
            logger.error(f"Malformed registry response for tax id {tax_id}: {exc}")
            return RegistryLookup(status=LookupStatus.UNAVAILABLE, detail="Malformed registry response")

        logger.info(f"Registry answered for tax id {tax_id}: echo={record.tax_id} active={record.active}")
        return RegistryLookup(status=LookupStatus.FOUND, record=record)
