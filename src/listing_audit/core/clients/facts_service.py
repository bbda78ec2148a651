"""Client for the out-of-process listing facts service.

The service drives the browser that reads map listings and directory pages;
this module only speaks its JSON contract. A fresh AsyncClient is opened per
call so nothing survives between retry attempts.

Endpoints:
    GET /listings/search?name=&area=   primary listing by name and locality
    GET /listings/resolve?url=         primary listing by direct URL
    GET /directory/search?name=&area=  secondary directory presence
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..errors import AuditError
from ..models import AuditRequest, ErrorCode, ExtractedFacts, RawFacts

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_captured_at(value: Any) -> datetime:
    """ISO-8601 capture time from the service. Anything else means 'now'."""
    if not isinstance(value, str) or not value.strip():
        return _utcnow()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _utcnow()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class HttpFactExtractor:
    """FactExtractor backed by the facts service over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or os.environ.get("FACTS_SERVICE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self._timeout = httpx.Timeout(timeout, connect=10.0)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    async def extract(self, request: AuditRequest) -> ExtractedFacts:
        """Fetch the primary listing, then enrich it with directory presence."""
        async with self._client() as client:
            listing = await self._fetch_listing(client, request)
            facts = listing.facts

            name = request.subject_name.strip() or (listing.display_name or "")
            area = request.area.strip()
            if facts.secondary_listing is None and name and area:
                found = await self._fetch_directory_presence(client, name, area)
                if found is not None:
                    facts = facts.model_copy(update={"secondary_listing": found})

        return listing.model_copy(update={"facts": facts})

    async def _fetch_listing(self, client: httpx.AsyncClient, request: AuditRequest) -> ExtractedFacts:
        if request.resource_ref and request.resource_ref.strip():
            path = "/listings/resolve"
            params = {"url": request.resource_ref.strip()}
        else:
            path = "/listings/search"
            params = {"name": request.subject_name.strip(), "area": request.area.strip()}

        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise AuditError(ErrorCode.EXTRACTION_TIMEOUT, f"Facts service timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise AuditError(ErrorCode.EXTRACTION_FAILED, f"Facts service unreachable: {exc}") from exc

        if response.status_code == 404:
            raise AuditError(
                ErrorCode.SUBJECT_NOT_FOUND,
                f"Could not find {request.describe()} on the map listing service",
            )
        if response.status_code == 504:
            raise AuditError(ErrorCode.EXTRACTION_TIMEOUT, "Facts service gave up waiting for the listing page")
        try:
            response.raise_for_status()
            data = response.json()
            return ExtractedFacts(
                facts=RawFacts.model_validate(data.get("facts") or {}),
                captured_at=_parse_captured_at(data.get("capturedAt")),
                display_name=data.get("name"),
                listing_url=data.get("url"),
            )
        except (httpx.HTTPStatusError, ValueError, AttributeError, ValidationError) as exc:
            raise AuditError(ErrorCode.EXTRACTION_FAILED, f"Facts service returned an unusable listing: {exc}") from exc

    async def _fetch_directory_presence(self, client: httpx.AsyncClient, name: str, area: str) -> Optional[bool]:
        """Look the business up on the secondary directory. None when the lookup fails."""
        try:
            response = await client.get("/directory/search", params={"name": name, "area": area})
            if response.status_code == 404:
                return False
            response.raise_for_status()
            return bool(response.json().get("found", False))
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Secondary directory lookup failed for %s in %s: %s", name, area, exc)
            return None
