"""
HTTP Lead Source
Searches people through the lead search service (Apollo, Unipile) over HTTP
"""
import logging
from typing import Any, Dict, List, Optional, Set

import httpx

from outreach_engine.domain.interfaces.lead_source import LeadSourceAdapter
from outreach_engine.domain.models.lead_generation import LeadCandidate, LeadSearchResult, SearchFilters


logger = logging.getLogger(__name__)


class HttpLeadSourceAdapter(LeadSourceAdapter):
    """
    Lead source behind an HTTP search endpoint.

    Request body: Apollo-style filters plus page, per_page and exclude_ids.
    Reply: {"people" | "employees" | "leads": [...]} or an error.
    HTTP 403 means the tenant's plan does not include lead search.
    """

    RESULT_KEYS = ("people", "employees", "leads")

    def __init__(
        self,
        name: str,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        supports_exclusion: bool = False,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._name = name
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._supports_exclusion = supports_exclusion
        self._client = client

    @property
    def name(self) -> str:
        return self._name

    @property
    def supports_exclusion(self) -> bool:
        return self._supports_exclusion

    async def search(
        self,
        filters: SearchFilters,
        page: int,
        page_size: int,
        exclude_ids: Optional[Set[str]] = None
    ) -> LeadSearchResult:
        payload: Dict[str, Any] = {
            **filters.to_search_params(),
            "page": page,
            "per_page": page_size,
        }
        if exclude_ids and self.supports_exclusion:
            payload["exclude_ids"] = sorted(exclude_ids)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Service-Key"] = self.api_key

        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Lead search on {self.name} failed: {e}")
            return LeadSearchResult(source=self.name, error=str(e))

        if response.status_code == 403:
            logger.warning(f"Lead search on {self.name} denied (HTTP 403)")
            return LeadSearchResult(source=self.name, access_denied=True)

        if response.status_code >= 400:
            return LeadSearchResult(
                source=self.name,
                error=f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError:
            return LeadSearchResult(source=self.name, error="Lead search returned invalid JSON")

        if body.get("accessDenied") or body.get("access_denied"):
            return LeadSearchResult(source=self.name, access_denied=True)
        if body.get("success") is False:
            return LeadSearchResult(source=self.name, error=body.get("error") or "Lead search failed")

        return LeadSearchResult(leads=self._parse_people(body), source=self.name)

    def _parse_people(self, body: Dict[str, Any]) -> List[LeadCandidate]:
        people: List[Dict[str, Any]] = []
        for key in self.RESULT_KEYS:
            if isinstance(body.get(key), list):
                people = body[key]
                break

        candidates = []
        for person in people:
            candidate = LeadCandidate.from_raw(person) if isinstance(person, dict) else None
            if candidate is None:
                logger.debug(f"Skipping {self.name} result without an id")
                continue
            candidates.append(candidate)
        return candidates
