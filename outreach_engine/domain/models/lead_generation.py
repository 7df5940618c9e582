"""
Lead Generation Models
Search filters, source candidates and the offset cursor
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _as_list(value: Any) -> List[str]:
    """Normalize a str/list filter value into a list of non-blank strings."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _parse_filters(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    return raw if isinstance(raw, dict) else {}


class SearchFilters(BaseModel):
    """
    Normalized lead search criteria.

    Accepts both filter formats stored by the campaign builder:
    - legacy UI format: roles, location, industries
    - Apollo format: person_titles, organization_locations,
      organization_industries, q_organization_keyword_tags,
      organization_num_employees_ranges
    """
    person_titles: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    employee_ranges: List[str] = Field(default_factory=list)

    @classmethod
    def from_configs(
        cls,
        step_config: Optional[Dict[str, Any]],
        campaign_filters: Optional[Dict[str, Any]] = None
    ) -> "SearchFilters":
        """
        Build filters from a lead_generation step config and the campaign's
        search_filters. Non-empty campaign filters take precedence over the
        step's leadGenerationFilters.
        """
        step_config = dict(step_config or {})
        campaign_filters = _parse_filters(campaign_filters)

        if campaign_filters:
            filters = campaign_filters
            direct = {**step_config, **campaign_filters}
        else:
            filters = _parse_filters(step_config.get("leadGenerationFilters"))
            direct = step_config

        titles = (
            _as_list(filters.get("roles"))
            or _as_list(filters.get("person_titles"))
            or _as_list(direct.get("person_titles"))
        )
        locations = (
            _as_list(filters.get("location"))
            or _as_list(filters.get("organization_locations"))
            or _as_list(direct.get("organization_locations"))
        )
        industries = (
            _as_list(filters.get("industries"))
            or _as_list(filters.get("organization_industries"))
            or _as_list(direct.get("organization_industries"))
        )
        keywords = _as_list(direct.get("q_organization_keyword_tags"))
        employee_ranges = _as_list(direct.get("organization_num_employees_ranges"))

        return cls(
            person_titles=titles,
            locations=locations,
            industries=industries,
            keywords=keywords,
            employee_ranges=employee_ranges,
        )

    def has_criteria(self) -> bool:
        """At least one role/title, location or industry (keywords count as industry)."""
        return bool(self.person_titles or self.locations or self.industries or self.keywords)

    def to_search_params(self) -> Dict[str, Any]:
        """Apollo-style search parameters."""
        params: Dict[str, Any] = {}
        if self.person_titles:
            params["person_titles"] = self.person_titles
        if self.locations:
            params["organization_locations"] = self.locations
        if self.industries:
            params["organization_industries"] = self.industries
        elif self.keywords:
            # Keyword tags stand in for industries when none were given
            params["organization_industries"] = self.keywords
        if self.employee_ranges:
            params["organization_num_employees_ranges"] = self.employee_ranges
        return params


@dataclass
class LeadCandidate:
    """A person returned by a lead source."""
    source_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> Optional["LeadCandidate"]:
        """Build from a source payload; returns None when it has no usable id."""
        source_id = raw.get("id") or raw.get("apollo_person_id") or raw.get("source_id")
        if not source_id:
            return None
        return cls(source_id=str(source_id), data=dict(raw))

    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time copy of the lead attributes the channels rely on."""
        d = self.data
        name_parts = (d.get("name") or d.get("employee_name") or "").split(" ")
        organization = d.get("organization") or {}
        company = d.get("company") or {}
        return {
            "first_name": name_parts[0] or d.get("first_name"),
            "last_name": " ".join(name_parts[1:]) or d.get("last_name"),
            "email": d.get("email") or d.get("employee_email") or d.get("work_email"),
            "linkedin_url": d.get("linkedin_url") or d.get("employee_linkedin_url") or d.get("linkedin"),
            "company_name": (
                d.get("company_name")
                or (organization.get("name") if isinstance(organization, dict) else None)
                or (company.get("name") if isinstance(company, dict) else None)
            ),
            "title": d.get("title") or d.get("job_title") or d.get("employee_title") or d.get("headline"),
            "phone": d.get("phone") or d.get("employee_phone") or d.get("phone_number"),
        }

    def lead_data(self) -> Dict[str, Any]:
        """Full source payload, with the source id pinned for future dedup lookups."""
        return {**self.data, "apollo_person_id": self.source_id}


@dataclass
class LeadSearchResult:
    """Result of one page fetched from a lead source."""
    leads: List[LeadCandidate] = field(default_factory=list)
    source: str = ""
    error: Optional[str] = None
    access_denied: bool = False


@dataclass
class LeadGenCursor:
    """Resumable position in a campaign's candidate stream."""
    offset: int = 0
    last_lead_gen_date: Optional[str] = None


@dataclass
class LeadGenerationResult:
    """Outcome of one lead generation pass."""
    leads_found: int = 0
    leads_saved: int = 0
    new_offset: int = 0
    daily_limit: int = 0
    source: str = ""
    skipped: bool = False
    daily_limit_reached: bool = False
    # State the campaign processor should move to (None = leave as is)
    execution_state_hint: Optional[str] = None
    next_run_at: Optional[datetime] = None
    last_lead_check_at: Optional[datetime] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None
