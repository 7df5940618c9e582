"""
HTTP Step Executor
Delegates channel actions to the channel service over HTTP
"""
import logging
from typing import Any, Dict, Optional

import httpx

from outreach_engine.domain.interfaces.step_executor import StepExecutor
from outreach_engine.domain.models.campaign_lead import CampaignLead
from outreach_engine.domain.models.results import StepResult


logger = logging.getLogger(__name__)


class HttpStepExecutor(StepExecutor):
    """
    Posts each step to the channel service and maps its reply to a StepResult.

    Request body:
        {"step_type", "config", "lead", "user_id", "tenant_id"}
    Expected reply:
        {"success": bool, "data": {...}, "error": "..."}
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Service-Key"] = self.api_key
        return headers

    async def execute(
        self,
        step_type: str,
        lead: CampaignLead,
        config: Dict[str, Any],
        user_id: Optional[str],
        tenant_id: str
    ) -> StepResult:
        payload = {
            "step_type": step_type,
            "config": config,
            "lead": lead.model_dump(mode="json"),
            "user_id": user_id,
            "tenant_id": tenant_id,
        }

        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Step executor request failed for {step_type}: {e}")
            return StepResult.failed(f"Step executor unreachable: {e}")

        if response.status_code >= 400:
            logger.error(f"Step {step_type} rejected: HTTP {response.status_code} {response.text[:200]}")
            return StepResult.failed(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError:
            return StepResult.failed("Step executor returned invalid JSON")

        if body.get("success"):
            return StepResult.ok(body.get("data"))
        return StepResult.failed(body.get("error") or "Step execution failed")
