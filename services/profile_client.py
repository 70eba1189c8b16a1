import logging
from typing import Any, Dict, Optional

import httpx

from services.errors import ProfileGenerationError
from shared.config import get_profile_service_settings

logger = logging.getLogger(__name__)


class CompanyProfileClient:
    """
    Request/response client for the external company-profile generator.
    The service receives the company name plus any context fields and
    answers with an ``introduction`` text.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_profile_service_settings()
        self.url = url or settings["url"]
        self.api_key = api_key or settings["api_key"]
        self.timeout = timeout or settings["timeout"]
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def generate_profile(self, company_name: str, context: Optional[Dict[str, Any]] = None) -> str:
        if not self.url:
            raise ProfileGenerationError("COMPANY_PROFILE_URL is not configured")
        payload = {"companyName": company_name, "context": context or {}}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            logger.error("Company profile request failed for %s: %s", company_name, exc)
            raise ProfileGenerationError(f"Company profile request failed: {exc}") from exc

        if response.status_code >= 300:
            logger.error(
                "Company profile generation failed: %s - %s",
                response.status_code,
                response.text,
            )
            raise ProfileGenerationError(f"Company profile generation failed ({response.status_code})")

        try:
            data = response.json()
        except ValueError as exc:
            raise ProfileGenerationError("Company profile response was not JSON") from exc
        introduction = (data or {}).get("introduction") if isinstance(data, dict) else None
        if not introduction:
            logger.error("Company profile response missing introduction: %s", response.text)
            raise ProfileGenerationError("Company profile response had no introduction")
        return str(introduction)
