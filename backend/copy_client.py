"""
Copy Client - HTTP call from the copy agent to the copy proxy.

One POST per generation, no retries. Failures surface as a single
``CopyServiceError`` carrying a structured payload.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from copy_payload import RequestPayload

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised before any network call when the proxy endpoint is not configured."""


class CopyServiceError(Exception):
    """
    Failure talking to the copy proxy.

    Expected payload shape: { code: str, message: str, details?: dict }
    """

    def __init__(self, payload: Any):
        if isinstance(payload, dict):
            self.code: str = str(payload.get("code", "proxy_error"))
            self.message: str = str(payload.get("message", ""))
            self.details: Dict[str, Any] = payload.get("details", {}) or {}
        else:
            self.code = "proxy_error"
            self.message = str(payload)
            self.details = {}
        self.payload = {"code": self.code, "message": self.message, "details": self.details}
        super().__init__(self.message if self.message else self.code)


class CopyServiceClient:
    def __init__(
        self,
        endpoint: Optional[str],
        secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            endpoint: Full URL of the proxy's generate route
            secret: Bearer secret shared with the proxy (may be empty)
            timeout: Seconds before giving up; None waits indefinitely
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.endpoint = endpoint or ""
        self.secret = secret or ""
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.secret}",
        }

    async def generate(self, payload: RequestPayload) -> str:
        """POST the payload and return the generated text.

        Raises:
            ConfigurationError: If no endpoint is configured
            CopyServiceError: On transport failure, non-2xx status or a non-JSON body
        """
        if not self.endpoint:
            raise ConfigurationError("API endpoint not configured")

        logger.info(f"🚀 Calling copy API: {self.endpoint}")
        body = json.dumps(payload.to_wire(), ensure_ascii=False)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, content=body.encode("utf-8"), headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"❌ Copy API request failed: {e}")
            raise CopyServiceError({"code": "network_error", "message": str(e) or type(e).__name__}) from e

        logger.info(f"📨 Copy API response status: {response.status_code}")
        if not response.is_success:
            error_text = response.text
            logger.error(f"❌ Copy API error response: {error_text}")
            raise CopyServiceError({
                "code": "proxy_error",
                "message": f"API error {response.status_code}: {error_text}",
                "details": {"status": response.status_code},
            })

        try:
            data = response.json()
        except ValueError as e:
            raise CopyServiceError({"code": "invalid_response", "message": f"Invalid JSON from copy API: {e}"}) from e

        text = data.get("text") if isinstance(data, dict) else None
        logger.debug(f"🎯 Copy API payload: {data}")
        return text if isinstance(text, str) else ""
