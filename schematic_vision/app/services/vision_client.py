import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class VisionClientError(RuntimeError):
    """Raised when the vision model call fails."""


class VisionResponse(BaseModel):
    output_text: str
    usage: Optional[Dict[str, Any]] = None


def _extract_output_text(data: Dict[str, Any]) -> str:
    text = data.get("output_text")
    if isinstance(text, str):
        return text
    parts = []
    for item in data.get("output") or []:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and content.get("type") in {"output_text", "text"}:
                parts.append(content.get("text") or "")
    return "".join(parts)


class VisionClient:
    """Thin client for the OpenAI Responses API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com",
        timeout_seconds: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def create_response(
        self,
        model: str,
        system_prompt: str,
        user_content: List[Dict[str, Any]],
        max_output_tokens: int,
    ) -> VisionResponse:
        payload = {
            "model": model,
            "max_output_tokens": max_output_tokens,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": system_prompt}]},
                {"role": "user", "content": user_content},
            ],
        }
        timeout = httpx.Timeout(self.timeout_seconds, read=self.timeout_seconds, connect=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                resp = await client.post(f"{self.base_url}/v1/responses", json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise VisionClientError(f"Vision API request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                error_type = error_info.get("type", "unknown_error")
                error_message = error_info.get("message", "Unknown error")
            else:
                error_type, error_message = "unknown_error", str(error_info)
            logger.error(
                "Vision API returned error: status=%s type=%s message=%s",
                resp.status_code,
                error_type,
                error_message[:500],
            )
            raise VisionClientError(f"Vision API error ({error_type}): {error_message}")
        if resp.status_code >= 400 or not isinstance(data, dict):
            raise VisionClientError(f"Vision API request failed with status {resp.status_code}")

        output_text = _extract_output_text(data)
        logger.info("vision response received: model=%s chars=%d", data.get("model", model), len(output_text))
        return VisionResponse(output_text=output_text, usage=data.get("usage"))
