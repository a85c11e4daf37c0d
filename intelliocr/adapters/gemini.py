"""Gemini adapter using the Generative Language REST API."""

import logging
from typing import Optional

import httpx

from intelliocr.adapters.base import ExtractorAdapter
from intelliocr.config import GEMINI_API_URL, REQUEST_TIMEOUT, TEMPERATURE
from intelliocr.errors import ModelRequestError
from intelliocr.prompts import ComposedRequest, ImagePart

logger = logging.getLogger(__name__)


class GeminiAdapter(ExtractorAdapter):
    """Google Gemini multimodal adapter."""

    def __init__(self, api_key: str, model: str):
        super().__init__(api_key, model)
        self.base_url = GEMINI_API_URL
        self.timeout = REQUEST_TIMEOUT

    async def generate(self, request: ComposedRequest) -> Optional[str]:
        """Run generateContent with JSON output and low temperature."""
        body = {
            "systemInstruction": {"parts": [{"text": request.system_instruction}]},
            "contents": [{"role": "user", "parts": self._to_parts(request)}],
            "generationConfig": {
                "temperature": TEMPERATURE,
                "responseMimeType": "application/json",
            },
        }
        result = await self._generate_content(body)
        return self._response_text(result)

    async def probe(self) -> None:
        """Send a one-token ping."""
        body = {
            "contents": [{"role": "user", "parts": [{"text": "Ping"}]}],
            "generationConfig": {"maxOutputTokens": 1},
        }
        await self._generate_content(body)

    async def _generate_content(self, body: dict) -> dict:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                url,
                json=body,
                headers={"x-goog-api-key": self.api_key},
            )
            if response.status_code >= 400:
                logger.debug(f"Gemini returned {response.status_code}: {response.text[:500]}")
                raise ModelRequestError(
                    response.status_code, response.text, response.reason_phrase
                )
            return response.json()

    def _to_parts(self, request: ComposedRequest) -> list[dict]:
        parts = []
        for part in request.parts:
            if isinstance(part, ImagePart):
                parts.append({"inlineData": {"mimeType": part.mime_type, "data": part.data}})
            else:
                parts.append({"text": part.text})
        return parts

    def _response_text(self, result: dict) -> Optional[str]:
        """Concatenate the text parts of the first candidate."""
        candidates = result.get("candidates") or []
        if not candidates:
            feedback = result.get("promptFeedback", {})
            logger.warning(f"Gemini returned no candidates: {feedback}")
            return None

        content = candidates[0].get("content") or {}
        texts = [p["text"] for p in content.get("parts", []) if "text" in p]
        return "".join(texts) or None
