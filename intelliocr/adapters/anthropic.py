"""Anthropic adapter for multimodal extraction."""

import logging
from typing import Optional

from intelliocr.adapters.base import ExtractorAdapter
from intelliocr.config import REQUEST_TIMEOUT, TEMPERATURE
from intelliocr.prompts import ComposedRequest, ImagePart

logger = logging.getLogger(__name__)


class AnthropicAdapter(ExtractorAdapter):
    """Anthropic Claude vision adapter."""

    def __init__(self, api_key: str, model: str):
        super().__init__(api_key, model)

        from anthropic import AsyncAnthropic

        self.client = AsyncAnthropic(api_key=api_key, timeout=REQUEST_TIMEOUT, max_retries=0)
        self.max_tokens = 4096

    async def generate(self, request: ComposedRequest) -> Optional[str]:
        """Extract fields using Claude's vision capabilities."""
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=TEMPERATURE,
            system=request.system_instruction,
            messages=[{"role": "user", "content": self._to_content(request)}],
        )

        texts = [block.text for block in message.content if block.type == "text"]
        if not texts:
            logger.warning("No text block in Claude response")
            return None
        return "".join(texts)

    async def probe(self) -> None:
        """Send a minimal message."""
        await self.client.messages.create(
            model=self.model,
            max_tokens=1,
            messages=[{"role": "user", "content": "Ping"}],
        )

    def _to_content(self, request: ComposedRequest) -> list[dict]:
        content = []
        for part in request.parts:
            if isinstance(part, ImagePart):
                content.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": part.mime_type,
                            "data": part.data,
                        },
                    }
                )
            else:
                content.append({"type": "text", "text": part.text})
        return content
