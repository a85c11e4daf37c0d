"""OpenAI adapter for multimodal extraction."""
import logging
from typing import Optional

from intelliocr.adapters.base import ExtractorAdapter
from intelliocr.config import REQUEST_TIMEOUT, TEMPERATURE
from intelliocr.prompts import ComposedRequest, ImagePart

logger = logging.getLogger(__name__)


class OpenAIAdapter(ExtractorAdapter):
    """OpenAI GPT vision adapter.

    Unlike the Gemini adapter, output is not constrained to a JSON mime type;
    the JSON array shape comes from the prompt alone.
    """

    def __init__(self, api_key: str, model: str):
        super().__init__(api_key, model)

        from openai import AsyncOpenAI
        self.client = AsyncOpenAI(api_key=api_key, timeout=REQUEST_TIMEOUT, max_retries=0)
        self.max_tokens = 4096

    async def generate(self, request: ComposedRequest) -> Optional[str]:
        """Extract fields using GPT vision."""
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{
                "role": "system",
                "content": request.system_instruction
            }, {
                "role": "user",
                "content": self._to_content(request)
            }],
            max_tokens=self.max_tokens,
            temperature=TEMPERATURE,
        )
        return response.choices[0].message.content

    async def probe(self) -> None:
        """Send a minimal chat completion."""
        await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": "Ping"}],
            max_tokens=1
        )

    def _to_content(self, request: ComposedRequest) -> list[dict]:
        content = []
        for part in request.parts:
            if isinstance(part, ImagePart):
                content.append({
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:{part.mime_type};base64,{part.data}"
                    }
                })
            else:
                content.append({
                    "type": "text",
                    "text": part.text
                })
        return content
