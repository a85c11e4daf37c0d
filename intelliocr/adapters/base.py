"""Base adapter interface for multimodal extraction models."""

from abc import ABC, abstractmethod
from typing import Optional

from intelliocr.prompts import ComposedRequest


class ExtractorAdapter(ABC):
    """Abstract base class for model backends.

    Adapters only translate a ComposedRequest onto a provider's wire format
    and return the raw text. They do not retry and do not parse.
    """

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def generate(self, request: ComposedRequest) -> Optional[str]:
        """Send one extraction request.

        Args:
            request: Composed system instruction and ordered parts

        Returns:
            Raw response text, or None if the model returned no text
        """
        pass

    @abstractmethod
    async def probe(self) -> None:
        """Issue a minimal request to check the credential.

        Raises:
            Exception: Whatever the backend raised; callers classify it
        """
        pass
