"""Adapter factory and exports."""
from typing import Optional

from intelliocr.adapters.base import ExtractorAdapter
from intelliocr.config import DEFAULT_MODELS, EXTRACTOR_MODEL_VISION, EXTRACTOR_PROVIDER


def get_adapter(
    api_key: str, provider: Optional[str] = None, model: Optional[str] = None
) -> ExtractorAdapter:
    """Get an adapter bound to one credential.

    Args:
        api_key: Effective credential for the request
        provider: Backend name; defaults to EXTRACTOR_PROVIDER
        model: Model name; defaults to EXTRACTOR_MODEL_VISION, then the
            provider's entry in DEFAULT_MODELS

    Returns:
        ExtractorAdapter instance
    """
    provider = provider or EXTRACTOR_PROVIDER
    model = model or EXTRACTOR_MODEL_VISION or DEFAULT_MODELS.get(provider, DEFAULT_MODELS["gemini"])

    if provider == "anthropic":
        from intelliocr.adapters.anthropic import AnthropicAdapter
        return AnthropicAdapter(api_key, model)
    elif provider == "openai":
        from intelliocr.adapters.openai import OpenAIAdapter
        return OpenAIAdapter(api_key, model)
    else:
        # Default to Gemini
        from intelliocr.adapters.gemini import GeminiAdapter
        return GeminiAdapter(api_key, model)


__all__ = ["ExtractorAdapter", "get_adapter"]
