import os
from pathlib import Path
from typing import Mapping

EXTRACTOR_PROVIDER = os.environ.get("EXTRACTOR_PROVIDER", "gemini")
# Empty means the provider default from DEFAULT_MODELS
EXTRACTOR_MODEL_VISION = os.environ.get("EXTRACTOR_MODEL_VISION", "")

DEFAULT_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-5",
}
PROVIDER_API_KEY_ENV = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}
GEMINI_API_URL = os.environ.get(
    "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta"
)


def deployment_api_key(provider: str, environ: Mapping[str, str] = os.environ) -> str:
    """Operator-provisioned key for a provider: its own variable, then API_KEY."""
    env_name = PROVIDER_API_KEY_ENV.get(provider, PROVIDER_API_KEY_ENV["gemini"])
    return environ.get(env_name, "") or environ.get("API_KEY", "")


# A user-supplied key always takes precedence
DEPLOYMENT_API_KEY = deployment_api_key(EXTRACTOR_PROVIDER)

MAX_RETRIES = 3
RETRY_BASE_DELAY = float(os.environ.get("RETRY_BASE_DELAY_SECONDS", "2.0"))
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "60"))

MAX_IMAGE_DIMENSION = 1024
JPEG_QUALITY = 0.7
TEMPERATURE = 0.1
FEW_SHOT_LIMIT = int(os.environ.get("FEW_SHOT_LIMIT", "1"))

WORKER_CONCURRENCY = int(os.environ.get("WORKER_CONCURRENCY", "4"))

WORKSPACE_PATH = Path(
    os.environ.get("INTELLIOCR_WORKSPACE", str(Path.home() / ".intelliocr" / "workspace.json"))
)
MAX_EXAMPLES_BYTES = 4 * 1024 * 1024
