"""Local workspace persistence: field config, reference examples, API key.

All state lives in a single JSON file (``config.WORKSPACE_PATH``). Read
failures are logged and treated as an empty workspace so a corrupt file
never blocks analysis.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from intelliocr import config
from intelliocr.schemas import ReferenceExample

logger = logging.getLogger(__name__)


class UserConfig(BaseModel):
    fields: list[str] = Field(default_factory=list)
    custom_prompt: str = ""
    lang: str = "en"


class Workspace(BaseModel):
    config: UserConfig = Field(default_factory=UserConfig)
    examples: list[ReferenceExample] = Field(default_factory=list)
    api_key: str = ""


def _path(path: Optional[Path]) -> Path:
    return Path(path) if path is not None else config.WORKSPACE_PATH


def load_workspace(path: Optional[Path] = None) -> Workspace:
    """Load the workspace file, or an empty workspace if unavailable."""
    path = _path(path)
    if not path.exists():
        return Workspace()

    try:
        return Workspace.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as e:
        logger.error(f"Failed to load workspace from {path}: {e}")
        return Workspace()


def save_workspace(workspace: Workspace, path: Optional[Path] = None) -> None:
    path = _path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(workspace.model_dump_json(indent=2), encoding="utf-8")
    tmp.replace(path)
    logger.debug(f"Workspace saved to {path}")


def save_user_config(
    fields: list[str], custom_prompt: str, lang: str = "en", path: Optional[Path] = None
) -> None:
    workspace = load_workspace(path)
    workspace.config = UserConfig(fields=fields, custom_prompt=custom_prompt, lang=lang)
    save_workspace(workspace, path)


def load_user_config(path: Optional[Path] = None) -> UserConfig:
    return load_workspace(path).config


def save_reference_examples(
    examples: list[ReferenceExample], path: Optional[Path] = None
) -> bool:
    """Persist reference examples.

    Returns:
        False if the serialized examples exceed MAX_EXAMPLES_BYTES, in which
        case nothing is written
    """
    size = sum(len(e.model_dump_json()) for e in examples)
    if size > config.MAX_EXAMPLES_BYTES:
        logger.warning(
            f"Examples too large to save ({size} bytes > {config.MAX_EXAMPLES_BYTES}), skipping"
        )
        return False

    workspace = load_workspace(path)
    workspace.examples = list(examples)
    save_workspace(workspace, path)
    return True


def load_reference_examples(path: Optional[Path] = None) -> list[ReferenceExample]:
    return load_workspace(path).examples


def add_reference_example(example: ReferenceExample, path: Optional[Path] = None) -> bool:
    """Append an example unless one with the same id is already stored."""
    examples = load_reference_examples(path)
    if any(e.id == example.id for e in examples):
        logger.info(f"Example {example.id} already stored")
        return True
    return save_reference_examples(examples + [example], path)


def remove_reference_example(example_id: str, path: Optional[Path] = None) -> bool:
    """Remove an example by id.

    Returns:
        True if an example was removed
    """
    examples = load_reference_examples(path)
    remaining = [e for e in examples if e.id != example_id]
    if len(remaining) == len(examples):
        return False
    save_reference_examples(remaining, path)
    return True


def save_api_key(api_key: str, path: Optional[Path] = None) -> None:
    workspace = load_workspace(path)
    workspace.api_key = api_key
    save_workspace(workspace, path)


def load_api_key(path: Optional[Path] = None) -> str:
    return load_workspace(path).api_key


def clear_workspace(path: Optional[Path] = None) -> None:
    """Delete all stored state, including the saved API key."""
    path = _path(path)
    if path.exists():
        path.unlink()
        logger.info(f"Workspace cleared: {path}")
