"""Data models shared by the pipeline, the workspace store and the CLI."""

from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

# None marks a field the model could not find; other values are kept verbatim
ExtractedRecord = dict[str, Any]


def normalize_fields(fields: Iterable[str]) -> list[str]:
    """Build a field schema from caller input.

    Args:
        fields: Field names in caller order

    Returns:
        Stripped, non-empty field names with duplicates removed (first wins)
    """
    seen: set[str] = set()
    result = []
    for name in fields:
        name = name.strip()
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


class ReferenceExample(BaseModel):
    """A verified extraction promoted for few-shot guidance."""

    model_config = ConfigDict(frozen=True)

    id: str
    image_base64: str
    records: list[ExtractedRecord] = Field(default_factory=list)
    source_name: str = ""


class AnalysisRequest(BaseModel):
    """Everything one analysis call needs. Never persisted."""

    credential: str
    image_base64: str
    fields: list[str]
    additional_context: str = ""
    examples: list[ReferenceExample] = Field(default_factory=list)


class ProcessStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class AnalysisOutcome(BaseModel):
    """Result of analyzing one image: records or a classified failure."""

    source: str
    records: list[ExtractedRecord] = Field(default_factory=list)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None


class ValidationStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    QUOTA = "quota"


class ValidationResult(BaseModel):
    status: ValidationStatus
    detail: str = ""

    @property
    def is_valid(self) -> bool:
        return self.status == ValidationStatus.VALID
