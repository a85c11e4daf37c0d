"""Few-shot prompt composition for field extraction."""

import json
from typing import Optional, Sequence, Union

from pydantic import BaseModel

from intelliocr.config import FEW_SHOT_LIMIT
from intelliocr.image import MIME_TYPE
from intelliocr.schemas import ReferenceExample

SYSTEM_PROMPT = """You are an expert OCR and Document Analysis AI.
Your task is to extract specific fields from images.

IMPORTANT: The image might contain MULTIPLE distinct items, entities, or rows of data (e.g., multiple receipts in one photo, multiple line items in a document, multiple name cards).

1. Detect ALL distinct entities/items in the image that match the requested fields.
2. Return a JSON ARRAY [...], where each object inside corresponds to one distinct entity.
3. If only one entity is found, return an array with one object.
4. Keys must be exactly: {fields}.
5. If a field is not found for a specific entity, use null.
6. Do not include markdown formatting, just the raw JSON array."""

EXAMPLE_PROMPT = "Example Output (JSON Array): {records}"

CLOSING_PROMPT = (
    "Analyze the last image above. Identify all distinct items. "
    "Extract these fields: {field_list}. Return a JSON Array."
)


class TextPart(BaseModel):
    text: str


class ImagePart(BaseModel):
    data: str  # base64
    mime_type: str = MIME_TYPE


Part = Union[TextPart, ImagePart]


class ComposedRequest(BaseModel):
    """Provider-neutral request: system instruction plus ordered user parts."""

    system_instruction: str
    parts: list[Part]
    fields: list[str]


def build_system_instruction(fields: Sequence[str], additional_context: str = "") -> str:
    """Render the system instruction for a field list.

    Args:
        fields: Field names, embedded literally as a JSON array
        additional_context: Caller rules appended verbatim when non-empty

    Returns:
        System instruction text
    """
    instruction = SYSTEM_PROMPT.format(fields=json.dumps(list(fields), ensure_ascii=False))
    if additional_context and additional_context.strip():
        instruction += f"\n\nAdditional Rules: {additional_context}"
    return instruction


def select_examples(
    examples: Sequence[ReferenceExample], limit: Optional[int] = None
) -> list[ReferenceExample]:
    """Keep only the most recently added examples.

    Older examples are dropped to bound token cost per request.
    """
    if limit is None:
        limit = FEW_SHOT_LIMIT
    if limit <= 0:
        return []
    return list(examples)[-limit:]


def compose_request(
    fields: Sequence[str],
    image_base64: str,
    additional_context: str = "",
    examples: Sequence[ReferenceExample] = (),
    example_limit: Optional[int] = None,
) -> ComposedRequest:
    """Assemble the full extraction request.

    Part order: few-shot example image and its output, the target image,
    then a closing instruction naming the fields.

    Args:
        fields: Field schema
        image_base64: Normalized target image, base64-encoded
        additional_context: Free-text rules from the caller
        examples: Reference examples in the order they were added
        example_limit: Number of recent examples to include

    Returns:
        ComposedRequest ready for an adapter
    """
    parts: list[Part] = []

    for example in select_examples(examples, example_limit):
        parts.append(ImagePart(data=example.image_base64))
        parts.append(
            TextPart(
                text=EXAMPLE_PROMPT.format(
                    records=json.dumps(example.records, ensure_ascii=False)
                )
            )
        )

    parts.append(ImagePart(data=image_base64))
    parts.append(TextPart(text=CLOSING_PROMPT.format(field_list=", ".join(fields))))

    return ComposedRequest(
        system_instruction=build_system_instruction(fields, additional_context),
        parts=parts,
        fields=list(fields),
    )
