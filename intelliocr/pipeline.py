"""Image analysis pipeline: from raw image to extracted records."""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Callable, Optional, Sequence

from intelliocr.adapters import ExtractorAdapter, get_adapter
from intelliocr.config import WORKER_CONCURRENCY
from intelliocr.credentials import resolve_credential
from intelliocr.errors import IntelliOCRError
from intelliocr.image import ImageSource, encode_base64, normalize_image_async
from intelliocr.prompts import compose_request
from intelliocr.responses import parse_response
from intelliocr.retry import with_retry
from intelliocr.schemas import (
    AnalysisOutcome,
    AnalysisRequest,
    ExtractedRecord,
    ProcessStatus,
    ReferenceExample,
)

logger = logging.getLogger(__name__)

StatusCallback = Callable[[int, ProcessStatus, Optional[AnalysisOutcome]], None]


async def analyze_image(
    credential: Optional[str],
    image: ImageSource,
    fields: Sequence[str],
    additional_context: str = "",
    examples: Sequence[ReferenceExample] = (),
    adapter: Optional[ExtractorAdapter] = None,
) -> list[ExtractedRecord]:
    """Extract records for the given fields from one image.

    Steps run strictly in order: resolve credential, normalize image,
    compose prompt, call the model with retries, parse the response.

    Args:
        credential: User-supplied credential; may be empty
        image: Raw image bytes, path, or binary file object
        fields: Field schema, in output column order
        additional_context: Free-text rules appended to the instruction
        examples: Reference examples in the order they were added
        adapter: Model adapter; built for the effective credential if omitted

    Returns:
        One record per entity detected in the image

    Raises:
        IntelliOCRError: Classified failure
        Exception: Unclassified remote failures, unchanged
    """
    effective = resolve_credential(credential)
    if adapter is None:
        adapter = get_adapter(effective)

    image_bytes = await normalize_image_async(image)
    request = AnalysisRequest(
        credential=effective,
        image_base64=encode_base64(image_bytes),
        fields=list(fields),
        additional_context=additional_context,
        examples=list(examples),
    )

    composed = compose_request(
        request.fields,
        request.image_base64,
        request.additional_context,
        request.examples,
    )

    start_time = time.time()
    response_text = await with_retry(lambda: adapter.generate(composed))
    elapsed_ms = int((time.time() - start_time) * 1000)

    records = parse_response(response_text)
    logger.info(f"Extracted {len(records)} record(s) in {elapsed_ms}ms")
    return records


async def create_reference_example(
    image: ImageSource,
    records: Sequence[ExtractedRecord],
    example_id: Optional[str] = None,
    source_name: str = "",
) -> ReferenceExample:
    """Promote a verified extraction to a few-shot example.

    The image is normalized once here so it is not re-read on every request.
    """
    image_bytes = await normalize_image_async(image)
    if not source_name and isinstance(image, (str, Path)):
        source_name = Path(image).name
    return ReferenceExample(
        id=example_id or str(uuid.uuid4()),
        image_base64=encode_base64(image_bytes),
        records=[dict(r) for r in records],
        source_name=source_name,
    )


def _source_name(image: ImageSource, index: int) -> str:
    if isinstance(image, (str, Path)):
        return Path(image).name
    name = getattr(image, "name", None)
    if isinstance(name, str):
        return Path(name).name
    return f"image-{index + 1}"


async def analyze_batch(
    credential: Optional[str],
    images: Sequence[ImageSource],
    fields: Sequence[str],
    additional_context: str = "",
    examples: Sequence[ReferenceExample] = (),
    concurrency: Optional[int] = None,
    adapter: Optional[ExtractorAdapter] = None,
    on_status: Optional[StatusCallback] = None,
) -> list[AnalysisOutcome]:
    """Analyze several images concurrently.

    Each image runs its own pipeline with its own retry timeline. Failures
    are captured per image; outcomes come back in input order.

    Args:
        credential: User-supplied credential; may be empty
        images: Images to analyze
        fields: Field schema
        additional_context: Free-text rules
        examples: Reference examples
        concurrency: Max pipelines in flight; defaults to WORKER_CONCURRENCY
        adapter: Shared model adapter; built once if omitted
        on_status: Called with (index, status, outcome) on each transition

    Returns:
        One AnalysisOutcome per image

    Raises:
        MissingCredentialError: If no credential can be resolved
    """
    effective = resolve_credential(credential)
    if adapter is None:
        adapter = get_adapter(effective)

    limit = max(1, concurrency or WORKER_CONCURRENCY)
    semaphore = asyncio.Semaphore(limit)

    def notify(index: int, status: ProcessStatus, outcome: Optional[AnalysisOutcome] = None):
        if on_status is not None:
            on_status(index, status, outcome)

    async def run_one(index: int, image: ImageSource) -> AnalysisOutcome:
        source = _source_name(image, index)
        async with semaphore:
            notify(index, ProcessStatus.PROCESSING)
            try:
                records = await analyze_image(
                    effective, image, fields, additional_context, examples, adapter
                )
                outcome = AnalysisOutcome(source=source, records=records)
                notify(index, ProcessStatus.COMPLETED, outcome)
            except IntelliOCRError as e:
                logger.error(f"Analysis failed for {source}: {e.message}")
                outcome = AnalysisOutcome(
                    source=source, error_kind=e.kind, error_message=e.message
                )
                notify(index, ProcessStatus.ERROR, outcome)
            except Exception as e:
                logger.error(f"Analysis failed for {source}: {e}", exc_info=True)
                outcome = AnalysisOutcome(
                    source=source,
                    error_kind="unclassified",
                    error_message=str(e) or "Analysis failed",
                )
                notify(index, ProcessStatus.ERROR, outcome)
            return outcome

    for index in range(len(images)):
        notify(index, ProcessStatus.PENDING)

    logger.info(f"Analyzing {len(images)} image(s) with concurrency={limit}")
    return list(await asyncio.gather(*(run_one(i, img) for i, img in enumerate(images))))
