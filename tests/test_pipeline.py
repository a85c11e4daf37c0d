"""Tests for the analysis pipeline."""

import asyncio
import base64
import io
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from PIL import Image

from intelliocr.config import RETRY_BASE_DELAY
from intelliocr.errors import (
    InvalidCredentialError,
    MalformedResponseError,
    MissingCredentialError,
    NoResponseError,
    NormalizationUnavailableError,
    QuotaExceededError,
)
from intelliocr.image import encode_base64, normalize_image
from intelliocr.pipeline import analyze_batch, analyze_image, create_reference_example
from intelliocr.prompts import ComposedRequest, ImagePart
from intelliocr.schemas import ProcessStatus, ReferenceExample

TWO_RECEIPTS = '[{"name":"A","amount":"10"},{"name":"B","amount":"20"}]'


@pytest.fixture
def mock_adapter():
    adapter = MagicMock()
    adapter.generate = AsyncMock(return_value=TWO_RECEIPTS)
    return adapter


@pytest.mark.asyncio
async def test_analyze_image_two_entities(make_image, mock_adapter):
    """Test a photo with two receipts yields two records verbatim."""
    records = await analyze_image(
        "key", make_image(1600, 1200), ["name", "amount"], adapter=mock_adapter
    )

    assert records == [{"name": "A", "amount": "10"}, {"name": "B", "amount": "20"}]
    mock_adapter.generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_analyze_image_sends_normalized_image(make_image, mock_adapter):
    """Test the target image is downscaled JPEG and examples are limited to one."""
    examples = [
        ReferenceExample(id=f"E{i}", image_base64=f"img{i}", records=[{"name": str(i)}])
        for i in (1, 2, 3)
    ]

    await analyze_image(
        "key", make_image(3000, 1500), ["name"], "rules", examples, adapter=mock_adapter
    )

    composed = mock_adapter.generate.call_args.args[0]
    assert isinstance(composed, ComposedRequest)
    images = [p for p in composed.parts if isinstance(p, ImagePart)]
    assert images[0].data == "img3"
    assert len(images) == 2

    with Image.open(io.BytesIO(base64.b64decode(images[1].data))) as img:
        assert img.format == "JPEG"
        assert img.size == (1024, 512)
    assert "Additional Rules: rules" in composed.system_instruction


@pytest.mark.asyncio
async def test_analyze_image_builds_adapter_for_effective_credential(make_image, mock_adapter):
    with (
        patch("intelliocr.config.DEPLOYMENT_API_KEY", "deploy-key"),
        patch("intelliocr.pipeline.get_adapter", return_value=mock_adapter) as mock_get,
    ):
        await analyze_image("", make_image(100, 100), ["name"])

    mock_get.assert_called_once_with("deploy-key")


@pytest.mark.asyncio
async def test_analyze_image_missing_credential(make_image, mock_adapter):
    with patch("intelliocr.config.DEPLOYMENT_API_KEY", ""):
        with pytest.raises(MissingCredentialError):
            await analyze_image("", make_image(100, 100), ["name"], adapter=mock_adapter)

    mock_adapter.generate.assert_not_called()


@pytest.mark.asyncio
async def test_analyze_image_invalid_image(mock_adapter):
    with pytest.raises(NormalizationUnavailableError):
        await analyze_image("key", b"not an image", ["name"], adapter=mock_adapter)

    mock_adapter.generate.assert_not_called()


@pytest.mark.asyncio
async def test_analyze_image_invalid_credential(make_image, mock_adapter):
    mock_adapter.generate.side_effect = Exception("API key not valid. Please pass a valid API key.")

    with pytest.raises(InvalidCredentialError):
        await analyze_image("bad", make_image(100, 100), ["name"], adapter=mock_adapter)

    assert mock_adapter.generate.await_count == 1


@pytest.mark.asyncio
async def test_analyze_image_retries_rate_limits(make_image, mock_adapter):
    mock_adapter.generate.side_effect = [Exception("429 Too Many Requests"), TWO_RECEIPTS]

    with patch("intelliocr.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        records = await analyze_image("key", make_image(100, 100), ["name"], adapter=mock_adapter)

    assert len(records) == 2
    assert mock_sleep.await_count == 1


@pytest.mark.asyncio
async def test_analyze_image_quota_exhausted(make_image, mock_adapter):
    mock_adapter.generate.side_effect = Exception("RESOURCE_EXHAUSTED")

    with patch("intelliocr.retry.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(QuotaExceededError):
            await analyze_image("key", make_image(100, 100), ["name"], adapter=mock_adapter)

    assert mock_adapter.generate.await_count == 4


@pytest.mark.asyncio
async def test_analyze_image_empty_response(make_image, mock_adapter):
    mock_adapter.generate.return_value = None

    with pytest.raises(NoResponseError):
        await analyze_image("key", make_image(100, 100), ["name"], adapter=mock_adapter)

    assert mock_adapter.generate.await_count == 1


@pytest.mark.asyncio
async def test_analyze_image_malformed_response(make_image, mock_adapter):
    mock_adapter.generate.return_value = "Sorry, I cannot read this."

    with pytest.raises(MalformedResponseError):
        await analyze_image("key", make_image(100, 100), ["name"], adapter=mock_adapter)


@pytest.mark.asyncio
async def test_analyze_image_empty_field_list(make_image, mock_adapter):
    """Test an empty schema still runs and returns what the model sends."""
    mock_adapter.generate.return_value = "[{}]"

    records = await analyze_image("key", make_image(100, 100), [], adapter=mock_adapter)

    assert records == [{}]


@pytest.mark.asyncio
async def test_create_reference_example(tmp_path, make_image):
    path = tmp_path / "receipt.png"
    path.write_bytes(make_image(2048, 1024))

    example = await create_reference_example(path, [{"name": "A"}], example_id="ex-1")

    assert example.id == "ex-1"
    assert example.source_name == "receipt.png"
    assert example.records == [{"name": "A"}]
    with Image.open(io.BytesIO(base64.b64decode(example.image_base64))) as img:
        assert img.size == (1024, 512)


@pytest.mark.asyncio
async def test_create_reference_example_generates_id(make_image):
    example = await create_reference_example(make_image(10, 10), [])

    assert example.id
    assert example.source_name == ""


@pytest.mark.asyncio
async def test_analyze_batch_mixed_outcomes(tmp_path, make_image, mock_adapter):
    """Test each image gets its own outcome, in input order."""
    good = tmp_path / "good.png"
    good.write_bytes(make_image(200, 100))
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"garbage")
    statuses = []

    outcomes = await analyze_batch(
        "key",
        [str(good), str(broken)],
        ["name", "amount"],
        adapter=mock_adapter,
        on_status=lambda i, status, outcome: statuses.append((i, status)),
    )

    assert [o.source for o in outcomes] == ["good.png", "broken.png"]
    assert outcomes[0].succeeded
    assert len(outcomes[0].records) == 2
    assert not outcomes[1].succeeded
    assert outcomes[1].error_kind == "normalization_unavailable"
    assert outcomes[1].records == []

    assert (0, ProcessStatus.PENDING) in statuses
    assert (0, ProcessStatus.COMPLETED) in statuses
    assert (1, ProcessStatus.ERROR) in statuses


@pytest.mark.asyncio
async def test_analyze_batch_unclassified_error(make_image, mock_adapter):
    mock_adapter.generate.side_effect = RuntimeError("socket closed")

    outcomes = await analyze_batch("key", [make_image(50, 50)], ["name"], adapter=mock_adapter)

    assert outcomes[0].source == "image-1"
    assert outcomes[0].error_kind == "unclassified"
    assert outcomes[0].error_message == "socket closed"


@pytest.mark.asyncio
async def test_analyze_batch_missing_credential(make_image, mock_adapter):
    with patch("intelliocr.config.DEPLOYMENT_API_KEY", ""):
        with pytest.raises(MissingCredentialError):
            await analyze_batch(None, [make_image(50, 50)], ["name"], adapter=mock_adapter)


@pytest.mark.asyncio
async def test_analyze_batch_empty():
    outcomes = await analyze_batch("key", [], ["name"], adapter=MagicMock())

    assert outcomes == []


@pytest.mark.asyncio
async def test_analyze_batch_non_object_response(make_image, mock_adapter):
    mock_adapter.generate.return_value = "null"

    outcomes = await analyze_batch("key", [make_image(50, 50)], ["name"], adapter=mock_adapter)

    assert outcomes[0].error_kind == "malformed_response"
    assert outcomes[0].records == []


@pytest.mark.asyncio
async def test_analyze_batch_respects_concurrency(make_image):
    """Test no more than `concurrency` requests are in flight at once."""
    in_flight = 0
    peak = 0

    async def generate(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return '[{"name": "A"}]'

    adapter = MagicMock()
    adapter.generate = AsyncMock(side_effect=generate)
    images = [make_image(20 + i, 20) for i in range(5)]

    outcomes = await analyze_batch("key", images, ["name"], concurrency=2, adapter=adapter)

    assert peak == 2
    assert adapter.generate.await_count == 5
    assert all(o.succeeded for o in outcomes)


@pytest.mark.asyncio
async def test_analyze_batch_retries_do_not_block_other_images(make_image):
    """Test one image backing off does not hold up the others."""
    first, second = make_image(60, 40), make_image(40, 60)
    targets = {
        encode_base64(normalize_image(first)): 0,
        encode_base64(normalize_image(second)): 1,
    }
    events = []
    delays = []
    backoff_started = asyncio.Event()
    real_sleep = asyncio.sleep
    attempts = {0: 0, 1: 0}

    async def generate(request):
        index = targets[request.parts[-2].data]
        attempts[index] += 1
        if index == 0 and attempts[index] == 1:
            raise Exception("429 Too Many Requests")
        if index == 1:
            await asyncio.wait_for(backoff_started.wait(), timeout=1)
        return f'[{{"name": "image {index}"}}]'

    async def fake_sleep(delay):
        delays.append(delay)
        events.append("backoff started")
        backoff_started.set()
        await real_sleep(0.05)
        events.append("backoff ended")

    adapter = MagicMock()
    adapter.generate = AsyncMock(side_effect=generate)

    def on_status(index, status, outcome):
        if status == ProcessStatus.COMPLETED:
            events.append(f"completed {index}")

    with patch("intelliocr.retry.asyncio.sleep", side_effect=fake_sleep):
        outcomes = await analyze_batch(
            "key", [first, second], ["name"], adapter=adapter, on_status=on_status
        )

    assert events == ["backoff started", "completed 1", "backoff ended", "completed 0"]
    assert delays == [RETRY_BASE_DELAY]
    assert attempts == {0: 2, 1: 1}
    assert [o.records for o in outcomes] == [[{"name": "image 0"}], [{"name": "image 1"}]]
    assert [o.source for o in outcomes] == ["image-1", "image-2"]
