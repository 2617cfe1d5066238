import xml.etree.ElementTree as ET

import anyio
import pytest

from objstore.storage.dispatch import RequestDispatcher
from objstore.storage.exceptions import (
    AbortError,
    CompletionError,
    InputStreamError,
    InitiationError,
    PartUploadError,
    TransportError,
    UploadCancelledError,
    UploadFailedError,
    ValidationError,
)
from objstore.storage.uploader import UploadOrchestrator


def _payload(size: int) -> bytes:
    return bytes(i % 251 for i in range(size))


@pytest.fixture
def orchestrator(dispatcher, config):
    return UploadOrchestrator(dispatcher, config)


@pytest.mark.asyncio
async def test_upload_round_trip(fake, orchestrator):
    data = _payload(40)
    metadata = await orchestrator.upload("bucket", "obj", data)

    assert fake.objects[("bucket", "obj")] == data
    assert metadata.size == 40
    assert metadata.etag.endswith("-5")
    assert fake.operations()[0] == "initiate"
    assert fake.operations()[-1] == "complete"
    assert "abort" not in fake.operations()


@pytest.mark.asyncio
async def test_permanent_part_failure_aborts_without_completing(fake, orchestrator):
    fake.inject("upload_part:3", 403)

    with pytest.raises(UploadFailedError) as exc_info:
        await orchestrator.upload("bucket", "obj", _payload(40))

    primary = exc_info.value.primary
    assert isinstance(primary, PartUploadError)
    assert primary.part_number == 3
    assert not primary.transient
    assert exc_info.value.abort_error is None
    assert exc_info.value.upload_id == "upload-1"

    ops = fake.operations()
    assert "complete" not in ops
    assert ops.count("abort") == 1
    assert ops[-1] == "abort"
    assert len(fake.calls("upload_part:3")) == 1
    assert fake.uploads["upload-1"].aborted
    assert ("bucket", "obj") not in fake.objects


@pytest.mark.asyncio
async def test_transient_part_failure_is_retried(fake, orchestrator):
    fake.inject("upload_part:2", 503, TransportError("reset"))
    data = _payload(24)

    await orchestrator.upload("bucket", "obj", data)

    assert len(fake.calls("upload_part:2")) == 3
    assert fake.objects[("bucket", "obj")] == data


@pytest.mark.asyncio
async def test_transient_failures_beyond_budget_fail_upload(fake, orchestrator):
    fake.inject("upload_part:1", 503, 503, 503)

    with pytest.raises(UploadFailedError) as exc_info:
        await orchestrator.upload("bucket", "obj", _payload(8))

    assert exc_info.value.primary.transient
    # first attempt plus retry_budget=2 retries
    assert len(fake.calls("upload_part:1")) == 3
    assert "abort" in fake.operations()


@pytest.mark.asyncio
async def test_in_flight_parts_never_exceed_concurrency(fake, orchestrator):
    for n in range(1, 11):
        fake.part_delays[n] = 0.01

    await orchestrator.upload("bucket", "obj", _payload(80), concurrency=3)

    assert 1 < fake.max_in_flight <= 3
    assert len(fake.calls("upload_part:10")) == 1


@pytest.mark.asyncio
async def test_concurrency_of_one_uploads_sequentially(fake, orchestrator):
    await orchestrator.upload("bucket", "obj", _payload(32), concurrency=1)
    assert fake.max_in_flight == 1
    assert fake.completion_order == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_completion_lists_parts_in_ascending_order(fake, orchestrator):
    # later parts finish first
    for n in range(1, 9):
        fake.part_delays[n] = (9 - n) * 0.01
    data = _payload(64)

    await orchestrator.upload("bucket", "obj", data, concurrency=8)

    assert fake.completion_order != sorted(fake.completion_order)
    [call] = fake.calls("complete")
    numbers = [int(p.find("{*}PartNumber").text) for p in ET.fromstring(call.body)]
    assert numbers == list(range(1, 9))
    assert fake.objects[("bucket", "obj")] == data


@pytest.mark.asyncio
async def test_input_stream_failure_aborts(fake, orchestrator):
    async def broken():
        yield _payload(16)
        raise OSError("read failed")

    with pytest.raises(UploadFailedError) as exc_info:
        await orchestrator.upload("bucket", "obj", broken())

    assert isinstance(exc_info.value.primary, InputStreamError)
    assert isinstance(exc_info.value.__cause__, InputStreamError)
    assert "complete" not in fake.operations()
    assert fake.uploads["upload-1"].aborted


@pytest.mark.asyncio
async def test_cancel_event_stops_upload_and_aborts(fake, orchestrator):
    cancel = anyio.Event()

    async def stream():
        yield _payload(8)
        cancel.set()
        yield _payload(8)
        yield _payload(8)

    with pytest.raises(UploadCancelledError) as exc_info:
        await orchestrator.upload("bucket", "obj", stream(), cancel_event=cancel)

    assert exc_info.value.upload_id == "upload-1"
    ops = fake.operations()
    assert "complete" not in ops
    assert ops[-1] == "abort"
    assert fake.calls("upload_part:3") == []


@pytest.mark.asyncio
async def test_host_cancellation_still_aborts(fake, orchestrator):
    fake.part_delays[1] = 5

    with anyio.move_on_after(0.05) as scope:
        await orchestrator.upload("bucket", "obj", _payload(8))

    assert scope.cancel_called
    assert fake.operations()[-1] == "abort"
    assert fake.uploads["upload-1"].aborted


@pytest.mark.asyncio
async def test_completion_failure_aborts(fake, orchestrator):
    fake.inject("complete", 400)

    with pytest.raises(UploadFailedError) as exc_info:
        await orchestrator.upload("bucket", "obj", _payload(16))

    assert isinstance(exc_info.value.primary, CompletionError)
    assert len(fake.calls("complete")) == 1
    assert fake.operations()[-1] == "abort"


@pytest.mark.asyncio
async def test_transient_completion_failure_not_retried_by_default(fake, orchestrator):
    fake.inject("complete", 503)

    with pytest.raises(UploadFailedError):
        await orchestrator.upload("bucket", "obj", _payload(16))

    assert len(fake.calls("complete")) == 1


@pytest.mark.asyncio
async def test_retry_complete_opt_in(fake, dispatcher, config):
    orchestrator = UploadOrchestrator(dispatcher, config.model_copy(update={"retry_complete": True}))
    fake.inject("complete", 503)
    data = _payload(16)

    await orchestrator.upload("bucket", "obj", data)

    assert len(fake.calls("complete")) == 2
    assert fake.objects[("bucket", "obj")] == data


@pytest.mark.asyncio
async def test_abort_failure_is_reported_alongside_primary(fake, orchestrator):
    fake.inject("upload_part:1", 403)
    fake.inject("abort", 500)

    with pytest.raises(UploadFailedError) as exc_info:
        await orchestrator.upload("bucket", "obj", _payload(8))

    error = exc_info.value
    assert isinstance(error.primary, PartUploadError)
    assert isinstance(error.abort_error, AbortError)
    assert "abort also failed" in str(error)


@pytest.mark.asyncio
async def test_initiation_failure_propagates(fake, orchestrator):
    fake.inject("initiate", 403)

    with pytest.raises(InitiationError):
        await orchestrator.upload("bucket", "obj", _payload(8))

    assert fake.operations() == ["initiate"]


@pytest.mark.asyncio
async def test_part_size_below_minimum_is_rejected(fake, orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.upload("bucket", "obj", _payload(8), part_size=2)
    assert fake.requests == []


@pytest.mark.asyncio
async def test_custom_part_size(fake, dispatcher, config):
    orchestrator = UploadOrchestrator(RequestDispatcher(fake), config)
    data = _payload(50)

    await orchestrator.upload("bucket", "obj", data, part_size=16)

    sizes = [len(fake.calls(f"upload_part:{n}")[0].body) for n in (1, 2, 3)]
    assert sizes == [16, 16, 18]
    assert fake.objects[("bucket", "obj")] == data


@pytest.mark.asyncio
async def test_zero_concurrency_from_config_is_rejected(fake, dispatcher, config):
    orchestrator = UploadOrchestrator(dispatcher, config.model_copy(update={"concurrency": 0}))
    with pytest.raises(ValidationError):
        await orchestrator.upload("bucket", "obj", _payload(8))
    assert fake.requests == []


@pytest.mark.asyncio
async def test_unsupported_stream_fails_before_initiating(fake, orchestrator):
    with pytest.raises(TypeError):
        await orchestrator.upload("bucket", "obj", 12345)

    assert fake.requests == []
    assert fake.uploads == {}


@pytest.mark.asyncio
async def test_unexpected_abort_exception_does_not_mask_primary(fake, orchestrator):
    fake.inject("upload_part:1", 403)
    fake.inject("abort", RuntimeError("signer blew up"))

    with pytest.raises(UploadFailedError) as exc_info:
        await orchestrator.upload("bucket", "obj", _payload(8))

    error = exc_info.value
    assert isinstance(error.primary, PartUploadError)
    assert isinstance(error.abort_error, AbortError)
    assert isinstance(error.abort_error.cause, RuntimeError)
    assert error.abort_error.upload_id == "upload-1"
