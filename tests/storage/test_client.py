import io

import pytest

from objstore.storage import ObjectStorageClient
from objstore.storage.exceptions import ServiceError, ValidationError
from tests.fakes import FakeS3


def _payload(size: int) -> bytes:
    return bytes((i * 7) % 256 for i in range(size))


# part_size=8, min_part_size=4 in the test config
@pytest.mark.parametrize(
    "size,expected_parts",
    [(0, 1), (5, 1), (8, 1), (9, 1), (12, 2), (80, 10)],
)
@pytest.mark.asyncio
async def test_upload_then_read_back(fake, client, size, expected_parts):
    data = _payload(size)

    metadata = await client.upload("bucket", "dir/a b.bin", io.BytesIO(data))

    assert metadata.size == size
    assert metadata.key == "dir/a b.bin"
    assert len(fake.calls("complete")) == 1
    assert len([op for op in fake.operations() if op.startswith("upload_part")]) == expected_parts
    assert fake.calls("initiate")[0].path == "/bucket/dir/a%20b.bin"

    reader = client.open_object("bucket", "dir/a b.bin")
    assert await reader.read() == data


@pytest.mark.asyncio
async def test_uploaded_object_is_listed(fake, client):
    await client.upload("bucket", "one", b"x" * 10)
    await client.upload("bucket", "two", b"y" * 20)

    entries = [e async for e in client.list_objects("bucket")]

    assert [(e.key, e.size) for e in entries] == [("one", 10), ("two", 20)]
    assert entries[0].etag == fake.etags[("bucket", "one")].strip('"')


@pytest.mark.asyncio
async def test_upload_with_content_type_and_metadata(fake, client):
    await client.upload(
        "bucket",
        "doc.txt",
        b"hello world",
        content_type="text/plain",
        metadata={"source": "tests"},
    )
    headers = fake.calls("initiate")[0].headers
    assert headers["Content-Type"] == "text/plain"
    assert headers["x-amz-meta-source"] == "tests"


@pytest.mark.asyncio
async def test_delete_object(fake, client):
    fake.put("bucket", "gone.txt", b"bye")
    await client.delete_object("bucket", "gone.txt")
    assert ("bucket", "gone.txt") not in fake.objects


@pytest.mark.asyncio
async def test_delete_object_retries_transient_errors(fake, client):
    fake.put("bucket", "gone.txt", b"bye")
    fake.inject("delete", 503)
    await client.delete_object("bucket", "gone.txt")
    assert len(fake.calls("delete")) == 2


@pytest.mark.asyncio
async def test_delete_object_permanent_error(fake, client):
    fake.inject("delete", 403)
    with pytest.raises(ServiceError) as exc_info:
        await client.delete_object("bucket", "k")
    assert exc_info.value.status == 403
    assert exc_info.value.code == "AccessDenied"


@pytest.mark.asyncio
async def test_list_buckets(fake, client):
    fake.put("alpha", "k", b"1")
    fake.put("beta", "k", b"2")

    buckets = await client.list_buckets()

    assert [b.name for b in buckets] == ["alpha", "beta"]
    assert buckets[0].creation_date.year == 2024
    assert "ibm-service-instance-id" not in fake.calls("list_buckets")[0].headers


@pytest.mark.asyncio
async def test_list_buckets_for_service_instance(fake, client):
    fake.put("alpha", "k", b"1")

    buckets = await client.list_buckets(instance_id="inst-1")

    assert [b.name for b in buckets] == ["alpha"]
    [call] = fake.calls("list_buckets")
    assert call.headers["ibm-service-instance-id"] == "inst-1"


@pytest.mark.asyncio
async def test_invalid_bucket_name(client):
    with pytest.raises(ValidationError):
        client.open_object("bad/bucket", "k")


@pytest.mark.asyncio
async def test_client_context_manager_closes_transport():
    class ClosingFake(FakeS3):
        closed = False

        async def aclose(self):
            self.closed = True

    transport = ClosingFake()
    async with ObjectStorageClient(transport) as client:
        assert client.config.part_size == 8 * 1024 * 1024
    assert transport.closed
