import pytest
from pydantic import ValidationError as PydanticValidationError

from objstore.core.config import load_settings
from objstore.storage import ObjectStorageClient, ObjectStoreConfig, get_objstore_config
from objstore.storage.exceptions import ConfigurationError
from objstore.storage.factory import create_client
from objstore.storage.transports import HttpxTransport
from tests.fakes import FakeS3


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch, tmp_path):
    # keep a developer's .env out of reach
    monkeypatch.chdir(tmp_path)
    get_objstore_config.cache_clear()
    yield
    get_objstore_config.cache_clear()


def test_defaults():
    config = ObjectStoreConfig()
    assert config.part_size == 8 * 1024 * 1024
    assert config.min_part_size == 5 * 1024 * 1024
    assert config.max_parts == 10000
    assert config.signer == "none"
    assert not config.retry_complete


def test_part_size_below_minimum_rejected():
    with pytest.raises(PydanticValidationError):
        ObjectStoreConfig(part_size=1024)


def test_page_size_bounds():
    with pytest.raises(PydanticValidationError):
        ObjectStoreConfig(page_size=0)
    with pytest.raises(PydanticValidationError):
        ObjectStoreConfig(page_size=1001)


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("OBJSTORE__ENDPOINT", "http://minio:9000")
    monkeypatch.setenv("OBJSTORE__PART_SIZE", str(16 * 1024 * 1024))
    monkeypatch.setenv("OBJSTORE__SIGNER", "bearer")
    monkeypatch.setenv("OBJSTORE__BEARER_TOKEN", "tok")

    settings = load_settings()
    assert settings.objstore.endpoint == "http://minio:9000"

    config = get_objstore_config()
    assert config.part_size == 16 * 1024 * 1024
    assert config.signer == "bearer"


def test_settings_from_env_file(tmp_path):
    (tmp_path / ".env").write_text("OBJSTORE__REGION=eu-central-1\nOBJSTORE__CONCURRENCY=8\n")
    config = get_objstore_config()
    assert config.region == "eu-central-1"
    assert config.concurrency == 8


def test_invalid_settings_raise_configuration_error(monkeypatch):
    monkeypatch.setenv("OBJSTORE__PART_SIZE", "1024")
    with pytest.raises(ConfigurationError):
        get_objstore_config()


def test_create_client_with_transport():
    fake = FakeS3()
    client = create_client(ObjectStoreConfig(concurrency=2), transport=fake)
    assert isinstance(client, ObjectStorageClient)
    assert client.transport is fake
    assert client.config.concurrency == 2


def test_create_client_applies_overrides():
    client = create_client(ObjectStoreConfig(), transport=FakeS3(), retry_budget=0)
    assert client.config.retry_budget == 0


def test_create_client_invalid_override():
    with pytest.raises(ConfigurationError):
        create_client(ObjectStoreConfig(), transport=FakeS3(), concurrency=0)


def test_create_client_requires_endpoint():
    with pytest.raises(ConfigurationError):
        create_client()


@pytest.mark.asyncio
async def test_create_client_builds_httpx_transport(monkeypatch):
    monkeypatch.setenv("OBJSTORE__ENDPOINT", "http://minio:9000")
    async with create_client() as client:
        assert isinstance(client.transport, HttpxTransport)
        assert client.transport.endpoint == "http://minio:9000"
