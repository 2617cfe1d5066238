"""Pytest bootstrap configuration.

Tiny part sizes and zero backoff keep the multipart and retry paths fast.
"""
import os

import pytest

# Keep a developer's .env/OBJSTORE__* out of settings-driven tests
for _name in list(os.environ):
    if _name.upper().startswith("OBJSTORE__"):
        del os.environ[_name]

from objstore.storage import ObjectStorageClient, ObjectStoreConfig
from objstore.storage.dispatch import RequestDispatcher
from tests.fakes import FakeS3


@pytest.fixture
def config():
    return ObjectStoreConfig(
        part_size=8,
        min_part_size=4,
        concurrency=3,
        retry_budget=2,
        backoff_multiplier=0,
        backoff_max=0,
        page_size=2,
    )


@pytest.fixture
def fake():
    return FakeS3()


@pytest.fixture
def dispatcher(fake):
    return RequestDispatcher(fake)


@pytest.fixture
def client(fake, config):
    return ObjectStorageClient(fake, config=config)
