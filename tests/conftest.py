from __future__ import annotations

import pytest

from s3tool.store import ObjectStore
from tests.fake_s3 import FakeS3


@pytest.fixture
def fake_s3() -> FakeS3:
    fake = FakeS3()
    fake.create_bucket(Bucket="test-bucket")
    return fake


@pytest.fixture
def store(fake_s3: FakeS3) -> ObjectStore:
    return ObjectStore(fake_s3, bucket="test-bucket")
