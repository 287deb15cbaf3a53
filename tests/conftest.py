import os

import boto3
import pytest
from botocore.config import Config
from fastapi.testclient import TestClient
from moto import mock_aws

from share_api.main import create_app
from share_api.settings import Settings
from tests.consts import IDENTITY_HEADER, TEST_BUCKET_NAME
from tests.fixtures.share_fixtures import FakeClock, FakeMetadataStore, FakeObjectStore


@pytest.fixture
def mocked_aws():
    """Moto-backed S3 with the test bucket already created."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    with mock_aws():
        s3_client = boto3.client("s3", region_name="us-east-1")
        s3_client.create_bucket(Bucket=TEST_BUCKET_NAME)
        yield


@pytest.fixture
def s3_client(mocked_aws):
    return boto3.client("s3", region_name="us-east-1", config=Config(signature_version="s3v4"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def metadata_store() -> FakeMetadataStore:
    return FakeMetadataStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        deployment_mode="aws-mock",
        s3_bucket_name=TEST_BUCKET_NAME,
        identity_header=IDENTITY_HEADER,
        io_timeout_seconds=5,
    )


@pytest.fixture
def client(settings, object_store, metadata_store):
    """Test client around the app, wired to the in-memory stores."""
    app = create_app(settings, object_store=object_store, metadata_store=metadata_store)
    with TestClient(app) as test_client:
        yield test_client
