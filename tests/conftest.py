"""
Shared pytest fixtures for unifi-backup tests.

This module provides fixtures for:
- Application configuration
- Mock fixtures for external services (S3, controller)
- In-memory object store and manual clock
"""

import io
from unittest.mock import MagicMock

import pytest
import boto3
from moto import mock_aws

from unifi_backup.config import Config
from unifi_backup.controller import DownloadResponse
from unifi_backup.exceptions import StorageError


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never touches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def config(tmp_path):
    """Valid configuration writing to a temporary directory."""
    cfg = Config()
    cfg.unifi.url = 'https://controller.example:8443'
    cfg.unifi.username = 'backup'
    cfg.unifi.password = 'secret'
    cfg.unifi.max_retries = 2
    cfg.storage.url = f"file://{tmp_path / 'backups'}"
    cfg.retention.keep_last = 3
    return cfg


@pytest.fixture
def mock_client():
    """
    Mock UniFiClient whose download yields b'backup-data'.
    """
    client = MagicMock()
    client.create_backup.return_value = 'https://controller.example:8443/dl/backup/1.unf'
    client.download_backup.side_effect = lambda url, cancellation=None: DownloadResponse(
        body=io.BytesIO(b'backup-data'),
        content_length=len(b'backup-data')
    )
    return client


class MemoryStore:
    """ObjectStore keeping objects in a dict, with optional failure injection."""

    def __init__(self, keys=None, fail_delete=(), fail_list=False):
        self.objects = {key: b'' for key in (keys or [])}
        self.fail_delete = set(fail_delete)
        self.fail_list = fail_list
        self.deleted = []
        self.list_calls = 0
        self.closed = False

    def put(self, key, stream):
        data = b''
        while True:
            chunk = stream.read(4096)
            if not chunk:
                break
            data += chunk
        self.objects[key] = data
        return len(data)

    def list(self):
        self.list_calls += 1
        if self.fail_list:
            raise StorageError("listing failed")
        return list(self.objects)

    def delete(self, key):
        if key in self.fail_delete:
            raise StorageError(f"delete failed: {key}")
        if key not in self.objects:
            raise StorageError(f"Backup not found: {key}")
        del self.objects[key]
        self.deleted.append(key)

    def close(self):
        self.closed = True


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def make_store():
    """Factory for MemoryStore instances pre-populated with keys."""
    return MemoryStore


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()
