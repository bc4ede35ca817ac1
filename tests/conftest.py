"""
Pytest fixtures: in-memory storage and metadata table with the same
conditional semantics as the real backends, and a recording topic.
"""
import copy
import io
import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from PIL import Image

from file_pipeline.core.config import ProcessingConfig
from file_pipeline.core.errors import ConditionalCheckFailedError, StorageError
from file_pipeline.core.models import FileMetadata
from file_pipeline.service.notifications import AlertPublisher, NotificationDispatcher, TopicPublisher
from file_pipeline.worker.database import FileRecordStore, MetadataTable
from file_pipeline.worker.processor import IngestionDispatcher
from file_pipeline.worker.storage import ObjectStorage

BUCKET = "uploads-bucket"
USER_ID = "11111111-1111-1111-1111-111111111111"
ORDER_ID = "22222222-2222-2222-2222-222222222222"


class StoredObject:
    def __init__(self, body: bytes, content_type: str, metadata: Optional[Dict[str, str]] = None,
                 cache_control: Optional[str] = None, reported_size: Optional[int] = None):
        self.body = body
        self.content_type = content_type
        self.metadata = metadata or {}
        self.cache_control = cache_control
        self.reported_size = reported_size


class InMemoryObjectStorage(ObjectStorage):
    def __init__(self):
        self.objects: Dict[Tuple[str, str], StoredObject] = {}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}

    def add_upload(self, key: str, body: bytes, content_type: str, size: Optional[int] = None, bucket: str = BUCKET):
        self.objects[(bucket, key)] = StoredObject(body, content_type, reported_size=size)

    def fail(self, op: str, key: str, error: Optional[Exception] = None):
        self.failures[(op, key)] = error or StorageError(f"{op} failed for {key}")

    def _check(self, op: str, key: str):
        self.calls.append((op, key))
        if (op, key) in self.failures:
            raise self.failures[(op, key)]

    def ops(self, op: str) -> List[str]:
        return [key for name, key in self.calls if name == op]

    def has(self, key: str, bucket: str = BUCKET) -> bool:
        return (bucket, key) in self.objects

    def get(self, key: str, bucket: str = BUCKET) -> StoredObject:
        return self.objects[(bucket, key)]

    async def head_object(self, bucket, key):
        self._check("head", key)
        obj = self.objects.get((bucket, key))
        if obj is None:
            raise StorageError(f"Object not found: {bucket}/{key}")
        size = obj.reported_size if obj.reported_size is not None else len(obj.body)
        return FileMetadata(size=size, content_type=obj.content_type)

    async def get_object(self, bucket, key):
        self._check("get", key)
        obj = self.objects.get((bucket, key))
        if obj is None:
            raise StorageError(f"Object not found: {bucket}/{key}")
        return obj.body

    async def put_object(self, bucket, key, body, content_type, metadata=None, cache_control=None):
        self._check("put", key)
        self.objects[(bucket, key)] = StoredObject(body, content_type, dict(metadata or {}), cache_control)

    async def copy_object(self, bucket, src_key, dst_key, content_type, metadata=None, cache_control=None):
        self._check("copy", dst_key)
        source = self.objects.get((bucket, src_key))
        if source is None:
            raise StorageError(f"Object not found: {bucket}/{src_key}")
        self.objects[(bucket, dst_key)] = StoredObject(source.body, content_type, dict(metadata or {}), cache_control)

    async def delete_object(self, bucket, key):
        self._check("delete", key)
        self.objects.pop((bucket, key), None)

    def public_url(self, bucket, key):
        return f"https://storage.test/{bucket}/{key}"


class InMemoryMetadataTable(MetadataTable):
    def __init__(self):
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.fail_puts: Optional[Exception] = None
        self.fail_conditional_puts: Optional[Exception] = None

    async def put_if_absent(self, item):
        if self.fail_conditional_puts is not None:
            raise self.fail_conditional_puts
        key = (item["pk"], item["sk"])
        if key in self.items:
            raise ConditionalCheckFailedError(f"Item {key} already exists")
        self.items[key] = copy.deepcopy(item)

    async def put(self, item):
        if self.fail_puts is not None:
            raise self.fail_puts
        self.items[(item["pk"], item["sk"])] = copy.deepcopy(item)

    async def get(self, pk, sk):
        item = self.items.get((pk, sk))
        return copy.deepcopy(item) if item is not None else None

    async def update_if_version(self, pk, sk, fields, expected_version):
        item = self.items.get((pk, sk))
        if item is None or item.get("version") != expected_version:
            raise ConditionalCheckFailedError(f"Version {expected_version} of {pk}/{sk} is stale")
        item.update(copy.deepcopy(fields))
        return copy.deepcopy(item)

    async def query(self, pk):
        return [copy.deepcopy(v) for (p, _), v in sorted(self.items.items()) if p == pk]

    async def query_index(self, gsi1pk):
        return [copy.deepcopy(v) for v in self.items.values() if v.get("gsi1pk") == gsi1pk]

    def records_of_type(self, record_type: str) -> List[Dict[str, Any]]:
        return [v for v in self.items.values() if v.get("type") == record_type]


class RecordingTopic:
    """Collects published envelopes through an httpx mock transport."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.envelopes: List[Dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.envelopes.append(json.loads(request.content))
        return httpx.Response(self.status_code, json={"ok": self.status_code < 300})

    def publisher(self, url: str = "https://topics.test/push") -> TopicPublisher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return TopicPublisher(url, client=client)

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return [json.loads(envelope["message"]) for envelope in self.envelopes]


def upload_key(filename: str, user_id: str = USER_ID, order_id: str = ORDER_ID) -> str:
    return f"uploads/{user_id}/{order_id}/{filename}"


def make_image(image_format: str, size=(64, 48), color=(200, 30, 30), mode="RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=image_format)
    return buffer.getvalue()


def make_noise_png(side: int = 700) -> bytes:
    """Incompressible PNG, larger than 1 MiB at the default side."""
    buffer = io.BytesIO()
    Image.frombytes("RGB", (side, side), os.urandom(side * side * 3)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    logging.getLogger().setLevel(logging.ERROR)
    yield


@pytest.fixture
def processing_config() -> ProcessingConfig:
    return ProcessingConfig()


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def table() -> InMemoryMetadataTable:
    return InMemoryMetadataTable()


@pytest.fixture
def store(table) -> FileRecordStore:
    return FileRecordStore(table)


@pytest.fixture
def push_topic() -> RecordingTopic:
    return RecordingTopic()


@pytest.fixture
def alert_topic() -> RecordingTopic:
    return RecordingTopic()


@pytest.fixture
def dispatcher(storage, store, push_topic, alert_topic, processing_config) -> IngestionDispatcher:
    return IngestionDispatcher(
        storage=storage,
        store=store,
        notifier=NotificationDispatcher(push_topic.publisher()),
        alerts=AlertPublisher(alert_topic.publisher("https://topics.test/alerts")),
        processing_config=processing_config,
    )
