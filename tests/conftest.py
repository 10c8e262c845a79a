"""Shared fixtures for HMS Finance tests."""

import pytest

from hms_finance.approval import ApprovalCoordinator
from hms_finance.audit import AuditLogger
from hms_finance.models import Actor, Role
from hms_finance.services.storage import InMemoryEventStore, InMemoryRequestQueue

from tests.factories import FakeBlobStore


@pytest.fixture
def admin() -> Actor:
    return Actor(username="admin", role=Role.ADMIN)


@pytest.fixture
def assistant() -> Actor:
    return Actor(username="asst", role=Role.ASSISTANT)


@pytest.fixture
def other_assistant() -> Actor:
    return Actor(username="asst2", role=Role.ASSISTANT)


@pytest.fixture
def viewer() -> Actor:
    return Actor(username="viewer", role=Role.USER)


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def event_store(blob_store) -> InMemoryEventStore:
    return InMemoryEventStore(blob_store=blob_store)


@pytest.fixture
def request_queue() -> InMemoryRequestQueue:
    return InMemoryRequestQueue()


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()


@pytest.fixture
def coordinator(event_store, request_queue, audit_logger) -> ApprovalCoordinator:
    return ApprovalCoordinator(event_store, request_queue, audit_logger=audit_logger)
