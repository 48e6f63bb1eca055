"""
Core pytest configuration and fixtures for laundrychat testing.

Coroutines are driven with `asyncio.run`, one event loop per test, so every
test sees fresh store, hub and resolver state.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
from laundrychat.models import (
    ADMIN_ROLE,
    CUSTOMER_ROLE,
    PROVIDER_ROLE,
    Identity,
    Message,
)
from laundrychat.store import InMemory
from laundrychat.transport import Hub

# ===== IDENTITY FIXTURES =====


@pytest.fixture
def customer() -> Identity:
    return Identity(id="c1", role=CUSTOMER_ROLE)


@pytest.fixture
def provider() -> Identity:
    return Identity(id="p1", role=PROVIDER_ROLE)


@pytest.fixture
def admin() -> Identity:
    return Identity(id="a1", role=ADMIN_ROLE)


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def base_time() -> datetime:
    return datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_messages(base_time) -> List[Message]:
    """A short order conversation: provider, customer, admin, provider."""
    rows = [
        ("m1", PROVIDER_ROLE, "p1", "Picked up your laundry", []),
        ("m2", CUSTOMER_ROLE, "c1", "Great, thanks", ["c1"]),
        ("m3", ADMIN_ROLE, "a1", "Your order is being washed", []),
        ("m4", PROVIDER_ROLE, "p1", "Delivering at 5pm", ["c1"]),
    ]
    return [
        Message(
            id=msg_id,
            chat_room_id="r1",
            sender_type=sender_type,
            sender_id=sender_id,
            content=content,
            timestamp=base_time + timedelta(minutes=i),
            read_by=read_by,
        )
        for i, (msg_id, sender_type, sender_id, content, read_by) in enumerate(rows)
    ]


# ===== PILLAR FIXTURES =====


@pytest.fixture
def store() -> InMemory:
    return InMemory()


@pytest.fixture
def hub(store) -> Hub:
    return Hub(store)


# ===== TEST UTILITIES =====


def run(coro):
    """Runs a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def arun():
    return run


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
