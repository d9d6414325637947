"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

from datetime import datetime, timezone

import pytest

from clotho.kernel.ids import EventIdGenerator
from clotho.kernel.settings import ApplicationSettings
from clotho.kernel.time import TestTimeProvider
from clotho.log.emitter import EventEmitter
from clotho.log.events import EventFactory

TEST_INSTANCE_ID = "99qi9djntfqr"


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC. Time only moves when a test
    advances it, so every event id shares the same timestamp prefix.
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def id_generator(test_time: TestTimeProvider) -> EventIdGenerator:
    """Provide an id generator reading the test clock"""
    return EventIdGenerator(test_time.epoch_ms, TEST_INSTANCE_ID)


@pytest.fixture
def event_factory(
    test_time: TestTimeProvider, id_generator: EventIdGenerator
) -> EventFactory:
    return EventFactory(test_time, id_generator)


@pytest.fixture
def emitter(event_factory: EventFactory) -> EventEmitter:
    """Provide a fresh, unpaused event emitter"""
    return EventEmitter(event_factory)


@pytest.fixture
def settings() -> ApplicationSettings:
    """
    Provide application settings for tests

    Warnings are on, so rollbacks show up in captured logs.
    """
    return ApplicationSettings(timeout_ms=500, warnings=True)
