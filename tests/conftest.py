"""Shared pytest fixtures and configuration."""

import os
import pytest
from datetime import datetime, timezone
from unittest.mock import Mock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("FIXED_TIMEZONE", "America/Chicago")
os.environ.setdefault("ADMIN_ICAL_TESTING_MODE", "false")

from src.models.task import Actor, ActorRole, Task
from src.services.ical_cache import InMemoryICalCache
from tests.fixtures.ical_feeds import single_stay_feed
from tests.utils.factories import create_task_document
from tests.utils.helpers import FakeFetcher

# 2025-06-01 12:00 in Chicago
NOW = datetime(2025, 6, 1, 17, 0, tzinfo=timezone.utc)
FEED_URL = "https://calendar.example.com/ical/property-1.ics?token=secret"


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for testing."""
    client = Mock()
    client.table = Mock(return_value=Mock())
    return client


@pytest.fixture
def now():
    """Fixed current instant used across scheduling tests."""
    return NOW


@pytest.fixture
def feed_url():
    return FEED_URL


@pytest.fixture
def manager():
    return Actor(uid="manager-1", display_name="Morgan Manager", role=ActorRole.MANAGER)


@pytest.fixture
def photographer():
    return Actor(uid="photographer-1", display_name="Pat Photographer", role=ActorRole.PHOTOGRAPHER)


@pytest.fixture
def editor():
    return Actor(uid="editor-1", display_name="Eden Editor", role=ActorRole.EDITOR)


@pytest.fixture
def scheduling_task():
    """Photos task awaiting a shoot date, with a calendar feed."""
    return Task.model_validate(create_task_document(stage="Scheduling", ical=FEED_URL, id="task-1"))


@pytest.fixture
def fake_fetcher():
    """Fetcher serving the single-stay feed for the standard feed URL."""
    return FakeFetcher({FEED_URL: single_stay_feed()})


@pytest.fixture
def memory_cache():
    """In-memory calendar cache on a controllable clock."""
    clock = Mock(return_value=1_750_000_000.0)
    return InMemoryICalCache(clock=clock)


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2025-06-01 17:00:00") as frozen_time:
        yield frozen_time
