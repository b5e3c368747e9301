"""
Shared fixtures
"""
import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.config import Settings  # noqa: E402
from tests.fakes import FakeCache, MetadataRecorder  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def metadata() -> MetadataRecorder:
    return MetadataRecorder()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()
