"""
Pytest configuration for backend tests.

Shared fixtures: scenario registries, aggregators and pipelines built from
deterministic stage doubles.
"""
import sys
from pathlib import Path

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))
# Shared factories live beside this file
sys.path.insert(0, str(Path(__file__).parent))

from contentgate.pipeline.events import EventEmitter
from contentgate.pipeline.registry import StageRegistry
from contentgate.pipeline.run import build_pipeline
from contentgate.pipeline.scorer import WeightedAggregator
from contentgate.pipeline.versioning import InMemoryVersionStore, VersionRecorder
from factories import (
    SAMPLE_ARTICLE,
    SCENARIO_CONFIG,
    SCENARIO_GLOBAL_THRESHOLD,
    fixed_stages,
    make_scenario_registry,
)


# --- Registry / Aggregator Fixtures ---
@pytest.fixture
def scenario_registry() -> StageRegistry:
    return make_scenario_registry(fixed_stages())


@pytest.fixture
def scenario_aggregator(scenario_registry: StageRegistry) -> WeightedAggregator:
    return WeightedAggregator(scenario_registry, global_threshold=SCENARIO_GLOBAL_THRESHOLD)


# --- Versioning Fixtures ---
@pytest.fixture
def memory_recorder() -> VersionRecorder:
    return VersionRecorder(InMemoryVersionStore())


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Temporary database path, cleaned up by pytest."""
    return tmp_path / "index" / "test_content_versions.sqlite3"


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def sample_article() -> str:
    return SAMPLE_ARTICLE


# --- HTTP API Fixtures ---
@pytest.fixture
def api_client(tmp_path: Path):
    """TestClient whose app serves the three-dimension scenario pipeline.

    The settings singleton points at temporary directories and an in-memory
    version store for the duration of the test.
    """
    from fastapi.testclient import TestClient

    from contentgate.main import app
    from contentgate.settings import VersionStoreEnum, settings

    original = (settings.data_dir, settings.config_dir, settings.version_store)
    settings.data_dir = tmp_path / "data"
    settings.config_dir = tmp_path / "config"
    settings.version_store = VersionStoreEnum.MEMORY

    try:
        with TestClient(app) as client:
            client.app.state.pipeline = build_pipeline(
                settings,
                stages=fixed_stages(),
                config=SCENARIO_CONFIG,
                store=InMemoryVersionStore(),
            )
            yield client
    finally:
        settings.data_dir, settings.config_dir, settings.version_store = original
