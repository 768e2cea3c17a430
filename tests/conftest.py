"""
pytest configuration for wardrobe pipeline tests.

Adds src directory to Python path and provides shared fixtures:
- A controllable UTC clock
- In-memory store and artifact store
- A scripted pipeline whose outcomes are set per test
"""

import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from core.logging.context import clear_log_context  # noqa: E402
from wardrobe_pipeline.feature_flags import FLAG_ENV_VARS  # noqa: E402
from wardrobe_pipeline.pipelines.base import Pipeline, PipelineLayout  # noqa: E402
from wardrobe_pipeline.storage import InMemoryArtifactStore  # noqa: E402
from wardrobe_pipeline.store import InMemoryWorkItemStore  # noqa: E402

TEST_LAYOUT = PipelineLayout(
    name="test-pipeline",
    items_table="items",
    jobs_table="jobs",
    status_column="status",
    result_columns=("result_key",),
    job_source_column="source_key",
)

# Environment variables read by config loading; cleared so the host
# environment never leaks into tests
CONFIG_ENV_VARS = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "WARDROBE_STORAGE_BUCKET",
    "REPLICATE_API_TOKEN",
    "REPLICATE_MODEL_VERSION",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    *FLAG_ENV_VARS.values(),
]


class FakeClock:
    """Callable returning a fixed UTC time that tests move forward explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ScriptedPipeline(Pipeline):
    """
    Pipeline whose execute() replays a list of outcomes.

    Each outcome is either a result dict or an exception to raise. When the
    script runs out, execute() succeeds with result_key=out/<item_id>.
    """

    layout = TEST_LAYOUT
    provider_name = "replicate"
    model = "test-model"

    def __init__(self, outcomes=None, delay: float = 0.0):
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0

    def source_key(self, entity):
        return entity.row.get("source_key")

    async def execute(self, entity, job=None):
        self.calls.append(entity.id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            outcome = self.outcomes.pop(0) if self.outcomes else {"result_key": f"out/{entity.id}"}
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.active -= 1


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Clear config env vars and log context around every test."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def store():
    return InMemoryWorkItemStore()


@pytest.fixture
def artifacts():
    return InMemoryArtifactStore()


@pytest.fixture
def pipeline():
    return ScriptedPipeline()


@pytest.fixture
def seed_item(store):
    """Insert an item row; returns its id."""

    def _seed(item_id="item-1", status="pending", **fields):
        row = {
            "id": item_id,
            "user_id": "user-1",
            "status": status,
            "source_key": f"user/user-1/items/{item_id}/original.jpg",
            "result_key": None,
        }
        row.update(fields)
        store.seed("items", row)
        return item_id

    return _seed


@pytest.fixture
def seed_job(store, clock):
    """Insert a job row; returns its id."""

    def _seed(item_id="item-1", status="pending", attempt_count=0, max_attempts=3,
              created_offset_s=0, **fields):
        row = {
            "item_id": item_id,
            "source_key": f"user/user-1/items/{item_id}/original.jpg",
            "status": status,
            "attempt_count": attempt_count,
            "max_attempts": max_attempts,
            "created_at": clock() - timedelta(minutes=10) + timedelta(seconds=created_offset_s),
            "started_at": None,
            "completed_at": None,
            "next_retry_at": None,
        }
        row.update(fields)
        return store.seed("jobs", row)["id"]

    return _seed
