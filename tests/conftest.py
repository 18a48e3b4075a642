"""Pytest configuration and fixtures."""
import os

import pytest

# Set test environment variables
os.environ["WEAVEFLOW_ENV"] = "test"
os.environ["WEAVEFLOW_GEMINI_API_KEY"] = "test-key"
os.environ["WEAVEFLOW_MEDIA_SERVICE_URL"] = "http://media.test"
os.environ.pop("WEAVEFLOW_REDIS_URL", None)


class FakeLLM:
    """LLM capability double: replays queued replies, records calls."""

    def __init__(self, *replies):
        # Each reply is a string or an exception to raise
        self.replies = list(replies) or ["world"]
        self.calls = []

    async def generate(self, model, system_prompt, user_message, images):
        self.calls.append(
            {
                "model": model,
                "system_prompt": system_prompt,
                "user_message": user_message,
                "images": list(images),
            }
        )
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeMedia:
    """Media capability double."""

    def __init__(self, crop_result="https://cdn.test/cropped.png", frame_result="https://cdn.test/frame.jpg"):
        self.crop_result = crop_result
        self.frame_result = frame_result
        self.crop_calls = []
        self.frame_calls = []

    async def crop(self, image_url, x_percent, y_percent, width_percent, height_percent):
        self.crop_calls.append((image_url, x_percent, y_percent, width_percent, height_percent))
        if isinstance(self.crop_result, Exception):
            raise self.crop_result
        return self.crop_result

    async def extract_frame(self, video_url, timestamp):
        self.frame_calls.append((video_url, timestamp))
        if isinstance(self.frame_result, Exception):
            raise self.frame_result
        return self.frame_result


class FakeRedis:
    """Dict-backed stand-in for the subset of redis.Redis used by the stores."""

    def __init__(self):
        self.values = {}
        self.lists = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, xx=False):
        if xx and key not in self.values:
            return None
        self.values[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            if self.lists.pop(key, None) is not None:
                removed += 1
        return removed

    def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        if end == -1:
            return list(items[start:])
        return list(items[start:end + 1])


class FailingRunStore:
    """Run store whose every call fails."""

    def create_workflow_run(self, record):
        raise RuntimeError("database unavailable")

    def update_workflow_run(self, record):
        raise RuntimeError("database unavailable")

    def list_runs(self, owner_id, limit):
        raise RuntimeError("database unavailable")

    def delete_all_runs(self, owner_id):
        raise RuntimeError("database unavailable")


async def no_sleep(delay):
    """Backoff sleep replacement that returns immediately."""
    return None


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings from the environment for every test."""
    from weaveflow.config import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def fake_llm():
    return FakeLLM("world")


@pytest.fixture
def fake_media():
    return FakeMedia()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def sleeps():
    """Recorded backoff delays."""
    return []


@pytest.fixture
def recording_sleep(sleeps):
    async def sleep(delay):
        sleeps.append(delay)

    return sleep


@pytest.fixture
def run_store():
    from weaveflow.storage import InMemoryRunStore

    return InMemoryRunStore()


@pytest.fixture
def engine(fake_llm, fake_media, run_store, recording_sleep):
    """Engine wired to fake capabilities and an in-memory ledger."""
    from weaveflow.engine import WorkflowEngine
    from weaveflow.executors import RetryPolicy, build_registry
    from weaveflow.graph import GraphPersistence, MemoryBackend
    from weaveflow.storage import RunLedger

    registry = build_registry(
        llm=fake_llm,
        media=fake_media,
        policy=RetryPolicy(max_retries=3, delays_s=(1.0, 2.0, 4.0)),
        sleep=recording_sleep,
    )
    return WorkflowEngine(
        registry=registry,
        ledger=RunLedger(run_store),
        persistence=GraphPersistence(MemoryBackend()),
    )
