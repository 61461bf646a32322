"""
Student Hub - Test Configuration and Fixtures
"""
import json
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio

from studenthub.backends import FixtureBackend
from studenthub.config import BUNDLED_FIXTURES_DIR
from studenthub.events import ChangeType, SubscriptionBus
from studenthub.storage import MemoryStore
from studenthub.store import EntityStore


class Recorder:
    """Bus callback that remembers every notification"""

    def __init__(self):
        self.calls: List[Tuple[ChangeType, Any]] = []

    def __call__(self, change_type: ChangeType, payload: Any) -> None:
        self.calls.append((change_type, payload))

    @property
    def types(self) -> List[ChangeType]:
        return [c[0] for c in self.calls]


@pytest.fixture
def kv_store() -> MemoryStore:
    """Fresh in-memory key-value store"""
    return MemoryStore()


@pytest.fixture
def bus() -> SubscriptionBus:
    return SubscriptionBus()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def fixture_backend(kv_store: MemoryStore) -> FixtureBackend:
    return FixtureBackend(BUNDLED_FIXTURES_DIR, kv_store)


@pytest_asyncio.fixture
async def store(fixture_backend: FixtureBackend, bus: SubscriptionBus):
    """Loaded store over the bundled fixtures"""
    entity_store = EntityStore(fixture_backend, bus)
    await entity_store.load()
    yield entity_store
    await entity_store.close()


@pytest.fixture
def fixture_dir(tmp_path):
    """Writes a fixtures directory with only the given collections"""

    def _write(files: Dict[str, Any]):
        for name, content in files.items():
            path = tmp_path / f"{name}.json"
            if isinstance(content, str):
                path.write_text(content, encoding="utf-8")
            else:
                path.write_text(json.dumps(content), encoding="utf-8")
        return str(tmp_path)

    return _write
