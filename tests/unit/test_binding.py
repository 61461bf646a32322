"""
Unit Tests for StoreBinding
"""
import pytest

from studenthub.binding import METHOD_DEFAULTS, StoreBinding
from studenthub.events import ChangeType
from studenthub.exceptions import InvalidTransitionError
from studenthub.queries import ANALYTICS_LIST_KEYS
from studenthub.store import EntityStore


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_attach_to_loaded_store_is_not_loading(self, store):
        binding = StoreBinding(store, "Dashboard")
        assert binding.is_loading

        binding.attach()

        assert not binding.is_loading
        assert store.bus.has_subscribers("Dashboard")

    @pytest.mark.asyncio
    async def test_data_loaded_clears_loading(self, fixture_backend, bus):
        store = EntityStore(fixture_backend, bus)
        binding = StoreBinding(store, "Dashboard")
        binding.attach()
        assert binding.is_loading

        await store.load()

        assert not binding.is_loading

    @pytest.mark.asyncio
    async def test_context_manager_detaches(self, store):
        with StoreBinding(store, "Panel"):
            assert store.bus.has_subscribers("Panel")

        assert not store.bus.has_subscribers("Panel")

    @pytest.mark.asyncio
    async def test_attach_twice_subscribes_once(self, store, recorder):
        binding = StoreBinding(store, "Panel", on_change=recorder)
        binding.attach()
        binding.attach()

        await store.update_event("EVT002", {"category": "Hardware"})

        assert recorder.types == [ChangeType.EVENT_UPDATED]

    @pytest.mark.asyncio
    async def test_changes_forwarded_to_owner(self, store, recorder):
        with StoreBinding(store, "Panel", on_change=recorder) as binding:
            await binding.approve_activity("ACT004", "Dr. Nair")

        assert recorder.types == [ChangeType.ACTIVITY_UPDATED]
        assert recorder.calls[0][1]["id"] == "ACT004"


class TestWrappers:

    @pytest.mark.asyncio
    async def test_wrappers_are_stable(self, store):
        binding = StoreBinding(store, "Panel")
        assert binding.get_all_events is binding.get_all_events
        assert binding.approve_activity is binding.approve_activity

    @pytest.mark.asyncio
    async def test_sync_wrapper_returns_store_value(self, store):
        binding = StoreBinding(store, "Panel")
        assert binding.get_all_events() == store.get_all_events()
        assert binding.error is None

    @pytest.mark.asyncio
    async def test_async_failure_returns_default_and_sets_error(self, store):
        binding = StoreBinding(store, "Panel")

        result = await binding.approve_activity("ACT001", "Dr. Kumar")

        assert result is None
        assert isinstance(binding.error, InvalidTransitionError)

    @pytest.mark.asyncio
    async def test_success_clears_error(self, store):
        binding = StoreBinding(store, "Panel")
        await binding.approve_activity("ACT001", "Dr. Kumar")

        await binding.approve_activity("ACT004", "Dr. Kumar")

        assert binding.error is None

    @pytest.mark.asyncio
    async def test_sync_failure_returns_list_default(self, store, monkeypatch):
        def broken(query):
            raise RuntimeError("index corrupted")

        monkeypatch.setattr(store, "search_events", broken)
        binding = StoreBinding(store, "Search")

        assert binding.search_events("x") == []
        assert isinstance(binding.error, RuntimeError)

    @pytest.mark.asyncio
    async def test_analytics_default_has_safe_shape(self, store, monkeypatch):
        def broken():
            raise RuntimeError("no analytics")

        monkeypatch.setattr(store, "get_analytics", broken)
        binding = StoreBinding(store, "Analytics")

        analytics = binding.get_analytics()

        assert set(analytics) == set(ANALYTICS_LIST_KEYS)

    @pytest.mark.asyncio
    async def test_statistics_default_is_dict(self, store, monkeypatch):
        def broken():
            raise RuntimeError("boom")

        monkeypatch.setattr(store, "get_statistics", broken)
        binding = StoreBinding(store, "Stats")

        assert binding.get_statistics() == {}

    def test_unknown_attribute(self):
        binding = StoreBinding.__new__(StoreBinding)
        with pytest.raises(AttributeError):
            binding.not_a_store_method

    def test_every_wrapped_name_exists_on_store(self):
        for name in METHOD_DEFAULTS:
            assert callable(getattr(EntityStore, name)), name
