"""
Store binding - per-component adapter over the entity store and the bus.

    with StoreBinding(store, "FacultyDashboard", on_change=refresh) as data:
        pending = data.get_activities_by_status("pending")
        await data.approve_activity(pending[0]["id"], "Dr. Kumar")

Every store method is reachable through the binding as a wrapper that never
raises: a failure lands in `binding.error` and the call returns a default
matching the method's return shape. Wrappers are created once, so
`binding.get_all_events is binding.get_all_events`.

The binding does not re-read anything on a change; it only forwards the
notification to `on_change`, and the owner decides what to refresh.
"""

import functools
import inspect
from typing import Any, Callable, Dict, Optional

from studenthub.events import ChangeType
from studenthub.logging_config import logger
from studenthub.queries import with_analytics_defaults
from studenthub.store import EntityStore


def _empty_list() -> list:
    return []


def _none() -> None:
    return None


def _empty_dict() -> dict:
    return {}


def _false() -> bool:
    return False


_LIST_METHODS = (
    "get_all_events",
    "get_all_activities",
    "get_all_certificates",
    "get_all_students",
    "get_all_faculty",
    "get_all_registrations",
    "get_registrations_by_event",
    "get_registrations_by_student",
    "search_events",
    "search_activities",
    "get_events_by_status",
    "get_activities_by_status",
    "get_certificates_by_status",
    "get_events_by_organizer",
    "get_events_by_faculty",
    "get_activities_by_student",
    "get_certificates_by_student",
)

_RECORD_METHODS = (
    "get_event_by_id",
    "get_activity_by_id",
    "get_certificate_by_id",
    "get_student_by_id",
    "get_faculty_by_id",
    "get_registration_by_id",
    "add_event",
    "update_event",
    "delete_event",
    "add_activity",
    "update_activity",
    "approve_activity",
    "reject_activity",
    "add_certificate",
    "update_certificate",
    "approve_certificate",
    "reject_certificate",
    "delete_certificate",
    "update_student",
    "update_faculty",
    "add_registration",
    "update_registration",
    "cancel_registration",
    "mark_attendance",
)

_DICT_METHODS = (
    "load",
    "refresh",
    "get_statistics",
    "update_analytics",
)

# Method name -> factory for the value returned when the call fails
METHOD_DEFAULTS: Dict[str, Callable[[], Any]] = {
    **{name: _empty_list for name in _LIST_METHODS},
    **{name: _none for name in _RECORD_METHODS},
    **{name: _empty_dict for name in _DICT_METHODS},
    "get_analytics": lambda: with_analytics_defaults(None),
    "is_registration_open": _false,
    "is_data_loaded": _false,
}


class StoreBinding:
    """Subscribes a component to the bus and exposes safe store calls"""

    def __init__(
        self,
        store: EntityStore,
        component_name: str,
        on_change: Optional[Callable[[ChangeType, Any], None]] = None,
    ):
        self.store = store
        self.component_name = component_name
        self.on_change = on_change
        self.is_loading = True
        self.error: Optional[Exception] = None
        self.attached = False
        self._wrappers: Dict[str, Callable] = {}

    def __enter__(self) -> "StoreBinding":
        self.attach()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.detach()

    def attach(self) -> None:
        if self.attached:
            return
        self.store.bus.subscribe(self.component_name, self._handle_change)
        self.attached = True
        if self.store.is_loaded:
            self.is_loading = False

    def detach(self) -> None:
        if not self.attached:
            return
        self.store.bus.unsubscribe(self.component_name)
        self.attached = False

    def _handle_change(self, change_type: ChangeType, payload: Any) -> None:
        if change_type == ChangeType.DATA_LOADED:
            self.is_loading = False
        if self.on_change is not None:
            self.on_change(change_type, payload)

    def _fail(self, name: str, error: Exception) -> None:
        # Called from inside the except block so the traceback is attached
        self.error = error
        logger.log_error_with_context(error, context=f"{self.component_name}.{name}")

    def _wrap(self, name: str) -> Callable:
        method = getattr(self.store, name)
        default = METHOD_DEFAULTS[name]

        if inspect.iscoroutinefunction(method):
            @functools.wraps(method)
            async def async_wrapper(*args, **kwargs):
                try:
                    result = await method(*args, **kwargs)
                except Exception as e:
                    self._fail(name, e)
                    return default()
                self.error = None
                return result
            return async_wrapper

        @functools.wraps(method)
        def wrapper(*args, **kwargs):
            try:
                result = method(*args, **kwargs)
            except Exception as e:
                self._fail(name, e)
                return default()
            self.error = None
            return result
        return wrapper

    def __getattr__(self, name: str) -> Callable:
        if name.startswith("_") or name not in METHOD_DEFAULTS:
            raise AttributeError(f"{type(self).__name__!r} has no attribute {name!r}")
        wrappers = self.__dict__.setdefault("_wrappers", {})
        if name not in wrappers:
            wrappers[name] = self._wrap(name)
        return wrappers[name]
