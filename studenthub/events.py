"""
Subscription Bus - change notifications for store consumers

Every mutating store call broadcasts one change. Consumers register under a
listener key (usually a component name) and re-read the store when notified.

    Publishers:                 Subscribers:
    ├─ EntityStore   ────────►  ├─ StoreBinding (per component)
    ├─ RemoteGateway ────────►  ├─ CLI renderers
    └─ AuthSession   ────────►  └─ anything else with a callback

Dispatch is synchronous and ordered. A failing callback is logged and the
remaining callbacks still run.
"""

from typing import Dict, Any, List, Optional, Callable
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from collections import defaultdict

from studenthub.logging_config import logger


class ChangeType(str, Enum):
    """All change types broadcast by the data layer"""

    DATA_LOADED = "dataLoaded"

    # Events
    EVENT_ADDED = "eventAdded"
    EVENT_UPDATED = "eventUpdated"
    EVENT_DELETED = "eventDeleted"

    # Activities
    ACTIVITY_ADDED = "activityAdded"
    ACTIVITY_UPDATED = "activityUpdated"

    # Certificates
    CERTIFICATE_ADDED = "certificateAdded"
    CERTIFICATE_UPDATED = "certificateUpdated"
    CERTIFICATE_DELETED = "certificateDeleted"

    # People
    STUDENT_UPDATED = "studentUpdated"
    FACULTY_UPDATED = "facultyUpdated"

    # Registrations
    REGISTRATION_ADDED = "registrationAdded"
    REGISTRATION_UPDATED = "registrationUpdated"
    REGISTRATION_CANCELLED = "registrationCancelled"

    # Session
    USER_LOGGED_IN = "userLoggedIn"
    USER_LOGGED_OUT = "userLoggedOut"

    ANALYTICS_UPDATED = "analyticsUpdated"

    @classmethod
    def for_collection(cls, collection: str, action: str) -> "ChangeType":
        """Resolve the change type for an action ("added", "updated", "deleted") on a collection"""
        try:
            return _COLLECTION_CHANGES[(str(getattr(collection, "value", collection)), action)]
        except KeyError:
            raise ValueError(f"No change type for '{action}' on '{collection}'")


_COLLECTION_CHANGES = {
    ("events", "added"): ChangeType.EVENT_ADDED,
    ("events", "updated"): ChangeType.EVENT_UPDATED,
    ("events", "deleted"): ChangeType.EVENT_DELETED,
    ("activities", "added"): ChangeType.ACTIVITY_ADDED,
    ("activities", "updated"): ChangeType.ACTIVITY_UPDATED,
    ("certificates", "added"): ChangeType.CERTIFICATE_ADDED,
    ("certificates", "updated"): ChangeType.CERTIFICATE_UPDATED,
    ("certificates", "deleted"): ChangeType.CERTIFICATE_DELETED,
    ("students", "updated"): ChangeType.STUDENT_UPDATED,
    ("faculty", "updated"): ChangeType.FACULTY_UPDATED,
    ("registrations", "added"): ChangeType.REGISTRATION_ADDED,
    ("registrations", "updated"): ChangeType.REGISTRATION_UPDATED,
    ("registrations", "deleted"): ChangeType.REGISTRATION_CANCELLED,
}


@dataclass
class ChangeEvent:
    """A broadcast recorded in the bus history"""
    type: ChangeType
    payload: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    delivered: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "delivered": self.delivered,
            "failed": self.failed,
        }


# Callbacks receive (change_type, payload)
ChangeCallback = Callable[[ChangeType, Any], None]


class SubscriptionBus:
    """
    Listener registry keyed by component name.

    Several callbacks may share a key; they accumulate in registration order
    and are all removed by unsubscribe(key).
    """

    def __init__(self, max_history: int = 200):
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._history: List[ChangeEvent] = []
        self._max_history = max_history
        self._event_count = 0

    def subscribe(self, listener_key: str, callback: ChangeCallback) -> None:
        """Register a callback under a listener key"""
        self._subscribers.setdefault(listener_key, []).append(callback)
        logger.debug(f"[SubscriptionBus] Registered callback for {listener_key}")

    def unsubscribe(self, listener_key: str) -> None:
        """Remove every callback registered under the key"""
        if self._subscribers.pop(listener_key, None) is not None:
            logger.debug(f"[SubscriptionBus] Removed callbacks for {listener_key}")

    def notify(self, change_type: ChangeType, payload: Any = None) -> ChangeEvent:
        """Invoke all callbacks with (change_type, payload)"""
        change_type = ChangeType(change_type)
        event = ChangeEvent(type=change_type, payload=payload)
        self._event_count += 1

        # Snapshot so callbacks may (un)subscribe while we dispatch
        targets = [
            (key, callback)
            for key, callbacks in list(self._subscribers.items())
            for callback in list(callbacks)
        ]

        for key, callback in targets:
            try:
                callback(change_type, payload)
                event.delivered += 1
            except Exception as e:
                event.failed += 1
                logger.error(
                    f"[SubscriptionBus] Callback for {key} failed on {change_type.value}: {e}",
                    exc_info=True
                )

        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        return event

    def has_subscribers(self, listener_key: str) -> bool:
        return bool(self._subscribers.get(listener_key))

    @property
    def listener_keys(self) -> List[str]:
        return list(self._subscribers.keys())

    # ========== History & Debugging ==========

    def get_history(
        self,
        change_type: Optional[ChangeType] = None,
        limit: int = 100
    ) -> List[ChangeEvent]:
        """Get notification history, optionally filtered by type"""
        events = self._history
        if change_type:
            events = [e for e in events if e.type == change_type]
        return events[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        """Get bus statistics"""
        counts: Dict[str, int] = defaultdict(int)
        for event in self._history:
            counts[event.type.value] += 1

        return {
            "total_events": self._event_count,
            "history_size": len(self._history),
            "listener_count": len(self._subscribers),
            "callback_count": sum(len(c) for c in self._subscribers.values()),
            "event_counts": dict(counts),
        }

    def clear(self) -> None:
        """Drop all subscribers and history"""
        self._subscribers.clear()
        self._history.clear()
