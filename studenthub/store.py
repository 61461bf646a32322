"""
Entity Store - in-memory mirror of the Student Hub collections

Usage:
    config = HubConfig.load_default()
    async with EntityStore.from_config(config) as store:
        activity = await store.add_activity({"studentId": "STU001", "title": "Hackathon"})
        await store.approve_activity(activity["id"], "Dr. Kumar", "Great work")
        print(store.get_statistics())

Reads are synchronous and return deep copies, so callers can't reach into the
store's records. Mutations are async because the remote backend suspends on
network I/O. Each mutation persists the touched collection and broadcasts one
change per record it touches; registering or cancelling also updates the
event head count, so those broadcast the registration change and then
eventUpdated.

Concurrency: mutations on one collection run one at a time, backend call
included. Records carry a `version` counter; passing `expected_version` to an
update rejects it if another write got there first. Without it the last write
wins.
"""

import asyncio
import copy
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from studenthub.backends import FixtureBackend, RemoteBackend, StoreBackend
from studenthub.config import HubConfig
from studenthub.events import ChangeType, SubscriptionBus
from studenthub.exceptions import InvalidTransitionError, StaleUpdateError, ValidationError
from studenthub.gateway import RemoteGateway, approval_updates, rejection_updates, utc_now_iso
from studenthub.logging_config import logger
from studenthub.models import (
    ApprovalStatus,
    AttendanceStatus,
    Collection,
    EventStatus,
    ReadResult,
    normalize_record,
)
from studenthub import queries
from studenthub.storage import JsonFileStore, KeyValueStore

Record = Dict[str, Any]

ID_PREFIXES = {
    Collection.EVENTS: "EVT",
    Collection.ACTIVITIES: "ACT",
    Collection.CERTIFICATES: "CERT",
    Collection.REGISTRATIONS: "REG",
}

CREATED_AT_FIELDS = {
    Collection.EVENTS: "createdDate",
    Collection.ACTIVITIES: "submissionDate",
    Collection.CERTIFICATES: "uploadDate",
    Collection.REGISTRATIONS: "registrationDate",
}

_RESOURCE_NAMES = {
    Collection.EVENTS: "event",
    Collection.ACTIVITIES: "activity",
    Collection.CERTIFICATES: "certificate",
    Collection.STUDENTS: "student",
    Collection.FACULTY: "faculty",
    Collection.REGISTRATIONS: "registration",
}


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _pending_only(collection: Collection, record_id: str, action: str) -> Callable[[Record], None]:
    def guard(current: Record) -> None:
        status = current.get("status", ApprovalStatus.PENDING.value)
        if status != ApprovalStatus.PENDING.value:
            raise InvalidTransitionError(_RESOURCE_NAMES[collection], record_id, status, action)
    return guard


def _shift_head_count(delta: int) -> Callable[[Record], Record]:
    def changes(event: Record) -> Record:
        return {"registrationCount": max(0, (event.get("registrationCount") or 0) + delta)}
    return changes


class EntityStore:
    """Authoritative in-memory holder of all collections for a session"""

    def __init__(self, backend: StoreBackend, bus: Optional[SubscriptionBus] = None):
        self.backend = backend
        self.bus = bus or SubscriptionBus()
        self._data: Dict[Collection, List[Record]] = {c: [] for c in Collection}
        self._analytics: Record = {}
        self._loaded = False
        self.load_errors: Dict[str, Exception] = {}
        self._locks: Dict[Collection, asyncio.Lock] = {}

    @classmethod
    def from_config(
        cls,
        config: HubConfig,
        bus: Optional[SubscriptionBus] = None,
        kv_store: Optional[KeyValueStore] = None,
        transport=None,
    ) -> "EntityStore":
        """Build a store with the backend named in the config"""
        kv_store = kv_store or JsonFileStore(config.storage_dir)
        if config.backend == "api":
            gateway = RemoteGateway(
                config.api_base_url,
                kv_store=kv_store,
                timeout=config.timeout,
                transport=transport,
            )
            backend: StoreBackend = RemoteBackend(gateway, kv_store)
        else:
            backend = FixtureBackend(config.fixtures_dir, kv_store)
        return cls(backend, bus)

    async def __aenter__(self) -> "EntityStore":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ==================== Lifecycle ====================

    async def load(self) -> Dict[str, int]:
        """Fill every collection from the backend and broadcast dataLoaded"""
        results = await self.backend.load_all()

        self.load_errors = {}
        for collection in Collection:
            result = results.get(collection) or ReadResult(value=[])
            self._data[collection] = [
                copy.deepcopy(r) for r in (result.value or []) if isinstance(r, dict)
            ]
            if result.error is not None:
                self.load_errors[collection.value] = result.error

        analytics = await self.backend.load_analytics()
        self._analytics = copy.deepcopy(analytics.value) if isinstance(analytics.value, dict) else {}
        if analytics.error is not None:
            self.load_errors["analytics"] = analytics.error

        self._loaded = True
        counts = {c.value: len(records) for c, records in self._data.items()}
        logger.info(
            f"[EntityStore] Loaded {sum(counts.values())} records from {self.backend.name} backend",
            extra={"collections": counts, "load_errors": list(self.load_errors)}
        )
        self.bus.notify(ChangeType.DATA_LOADED, counts)
        return counts

    async def refresh(self) -> Dict[str, int]:
        return await self.load()

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def is_data_loaded(self) -> bool:
        return self._loaded

    async def close(self) -> None:
        await self.backend.close()

    # ==================== Internals ====================

    def _find_index(self, collection: Collection, record_id: str) -> Optional[int]:
        for index, record in enumerate(self._data[collection]):
            if record.get("id") == record_id:
                return index
        return None

    def _find(self, collection: Collection, record_id: str) -> Optional[Record]:
        index = self._find_index(collection, record_id)
        return None if index is None else self._data[collection][index]

    def _copy_all(self, collection: Collection) -> List[Record]:
        return copy.deepcopy(self._data[collection])

    def _copy_one(self, collection: Collection, record_id: str) -> Optional[Record]:
        record = self._find(collection, record_id)
        return copy.deepcopy(record) if record is not None else None

    def _generate_id(self, collection: Collection) -> str:
        """Prefix + epoch millis + random suffix, unique within the collection"""
        existing = {r.get("id") for r in self._data[collection]}
        while True:
            candidate = f"{ID_PREFIXES[collection]}{int(time.time() * 1000)}{secrets.token_hex(2)}"
            if candidate not in existing:
                return candidate

    async def _persist(self, collection: Collection) -> None:
        await self.backend.persist(collection, copy.deepcopy(self._data[collection]))

    def _broadcast(self, collection: Collection, action: str, record: Record) -> None:
        change_type = ChangeType.for_collection(collection, action)
        logger.log_store_event(change_type.value, collection.value, record.get("id"))
        self.bus.notify(change_type, copy.deepcopy(record))

    def _lock(self, collection: Collection) -> asyncio.Lock:
        # Created lazily so the lock belongs to the running loop
        lock = self._locks.get(collection)
        if lock is None:
            lock = self._locks[collection] = asyncio.Lock()
        return lock

    async def _create(self, collection: Collection, data: Record, forced: Optional[Record] = None) -> Record:
        async with self._lock(collection):
            record = copy.deepcopy(dict(data or {}))
            record["id"] = self._generate_id(collection)
            record[CREATED_AT_FIELDS[collection]] = utc_now_iso()
            record.update(forced or {})
            record["version"] = 0
            return await self._insert(collection, normalize_record(collection, record))

    async def _insert(self, collection: Collection, record: Record) -> Record:
        """Hand a validated record to the backend and commit what comes back. Caller holds the lock."""
        stored = await self.backend.create(collection, record)
        self._data[collection].append(copy.deepcopy(stored))
        await self._persist(collection)
        self._broadcast(collection, "added", stored)
        return copy.deepcopy(stored)

    async def _update(
        self,
        collection: Collection,
        record_id: str,
        updates: Union[Record, Callable[[Record], Record]],
        expected_version: Optional[int] = None,
        guard: Optional[Callable[[Record], None]] = None,
    ) -> Optional[Record]:
        """
        Merge `updates` into a record and commit it.

        Check, backend call and commit happen under the collection lock, so a
        concurrent writer holding the same `expected_version` sees the bumped
        version and gets StaleUpdateError. `updates` may be a callable that
        computes the changes from the current record; `guard` may raise to
        refuse the update.
        """
        async with self._lock(collection):
            current = self._find(collection, record_id)
            if current is None:
                return None
            if guard is not None:
                guard(current)

            version = current.get("version", 0)
            if expected_version is not None and expected_version != version:
                raise StaleUpdateError(_RESOURCE_NAMES[collection], record_id, expected_version, version)

            if callable(updates):
                updates = updates(current)
            changes = copy.deepcopy(dict(updates or {}))
            changes.pop("id", None)
            changes["version"] = version + 1
            merged = normalize_record(collection, {**current, **changes})
            changes = {key: value for key, value in merged.items() if key in changes or current.get(key) != value}

            stored = await self.backend.update(collection, record_id, changes, merged)

            index = self._find_index(collection, record_id)
            if index is None:
                logger.warning(f"[EntityStore] {collection.value} '{record_id}' vanished during update")
                return copy.deepcopy(stored)
            self._data[collection][index] = copy.deepcopy(stored)
            await self._persist(collection)
            self._broadcast(collection, "updated", stored)
            return copy.deepcopy(stored)

    async def _delete(
        self,
        collection: Collection,
        record_id: str,
        guard: Optional[Callable[[Record], None]] = None,
    ) -> Optional[Record]:
        async with self._lock(collection):
            current = self._find(collection, record_id)
            if current is None:
                return None
            if guard is not None:
                guard(current)

            await self.backend.delete(collection, record_id)

            index = self._find_index(collection, record_id)
            if index is None:
                return None
            removed = self._data[collection].pop(index)
            await self._persist(collection)
            self._broadcast(collection, "deleted", removed)
            return copy.deepcopy(removed)

    async def _transition(
        self,
        collection: Collection,
        record_id: str,
        action: str,
        actor: str,
        comment: str = "",
    ) -> Optional[Record]:
        """pending -> approved | rejected; both targets are terminal"""
        if action == "approve":
            updates = approval_updates(actor, comment)
        else:
            updates = rejection_updates(actor, comment)
        return await self._update(
            collection, record_id, updates, guard=_pending_only(collection, record_id, action)
        )

    # ==================== Events ====================

    def get_all_events(self) -> List[Record]:
        return self._copy_all(Collection.EVENTS)

    def get_event_by_id(self, event_id: str) -> Optional[Record]:
        return self._copy_one(Collection.EVENTS, event_id)

    async def add_event(self, event_data: Record) -> Record:
        return await self._create(
            Collection.EVENTS,
            event_data,
            forced={"status": EventStatus.OPEN.value, "registrationCount": 0},
        )

    async def update_event(self, event_id: str, updates: Record,
                           expected_version: Optional[int] = None) -> Optional[Record]:
        return await self._update(Collection.EVENTS, event_id, updates, expected_version)

    async def delete_event(self, event_id: str) -> Optional[Record]:
        return await self._delete(Collection.EVENTS, event_id)

    # ==================== Activities ====================

    def get_all_activities(self) -> List[Record]:
        return self._copy_all(Collection.ACTIVITIES)

    def get_activity_by_id(self, activity_id: str) -> Optional[Record]:
        return self._copy_one(Collection.ACTIVITIES, activity_id)

    async def add_activity(self, activity_data: Record) -> Record:
        return await self._create(
            Collection.ACTIVITIES,
            activity_data,
            forced={"status": ApprovalStatus.PENDING.value},
        )

    async def update_activity(self, activity_id: str, updates: Record,
                              expected_version: Optional[int] = None) -> Optional[Record]:
        return await self._update(Collection.ACTIVITIES, activity_id, updates, expected_version)

    async def approve_activity(self, activity_id: str, approver_name: str, comment: str = "") -> Optional[Record]:
        return await self._transition(Collection.ACTIVITIES, activity_id, "approve", approver_name, comment)

    async def reject_activity(self, activity_id: str, rejector_name: str, comment: str = "") -> Optional[Record]:
        return await self._transition(Collection.ACTIVITIES, activity_id, "reject", rejector_name, comment)

    # ==================== Certificates ====================

    def get_all_certificates(self) -> List[Record]:
        return self._copy_all(Collection.CERTIFICATES)

    def get_certificate_by_id(self, certificate_id: str) -> Optional[Record]:
        return self._copy_one(Collection.CERTIFICATES, certificate_id)

    async def add_certificate(self, certificate_data: Record) -> Record:
        return await self._create(
            Collection.CERTIFICATES,
            certificate_data,
            forced={"status": ApprovalStatus.PENDING.value},
        )

    async def update_certificate(self, certificate_id: str, updates: Record,
                                 expected_version: Optional[int] = None) -> Optional[Record]:
        return await self._update(Collection.CERTIFICATES, certificate_id, updates, expected_version)

    async def approve_certificate(self, certificate_id: str, approver_name: str, comment: str = "") -> Optional[Record]:
        return await self._transition(Collection.CERTIFICATES, certificate_id, "approve", approver_name, comment)

    async def reject_certificate(self, certificate_id: str, rejector_name: str, comment: str = "") -> Optional[Record]:
        return await self._transition(Collection.CERTIFICATES, certificate_id, "reject", rejector_name, comment)

    async def delete_certificate(self, certificate_id: str) -> Optional[Record]:
        """Withdraw a certificate; only pending ones can be deleted"""
        return await self._delete(
            Collection.CERTIFICATES,
            certificate_id,
            guard=_pending_only(Collection.CERTIFICATES, certificate_id, "delete"),
        )

    # ==================== Students & Faculty ====================

    def get_all_students(self) -> List[Record]:
        return self._copy_all(Collection.STUDENTS)

    def get_student_by_id(self, student_id: str) -> Optional[Record]:
        return self._copy_one(Collection.STUDENTS, student_id)

    async def update_student(self, student_id: str, updates: Record,
                             expected_version: Optional[int] = None) -> Optional[Record]:
        return await self._update(Collection.STUDENTS, student_id, updates, expected_version)

    def get_all_faculty(self) -> List[Record]:
        return self._copy_all(Collection.FACULTY)

    def get_faculty_by_id(self, faculty_id: str) -> Optional[Record]:
        return self._copy_one(Collection.FACULTY, faculty_id)

    async def update_faculty(self, faculty_id: str, updates: Record,
                             expected_version: Optional[int] = None) -> Optional[Record]:
        return await self._update(Collection.FACULTY, faculty_id, updates, expected_version)

    # ==================== Registrations ====================

    def get_all_registrations(self) -> List[Record]:
        return self._copy_all(Collection.REGISTRATIONS)

    def get_registration_by_id(self, registration_id: str) -> Optional[Record]:
        return self._copy_one(Collection.REGISTRATIONS, registration_id)

    def get_registrations_by_event(self, event_id: str) -> List[Record]:
        return copy.deepcopy(queries.filter_by_field(self._data[Collection.REGISTRATIONS], "eventId", event_id))

    def get_registrations_by_student(self, student_id: str) -> List[Record]:
        return copy.deepcopy(queries.filter_by_field(self._data[Collection.REGISTRATIONS], "studentId", student_id))

    def is_registration_open(self, event_id: str) -> bool:
        """Open status, deadline not passed, and seats left"""
        event = self._find(Collection.EVENTS, event_id)
        if event is None or event.get("status") != EventStatus.OPEN.value:
            return False

        deadline = _parse_timestamp((event.get("dates") or {}).get("registrationDeadline"))
        if deadline is not None and deadline < datetime.now(timezone.utc):
            return False

        max_participants = event.get("maxParticipants")
        if max_participants is not None and event.get("registrationCount", 0) >= max_participants:
            return False
        return True

    async def add_registration(self, registration_data: Record) -> Record:
        """Register a student for an event and bump the event's head count"""
        event_id = registration_data.get("eventId")
        student_id = registration_data.get("studentId")

        event = self._find(Collection.EVENTS, event_id)
        if event is None:
            raise ValidationError(f"Event '{event_id}' not found", field="eventId")
        if not self.is_registration_open(event_id):
            raise ValidationError(f"Registration for '{event.get('title', event_id)}' is closed", field="eventId")
        if any(
            r.get("eventId") == event_id and r.get("studentId") == student_id
            for r in self._data[Collection.REGISTRATIONS]
        ):
            raise ValidationError(f"Student '{student_id}' is already registered", field="studentId")

        fee = (event.get("fees") or {}).get("student") or 0
        data = {
            "amount": fee,
            "paymentStatus": "pending" if fee > 0 else "paid",
            **registration_data,
        }
        registration = await self._create(
            Collection.REGISTRATIONS,
            data,
            forced={"attendanceStatus": AttendanceStatus.REGISTERED.value},
        )

        try:
            await self._update(Collection.EVENTS, event_id, _shift_head_count(1))
        except Exception:
            # Head count not updated, so the registration goes too
            await self._delete(Collection.REGISTRATIONS, registration["id"])
            raise
        return registration

    async def update_registration(self, registration_id: str, updates: Record,
                                  expected_version: Optional[int] = None) -> Optional[Record]:
        return await self._update(Collection.REGISTRATIONS, registration_id, updates, expected_version)

    async def cancel_registration(self, registration_id: str) -> Optional[Record]:
        removed = await self._delete(Collection.REGISTRATIONS, registration_id)
        if removed is None:
            return None

        event_id = removed.get("eventId")
        if self._find(Collection.EVENTS, event_id) is not None:
            try:
                await self._update(Collection.EVENTS, event_id, _shift_head_count(-1))
            except Exception:
                async with self._lock(Collection.REGISTRATIONS):
                    await self._insert(Collection.REGISTRATIONS, removed)
                raise
        return removed

    async def mark_attendance(self, registration_id: str, attendance_status: str) -> Optional[Record]:
        try:
            status = AttendanceStatus(attendance_status).value
        except ValueError:
            raise ValidationError(f"Unknown attendance status '{attendance_status}'", field="attendanceStatus")
        return await self._update(Collection.REGISTRATIONS, registration_id, {"attendanceStatus": status})

    # ==================== Analytics ====================

    def get_analytics(self) -> Record:
        return queries.with_analytics_defaults(copy.deepcopy(self._analytics))

    async def update_analytics(self, updates: Record) -> Record:
        self._analytics = {**self._analytics, **copy.deepcopy(dict(updates))}
        await self.backend.save_analytics(copy.deepcopy(self._analytics))
        logger.log_store_event(ChangeType.ANALYTICS_UPDATED.value)
        self.bus.notify(ChangeType.ANALYTICS_UPDATED, copy.deepcopy(self._analytics))
        return copy.deepcopy(self._analytics)

    def get_statistics(self) -> Dict[str, int]:
        return queries.compute_statistics(
            self._data[Collection.EVENTS],
            self._data[Collection.ACTIVITIES],
            self._data[Collection.CERTIFICATES],
            self._data[Collection.STUDENTS],
            self._data[Collection.FACULTY],
        )

    # ==================== Search & Filters ====================

    def search_events(self, query: str) -> List[Record]:
        return copy.deepcopy(queries.search_events(self._data[Collection.EVENTS], query))

    def search_activities(self, query: str) -> List[Record]:
        return copy.deepcopy(queries.search_activities(self._data[Collection.ACTIVITIES], query))

    def get_events_by_status(self, status: str) -> List[Record]:
        return copy.deepcopy(queries.filter_by_status(self._data[Collection.EVENTS], status))

    def get_activities_by_status(self, status: str) -> List[Record]:
        return copy.deepcopy(queries.filter_by_status(self._data[Collection.ACTIVITIES], status))

    def get_certificates_by_status(self, status: str) -> List[Record]:
        return copy.deepcopy(queries.filter_by_status(self._data[Collection.CERTIFICATES], status))

    def get_events_by_organizer(self, organizer_name: str) -> List[Record]:
        return copy.deepcopy(queries.events_by_organizer(self._data[Collection.EVENTS], organizer_name))

    def get_events_by_faculty(self, faculty_id: str) -> List[Record]:
        return copy.deepcopy(queries.events_by_faculty(self._data[Collection.EVENTS], faculty_id))

    def get_activities_by_student(self, student_id: str) -> List[Record]:
        return copy.deepcopy(queries.filter_by_field(self._data[Collection.ACTIVITIES], "studentId", student_id))

    def get_certificates_by_student(self, student_id: str) -> List[Record]:
        return copy.deepcopy(queries.filter_by_field(self._data[Collection.CERTIFICATES], "studentId", student_id))
