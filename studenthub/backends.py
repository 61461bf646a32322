"""
Backing adapters for the entity store.

The store owns the in-memory collections and every rule about them; a backend
only knows how to load collections and where writes go:

- FixtureBackend: bundled JSON fixtures plus persisted snapshots. Writes are
  local and land in the key-value store.
- RemoteBackend: the REST backend through RemoteGateway. Registrations have
  no routes there, so they are kept locally like the fixture variant.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from studenthub.exceptions import AuthenticationError, GatewayError, ValidationError
from studenthub.gateway import RemoteGateway
from studenthub.logging_config import logger
from studenthub.models import Collection, ReadResult
from studenthub.storage import KeyValueStore, collection_key, load_collection_snapshot

Record = Dict[str, Any]

ANALYTICS_KEY = collection_key("analytics")


class StoreBackend(ABC):
    """Where the entity store loads from and writes to"""

    name = "base"

    def __init__(self, kv_store: KeyValueStore):
        self.kv_store = kv_store

    @abstractmethod
    async def load_all(self) -> Dict[Collection, ReadResult]:
        """Load every collection. Failures come back as empty results with an error."""

    @abstractmethod
    async def create(self, collection: Collection, record: Record) -> Record:
        """Store a new record, returning the authoritative version"""

    @abstractmethod
    async def update(self, collection: Collection, record_id: str, updates: Record, merged: Record) -> Record:
        """Apply updates, returning the authoritative record"""

    @abstractmethod
    async def delete(self, collection: Collection, record_id: str) -> None:
        """Remove a record"""

    @abstractmethod
    async def load_analytics(self) -> ReadResult:
        """Load the analytics blob"""

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> Record:
        """Return the user profile for valid credentials, or raise AuthenticationError"""

    @abstractmethod
    async def register_user(self, user: Record) -> Record:
        """Create an account, returning the profile without the password"""

    async def persist(self, collection: Collection, records: List[Record]) -> None:
        """Write a full collection snapshot to the key-value store"""
        self.kv_store.set(collection_key(collection.value), records)

    async def save_analytics(self, analytics: Record) -> None:
        self.kv_store.set(ANALYTICS_KEY, analytics)

    async def end_session(self) -> None:
        """Tell the backend the user logged out"""

    async def close(self) -> None:
        """Release backend resources"""


class FixtureBackend(StoreBackend):
    """Bundled JSON fixtures with persisted snapshots layered on top"""

    name = "fixture"

    def __init__(self, fixtures_dir: str, kv_store: KeyValueStore):
        super().__init__(kv_store)
        self.fixtures_dir = Path(fixtures_dir)
        self._users: Optional[List[Record]] = None

    async def _read_fixture(self, name: str, default: Any) -> ReadResult:
        path = self.fixtures_dir / f"{name}.json"
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except FileNotFoundError as e:
            logger.warning(f"[FixtureBackend] Fixture {path.name} not found")
            return ReadResult(value=default, error=e)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"[FixtureBackend] Failed to load {path.name}: {e}")
            return ReadResult(value=default, error=e)

        if not isinstance(data, type(default)):
            logger.error(f"[FixtureBackend] {path.name} has the wrong shape, ignoring it")
            return ReadResult(value=default, error=ValueError(f"{path.name}: expected {type(default).__name__}"))
        return ReadResult(value=data)

    async def load_all(self) -> Dict[Collection, ReadResult]:
        collections = list(Collection)
        baselines = await asyncio.gather(
            *(self._read_fixture(c.value, []) for c in collections)
        )

        results: Dict[Collection, ReadResult] = {}
        for collection, baseline in zip(collections, baselines):
            snapshot = load_collection_snapshot(self.kv_store, collection.value)
            if snapshot is not None:
                results[collection] = ReadResult(value=snapshot)
            else:
                results[collection] = baseline
        return results

    async def create(self, collection: Collection, record: Record) -> Record:
        return record

    async def update(self, collection: Collection, record_id: str, updates: Record, merged: Record) -> Record:
        return merged

    async def delete(self, collection: Collection, record_id: str) -> None:
        return None

    async def load_analytics(self) -> ReadResult:
        baseline = await self._read_fixture("analytics", {})
        stored = self.kv_store.get(ANALYTICS_KEY)
        if isinstance(stored, dict):
            return ReadResult(value={**baseline.value, **stored})
        return baseline

    async def _load_users(self) -> List[Record]:
        if self._users is None:
            self._users = (await self._read_fixture("users", [])).value
        return self._users

    async def authenticate(self, email: str, password: str) -> Record:
        users = await self._load_users()
        email_lower = (email or "").lower()
        found = next(
            (u for u in users
             if str(u.get("email", "")).lower() == email_lower and u.get("password") == password),
            None
        )
        if not found or not found.get("isActive", True):
            raise AuthenticationError()

        profile = {k: v for k, v in found.items() if k != "password"}
        profile["email"] = email
        return profile

    async def find_user_by_email(self, email: str) -> Optional[Record]:
        users = await self._load_users()
        email_lower = (email or "").lower()
        return next((u for u in users if str(u.get("email", "")).lower() == email_lower), None)

    async def register_user(self, user: Record) -> Record:
        # Accounts created here last for the session only
        if await self.find_user_by_email(user.get("email", "")):
            raise ValidationError("An account with this email already exists", field="email")
        users = await self._load_users()
        users.append(dict(user))
        return {k: v for k, v in user.items() if k != "password"}


class RemoteBackend(StoreBackend):
    """REST backend through the gateway; registrations stay local"""

    name = "api"

    LOCAL_COLLECTIONS = {Collection.REGISTRATIONS}

    def __init__(self, gateway: RemoteGateway, kv_store: KeyValueStore):
        super().__init__(kv_store)
        self.gateway = gateway

        self._loaders = {
            Collection.EVENTS: gateway.get_all_events,
            Collection.ACTIVITIES: gateway.get_all_activities,
            Collection.CERTIFICATES: gateway.get_all_certificates,
            Collection.STUDENTS: gateway.get_all_students,
            Collection.FACULTY: gateway.get_all_faculty,
        }
        self._creators = {
            Collection.EVENTS: gateway.add_event,
            Collection.ACTIVITIES: gateway.add_activity,
            Collection.CERTIFICATES: gateway.add_certificate,
        }
        self._updaters = {
            Collection.EVENTS: gateway.update_event,
            Collection.ACTIVITIES: gateway.update_activity,
            Collection.CERTIFICATES: gateway.update_certificate,
            Collection.STUDENTS: gateway.update_student,
            Collection.FACULTY: gateway.update_faculty,
        }
        self._deleters = {
            Collection.EVENTS: gateway.delete_event,
            Collection.CERTIFICATES: gateway.delete_certificate,
        }

    async def load_all(self) -> Dict[Collection, ReadResult]:
        remote = list(self._loaders.keys())
        fetched = await asyncio.gather(*(self._loaders[c]() for c in remote))

        results: Dict[Collection, ReadResult] = dict(zip(remote, fetched))
        for collection in self.LOCAL_COLLECTIONS:
            snapshot = load_collection_snapshot(self.kv_store, collection.value)
            results[collection] = ReadResult(value=snapshot or [])
        return results

    async def create(self, collection: Collection, record: Record) -> Record:
        if collection in self.LOCAL_COLLECTIONS:
            return record
        created = await self._creators[collection](record)
        return {**record, **created} if isinstance(created, dict) else record

    async def update(self, collection: Collection, record_id: str, updates: Record, merged: Record) -> Record:
        if collection in self.LOCAL_COLLECTIONS:
            return merged
        updated = await self._updaters[collection](record_id, updates)
        return {**merged, **updated} if isinstance(updated, dict) else merged

    async def delete(self, collection: Collection, record_id: str) -> None:
        if collection in self.LOCAL_COLLECTIONS:
            return None
        await self._deleters[collection](record_id)

    async def persist(self, collection: Collection, records: List[Record]) -> None:
        # Remote collections live on the server
        if collection in self.LOCAL_COLLECTIONS:
            await super().persist(collection, records)

    async def load_analytics(self) -> ReadResult:
        result = await self.gateway.get_analytics()
        stored = self.kv_store.get(ANALYTICS_KEY)
        if isinstance(stored, dict) and isinstance(result.value, dict):
            return ReadResult(value={**result.value, **stored}, error=result.error)
        return result

    async def authenticate(self, email: str, password: str) -> Record:
        try:
            response = await self.gateway.login({"email": email, "password": password})
        except GatewayError as e:
            if e.status_code in (400, 401, 403):
                raise AuthenticationError(e.message) from e
            raise

        data = response.get("data") or {}
        if not response.get("success") or not data.get("token"):
            raise AuthenticationError(response.get("message") or "Invalid email or password")

        user = data.get("user") if isinstance(data.get("user"), dict) else {}
        return {**user, "email": user.get("email", email)}

    async def register_user(self, user: Record) -> Record:
        try:
            response = await self.gateway.register(user)
        except GatewayError as e:
            if e.status_code in (400, 409):
                raise ValidationError(e.message, field="email") from e
            raise

        data = response.get("data") if isinstance(response, dict) else None
        created = data.get("user") if isinstance(data, dict) and isinstance(data.get("user"), dict) else {}
        profile = {k: v for k, v in user.items() if k != "password"}
        return {**profile, **created}

    async def end_session(self) -> None:
        await self.gateway.logout()

    async def close(self) -> None:
        await self.gateway.close()
