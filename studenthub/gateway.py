"""
Student Hub - Remote Gateway
Single point of HTTP communication with the Student Hub REST backend.

All responses use the envelope {"success": bool, "data": ..., "message": str}.
Reads return a ReadResult whose value falls back to an empty default when the
call fails; writes raise GatewayError / NetworkError.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from studenthub.events import ChangeType, SubscriptionBus
from studenthub.exceptions import GatewayError, NetworkError
from studenthub.logging_config import logger
from studenthub.models import ReadResult
from studenthub.queries import compute_statistics, search_activities, search_events
from studenthub.storage import AUTH_TOKEN_KEY, KeyValueStore, MemoryStore

Record = Dict[str, Any]


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RemoteGateway:
    """HTTP client for the Student Hub backend"""

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        kv_store: Optional[KeyValueStore] = None,
        bus: Optional[SubscriptionBus] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.kv_store = kv_store or MemoryStore()
        self.bus = bus
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        token = self.kv_store.get(AUTH_TOKEN_KEY)
        self.auth_token: Optional[str] = token if isinstance(token, str) and token else None

    async def __aenter__(self) -> "RemoteGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ==================== Auth token ====================

    def set_auth_token(self, token: Optional[str]) -> None:
        """Hold the token for later requests and persist it"""
        self.auth_token = token
        if token:
            self.kv_store.set(AUTH_TOKEN_KEY, token)
        else:
            self.kv_store.remove(AUTH_TOKEN_KEY)

    def get_auth_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    # ==================== Core request ====================

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform a call and return the parsed JSON body.

        Raises:
            NetworkError: the backend could not be reached
            GatewayError: non-2xx status, or a 2xx body that isn't JSON
        """
        url = f"{self.base_url}{endpoint}"
        started = time.perf_counter()

        try:
            response = await self._get_client().request(
                method, url, json=json, params=params, headers=self.get_auth_headers()
            )
        except httpx.HTTPError as e:
            logger.error(f"API request failed for {endpoint}: {e}")
            raise NetworkError(f"Request to {endpoint} failed: {e}", endpoint=endpoint) from e

        duration_ms = (time.perf_counter() - started) * 1000
        logger.log_request(method, endpoint, response.status_code, duration_ms)

        if not response.is_success:
            message = f"HTTP error! status: {response.status_code}"
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                pass
            raise GatewayError(message, status_code=response.status_code, endpoint=endpoint)

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(
                f"Invalid JSON in response from {endpoint}",
                status_code=response.status_code,
                endpoint=endpoint
            ) from e

    @staticmethod
    def _unwrap(body: Any, key: Optional[str] = None) -> Any:
        """Pull `data` out of the envelope, and `data[key]` when nested"""
        data = body.get("data") if isinstance(body, dict) else None
        if key and isinstance(data, dict) and key in data:
            data = data[key]
        return data

    async def _read(self, endpoint: str, default: Any, key: Optional[str] = None) -> ReadResult:
        try:
            body = await self.request(endpoint)
        except GatewayError as e:
            logger.error(f"Read {endpoint} failed: {e}")
            return ReadResult(value=default, error=e)
        data = self._unwrap(body, key)
        return ReadResult(value=default if data is None else data)

    async def _write(self, endpoint: str, method: str, payload: Optional[Any] = None,
                     key: Optional[str] = None) -> Any:
        try:
            body = await self.request(endpoint, method=method, json=payload)
        except GatewayError as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise
        return self._unwrap(body, key)

    def _notify(self, change_type: ChangeType, payload: Any = None) -> None:
        if self.bus is not None:
            self.bus.notify(change_type, payload)

    # ==================== Authentication ====================

    async def login(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        """Login and keep the returned token"""
        response = await self.request("/auth/login", method="POST", json=credentials)

        if not isinstance(response, dict):
            raise GatewayError("Unexpected login response", endpoint="/auth/login")

        data = response.get("data")
        if response.get("success") and isinstance(data, dict) and data.get("token"):
            self.set_auth_token(data["token"])
            self._notify(ChangeType.USER_LOGGED_IN, data)

        return response

    async def register(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("/auth/register", method="POST", json=user_data)

    async def logout(self) -> None:
        """Logout; the local token is dropped even if the backend call fails"""
        try:
            await self.request("/auth/logout", method="POST")
        except GatewayError as e:
            logger.error(f"Logout error: {e}")
        finally:
            self.set_auth_token(None)
            self._notify(ChangeType.USER_LOGGED_OUT)

    # ==================== Events ====================

    async def get_all_events(self) -> ReadResult:
        return await self._read("/events", [])

    async def get_event_by_id(self, event_id: str) -> ReadResult:
        return await self._read(f"/events/{quote(event_id, safe='')}", None)

    async def add_event(self, event_data: Record) -> Optional[Record]:
        return await self._write("/events", "POST", event_data)

    async def update_event(self, event_id: str, updates: Record) -> Optional[Record]:
        return await self._write(f"/events/{quote(event_id, safe='')}", "PUT", updates)

    async def delete_event(self, event_id: str) -> Any:
        return await self._write(f"/events/{quote(event_id, safe='')}", "DELETE")

    # ==================== Activities ====================

    async def get_all_activities(self) -> ReadResult:
        return await self._read("/activities", [])

    async def get_activity_by_id(self, activity_id: str) -> ReadResult:
        return await self._read(f"/activities/{quote(activity_id, safe='')}", None)

    async def add_activity(self, activity_data: Record) -> Optional[Record]:
        return await self._write("/activities", "POST", activity_data)

    async def update_activity(self, activity_id: str, updates: Record) -> Optional[Record]:
        return await self._write(f"/activities/{quote(activity_id, safe='')}", "PUT", updates)

    async def approve_activity(self, activity_id: str, approver_name: str, comment: str = "") -> Optional[Record]:
        return await self.update_activity(activity_id, approval_updates(approver_name, comment))

    async def reject_activity(self, activity_id: str, rejector_name: str, comment: str = "") -> Optional[Record]:
        return await self.update_activity(activity_id, rejection_updates(rejector_name, comment))

    # ==================== Certificates ====================

    async def get_all_certificates(self) -> ReadResult:
        return await self._read("/certificates", [])

    async def get_certificate_by_id(self, certificate_id: str) -> ReadResult:
        return await self._read(f"/certificates/{quote(certificate_id, safe='')}", None)

    async def add_certificate(self, certificate_data: Record) -> Optional[Record]:
        return await self._write("/certificates", "POST", certificate_data)

    async def update_certificate(self, certificate_id: str, updates: Record) -> Optional[Record]:
        return await self._write(f"/certificates/{quote(certificate_id, safe='')}", "PUT", updates)

    async def delete_certificate(self, certificate_id: str) -> Any:
        return await self._write(f"/certificates/{quote(certificate_id, safe='')}", "DELETE")

    async def approve_certificate(self, certificate_id: str, approver_name: str, comment: str = "") -> Optional[Record]:
        return await self.update_certificate(certificate_id, approval_updates(approver_name, comment))

    async def reject_certificate(self, certificate_id: str, rejector_name: str, comment: str = "") -> Optional[Record]:
        return await self.update_certificate(certificate_id, rejection_updates(rejector_name, comment))

    # ==================== Students ====================

    async def get_all_students(self) -> ReadResult:
        return await self._read("/students", [], key="students")

    async def get_student_by_id(self, student_id: str) -> ReadResult:
        return await self._read(f"/students/{quote(student_id, safe='')}", None, key="student")

    async def update_student(self, student_id: str, updates: Record) -> Optional[Record]:
        return await self._write(f"/students/{quote(student_id, safe='')}", "PUT", updates, key="student")

    async def get_activities_by_student(self, student_id: str) -> ReadResult:
        return await self._read(f"/students/{quote(student_id, safe='')}/activities", [])

    async def get_certificates_by_student(self, student_id: str) -> ReadResult:
        return await self._read(f"/students/{quote(student_id, safe='')}/certificates", [])

    # ==================== Faculty ====================

    async def get_all_faculty(self) -> ReadResult:
        return await self._read("/faculty", [], key="faculty")

    async def get_faculty_by_id(self, faculty_id: str) -> ReadResult:
        return await self._read(f"/faculty/{quote(faculty_id, safe='')}", None, key="faculty")

    async def update_faculty(self, faculty_id: str, updates: Record) -> Optional[Record]:
        return await self._write(f"/faculty/{quote(faculty_id, safe='')}", "PUT", updates, key="faculty")

    # ==================== Analytics ====================

    async def get_analytics(self) -> ReadResult:
        return await self._read("/analytics", {})

    async def get_statistics(self) -> ReadResult:
        """Fan out the five collection reads and derive dashboard counters"""
        results: List[ReadResult] = await asyncio.gather(
            self.get_all_events(),
            self.get_all_activities(),
            self.get_all_certificates(),
            self.get_all_students(),
            self.get_all_faculty(),
        )
        stats = compute_statistics(*(r.value for r in results))
        error = next((r.error for r in results if r.error is not None), None)
        return ReadResult(value=stats, error=error)

    # ==================== Search ====================

    async def search_events(self, query: str) -> ReadResult:
        """Server-side search, falling back to filtering the full list"""
        try:
            body = await self.request("/events/search", params={"q": query})
            return ReadResult(value=self._unwrap(body) or [])
        except GatewayError as e:
            logger.debug(f"Event search endpoint unavailable ({e}), filtering locally")
        events = await self.get_all_events()
        return ReadResult(value=search_events(events.value, query), error=events.error)

    async def search_activities(self, query: str) -> ReadResult:
        """Server-side search, falling back to filtering the full list"""
        try:
            body = await self.request("/activities/search", params={"q": query})
            return ReadResult(value=self._unwrap(body) or [])
        except GatewayError as e:
            logger.debug(f"Activity search endpoint unavailable ({e}), filtering locally")
        activities = await self.get_all_activities()
        return ReadResult(value=search_activities(activities.value, query), error=activities.error)


def approval_updates(approver_name: str, comment: str = "") -> Record:
    return {
        "status": "approved",
        "approvedBy": approver_name,
        "approvalDate": utc_now_iso(),
        "approvalComment": comment,
    }


def rejection_updates(rejector_name: str, comment: str = "") -> Record:
    return {
        "status": "rejected",
        "rejectedBy": rejector_name,
        "rejectionDate": utc_now_iso(),
        "rejectionComment": comment,
    }
