"""
Unit Tests for the Remote Gateway
Tests for: envelope handling, auth token, read/write failure policy, statistics
"""
import json

import httpx
import pytest

from studenthub.events import ChangeType
from studenthub.exceptions import GatewayError, NetworkError
from studenthub.gateway import RemoteGateway, utc_now_iso
from studenthub.storage import AUTH_TOKEN_KEY, MemoryStore

from tests.unit.helpers import envelope, routes_transport

BASE_URL = "http://test/api"


def make_gateway(routes, calls=None, kv_store=None, bus=None) -> RemoteGateway:
    return RemoteGateway(
        BASE_URL,
        kv_store=kv_store or MemoryStore(),
        bus=bus,
        transport=routes_transport(routes, calls),
    )


class TestRequest:
    """Test the core request path"""

    @pytest.mark.asyncio
    async def test_returns_parsed_body(self):
        gateway = make_gateway({("GET", "/api/events"): envelope([{"id": "EVT1"}])})

        body = await gateway.request("/events")

        assert body == {"success": True, "data": [{"id": "EVT1"}]}
        await gateway.close()

    @pytest.mark.asyncio
    async def test_error_body_message_is_raised(self):
        gateway = make_gateway({
            ("POST", "/api/events"): (422, envelope(success=False, message="Title is required")),
        })

        with pytest.raises(GatewayError) as exc:
            await gateway.request("/events", method="POST", json={})

        assert exc.value.message == "Title is required"
        assert exc.value.status_code == 422
        await gateway.close()

    @pytest.mark.asyncio
    async def test_error_without_body_uses_status(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        gateway = RemoteGateway(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(GatewayError) as exc:
            await gateway.request("/events")

        assert exc.value.message == "HTTP error! status: 500"
        await gateway.close()

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = RemoteGateway(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError):
            await gateway.request("/events")
        await gateway.close()

    @pytest.mark.asyncio
    async def test_invalid_json_is_gateway_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        gateway = RemoteGateway(BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(GatewayError):
            await gateway.request("/events")
        await gateway.close()


class TestAuth:
    """Test token handling"""

    @pytest.mark.asyncio
    async def test_login_persists_token_and_sends_it(self, bus, recorder):
        calls = []
        kv_store = MemoryStore()
        bus.subscribe("Header", recorder)
        gateway = make_gateway({
            ("POST", "/api/auth/login"): envelope({"token": "tok-123", "user": {"name": "Admin"}}),
            ("GET", "/api/events"): envelope([]),
        }, calls=calls, kv_store=kv_store, bus=bus)

        await gateway.login({"email": "admin@college.edu", "password": "x"})
        await gateway.get_all_events()

        assert kv_store.get(AUTH_TOKEN_KEY) == "tok-123"
        assert calls[-1].headers["Authorization"] == "Bearer tok-123"
        assert calls[0].headers["Content-Type"] == "application/json"
        assert recorder.types == [ChangeType.USER_LOGGED_IN]
        await gateway.close()

    def test_token_restored_from_storage(self):
        gateway = RemoteGateway(BASE_URL, kv_store=MemoryStore({AUTH_TOKEN_KEY: "saved"}))
        assert gateway.get_auth_headers()["Authorization"] == "Bearer saved"

    @pytest.mark.asyncio
    async def test_failed_login_keeps_no_token(self):
        gateway = make_gateway({
            ("POST", "/api/auth/login"): (401, envelope(success=False, message="Invalid credentials")),
        })

        with pytest.raises(GatewayError):
            await gateway.login({"email": "a", "password": "b"})

        assert gateway.auth_token is None
        await gateway.close()

    @pytest.mark.asyncio
    async def test_logout_clears_token_even_when_backend_fails(self, bus, recorder):
        kv_store = MemoryStore({AUTH_TOKEN_KEY: "tok"})
        bus.subscribe("Header", recorder)
        gateway = make_gateway(
            {("POST", "/api/auth/logout"): (500, {})},
            kv_store=kv_store,
            bus=bus,
        )

        await gateway.logout()

        assert gateway.auth_token is None
        assert kv_store.get(AUTH_TOKEN_KEY) is None
        assert recorder.types == [ChangeType.USER_LOGGED_OUT]
        await gateway.close()


class TestResources:
    """Test per-resource reads and writes"""

    @pytest.mark.asyncio
    async def test_read_failure_degrades_to_default(self):
        gateway = make_gateway({("GET", "/api/activities"): (503, {})})

        result = await gateway.get_all_activities()

        assert result.value == []
        assert not result.ok
        assert isinstance(result.error, GatewayError)
        await gateway.close()

    @pytest.mark.asyncio
    async def test_single_record_read_failure_is_none(self):
        gateway = make_gateway({})

        result = await gateway.get_event_by_id("EVT404")

        assert result.value is None
        assert result.error is not None
        await gateway.close()

    @pytest.mark.asyncio
    async def test_ids_are_escaped_as_one_path_segment(self):
        calls = []
        gateway = make_gateway({}, calls=calls)

        await gateway.get_event_by_id("EVT/1")
        with pytest.raises(GatewayError):
            await gateway.delete_certificate("CERT/1")

        assert calls[0].url.raw_path == b"/api/events/EVT%2F1"
        assert calls[1].url.raw_path == b"/api/certificates/CERT%2F1"
        await gateway.close()

    @pytest.mark.asyncio
    async def test_nested_students_envelope(self):
        gateway = make_gateway({
            ("GET", "/api/students"): envelope({"students": [{"id": "STU001"}], "total": 1}),
            ("GET", "/api/faculty"): envelope({"faculty": [{"id": "FAC001"}]}),
        })

        students = await gateway.get_all_students()
        faculty = await gateway.get_all_faculty()

        assert students.value == [{"id": "STU001"}]
        assert faculty.value == [{"id": "FAC001"}]
        await gateway.close()

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self):
        gateway = make_gateway({("PUT", "/api/activities/ACT1"): (500, envelope(success=False, message="db down"))})

        with pytest.raises(GatewayError, match="db down"):
            await gateway.update_activity("ACT1", {"title": "x"})
        await gateway.close()

    @pytest.mark.asyncio
    async def test_approve_sends_audit_fields(self):
        calls = []
        gateway = make_gateway({
            ("PUT", "/api/activities/ACT1"): envelope({"id": "ACT1", "status": "approved"}),
        }, calls=calls)

        updated = await gateway.approve_activity("ACT1", "Dr. Kumar", "Great work")

        sent = json.loads(calls[0].content)
        assert sent["status"] == "approved"
        assert sent["approvedBy"] == "Dr. Kumar"
        assert sent["approvalComment"] == "Great work"
        assert sent["approvalDate"].endswith("Z")
        assert updated == {"id": "ACT1", "status": "approved"}
        await gateway.close()

    @pytest.mark.asyncio
    async def test_reject_certificate(self):
        calls = []
        gateway = make_gateway({
            ("PUT", "/api/certificates/CERT1"): envelope({"id": "CERT1", "status": "rejected"}),
        }, calls=calls)

        await gateway.reject_certificate("CERT1", "Dr. Nair", "Blurry")

        sent = json.loads(calls[0].content)
        assert sent["rejectedBy"] == "Dr. Nair"
        assert sent["rejectionComment"] == "Blurry"
        await gateway.close()


class TestAggregates:
    """Test statistics and search"""

    @pytest.mark.asyncio
    async def test_statistics_fan_out(self):
        activities = (
            [{"id": f"A{i}", "status": "approved"} for i in range(3)]
            + [{"id": f"P{i}", "status": "pending"} for i in range(2)]
        )
        gateway = make_gateway({
            ("GET", "/api/events"): envelope([{"id": "E1", "status": "open"}]),
            ("GET", "/api/activities"): envelope(activities),
            ("GET", "/api/certificates"): envelope([]),
            ("GET", "/api/students"): envelope({"students": [{"id": "S1"}]}),
            ("GET", "/api/faculty"): envelope({"faculty": []}),
        })

        result = await gateway.get_statistics()

        assert result.ok
        assert result.value["approvedActivities"] == 3
        assert result.value["pendingActivities"] == 2
        assert result.value["totalActivities"] == 5
        assert result.value["openEvents"] == 1
        await gateway.close()

    @pytest.mark.asyncio
    async def test_statistics_report_partial_failure(self):
        gateway = make_gateway({
            ("GET", "/api/events"): envelope([{"id": "E1"}]),
            ("GET", "/api/activities"): envelope([]),
            ("GET", "/api/certificates"): envelope([]),
            ("GET", "/api/students"): envelope({"students": []}),
        })

        result = await gateway.get_statistics()

        assert not result.ok
        assert result.value["totalEvents"] == 1
        assert result.value["totalFaculty"] == 0
        await gateway.close()

    @pytest.mark.asyncio
    async def test_search_falls_back_to_local_filter(self):
        gateway = make_gateway({
            ("GET", "/api/events"): envelope([
                {"id": "E1", "title": "Hackathon"},
                {"id": "E2", "title": "Dance"},
            ]),
        })

        result = await gateway.search_events("hack")

        assert [e["id"] for e in result.value] == ["E1"]
        await gateway.close()

    @pytest.mark.asyncio
    async def test_search_uses_endpoint_when_available(self):
        calls = []
        gateway = make_gateway({
            ("GET", "/api/activities/search"): envelope([{"id": "A9"}]),
        }, calls=calls)

        result = await gateway.search_activities("intern")

        assert result.value == [{"id": "A9"}]
        assert calls[0].url.params["q"] == "intern"
        await gateway.close()


def test_utc_now_iso_format():
    stamp = utc_now_iso()
    assert stamp.endswith("Z")
    assert "." in stamp
