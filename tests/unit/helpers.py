"""Shared helpers for building gateway responses"""
from typing import Any, Callable, Dict

import httpx


def envelope(data: Any = None, success: bool = True, message: str = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": success, "data": data}
    if message:
        body["message"] = message
    return body


def mock_transport(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def routes_transport(routes: Dict[tuple, Any], calls: list = None) -> httpx.MockTransport:
    """
    Transport answering (METHOD, path) pairs with canned JSON.

    A route value is either a body (served with 200) or a (status, body) tuple.
    Unknown routes answer 404. Requests are appended to `calls` when given.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        key = (request.method, request.url.path)
        if key not in routes:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        value = routes[key]
        if isinstance(value, tuple):
            status, body = value
        else:
            status, body = 200, value
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)
