"""Tests for caller identity resolution."""

import pytest
from starlette.requests import Request

from src.api.core.identity import (
    AUTH_CONTEXT_STATE_KEY,
    get_client_ip,
    resolve_identity,
)
from src.core.context import AuthContext


def _request(headers: dict | None = None, client: tuple | None = ("192.0.2.10", 5555)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [
            (name.lower().encode(), value.encode())
            for name, value in (headers or {}).items()
        ],
        "client": client,
        "state": {},
    }
    return Request(scope)


def test_forwarded_for_first_entry_wins():
    request = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "X-Real-IP": "10.9.9.9"})

    assert get_client_ip(request) == "203.0.113.7"


def test_real_ip_used_without_forwarded_for():
    assert get_client_ip(_request({"X-Real-IP": " 198.51.100.4 "})) == "198.51.100.4"


def test_peer_address_fallback():
    assert get_client_ip(_request()) == "192.0.2.10"


@pytest.mark.parametrize(
    "host,expected",
    [
        ("192.0.2.10:8080", "192.0.2.10"),
        ("[2001:db8::1]:443", "2001:db8::1"),
        ("2001:db8::1", "2001:db8::1"),
        ("testclient", "testclient"),
    ],
)
def test_peer_address_port_stripping(host, expected):
    assert get_client_ip(_request(client=(host, 0))) == expected


def test_unknown_peer():
    assert get_client_ip(_request(client=None)) == "unknown"


def test_anonymous_identity():
    identity = resolve_identity(_request())

    assert identity.client_ip == "192.0.2.10"
    assert identity.user_id is None
    assert not identity.authenticated


def test_authenticated_identity_uses_auth_context():
    request = _request()
    setattr(
        request.state,
        AUTH_CONTEXT_STATE_KEY,
        AuthContext(user_id=42, role="courier", token="t"),
    )

    identity = resolve_identity(request)

    assert identity.user_id == 42
    assert identity.role == "courier"
    assert identity.client_ip == "192.0.2.10"


def test_foreign_state_object_is_ignored():
    request = _request()
    setattr(request.state, AUTH_CONTEXT_STATE_KEY, {"user_id": 42})

    assert not resolve_identity(request).authenticated
