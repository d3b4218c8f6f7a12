"""Resolve the caller identity (client IP plus optional user) from a request."""

import ipaddress

from starlette.requests import HTTPConnection

from src.core.context import AuthContext, RequestIdentity

AUTH_CONTEXT_STATE_KEY = "auth_context"


def _strip_port(address: str) -> str:
    """Drop a trailing ``:port`` from ``host:port`` or ``[v6]:port``."""
    if address.startswith("["):
        host, sep, _ = address[1:].partition("]")
        return host if sep else address
    if address.count(":") == 1:
        host, _, port = address.partition(":")
        if port.isdigit():
            return host
    return address


def get_client_ip(request: HTTPConnection) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if not request.client or not request.client.host:
        return "unknown"

    raw = request.client.host
    try:
        host = _strip_port(raw)
        ipaddress.ip_address(host)
    except ValueError:
        return raw
    return host


def get_auth_context(request: HTTPConnection) -> AuthContext | None:
    auth_context = getattr(request.state, AUTH_CONTEXT_STATE_KEY, None)
    if isinstance(auth_context, AuthContext):
        return auth_context
    return None


def resolve_identity(request: HTTPConnection) -> RequestIdentity:
    """Client IP plus, when the auth middleware validated a token, user and role."""
    client_ip = get_client_ip(request)
    auth_context = get_auth_context(request)
    if auth_context is None:
        return RequestIdentity(client_ip=client_ip)
    return RequestIdentity(
        client_ip=client_ip,
        user_id=auth_context.user_id,
        role=auth_context.role,
    )
