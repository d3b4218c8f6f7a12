"""Rate limiting middleware for FastAPI."""

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.api.core.identity import resolve_identity
from src.services.rate_limit.limiter import RateLimiter
from src.utils.logger import get_logger

logger = get_logger(__name__)

TOO_MANY_REQUESTS_BODY = "Too many requests. Please try again later."


class RateLimitMiddleware:
    """Reject over-limit callers with 429, tag everyone else's responses.

    Must sit inside the auth middleware so the caller's ``AuthContext`` is
    already on ``request.state`` when the identity is resolved.
    """

    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: RateLimiter | None = None,
        excluded_paths: list[str] | None = None,
    ) -> None:
        self.app = app
        self.rate_limiter = rate_limiter
        self.excluded_paths = excluded_paths or []

    def _get_rate_limiter(self, scope: Scope) -> RateLimiter | None:
        if self.rate_limiter is not None:
            return self.rate_limiter
        app = scope.get("app")
        if app is None:
            return None
        return getattr(app.state, "rate_limiter", None)

    def _is_excluded(self, path: str) -> bool:
        return any(
            path == excluded or path.startswith(excluded.rstrip("/") + "/")
            for excluded in self.excluded_paths
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._is_excluded(scope["path"]):
            await self.app(scope, receive, send)
            return

        rate_limiter = self._get_rate_limiter(scope)
        if rate_limiter is None:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        identity = resolve_identity(request)
        decision = await rate_limiter.check(identity)

        if not decision.is_allowed:
            logger.info(
                "Request rate limited",
                identity=str(identity),
                state=decision.state.value,
                path=request.url.path,
                method=request.method,
            )
            response = PlainTextResponse(
                TOO_MANY_REQUESTS_BODY,
                status_code=429,
                headers=decision.headers,
            )
            await response(scope, receive, send)
            return

        headers = decision.headers
        if not headers:
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in headers.items():
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_headers)
