"""
Request isolation for cached renders.

While a cached body is rendered, the request's session, flash, cookie jar and
session options are replaced by inert stand-ins so the stored bytes can
never capture or depend on one user's state. The originals are restored on
every exit path.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from service_render_cache.app.domain.request import CookieJar
from shared.logging import get_logger

logger = get_logger("render_cache.isolation")


class NullSession(dict):
    """Session that is never loaded and never persisted."""

    loaded = False
    exists = False
    id = None

    def destroy(self):
        self.clear()


class NullCookieJar(CookieJar):
    """Cookie jar that reads as empty and drops every write."""

    def __init__(self, cookies: Optional[Dict[str, str]] = None):
        super().__init__()

    def __setitem__(self, key, value):
        pass

    def set(self, key: str, value: str, **attrs):
        pass

    def delete(self, key: str, **attrs):
        pass

    def update(self, *args, **kwargs):
        pass

    def setdefault(self, key, default=None):
        return default


@dataclass
class IsolatedRequestState:
    session: Any
    flash: Any
    cookie_jar: Any
    session_options: Any

    @classmethod
    def capture(cls, request: Any) -> "IsolatedRequestState":
        return cls(
            session=request.session,
            flash=request.flash,
            cookie_jar=request.cookie_jar,
            session_options=request.session_options,
        )

    def restore(self, request: Any):
        request.session = self.session
        request.flash = self.flash
        request.cookie_jar = self.cookie_jar
        request.session_options = self.session_options


def disable_session(request: Any):
    """Swap in the inert session state without restoring it afterwards."""
    request.session = NullSession()
    request.flash = None
    request.session_options = {"skip": True}
    request.cookie_jar = NullCookieJar()


class RequestIsolationGuard:
    """Context manager installing inert session state for the guarded block.

        with RequestIsolationGuard(controller.request):
            body = await render()
    """

    def __init__(self, request: Any):
        self.request = request
        self.snapshot: Optional[IsolatedRequestState] = None

    def __enter__(self):
        self.snapshot = IsolatedRequestState.capture(self.request)
        disable_session(self.request)
        return self.request

    def __exit__(self, exc_type, exc, tb):
        self.snapshot.restore(self.request)
        if exc is not None:
            logger.debug("Session restored after failed isolated render", error=str(exc))
        return False


async def with_isolated_session(context: Any, body: Callable[[], Union[Any, Awaitable[Any]]]) -> Any:
    """Run ``body`` with ``context``'s request isolated; returns the body's result."""
    request = getattr(context, "request", context)
    with RequestIsolationGuard(request):
        result = body()
        if inspect.isawaitable(result):
            result = await result
        return result
