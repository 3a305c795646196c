"""
Request and response state seen by controllers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from starlette.datastructures import Headers
from starlette.responses import Response

DEFAULT_FORMAT = "html"


class CookieJar(dict):
    """Incoming cookies plus the ``Set-Cookie`` writes made while handling the request."""

    def __init__(self, cookies: Optional[Dict[str, str]] = None):
        super().__init__(cookies or {})
        self.pending: List[Dict[str, Any]] = []

    def set(self, key: str, value: str, **attrs):
        self[key] = value
        self.pending.append({"key": key, "value": value, **attrs})

    def delete(self, key: str, **attrs):
        self.pop(key, None)
        self.pending.append({"key": key, "delete": True, **attrs})

    def apply_to(self, response: Response):
        for cookie in self.pending:
            cookie = dict(cookie)
            if cookie.pop("delete", False):
                response.delete_cookie(**cookie)
            else:
                response.set_cookie(**cookie)


class CacheRequest:
    """The parts of an HTTP request the caching pipeline reads or isolates."""

    def __init__(
        self,
        method: str = "GET",
        url: str = "http://localhost/",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        format: str = DEFAULT_FORMAT,
        session: Optional[Dict[str, Any]] = None,
        flash: Optional[Dict[str, Any]] = None,
        cookie_jar: Optional[CookieJar] = None,
        session_options: Optional[Dict[str, Any]] = None,
    ):
        self.method = method.upper()
        self.url = url
        self.headers = Headers(headers=headers or {})
        self.params = dict(params or {})
        self.format = format
        self.session = session if session is not None else {}
        self.flash = flash if flash is not None else {}
        self.cookie_jar = cookie_jar if cookie_jar is not None else CookieJar()
        self.session_options = session_options if session_options is not None else {}

    @property
    def is_get(self) -> bool:
        return self.method == "GET"

    @property
    def is_head(self) -> bool:
        return self.method == "HEAD"

    @property
    def base_url(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def origin(self) -> Optional[str]:
        return self.headers.get("origin")

    def reset_session(self):
        # Cleared in place: the host's session middleware holds the same mapping
        self.session.clear()
        self.flash = {}

    def __repr__(self):
        return f"<CacheRequest {self.method} {self.url}>"


@dataclass
class CacheResponse:
    status: int = 200
    body: Optional[str] = None
    content_type: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def performed(self) -> bool:
        return self.body is not None
