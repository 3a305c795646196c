"""
Cache-aware request forgery protection.

A cached response cannot embed a per-session authenticity token, so for
controllers that cache their output a non-GET request is accepted only
when the transport proves it is same-origin: the Origin header must equal
the request's base URL and ``Sec-Fetch-Site`` must be ``same-origin``.
Both are required because neither is reliable on its own.
"""

from enum import Enum
from typing import Any

from service_render_cache.app.security.isolation import disable_session
from shared.errors import ForgeryRejection

SAFE_METHODS = frozenset({"GET", "HEAD"})


class ForgeryProtectionStrategy(str, Enum):
    NULL_SESSION = "null_session"
    RESET_SESSION = "reset_session"
    EXCEPTION = "exception"


class ForgeryGate:
    """Decides whether a request may skip authenticity token verification."""

    def __init__(self, protect_against_forgery: bool = True, origin_check: bool = True):
        self.protect_against_forgery = protect_against_forgery
        self.origin_check = origin_check

    def is_safe_to_cache(self, request: Any) -> bool:
        return (
            not self.protect_against_forgery
            or request.method in SAFE_METHODS
            or (self.valid_request_origin(request) and self.valid_request_fetch_metadata(request))
        )

    def valid_request_origin(self, request: Any) -> bool:
        if not self.origin_check:
            return True
        return request.origin is not None and request.origin == request.base_url

    @staticmethod
    def valid_request_fetch_metadata(request: Any) -> bool:
        return request.headers.get("sec-fetch-site") == "same-origin"

    def unverified_request_warning(self, request: Any) -> str:
        if self.valid_request_origin(request):
            return (
                f"HTTP Sec-Fetch-Site header ({request.headers.get('sec-fetch-site')}) "
                "didn't match 'same-origin'"
            )
        return f"HTTP Origin header ({request.origin}) didn't match request.base_url ({request.base_url})"


def handle_unverified_request(controller: Any, strategy: ForgeryProtectionStrategy):
    """Apply the controller's standard forgery-failure handling."""
    strategy = ForgeryProtectionStrategy(strategy)
    request = controller.request

    if strategy is ForgeryProtectionStrategy.NULL_SESSION:
        disable_session(request)
    elif strategy is ForgeryProtectionStrategy.RESET_SESSION:
        request.reset_session()
    else:
        raise ForgeryRejection(details={
            "method": request.method,
            "origin": request.origin,
            "sec_fetch_site": request.headers.get("sec-fetch-site"),
        })


async def verify_request_headers(controller: Any):
    """Before-filter installed by ``protect_from_forgery_with_cache``."""
    gate = ForgeryGate(
        protect_against_forgery=controller.protect_against_forgery,
        origin_check=controller.forgery_protection_origin_check,
    )
    request = controller.request

    if gate.is_safe_to_cache(request):
        if controller.metrics:
            controller.metrics.increment_counter("forgery_checks_total", result="verified")
        return

    if controller.log_warning_on_csrf_failure:
        controller.logger.warning(
            "Can't verify request for cached controller",
            reason=gate.unverified_request_warning(request),
            method=request.method,
            path=request.url,
        )
    if controller.metrics:
        controller.metrics.increment_counter("forgery_checks_total", result="rejected")

    handle_unverified_request(controller, controller.forgery_protection_strategy)
