"""
Starlette/FastAPI adapter: turns HTTP requests into controller dispatches.
"""

import mimetypes
from typing import Any, Callable, Optional, Type

from fastapi import Request, Response

from service_render_cache.app.domain.controller import Controller
from service_render_cache.app.domain.request import DEFAULT_FORMAT, CacheRequest, CookieJar

MEDIA_TYPE_FORMATS = {
    "text/html": "html",
    "application/xhtml+xml": "html",
    "application/json": "json",
    "application/xml": "xml",
    "text/xml": "xml",
    "text/plain": "txt",
    "text/csv": "csv",
    "application/rss+xml": "rss",
    "application/atom+xml": "atom",
}


def negotiate_format(accept: Optional[str]) -> str:
    """First concrete media type in the Accept header, as an extension."""
    if not accept:
        return DEFAULT_FORMAT

    for media_range in accept.split(","):
        media_type = media_range.split(";", 1)[0].strip().lower()
        if not media_type or "*" in media_type:
            continue
        if media_type in MEDIA_TYPE_FORMATS:
            return MEDIA_TYPE_FORMATS[media_type]
        extension = mimetypes.guess_extension(media_type)
        if extension:
            return extension.lstrip(".")
    return DEFAULT_FORMAT


def build_cache_request(request: Request) -> CacheRequest:
    params = {**request.query_params, **request.path_params}
    # Shares the mapping owned by SessionMiddleware, when installed
    session = request.scope["session"] if "session" in request.scope else {}

    return CacheRequest(
        method=request.method,
        url=str(request.url),
        headers=request.headers,
        params=params,
        format=negotiate_format(request.headers.get("accept")),
        session=session,
        cookie_jar=CookieJar(dict(request.cookies)),
    )


def build_response(controller: Controller) -> Response:
    response = Response(
        content=controller.response.body or "",
        status_code=controller.response.status,
        media_type=controller.response.content_type,
        headers=controller.response.headers,
    )
    if not controller.request.session_options.get("skip"):
        controller.request.cookie_jar.apply_to(response)
    return response


def controller_endpoint(controller_cls: Type[Controller], action: str,
                        **dependencies: Any) -> Callable[[Request], Any]:
    """FastAPI endpoint dispatching to ``controller_cls.<action>``."""
    if action.startswith("_") or not callable(getattr(controller_cls, action, None)):
        raise AttributeError(f"The action '{action}' could not be found for {controller_cls.__name__}")

    async def endpoint(request: Request) -> Response:
        controller = controller_cls(build_cache_request(request), **dependencies)
        await controller.process(action)
        return build_response(controller)

    endpoint.__name__ = f"{controller_cls.controller_name()}_{action}"
    return endpoint
