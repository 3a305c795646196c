"""
Whole-response (action) caching.

Action caching stores the entire response body of an action under a path
derived from the request URL. Unlike a static page cache every request
still goes through the controller, so before-filters (authentication,
forgery checks) run before a cached body is served.

    ListsController.caches_action("index", "show")
    ListsController.caches_action("feed", cache_path=lambda c: f"/lists/{c.params['id']}/feed")
    ListsController.caches_action("archive", layout=False, expires_in=3600)

With ``layout=False`` only the action's own content is stored and the
current layout is rendered around it on every response.

Note that the negotiated format (Accept header) is not part of the content
type stored with an entry; pass the format in the URL to cache different
representations safely.
"""

import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from service_render_cache.app.caching.keys import KeyExpression, expand_option
from service_render_cache.app.caching.paths import ActionCachePathBuilder, content_type_for

STRATEGY = "action"


def caching_allowed(controller: Any) -> bool:
    """Only successful GET/HEAD responses are written to the store."""
    request = controller.request
    return (request.is_get or request.is_head) and controller.response.status == 200


async def save_fragment(controller: Any, name: str, options: Optional[Dict[str, Any]]) -> str:
    """Capture the rendered body and persist it when the response is cacheable."""
    body = controller.response.body
    content = "".join(body) if isinstance(body, (list, tuple)) else (body or "")

    if caching_allowed(controller):
        return await controller.write_fragment(name, content, options, strategy=STRATEGY)

    controller.logger.debug(
        "Action response not cached",
        path=name,
        method=controller.request.method,
        status=controller.response.status,
    )
    if controller.metrics:
        reason = "status" if controller.response.status != 200 else "method"
        controller.metrics.increment_counter("render_cache_skipped_writes_total", reason=reason)
    return content


class ActionCacheFilter:
    """Around-filter serving and storing whole action responses."""

    def __init__(self, layout: Any = True, cache_path: Any = None,
                 store_options: Optional[Dict[str, Any]] = None,
                 path_builder: Optional[ActionCachePathBuilder] = None):
        self.cache_layout = KeyExpression.parse(layout)
        self.cache_path = KeyExpression.parse(cache_path)
        self.store_options = store_options or {}
        self.path_builder = path_builder

    async def around(self, controller: Any, next_step: Callable[[], Awaitable[None]]):
        if not controller.cache_configured:
            await next_step()
            return

        cache_layout = expand_option(controller, self.cache_layout)
        path_options = expand_option(controller, self.cache_path)
        path_builder = self.path_builder or controller.path_builder
        cache_path = path_builder.for_controller(controller, path_options or {})

        body = await controller.read_fragment(cache_path.path, self.store_options, strategy=STRATEGY)

        if body is None:
            start = time.perf_counter()
            if not cache_layout:
                controller.action_has_layout = False
            try:
                await next_step()
            finally:
                controller.action_has_layout = True
            body = await save_fragment(controller, cache_path.path, self.store_options)
            if controller.metrics:
                controller.metrics.record_render(STRATEGY, time.perf_counter() - start)

        if not cache_layout:
            body = await controller.render_to_string(body, layout=True)

        controller.response.body = body
        content_type = content_type_for(cache_path.extension)
        if content_type:
            controller.response.content_type = content_type


async def expire_action(controller: Any, options: Union[Dict[str, Any], str, None] = None,
                        path_builder: Optional[ActionCachePathBuilder] = None):
    """Delete the cached response(s) ``options`` describe.

    The extension comes only from ``options["format"]``, never from the
    request issuing the expiry. ``options["action"]`` may be a list, in which
    case each action is expired independently.
    """
    if not controller.cache_configured:
        return

    if isinstance(options, dict) and isinstance(options.get("action"), (list, tuple)):
        for action in options["action"]:
            await expire_action(controller, {**options, "action": action}, path_builder)
        return

    path_builder = path_builder or controller.path_builder
    cache_path = path_builder.for_controller(controller, options or {}, infer_extension=False)
    await controller.expire_fragment(cache_path.path)
