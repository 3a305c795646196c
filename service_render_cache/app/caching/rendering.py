"""
Layout/fragment (rendering) caching.

``RenderingCache`` decorates the step that renders a template inside its
layout. For controllers that opted in with ``caches_rendering`` the whole
template+layout body is stored under a name built from the cache key and
the template and layout digests, so a template or layout change moves
every entry to a new name.
"""

import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from service_render_cache.app.caching.fragments import fragment_name_with_digest
from service_render_cache.app.caching.keys import CacheKeyResolver
from service_render_cache.app.security.isolation import RequestIsolationGuard

STRATEGY = "rendering"


@dataclass(frozen=True)
class RenderingCacheOptions:
    """Per-request rendering cache configuration set by ``caches_rendering``."""

    enabled: bool = True
    key_resolver: CacheKeyResolver = field(default_factory=CacheKeyResolver)
    isolate_session: bool = True
    store_options: Dict[str, Any] = field(default_factory=dict)


async def fragment_for(controller: Any, name: Any, options: Optional[Dict[str, Any]],
                       render: Callable[[], Awaitable[str]], strategy: str = STRATEGY) -> str:
    """Return the stored fragment, or render, store and return it."""
    content = await controller.read_fragment(name, options, strategy=strategy)
    if content is not None:
        return content

    start = time.perf_counter()
    content = await render()
    if controller.metrics:
        controller.metrics.record_render(strategy, time.perf_counter() - start)
    return await controller.write_fragment(name, content, options, strategy=strategy)


class RenderingCache:
    """Render-step decorator: receives the next render step and may short-circuit it."""

    async def render_with_layout(self, controller: Any, template: Any, layout: Optional[Any],
                                 render: Callable[[], Awaitable[str]],
                                 options: Optional[RenderingCacheOptions] = None) -> str:
        if options is None:
            options = controller.rendering_cache_options
        if not (controller.cache_configured and options is not None and options.enabled):
            return await render()

        # Resolved before isolation so key expressions may still read the real session
        cache_key = options.key_resolver.resolve(controller)
        name = fragment_name_with_digest(cache_key, controller.renderer, template, layout)

        if not options.isolate_session:
            return await fragment_for(controller, name, options.store_options, render)

        with RequestIsolationGuard(controller.request):
            return await fragment_for(controller, name, options.store_options, render)


async def cache_fragment(controller: Any, name: Any, body: Callable[[], Any], *,
                         template: Optional[Any] = None, skip_digest: bool = False,
                         **options) -> str:
    """View-level fragment cache with the session disabled while ``body`` renders.

    Unless ``skip_digest`` is set the name is prefixed with the digest of
    ``template`` (the template currently being rendered by default).
    """
    async def render() -> str:
        result = body()
        if inspect.isawaitable(result):
            result = await result
        return result

    if not controller.cache_configured:
        return await render()

    if skip_digest:
        fragment_name = name
    else:
        template = template if template is not None else controller.current_template
        fragment_name = (controller.renderer.digest_for(template), name)

    with RequestIsolationGuard(controller.request):
        return await fragment_for(controller, fragment_name, options or None, render, strategy="fragment")
