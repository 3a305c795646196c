"""
Controller base class.

A controller instance handles exactly one request. It carries the request
and response state, runs a small before/around filter chain, renders
through the configured template renderer, and exposes the caching hooks:

    class ListsController(Controller):
        async def index(self):
            self.lists = await load_lists()

        async def show(self):
            self.list = await load_list(self.params["id"])

    ListsController.protect_from_forgery_with_cache()
    ListsController.caches_rendering("index", "show")
    ListsController.caches_action("feed", expires_in=300)
"""

import functools
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Union
from urllib.parse import parse_qsl, quote, urlencode, urlsplit

import inflection

from service_render_cache.app.caching.actions import ActionCacheFilter, expire_action
from service_render_cache.app.caching.fragments import expand_cache_key
from service_render_cache.app.caching.keys import UNSET, CacheKeyResolver, KeyExpression, expand_option
from service_render_cache.app.caching.paths import ActionCachePathBuilder, content_type_for
from service_render_cache.app.caching.rendering import RenderingCache, RenderingCacheOptions
from service_render_cache.app.caching.store import FragmentStore
from service_render_cache.app.domain.request import CacheRequest, CacheResponse
from service_render_cache.app.security.forgery import ForgeryProtectionStrategy, verify_request_headers
from shared.logging import get_logger, set_dispatch_context
from shared.metrics import MetricsCollector

ROUTING_KEYS = frozenset({"controller", "action", "id"})

_DEFAULT_LAYOUT = object()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _action_set(actions: Iterable[str]) -> Optional[FrozenSet[str]]:
    actions = frozenset(actions)
    return actions or None


@dataclass
class _Filter:
    callback: Any
    only: Optional[FrozenSet[str]] = None
    except_: Optional[FrozenSet[str]] = None
    if_: Optional[KeyExpression] = None
    unless: Optional[KeyExpression] = None

    def __post_init__(self):
        if self.if_ is not None:
            self.if_ = KeyExpression.parse(self.if_)
        if self.unless is not None:
            self.unless = KeyExpression.parse(self.unless)

    def applies(self, controller: "Controller") -> bool:
        action = controller.action_name
        if self.only is not None and action not in self.only:
            return False
        if self.except_ is not None and action in self.except_:
            return False
        if self.if_ is not None and not expand_option(controller, self.if_):
            return False
        if self.unless is not None and expand_option(controller, self.unless):
            return False
        return True


class Controller:
    """Base class for controllers whose output may be cached."""

    perform_caching: bool = True
    cache_store: Optional[FragmentStore] = None
    fragment_namespace: Optional[str] = "views"
    path_builder = ActionCachePathBuilder()
    rendering_cache = RenderingCache()
    renderer: Any = None
    url_generator: Optional[Callable[["Controller", Dict[str, Any]], str]] = None
    layout: Optional[str] = "layouts/application"
    metrics: Optional[MetricsCollector] = None

    allow_forgery_protection: bool = True
    forgery_protection_origin_check: bool = True
    log_warning_on_csrf_failure: bool = True
    forgery_protection_strategy = ForgeryProtectionStrategy.NULL_SESSION

    # Instance state owned by the controller; never read as a default cache key
    _framework_attributes = frozenset({
        "request", "response", "action_name", "action_has_layout", "rendering_cache_options",
        "current_template", "cache_store", "renderer", "metrics", "url_generator", "logger",
    })

    _before_filters: List[_Filter] = []
    _around_filters: List[_Filter] = []

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        # Filters registered on a subclass never leak into its parent
        cls._before_filters = list(cls._before_filters)
        cls._around_filters = list(cls._around_filters)

    def __init__(self, request: CacheRequest, *, cache_store: Optional[FragmentStore] = None,
                 renderer: Any = None, metrics: Optional[MetricsCollector] = None,
                 url_generator: Optional[Callable[["Controller", Dict[str, Any]], str]] = None):
        self.request = request
        self.response = CacheResponse()
        self.action_name: Optional[str] = None
        self.action_has_layout = True
        self.rendering_cache_options: Optional[RenderingCacheOptions] = None
        self.current_template: Any = None
        if cache_store is not None:
            self.cache_store = cache_store
        if renderer is not None:
            self.renderer = renderer
        if metrics is not None:
            self.metrics = metrics
        if url_generator is not None:
            self.url_generator = url_generator
        self.logger = get_logger(f"render_cache.{self.controller_path}")

    # Configuration hooks

    @classmethod
    def controller_name(cls) -> str:
        name = cls.__name__
        if name.endswith("Controller"):
            name = name[:-len("Controller")]
        return inflection.underscore(name)

    @classmethod
    def before_action(cls, callback: Callable[["Controller"], Any], *actions: str,
                      except_: Iterable[str] = (), if_: Any = None, unless: Any = None):
        cls._before_filters.append(
            _Filter(callback, _action_set(actions), _action_set(except_), if_, unless)
        )

    @classmethod
    def caches_action(cls, *actions: str, layout: Any = True, cache_path: Any = None,
                      if_: Any = None, unless: Any = None, **store_options):
        """Cache the whole response of ``actions``; extra options go to the store."""
        cache_filter = ActionCacheFilter(layout=layout, cache_path=cache_path, store_options=store_options)
        cls._around_filters.append(_Filter(cache_filter, _action_set(actions), None, if_, unless))

    @classmethod
    def caches_rendering(cls, *actions: str, layout: bool = True, cache_key: Any = UNSET,
                         if_: Any = None, unless: Any = None, **store_options):
        """Cache the rendered template+layout of ``actions`` under ``cache_key``.

        Without ``cache_key`` the key is the controller attribute named after
        the controller (plural for ``index``, singular otherwise).
        """
        options = RenderingCacheOptions(
            enabled=True,
            key_resolver=CacheKeyResolver(cache_key),
            isolate_session=bool(layout),
            store_options=store_options,
        )

        def assign_rendering_cache_options(controller: "Controller"):
            controller.rendering_cache_options = options

        cls.before_action(assign_rendering_cache_options, *actions, if_=if_, unless=unless)

    @classmethod
    def protect_from_forgery_with_cache(cls, *actions: str,
                                        with_: Union[str, ForgeryProtectionStrategy] = "null_session",
                                        except_: Iterable[str] = (),
                                        if_: Any = None, unless: Any = None):
        """Verify non-GET requests from Origin and Sec-Fetch-Site instead of a token."""
        cls.forgery_protection_strategy = ForgeryProtectionStrategy(with_)
        cls.before_action(verify_request_headers, *actions, except_=except_, if_=if_, unless=unless)

    # Request state

    @property
    def controller_path(self) -> str:
        return self.controller_name()

    @property
    def params(self) -> Dict[str, Any]:
        return self.request.params

    @property
    def cache_configured(self) -> bool:
        return bool(self.perform_caching) and self.cache_store is not None

    @property
    def protect_against_forgery(self) -> bool:
        return bool(self.allow_forgery_protection)

    # Dispatch

    async def process(self, action_name: str) -> CacheResponse:
        self.action_name = action_name
        set_dispatch_context(self.controller_path, action_name)

        for before in self._before_filters:
            if before.applies(self):
                await _maybe_await(before.callback(self))
                if self.response.performed:
                    return self.response

        step = self._run_action
        for around in reversed([f for f in self._around_filters if f.applies(self)]):
            step = functools.partial(around.callback.around, self, step)
        await step()
        return self.response

    async def _run_action(self):
        handler = getattr(self, self.action_name, None)
        if self.action_name.startswith("_") or not callable(handler):
            raise AttributeError(f"The action '{self.action_name}' could not be found for {type(self).__name__}")

        result = await _maybe_await(handler())
        if self.response.performed:
            return
        if isinstance(result, str):
            self.response.body = result
            return
        await self.render()

    # Rendering

    async def render(self, template: Any = None, *, layout: Any = _DEFAULT_LAYOUT,
                     locals: Optional[Dict[str, Any]] = None, status: Optional[int] = None) -> str:
        body = await self.render_to_body(template, layout=layout, locals=locals)
        self.response.body = body
        if status is not None:
            self.response.status = status
        if self.response.content_type is None:
            self.response.content_type = content_type_for(self.request.format)
        return body

    async def render_to_body(self, template: Any = None, *, layout: Any = _DEFAULT_LAYOUT,
                             locals: Optional[Dict[str, Any]] = None) -> str:
        template = template or f"{self.controller_path}/{self.action_name}"
        if layout is _DEFAULT_LAYOUT:
            layout = self.layout if self.action_has_layout else None
        locals = locals or {}
        self.current_template = template

        async def render_template_in_layout() -> str:
            content = await self.renderer.render_template(self, template, locals)
            if layout is None:
                return content
            return await self.renderer.render_layout(self, layout, content, locals)

        return await self.rendering_cache.render_with_layout(self, template, layout, render_template_in_layout)

    async def render_to_string(self, body: str, layout: bool = True) -> str:
        """Wrap already-rendered ``body`` in the current layout."""
        if not layout or self.layout is None:
            return body
        return await self.renderer.render_layout(self, self.layout, body, {})

    # URL generation

    def url_for(self, options: Union[Dict[str, Any], str, None] = None) -> str:
        """URL for ``options``; the current request URL when no route keys are given.

        Routes are ``/<controller>/<action>[/<id>]``. ``format`` is never part
        of the generated URL: cache paths carry it as their extension.
        """
        if isinstance(options, str):
            return options
        options = dict(options or {})
        if self.url_generator is not None:
            return self.url_generator(self, options)

        options.pop("format", None)
        parts = urlsplit(self.request.url)
        if ROUTING_KEYS.intersection(options):
            segments = [options.pop("controller", self.controller_path), options.pop("action", self.action_name)]
            if "id" in options:
                segments.append(options.pop("id"))
            path = "/" + "/".join(quote(str(segment)) for segment in segments)
            query = []
        else:
            path = parts.path or "/"
            query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "format"]

        query.extend(sorted((str(k), str(v)) for k, v in options.items()))
        url = f"{parts.scheme}://{parts.netloc}{path}" if parts.netloc else path
        if query:
            url = f"{url}?{urlencode(query)}"
        return url

    # Fragment store access

    def fragment_cache_key(self, name: Any) -> str:
        return expand_cache_key(name, self.fragment_namespace)

    async def read_fragment(self, name: Any, options: Optional[Dict[str, Any]] = None,
                            strategy: str = "fragment") -> Optional[str]:
        if not self.cache_configured:
            return None

        key = self.fragment_cache_key(name)
        content = await self.cache_store.read(key, options)
        hit = content is not None
        self.logger.debug("Read fragment", key=key, hit=hit, strategy=strategy)
        if self.metrics:
            self.metrics.record_cache_read(strategy, hit)
        return content

    async def write_fragment(self, name: Any, content: str, options: Optional[Dict[str, Any]] = None,
                             strategy: str = "fragment") -> str:
        if not self.cache_configured:
            return content

        key = self.fragment_cache_key(name)
        await self.cache_store.write(key, content, options)
        self.logger.debug("Write fragment", key=key, strategy=strategy, size=len(content))
        if self.metrics:
            self.metrics.increment_counter("render_cache_writes_total", strategy=strategy)
        return content

    async def expire_fragment(self, name: Any, options: Optional[Dict[str, Any]] = None):
        if not self.cache_configured:
            return

        key = self.fragment_cache_key(name)
        await self.cache_store.delete(key, options)
        self.logger.info("Expired fragment", key=key)
        if self.metrics:
            self.metrics.increment_counter("render_cache_expirations_total")

    async def expire_action(self, options: Union[Dict[str, Any], str, None] = None):
        """Expire cached responses; see ``caching.actions.expire_action``."""
        await expire_action(self, options)
