"""
Render cache service: hosts cached controllers behind FastAPI.
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Type

from service_render_cache.app.caching.store import FragmentStore, RedisFragmentStore, build_fragment_store
from service_render_cache.app.domain.controller import Controller
from service_render_cache.app.domain.routing import controller_endpoint
from service_render_cache.app.domain.templates import DictTemplateRenderer
from service_render_cache.app.security.forgery import ForgeryProtectionStrategy
from shared.base_service import BaseService


class RenderCacheService(BaseService):
    """Service wiring controllers to the fragment store and template renderer."""

    def __init__(self, templates: Optional[Mapping[str, Any]] = None,
                 cache_store: Optional[FragmentStore] = None):
        super().__init__("render_cache", 8000)
        self.cache_store = cache_store if cache_store is not None else build_fragment_store(self.config)
        self.renderer = DictTemplateRenderer(templates or {})

        @self.app.on_event("shutdown")
        async def _shutdown():
            if isinstance(self.cache_store, RedisFragmentStore):
                await self.cache_store.close()

        self.logger.info(
            "Render cache service configured",
            store=type(self.cache_store).__name__,
            perform_caching=self.config.perform_caching,
        )

    def configure_controller(self, controller_cls: Type[Controller]):
        """Apply service configuration to a controller class."""
        controller_cls.perform_caching = self.config.perform_caching
        controller_cls.fragment_namespace = self.config.fragment_namespace
        controller_cls.allow_forgery_protection = self.config.allow_forgery_protection
        controller_cls.forgery_protection_origin_check = self.config.forgery_protection_origin_check
        controller_cls.log_warning_on_csrf_failure = self.config.log_warning_on_csrf_failure
        if "forgery_protection_strategy" not in controller_cls.__dict__:
            controller_cls.forgery_protection_strategy = ForgeryProtectionStrategy(
                self.config.forgery_protection_strategy
            )

    def mount(self, path: str, controller_cls: Type[Controller], action: str,
              methods: Iterable[str] = ("GET",)):
        """Route ``path`` to ``controller_cls.<action>``."""
        self.configure_controller(controller_cls)
        endpoint = controller_endpoint(
            controller_cls,
            action,
            cache_store=self.cache_store,
            renderer=self.renderer,
            metrics=self.metrics,
        )
        self.app.add_api_route(path, endpoint, methods=list(methods))
        self.logger.debug("Mounted controller action", path=path,
                          controller=controller_cls.__name__, action=action)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check the fragment store."""
        return {"fragment_store": "ok" if await self.cache_store.ping() else "error"}


def create_app(templates: Optional[Mapping[str, Any]] = None, cache_store: Optional[FragmentStore] = None):
    """Create FastAPI app instance."""
    service = RenderCacheService(templates=templates, cache_store=cache_store)
    return service.app


if __name__ == "__main__":
    RenderCacheService().run()
