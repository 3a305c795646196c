"""
Render cache service package.

Caches server-rendered output in two ways:
- Action caching: whole response bodies keyed by the canonical request path
- Rendering caching: template+layout bodies keyed by a cache key and the
  template/layout digests

Structure:
- app.main: FastAPI service wiring.
- app.caching: Key resolution, fragment naming, cache paths, store adapters
  and the two caching strategies.
- app.security: Request isolation and cache-aware forgery protection.
- app.domain: Controller base class, request state, templates and the
  Starlette adapter.
"""
