"""
Docs renderer service package.

The renderer serves documentation pages behind a read-through page cache:
- Cache key normalization: query strings reduced to the parameters that
  change the rendered output
- Cache-aside reads and post-response writes against Redis
- Cooperative abort when the client has already disconnected
- Dispatch between the legacy template renderer and the alternate renderer

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.caching: Cache key normalizer and Redis page cache.
- app.rendering: Render pipeline and connection guard.
- app.adapters: Template engine, mini TOC, language variants and the
  alternate renderer proxy.
- app.domain: Page model and request context assembly.
"""
