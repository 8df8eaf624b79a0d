"""
Docs renderer service.
"""

import secrets
from typing import Any, Dict, Optional

from fastapi import Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig
from .adapters.alternate_renderer import AlternateRenderer
from .adapters.language_variants import LanguageVariantResolver
from .adapters.template_engine import TemplateEngine
from .caching.page_cache import PageCache, page_cache_prefix
from .domain.models import PageRequest
from .domain.site import PageIndex, SiteContextBuilder
from .rendering.connection_guard import ConnectionGuard
from .rendering.pipeline import PipelineSettings, RenderOutcome, RenderPipeline


CSRF_COOKIE = "csrftoken"
# nginx's "client closed request"; nothing reads it once the peer is gone
CLIENT_CLOSED_REQUEST = 499


class RendererService(BaseService):
    """Docs renderer service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        page_index: Optional[PageIndex] = None,
        page_cache: Optional[PageCache] = None,
        alternate_renderer: Optional[AlternateRenderer] = None,
        site_data: Optional[Dict[str, Any]] = None,
        graphql: Optional[Dict[str, Any]] = None,
        layouts: Optional[Dict[str, str]] = None,
    ):
        super().__init__("renderer", 8000, config=config)

        self.template_engine = TemplateEngine()
        self.page_index = page_index or PageIndex()
        for page in self.page_index.pages.values():
            page.bind(self.template_engine)

        self.context_builder = SiteContextBuilder(
            self.page_index,
            site_data=site_data,
            layouts=layouts,
            graphql=graphql,
            site_name=self.config.site_name,
            languages=self.config.languages,
        )

        self.page_cache = page_cache or PageCache(
            self.config.redis_url,
            database_number=self.config.page_cache_db,
            prefix=page_cache_prefix(self.config.release_version),
            expire_in_ms=self.config.page_cache_ttl_ms,
            allow_get_failures=True,
            allow_set_failures=True,
            name="page-cache",
            metrics=self.metrics,
        )

        self.pipeline_settings = PipelineSettings.from_config(self.config)
        if alternate_renderer is None and self.pipeline_settings.alternate_renderer_enabled:
            alternate_renderer = AlternateRenderer(self.config.alternate_renderer_url)
        self.alternate_renderer = alternate_renderer

        self.pipeline = RenderPipeline(
            settings=self.pipeline_settings,
            page_cache=self.page_cache,
            template_engine=self.template_engine,
            language_variants=LanguageVariantResolver(self.config.languages),
            layouts=self.context_builder.layouts,
            alternate_renderer=self.alternate_renderer,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            if self.pipeline_settings.caching_allowed:
                await self.page_cache.start()
            self.logger.info(
                "Renderer started",
                execution_mode=self.pipeline_settings.execution_mode.value,
                caching=self.pipeline_settings.caching_allowed,
                alternate_renderer=self.pipeline_settings.alternate_renderer_enabled,
                pages=len(self.page_index.pages),
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.page_cache.stop(drain_timeout=self.config.drain_timeout_seconds)
            if self.alternate_renderer is not None:
                await self.alternate_renderer.close()

        self._setup_renderer_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.renderer_service = self

    def _csrf_token(self, request: Request) -> str:
        """Reuse the visitor's token cookie, or issue a fresh one."""
        return request.cookies.get(CSRF_COOKIE) or secrets.token_urlsafe(32)

    def _setup_renderer_routes(self):
        """Set up the catch-all page route."""

        @self.app.api_route("/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
        async def render_page(request: Request, path: str):
            """Render the documentation page at ``path``."""
            csrf_token = self._csrf_token(request)
            context = self.context_builder.build(request.scope.get("path") or request.url.path)
            page_request = PageRequest.from_request(request, context, csrf_token)

            result = await self.pipeline.handle(page_request, ConnectionGuard.for_request(request))

            if result.outcome is RenderOutcome.ABORTED:
                return Response(status_code=CLIENT_CLOSED_REQUEST)

            response = result.response
            if result.outcome is not RenderOutcome.ALTERNATE_RENDERED and CSRF_COOKIE not in request.cookies:
                response.set_cookie(CSRF_COOKIE, csrf_token, httponly=True, samesite="lax")
            return response

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check renderer dependencies."""
        dependencies = {}
        if self.pipeline_settings.caching_allowed:
            dependencies["page_cache"] = "ok" if await self.page_cache.ping() else "degraded"
        else:
            dependencies["page_cache"] = "disabled"
        return dependencies


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = RendererService(config, **kwargs)
    return service.app


def main():
    """Run the renderer under uvicorn."""
    service = RendererService()
    service.run()


if __name__ == "__main__":
    main()
