"""
Request render pipeline: cache-aside page rendering for the Renderer Service.
"""

import re
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, TYPE_CHECKING

from fastapi import Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.background import BackgroundTask

from shared.config import BaseConfig, ExecutionMode
from shared.logging import get_logger, get_request_id
from ..adapters.mini_toc import get_mini_toc_items
from ..caching.cache_key import CacheKeyNormalizer, DEFAULT_CACHEABLE_QUERY_PARAMS
from ..caching.page_cache import PAGE_CACHE_EXPIRATION_MS
from .connection_guard import AlwaysConnected, ConnectionGuard
from .lookup import deep_get

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..adapters.alternate_renderer import AlternateRenderer
    from ..adapters.language_variants import LanguageVariantResolver
    from ..adapters.template_engine import TemplateEngine
    from ..caching.page_cache import PageCache
    from ..domain.models import Page, PageRequest


CSRF_PLACEHOLDER = "$CSRFTOKEN$"
DEBUG_JSON_PARAM = "json"
DEBUG_JSON_MESSAGE = (
    "The full context object is too big to display! Try one of the individual keys below, "
    "e.g. ?json=page. You can also access nested props like ?json=site.data.ui"
)
HOMEPAGE_PATH = re.compile(r"^/[a-z]{2}(-[a-z]{2})?/?$")
NOT_FOUND_LAYOUT = "error-404"
SITE_NAME_PATH = "site.data.ui.header.site_name"

# Path suffix -> key under context["graphql"] holding a prerendered fragment
PRERENDERED_FRAGMENTS: Tuple[Tuple[str, str], ...] = (
    ("graphql/reference/objects", "prerendered_objects_for_current_version"),
    ("graphql/reference/input-objects", "prerendered_input_objects_for_current_version"),
)


class RendererChoice(str, Enum):
    """Which renderer produces the response for a path."""

    LEGACY = "legacy"
    ALTERNATE = "alternate"


class RenderOutcome(str, Enum):
    """Terminal states of the pipeline."""

    NOT_FOUND = "not_found"
    HEAD_ACKNOWLEDGED = "head_acknowledged"
    CACHE_HIT = "cache_hit"
    DEBUG_JSON = "debug_json"
    ALTERNATE_RENDERED = "alternate_rendered"
    RENDERED = "rendered"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PipelineSettings:
    """Execution-mode and routing decisions fixed at construction time."""

    execution_mode: ExecutionMode = ExecutionMode.LOCAL
    ci: bool = False
    alternate_renderer_enabled: bool = False
    alternate_routes: FrozenSet[str] = frozenset()
    cacheable_query_params: Tuple[str, ...] = DEFAULT_CACHEABLE_QUERY_PARAMS
    cache_expiration_ms: int = PAGE_CACHE_EXPIRATION_MS
    site_name: str = "Docs"

    @classmethod
    def from_config(cls, config: BaseConfig) -> "PipelineSettings":
        return cls(
            execution_mode=config.execution_mode,
            ci=config.ci,
            alternate_renderer_enabled=config.feature_alternate_renderer,
            alternate_routes=frozenset(config.alternate_routes),
            cacheable_query_params=tuple(config.cacheable_query_params),
            cache_expiration_ms=config.page_cache_ttl_ms,
            site_name=config.site_name,
        )

    @property
    def caching_allowed(self) -> bool:
        return not self.ci and self.execution_mode != ExecutionMode.TEST

    @property
    def debug_json_allowed(self) -> bool:
        return self.execution_mode != ExecutionMode.PRODUCTION


@dataclass
class PipelineResult:
    """What the pipeline decided; ``response`` is ``None`` only when aborted."""

    outcome: RenderOutcome
    response: Optional[Response] = None
    cache_key: Optional[str] = None
    cache_write_scheduled: bool = False
    abort_stage: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict, repr=False)


class RenderPipeline:
    """Render a resolved page, reading and filling the page cache around it."""

    def __init__(
        self,
        *,
        settings: PipelineSettings,
        page_cache: "PageCache",
        template_engine: "TemplateEngine",
        language_variants: "LanguageVariantResolver",
        layouts: Mapping[str, str],
        alternate_renderer: Optional["AlternateRenderer"] = None,
        mini_toc: Callable[[str, int], List[Dict[str, Any]]] = get_mini_toc_items,
        key_normalizer: Optional[CacheKeyNormalizer] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        if settings.alternate_renderer_enabled and alternate_renderer is None:
            raise ValueError("alternate_renderer is required when the alternate renderer feature is enabled")

        self.settings = settings
        self.page_cache = page_cache
        self.template_engine = template_engine
        self.language_variants = language_variants
        self.layouts = dict(layouts)
        self.alternate_renderer = alternate_renderer
        self.mini_toc = mini_toc
        self.key_normalizer = key_normalizer or CacheKeyNormalizer(settings.cacheable_query_params)
        self.metrics = metrics
        self.logger = get_logger("renderer.pipeline")

    # Decisions

    def choose_renderer(self, path: str) -> RendererChoice:
        if self.settings.alternate_renderer_enabled and path in self.settings.alternate_routes:
            return RendererChoice.ALTERNATE
        return RendererChoice.LEGACY

    def is_debug_json_request(self, request: "PageRequest") -> bool:
        return self.settings.debug_json_allowed and DEBUG_JSON_PARAM in request.query

    def is_cacheable(self, request: "PageRequest", renderer: RendererChoice, debug_json: bool) -> bool:
        return (
            self.settings.caching_allowed
            and request.method == "GET"
            and not debug_json
            and renderer is RendererChoice.LEGACY
        )

    @staticmethod
    def add_csrf(request: "PageRequest", text: str) -> str:
        return text.replace(CSRF_PLACEHOLDER, request.csrf_token, 1)

    # Pipeline

    async def handle(self, request: "PageRequest", guard: Optional[ConnectionGuard] = None) -> PipelineResult:
        guard = guard or AlwaysConnected()
        page = request.context.get("page")

        if page is None:
            return await self._not_found(request)

        if request.method == "HEAD":
            return self._finish(RenderOutcome.HEAD_ACKNOWLEDGED, Response(status_code=200))

        cache_key = self.key_normalizer.normalize(request.original_url)
        renderer = self.choose_renderer(request.path)
        debug_json = self.is_debug_json_request(request)
        cacheable = self.is_cacheable(request, renderer, debug_json)

        if cacheable:
            if await guard.is_dropped():
                return self._abort("before_cache_read", cache_key)

            cached_html = await self.page_cache.get(cache_key)
            if cached_html:
                if await guard.is_dropped():
                    return self._abort("after_cache_read", cache_key)

                self.logger.info("Serving from cached version", cache_key=cache_key)
                if self.metrics:
                    self.metrics.increment_counter("page_sent_from_cache_total")
                return self._finish(
                    RenderOutcome.CACHE_HIT,
                    HTMLResponse(self.add_csrf(request, cached_html)),
                    cache_key=cache_key,
                )

        context = self._build_context(request, page)

        if await guard.is_dropped():
            return self._abort("before_render", cache_key)

        with self._timed("page"):
            context["rendered_page"] = await context["page"].render(context)

        if await guard.is_dropped():
            return self._abort("after_render", cache_key)

        self._attach_mini_toc(request, context)
        self._finalize_title(request, context)

        if debug_json:
            return self._finish(RenderOutcome.DEBUG_JSON, self._debug_json(request, context), context=context)

        if renderer is RendererChoice.ALTERNATE:
            response = await self.alternate_renderer.handle(request)
            return self._finish(RenderOutcome.ALTERNATE_RENDERED, response, context=context)

        with self._timed("layout"):
            output = await self.template_engine.parse_and_render(context["current_layout"], context)

        # Background tasks run only after the response body has been sent
        cache_write = None
        if cacheable:
            cache_write = BackgroundTask(
                self.page_cache.write_behind,
                cache_key,
                output,
                self.settings.cache_expiration_ms,
                request_id=get_request_id(),
                path=request.path,
            )
        response = HTMLResponse(self.add_csrf(request, output), background=cache_write)

        return self._finish(
            RenderOutcome.RENDERED,
            response,
            cache_key=cache_key,
            cache_write_scheduled=cacheable,
            context=context,
        )

    async def _not_found(self, request: "PageRequest") -> PipelineResult:
        redirect_target = request.context.get("redirect_not_found")
        if self.settings.execution_mode != ExecutionMode.TEST and redirect_target:
            self.logger.error(
                "Tried to redirect to a page that was not found",
                path=request.path,
                redirect_target=redirect_target,
            )

        html = await self.template_engine.parse_and_render(self.layouts[NOT_FOUND_LAYOUT], request.context)
        return self._finish(RenderOutcome.NOT_FOUND, HTMLResponse(self.add_csrf(request, html), status_code=404))

    def _build_context(self, request: "PageRequest", page: "Page") -> Dict[str, Any]:
        # Derived fields go on a copy so concurrent requests never share them
        page = page.model_copy()
        page.language_variants = self.language_variants.get_language_variants(request.path)

        context = dict(request.context)
        context["page"] = page
        return context

    def _attach_mini_toc(self, request: "PageRequest", context: Dict[str, Any]) -> None:
        page = context["page"]
        if page.show_mini_toc:
            context["mini_toc_items"] = self.mini_toc(context["rendered_page"], page.mini_toc_max_heading_level)

        graphql = context.get("graphql") or {}
        for suffix, fragment_key in PRERENDERED_FRAGMENTS:
            if not request.path.endswith(suffix):
                continue
            fragment = graphql.get(fragment_key)
            if not fragment:
                self.logger.warning("Prerendered fragment missing", path=request.path, fragment=fragment_key)
                continue
            # Markdown-sourced items first, then the prerendered ones
            context["mini_toc_items"] = list(context.get("mini_toc_items") or []) + list(fragment.get("mini_toc") or [])
            context["rendered_page"] = context["rendered_page"] + fragment.get("html", "")

    def _finalize_title(self, request: "PageRequest", context: Dict[str, Any]) -> None:
        page = context["page"]
        page.full_title = page.title

        if not HOMEPAGE_PATH.match(request.path):
            site_name = deep_get(context, SITE_NAME_PATH) or self.settings.site_name
            page.full_title = f"{page.full_title} - {site_name}"

    def _debug_json(self, request: "PageRequest", context: Dict[str, Any]) -> JSONResponse:
        key_path = request.query.get(DEBUG_JSON_PARAM) or ""
        if len(key_path) > 1:
            # deep reference: ?json=page.title
            return JSONResponse(jsonable_encoder(deep_get(context, key_path)))

        # dump all the keys: ?json
        return JSONResponse({
            "message": DEBUG_JSON_MESSAGE,
            "keys": list(context.keys()),
        })

    def _timed(self, renderer: str):
        if self.metrics is None:
            return nullcontext()
        return self.metrics.time_operation("page_render_duration_seconds", renderer=renderer)

    def _abort(self, stage: str, cache_key: Optional[str]) -> PipelineResult:
        self.logger.info("Stopped processing, connection dropped", stage=stage, cache_key=cache_key)
        if self.metrics:
            self.metrics.increment_counter("requests_aborted_total", stage=stage)
        result = self._finish(RenderOutcome.ABORTED, None, cache_key=cache_key)
        result.abort_stage = stage
        return result

    def _finish(
        self,
        outcome: RenderOutcome,
        response: Optional[Response],
        *,
        cache_key: Optional[str] = None,
        cache_write_scheduled: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ) -> PipelineResult:
        if self.metrics:
            self.metrics.increment_counter("page_render_outcomes_total", outcome=outcome.value)
        return PipelineResult(
            outcome=outcome,
            response=response,
            cache_key=cache_key,
            cache_write_scheduled=cache_write_scheduled,
            context=context or {},
        )
