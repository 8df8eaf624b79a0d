"""
Shared fixtures for Renderer Service tests.
"""

from typing import Dict, List, Optional, Tuple

import pytest

from shared.config import ExecutionMode
from shared.metrics import MetricsCollector
from service_renderer.app.adapters.language_variants import LanguageVariantResolver
from service_renderer.app.adapters.template_engine import TemplateEngine
from service_renderer.app.caching.page_cache import PageCache
from service_renderer.app.domain.models import Page, PageRequest
from service_renderer.app.domain.site import DEFAULT_LAYOUTS, PageIndex, SiteContextBuilder
from service_renderer.app.rendering.connection_guard import ConnectionGuard
from service_renderer.app.rendering.pipeline import PipelineSettings, RenderPipeline


class FakeRedis:
    """In-memory stand-in for the redis.asyncio client."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.set_calls: List[Tuple[str, str, Optional[int]]] = []
        self.get_calls: List[str] = []
        self.closed = False

    async def get(self, key):
        self.get_calls.append(key)
        return self.store.get(key)

    async def set(self, key, value, px=None):
        self.set_calls.append((key, value, px))
        self.store[key] = value
        return True

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class ScriptedGuard(ConnectionGuard):
    """Guard that reports a drop from the ``drop_at``-th check onwards."""

    def __init__(self, drop_at: Optional[int] = None):
        self.checks = 0
        self.drop_at = drop_at
        super().__init__(self._probe_scripted)

    async def _probe_scripted(self) -> bool:
        self.checks += 1
        return self.drop_at is not None and self.checks >= self.drop_at


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def metrics():
    return MetricsCollector("renderer")


@pytest.fixture
def page_cache(fake_redis, metrics):
    return PageCache("redis://localhost:6379", prefix="v42:rp", client=fake_redis, metrics=metrics)


@pytest.fixture
def template_engine():
    return TemplateEngine()


@pytest.fixture
def site_pages():
    return {
        "/en": Page(title="Docs home", body="# Welcome", show_mini_toc=False),
        "/en/actions": Page(
            title="Actions",
            body="Automate your workflow.\n\n## Quickstart\n\nRun it.\n\n## Reference\n\nDetails.",
        ),
        "/en/graphql/reference/objects": Page(title="Objects", body="## Overview\n\nObjects."),
        "/en/graphql/reference/input-objects": Page(title="Input objects", body="## Intro\n\nInputs."),
        "/en/rest": Page(title="REST API", body="## Endpoints"),
    }


@pytest.fixture
def context_builder(site_pages, template_engine):
    index = PageIndex(site_pages, redirects={"/en/old-actions": "/en/removed"})
    for page in index.pages.values():
        page.bind(template_engine)
    graphql = {
        "prerendered_objects_for_current_version": {
            "html": "<div id=\"prerendered\">objects</div>",
            "mini_toc": [{"contents": "AddedToProjectEvent", "href": "#addedtoprojectevent", "level": 2}],
        },
        "prerendered_input_objects_for_current_version": {
            "html": "<div id=\"prerendered\">input objects</div>",
            "mini_toc": [{"contents": "AbortQueuedMigrationsInput", "href": "#abortqueuedmigrationsinput", "level": 2}],
        },
    }
    return SiteContextBuilder(index, graphql=graphql, site_name="Example Docs", languages=["en", "ja"])


def _make_settings(**overrides) -> PipelineSettings:
    values = dict(
        execution_mode=ExecutionMode.LOCAL,
        ci=False,
        alternate_renderer_enabled=False,
        alternate_routes=frozenset({"/en/rest"}),
        site_name="Example Docs",
    )
    values.update(overrides)
    return PipelineSettings(**values)


def _build_request(context_builder, url: str, method: str = "GET", csrf_token: str = "tok-123") -> PageRequest:
    path, _, query = url.partition("?")
    query_params = {}
    for pair in filter(None, query.split("&")):
        name, _, value = pair.partition("=")
        query_params[name] = value
    return PageRequest(
        method=method,
        path=path,
        original_url=url,
        query=query_params,
        context=context_builder.build(path),
        csrf_token=csrf_token,
    )


@pytest.fixture
def make_pipeline(page_cache, template_engine, metrics):
    def _make(alternate_renderer=None, **overrides):
        return RenderPipeline(
            settings=_make_settings(**overrides),
            page_cache=page_cache,
            template_engine=template_engine,
            language_variants=LanguageVariantResolver(["en", "ja"]),
            layouts=DEFAULT_LAYOUTS,
            alternate_renderer=alternate_renderer,
            metrics=metrics,
        )
    return _make


@pytest.fixture
def make_request(context_builder):
    def _make(url: str, method: str = "GET", csrf_token: str = "tok-123") -> PageRequest:
        return _build_request(context_builder, url, method=method, csrf_token=csrf_token)
    return _make


@pytest.fixture
def guard_factory():
    return ScriptedGuard
