"""
Page and request models for the Renderer Service.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

import markdown
from pydantic import BaseModel, PrivateAttr

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from fastapi import Request
    from ..adapters.template_engine import TemplateEngine


MARKDOWN_EXTENSIONS = ["toc", "fenced_code", "tables"]


class Page(BaseModel):
    """A resolved documentation page."""

    title: str
    body: str = ""
    intro: str = ""
    layout: Optional[str] = None
    show_mini_toc: bool = True
    mini_toc_max_heading_level: int = 2

    # Derived per request by the render pipeline
    language_variants: List[Dict[str, str]] = []
    full_title: Optional[str] = None

    _template_engine: Any = PrivateAttr(default=None)

    def bind(self, template_engine: "TemplateEngine") -> "Page":
        """Attach the engine used to expand template tags in the body."""
        self._template_engine = template_engine
        return self

    async def render(self, context: Mapping[str, Any]) -> str:
        """Render the body to HTML: template tags first, then markdown."""
        source = self.body
        if self._template_engine is not None:
            source = await self._template_engine.parse_and_render(source, context)
        return markdown.markdown(source, extensions=MARKDOWN_EXTENSIONS)


@dataclass(frozen=True)
class PageRequest:
    """The parts of an HTTP request the render pipeline works from."""

    method: str
    path: str
    original_url: str
    query: Mapping[str, str]
    context: Mapping[str, Any]
    csrf_token: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: "Request", context: Mapping[str, Any], csrf_token: str) -> "PageRequest":
        # request.url re-joins the decoded path, so an encoded "?" would split it
        path = request.scope.get("path") or request.url.path
        query_string = request.scope.get("query_string", b"").decode("latin-1")
        # Cache keys use the path as sent, before percent-decoding
        raw_path = request.scope.get("raw_path")
        if raw_path:
            url_path = raw_path.split(b"?", 1)[0].decode("utf-8", "replace")
        else:
            url_path = path
        return cls(
            method=request.method.upper(),
            path=path,
            original_url=f"{url_path}?{query_string}" if query_string else url_path,
            query=dict(request.query_params),
            context=context,
            csrf_token=csrf_token,
            headers=dict(request.headers),
        )
