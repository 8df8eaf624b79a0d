"""
Jinja2 template engine used for layouts and page bodies.
"""

from typing import Any, Dict, Mapping

from jinja2 import BaseLoader, ChainableUndefined, Environment, Template, select_autoescape


class TemplateEngine:
    """Compile and render template sources with async Jinja2."""

    def __init__(self, max_cached_templates: int = 512):
        self.env = Environment(
            loader=BaseLoader(),
            autoescape=select_autoescape(["html", "xml"], default_for_string=True),
            enable_async=True,
            undefined=ChainableUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.max_cached_templates = max_cached_templates
        self._compiled: Dict[str, Template] = {}

    def compile(self, source: str) -> Template:
        template = self._compiled.get(source)
        if template is None:
            template = self.env.from_string(source)
            if len(self._compiled) >= self.max_cached_templates:
                self._compiled.clear()
            self._compiled[source] = template
        return template

    async def parse_and_render(self, source: str, context: Mapping[str, Any]) -> str:
        """Render ``source`` against ``context``."""
        return await self.compile(source).render_async(**context)
