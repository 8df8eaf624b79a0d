"""
Adapters package for the Renderer Service.

Wraps the collaborators the render pipeline delegates to:

- Jinja2 template engine for layouts and page bodies
- Mini table-of-contents extraction from rendered HTML
- Language variant links
- HTTP proxy to the alternate renderer

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .alternate_renderer import AlternateRenderer
from .language_variants import LanguageVariantResolver
from .mini_toc import get_mini_toc_items
from .template_engine import TemplateEngine

__all__ = [
    "AlternateRenderer",
    "LanguageVariantResolver",
    "TemplateEngine",
    "get_mini_toc_items",
]
