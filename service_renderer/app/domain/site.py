"""
Page lookup and per-request context assembly.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from .models import Page


DEFAULT_LAYOUTS: Dict[str, str] = {
    "default": (
        "<!doctype html>\n"
        "<html lang=\"{{ current_language or 'en' }}\">\n"
        "<head>\n"
        "<meta charset=\"utf-8\">\n"
        "<meta name=\"csrf-token\" content=\"$CSRFTOKEN$\">\n"
        "<title>{{ page.full_title }}</title>\n"
        "</head>\n"
        "<body>\n"
        "{% if page.language_variants %}<nav class=\"languages\">"
        "{% for variant in page.language_variants %}"
        "<a href=\"{{ variant.href }}\" hreflang=\"{{ variant.code }}\">{{ variant.name }}</a>"
        "{% endfor %}</nav>{% endif %}\n"
        "{% if mini_toc_items %}<ul class=\"mini-toc\">"
        "{% for item in mini_toc_items %}"
        "<li class=\"level-{{ item.level }}\"><a href=\"{{ item.href }}\">{{ item.contents }}</a></li>"
        "{% endfor %}</ul>{% endif %}\n"
        "<article>{{ rendered_page | safe }}</article>\n"
        "</body>\n"
        "</html>\n"
    ),
    "error-404": (
        "<!doctype html>\n"
        "<html>\n"
        "<head>\n"
        "<meta charset=\"utf-8\">\n"
        "<meta name=\"csrf-token\" content=\"$CSRFTOKEN$\">\n"
        "<title>Page not found - {{ site.data.ui.header.site_name }}</title>\n"
        "</head>\n"
        "<body><h1>Ooops!</h1><p>It looks like this page doesn't exist.</p></body>\n"
        "</html>\n"
    ),
}


def normalize_path(path: str) -> str:
    """Drop trailing slashes so ``/en/foo/`` and ``/en/foo`` resolve alike."""
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


class PageIndex:
    """In-memory map of permalinks to pages, plus redirects."""

    def __init__(self, pages: Optional[Mapping[str, Page]] = None, redirects: Optional[Mapping[str, str]] = None):
        self.pages: Dict[str, Page] = {}
        self.redirects: Dict[str, str] = {normalize_path(k): normalize_path(v) for k, v in (redirects or {}).items()}
        for permalink, page in (pages or {}).items():
            self.add(permalink, page)

    def add(self, permalink: str, page: Page) -> None:
        self.pages[normalize_path(permalink)] = page

    def resolve(self, path: str) -> Tuple[Optional[Page], Optional[str]]:
        """Return ``(page, redirect_not_found)`` for ``path``.

        ``redirect_not_found`` is the redirect target when the path has a
        redirect whose destination does not exist.
        """
        path = normalize_path(path)
        page = self.pages.get(path)
        if page is not None:
            return page, None

        target = self.redirects.get(path)
        if target is None:
            return None, None
        page = self.pages.get(target)
        if page is None:
            return None, target
        return page, None


class SiteContextBuilder:
    """Build the request context the render pipeline consumes."""

    def __init__(
        self,
        page_index: PageIndex,
        *,
        site_data: Optional[Mapping[str, Any]] = None,
        layouts: Optional[Mapping[str, str]] = None,
        graphql: Optional[Mapping[str, Any]] = None,
        site_name: str = "Docs",
        languages=("en",),
    ):
        self.page_index = page_index
        self.layouts = dict(DEFAULT_LAYOUTS)
        self.layouts.update(layouts or {})
        self.graphql = dict(graphql or {})
        self.languages = list(languages)

        self.site_data: Dict[str, Any] = dict(site_data or {})
        ui = self.site_data.setdefault("ui", {})
        header = ui.setdefault("header", {})
        header.setdefault("site_name", site_name)

    def current_language(self, path: str) -> Optional[str]:
        code = path.lstrip("/").split("/", 1)[0]
        return code if code in self.languages else None

    def build(self, path: str) -> Dict[str, Any]:
        page, redirect_not_found = self.page_index.resolve(path)
        layout_name = (page.layout if page is not None else None) or "default"

        return {
            "page": page,
            "current_path": path,
            "current_language": self.current_language(path),
            "current_layout": self.layouts.get(layout_name, self.layouts["default"]),
            "redirect_not_found": redirect_not_found,
            "site": {"data": self.site_data},
            "graphql": self.graphql,
        }
