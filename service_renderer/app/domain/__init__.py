"""
Domain models for the Renderer Service.

Holds the page model, the request view the pipeline works from, and the
context builder that resolves a path into a page plus site data.
"""

from .models import Page, PageRequest
from .site import DEFAULT_LAYOUTS, PageIndex, SiteContextBuilder

__all__ = [
    "DEFAULT_LAYOUTS",
    "Page",
    "PageIndex",
    "PageRequest",
    "SiteContextBuilder",
]
