"""
Rendering package for the Renderer Service.

The render pipeline is the single dispatch point between the page cache,
the legacy template renderer and the alternate renderer. The connection
guard lets it stop work for clients that have already left.
"""

from .connection_guard import ConnectionGuard
from .pipeline import PipelineResult, PipelineSettings, RenderOutcome, RenderPipeline, RendererChoice

__all__ = [
    "ConnectionGuard",
    "PipelineResult",
    "PipelineSettings",
    "RenderOutcome",
    "RenderPipeline",
    "RendererChoice",
]
