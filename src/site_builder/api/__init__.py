"""API package exports."""

from site_builder import __version__
from site_builder.api.content_generation import router as content_generation_router
from site_builder.api.site_status import router as site_status_router

__all__ = [
    "__version__",
    "content_generation_router",
    "site_status_router",
]
