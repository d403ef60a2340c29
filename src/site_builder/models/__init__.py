"""ORM model exports."""

from site_builder import __version__
from site_builder.models.base import Base
from site_builder.models.build_run import BuildRun
from site_builder.models.category import GbpCategory, SiteCategory
from site_builder.models.location import Location
from site_builder.models.service import Service
from site_builder.models.service_area import ServiceArea
from site_builder.models.site import Site, SiteStatus, WebsiteType
from site_builder.models.site_page import PageType, SitePage
from site_builder.models.site_review import SiteReview

__all__ = [
    "__version__",
    "Base",
    "BuildRun",
    "GbpCategory",
    "Location",
    "PageType",
    "Service",
    "ServiceArea",
    "Site",
    "SiteCategory",
    "SitePage",
    "SiteReview",
    "SiteStatus",
    "WebsiteType",
]
