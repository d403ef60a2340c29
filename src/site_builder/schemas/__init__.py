"""Schema exports for API serialization and generated artifacts."""

from site_builder import __version__
from site_builder.schemas.content import (
    FAQ,
    CategoryPageContent,
    CorePageContent,
    DetailedSection,
    LongFormPageContent,
    PageContent,
    Problem,
    ServiceAreaPageContent,
    ServiceAreaPagesBatch,
    ServicePageContent,
    ServicePagesBatch,
)
from site_builder.schemas.site import (
    BuildAccepted,
    BuildProgressRead,
    SiteStatusRead,
    SiteStatusUpdate,
)

__all__ = [
    "BuildAccepted",
    "BuildProgressRead",
    "CategoryPageContent",
    "CorePageContent",
    "DetailedSection",
    "FAQ",
    "LongFormPageContent",
    "PageContent",
    "Problem",
    "ServiceAreaPageContent",
    "ServiceAreaPagesBatch",
    "ServicePageContent",
    "ServicePagesBatch",
    "SiteStatusRead",
    "SiteStatusUpdate",
    "__version__",
]
