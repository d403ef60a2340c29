"""Utilities for shared application concerns."""

from site_builder import __version__
from site_builder.utils.logging import (
    add_request_logging_middleware,
    setup_logging,
)

__all__ = ["__version__", "add_request_logging_middleware", "setup_logging"]
