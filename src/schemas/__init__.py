"""Schema definitions for input bundles and generated charts."""

from .bundle import Bundle, BundlePort, BundleService
from .chart import ChartMetadata

__all__ = [
    "Bundle",
    "BundlePort",
    "BundleService",
    "ChartMetadata",
]
