"""Sharing correction of FMD strip signals."""

from .config import SharingConfig
from .filter import SharingCounts, SharingFilter
from .histograms import SharingHistograms

__all__ = ["SharingConfig", "SharingCounts", "SharingFilter", "SharingHistograms"]
