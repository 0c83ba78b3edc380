"""Sharing correction for the Forward Multiplicity Detector strips."""

__version__ = "0.1.0"
