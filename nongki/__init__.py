"""Nongki: hangout sessions with friend notifications over APNs."""

__version__ = "0.1.0"
