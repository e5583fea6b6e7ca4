"""Utility package for crowdshield.

This package contains shared helpers that do not belong to a more specific
domain like scoring, storage, or alert delivery.
"""

from .clock import Clock, FixedClock, SystemClock, utcnow

__all__ = ["Clock", "FixedClock", "SystemClock", "utcnow"]
