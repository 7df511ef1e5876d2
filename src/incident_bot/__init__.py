"""Automation utilities for watching an incident status feed."""

__all__ = [
    "config",
    "feed",
    "storage",
    "normalize",
    "notifier",
    "processor",
]
