"""
Core module - Base abstractions and interfaces

Provides foundational components used across the toolkit:
- Configuration management
- Base exception hierarchy
- Collaborator protocols
"""

from regression_toolkit.core.config import (
    DEFAULT_THRESHOLD,
    Settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "DEFAULT_THRESHOLD",
    "Settings",
    "get_settings",
    "reset_settings",
]
