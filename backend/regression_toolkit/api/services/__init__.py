"""
API services
"""

from regression_toolkit.api.services.app_services import AppServices

__all__ = ["AppServices"]
