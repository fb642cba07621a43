"""
Visual Regression Toolkit

Screenshot comparison and visual regression tracking for automated UI test
runs.
"""

__version__ = "1.0.0"
__license__ = "MIT"
