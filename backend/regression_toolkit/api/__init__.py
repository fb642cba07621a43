"""
REST API for visual regression analysis
"""
