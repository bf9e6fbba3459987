"""
Utility modules for the scheduling engine.

This package contains shared helpers used across the application, currently
the datetime utilities (weekday numbering, formatting and date ranges).
"""
