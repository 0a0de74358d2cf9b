"""Billing-cycle and notification engine for shared-housing campuses."""

__version__ = "0.4.0"
