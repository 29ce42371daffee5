"""
Market data modules for the brokerage note engine.

This package contains the market quote collaborators (Yahoo Finance and
brapi.dev) and the valuation of derived portfolio positions at current
prices.
"""

__version__ = "1.0.0"
__author__ = "b3_brokerage_notes team"
