"""
Brokerage note engine for B3 settlement notes.

This package contains the modules that turn the raw text of Brazilian
brokerage settlement notes ("notas de corretagem") into structured trade
records, a reconciled portfolio and capital-gains tax figures.
"""

__version__ = "1.0.0"
__author__ = "b3_brokerage_notes team"
