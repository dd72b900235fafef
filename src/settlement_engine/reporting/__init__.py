"""
Reporting modules for the Scope & Settlement Rules Engine.
"""

from .settlement_report import SettlementFormatter

__all__ = [
    "SettlementFormatter",
]
