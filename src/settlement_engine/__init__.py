"""
Scope & Settlement Rules Engine.

Derives companion repair items from inspection observations, classifies
water losses, prices scope items and computes policy-compliant settlements.
"""

from .core.models import (
    LineItem,
    NewScopeItem,
    PolicyRule,
    ScopeItem,
    ScopeMeasurements,
    SettlementResult,
    TaxRule,
    ValidationResult,
    WaterCategory,
    WaterClassification,
    WaterProtocolResponses,
)
from .engine import SessionStore, SettlementEngine, settle_claim
from .exceptions import ConfigurationError, RuleCatalogError, SettlementEngineError
from .modules.companions import derive_companions, validate_companions
from .modules.settlement import calculate_settlement
from .modules.water_classification import classify
from .reporting.settlement_report import SettlementFormatter

__version__ = "0.1.0"

__all__ = [
    # Main Engine
    "SettlementEngine",
    "SessionStore",
    "settle_claim",
    # Operations
    "calculate_settlement",
    "classify",
    "derive_companions",
    "validate_companions",
    # Models
    "LineItem",
    "NewScopeItem",
    "PolicyRule",
    "ScopeItem",
    "ScopeMeasurements",
    "SettlementResult",
    "TaxRule",
    "ValidationResult",
    "WaterCategory",
    "WaterClassification",
    "WaterProtocolResponses",
    # Errors
    "ConfigurationError",
    "RuleCatalogError",
    "SettlementEngineError",
    # Reporting
    "SettlementFormatter",
]
