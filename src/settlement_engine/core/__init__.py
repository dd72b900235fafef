"""
Core components for the Scope & Settlement Rules Engine.
"""

from .models import (
    ContaminationLevel,
    CostType,
    CoverageSummary,
    DepreciationType,
    IssueSeverity,
    LineItem,
    LineSettlement,
    NewScopeItem,
    PolicyRule,
    Provenance,
    ScopeItem,
    ScopeItemStatus,
    ScopeMeasurements,
    SettlementResult,
    TaxRule,
    ValidationIssue,
    ValidationResult,
    WaterCategory,
    WaterClass,
    WaterClassification,
    WaterProtocolResponses,
    WaterSource,
)
from .rule_engine import (
    CompanionContext,
    CompanionRule,
    Condition,
    ConditionKind,
    QuantityFormula,
    QuantityKind,
    RuleCatalog,
    register_condition,
    register_quantity,
)
from .trade_codes import (
    ANY_TRADE,
    default_catalog_code,
    normalize_trade_code,
    resolve_category,
)

__all__ = [
    # Models
    "ContaminationLevel",
    "CostType",
    "CoverageSummary",
    "DepreciationType",
    "IssueSeverity",
    "LineItem",
    "LineSettlement",
    "NewScopeItem",
    "PolicyRule",
    "Provenance",
    "ScopeItem",
    "ScopeItemStatus",
    "ScopeMeasurements",
    "SettlementResult",
    "TaxRule",
    "ValidationIssue",
    "ValidationResult",
    "WaterCategory",
    "WaterClass",
    "WaterClassification",
    "WaterProtocolResponses",
    "WaterSource",
    # Rule Catalog
    "CompanionContext",
    "CompanionRule",
    "Condition",
    "ConditionKind",
    "QuantityFormula",
    "QuantityKind",
    "RuleCatalog",
    "register_condition",
    "register_quantity",
    # Trade Codes
    "ANY_TRADE",
    "default_catalog_code",
    "normalize_trade_code",
    "resolve_category",
]
