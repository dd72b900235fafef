"""
Rule modules for the Scope & Settlement Rules Engine.
"""

from .companions import DEFAULT_COMPANION_RULES, CompanionEngine, get_default_catalog
from .depreciation import DepreciationOutcome, compute_depreciation
from .pricing import InMemoryPriceCatalog, PriceCatalog, PricingResolver
from .settlement import CarrierProfile, SettlementCalculator, resolve_carrier_profile
from .water_classification import WaterClassificationResult, WaterClassifier

__all__ = [
    "CarrierProfile",
    "CompanionEngine",
    "DEFAULT_COMPANION_RULES",
    "DepreciationOutcome",
    "InMemoryPriceCatalog",
    "PriceCatalog",
    "PricingResolver",
    "SettlementCalculator",
    "WaterClassificationResult",
    "WaterClassifier",
    "compute_depreciation",
    "get_default_catalog",
    "resolve_carrier_profile",
]
