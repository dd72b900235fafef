"""
Scope & Settlement Rules Engine - Main Orchestrator.
Coordinates water classification, companion derivation, pricing and
settlement calculation against a storage collaborator.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from .config import Settings, settings as default_settings
from .core.models import (
    ItemId,
    LineItem,
    NewScopeItem,
    PolicyRule,
    ScopeItem,
    ScopeMeasurements,
    SettlementResult,
    TaxRule,
    ValidationResult,
    WaterClassification,
    WaterProtocolResponses,
)
from .core.rule_engine import RuleCatalog
from .exceptions import ConfigurationError
from .modules.companions import CompanionEngine
from .modules.pricing import DEFAULT_REGION, PriceCatalog, PricingResolver
from .modules.settlement import CarrierProfile, SettlementCalculator, resolve_carrier_profile
from .modules.water_classification import WaterClassificationResult, WaterClassifier
from .reporting.settlement_report import SettlementFormatter
from .utils.session_locks import SessionLockRegistry, get_session_locks

logger = logging.getLogger("settlement_engine.engine")

# Policy-document keys holding per-coverage limits
_COVERAGE_LIMIT_KEYS = {
    "A": ("coverage_a", "dwelling"),
    "B": ("coverage_b", "other_structures"),
    "C": ("coverage_c", "personal_property"),
    "D": ("coverage_d", "loss_of_use"),
}


class SessionStore(Protocol):
    """Persistence collaborator; the engine never stores anything itself."""

    def get_scope_items(self, session_id: ItemId) -> list[ScopeItem]: ...

    def create_scope_items(self, items: Sequence[NewScopeItem]) -> list[ScopeItem]: ...

    def get_water_classification(self, session_id: ItemId) -> WaterClassification | None: ...

    def set_water_classification(
        self, session_id: ItemId, classification: WaterClassification
    ) -> None: ...

    def get_line_items(self, session_id: ItemId) -> list[LineItem]: ...

    def get_policy_rules(self, claim_id: ItemId) -> list[PolicyRule]: ...

    def create_policy_rule(self, rule: PolicyRule) -> PolicyRule: ...

    def get_tax_rules(self, claim_id: ItemId) -> list[TaxRule]: ...

    def create_tax_rule(self, rule: TaxRule) -> TaxRule: ...


class SettlementEngine:
    """
    Main orchestrator for the Scope & Settlement Rules Engine.

    The pure computations are usable without a store; the session-level
    operations (derive-and-persist, lazy rule seeding, settling a session)
    need one.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        price_catalog: PriceCatalog | None = None,
        rule_catalog: RuleCatalog | None = None,
        carrier: CarrierProfile | str | None = None,
        config: Settings | None = None,
        locks: SessionLockRegistry | None = None,
    ) -> None:
        """
        Initialize the Settlement Engine.

        Args:
            store: Storage collaborator for session-level operations
            price_catalog: Catalog used to price scope items
            rule_catalog: Companion rule catalog (default catalog if None)
            carrier: Carrier profile or carrier code for settlement behaviour
            config: Settings override
            locks: Per-session lock registry (process-wide registry if None)
        """
        self.store = store
        self.price_catalog = price_catalog
        self.rule_catalog = rule_catalog
        self.config = config or default_settings
        self.locks = locks if locks is not None else get_session_locks()
        self.carrier = carrier if isinstance(carrier, CarrierProfile) else resolve_carrier_profile(carrier)

        # Initialize components lazily
        self._classifier: WaterClassifier | None = None
        self._companion_engine: CompanionEngine | None = None
        self._pricing_resolver: PricingResolver | None = None
        self._calculator: SettlementCalculator | None = None

    @property
    def classifier(self) -> WaterClassifier:
        """Get or create the water classifier."""
        if self._classifier is None:
            self._classifier = WaterClassifier()
        return self._classifier

    @property
    def companion_engine(self) -> CompanionEngine:
        """Get or create the companion engine."""
        if self._companion_engine is None:
            self._companion_engine = CompanionEngine(self.rule_catalog)
        return self._companion_engine

    @property
    def pricing_resolver(self) -> PricingResolver:
        """Get or create the pricing resolver."""
        if self._pricing_resolver is None:
            if self.price_catalog is None:
                raise ConfigurationError("Pricing requires a price catalog")
            self._pricing_resolver = PricingResolver(self.price_catalog)
        return self._pricing_resolver

    @property
    def calculator(self) -> SettlementCalculator:
        """Get or create the settlement calculator."""
        if self._calculator is None:
            self._calculator = SettlementCalculator(config=self.config, carrier=self.carrier)
        return self._calculator

    def _require_store(self) -> SessionStore:
        if self.store is None:
            raise ConfigurationError("This operation requires a session store")
        return self.store

    # Water classification

    def classify(
        self,
        responses: WaterProtocolResponses | dict[str, Any],
        now: datetime | None = None,
    ) -> WaterClassification:
        return self.classifier.classify(responses, now=now)

    def record_water_classification(
        self,
        session_id: ItemId,
        responses: WaterProtocolResponses | dict[str, Any],
        now: datetime | None = None,
    ) -> WaterClassificationResult:
        """
        Classify a water loss and store it as the session's classification.

        The new classification replaces any previous one.

        Args:
            session_id: Inspection session
            responses: Protocol answers
            now: Reference time

        Returns:
            Classification plus the wildcard companion rules it triggers
        """
        store = self._require_store()
        result = self.classifier.assess(
            responses, catalog=self.companion_engine.catalog, now=now
        )
        store.set_water_classification(session_id, result.classification)
        logger.info(
            "Session %s water classification: category %d, class %d",
            session_id,
            result.classification.category,
            result.classification.water_class,
        )
        return result

    # Companions

    def derive_companions(
        self,
        primary_item: NewScopeItem,
        existing_items: Sequence[NewScopeItem],
        water_classification: WaterClassification | None = None,
        measurements: ScopeMeasurements | None = None,
        now: datetime | None = None,
    ) -> list[NewScopeItem]:
        return self.companion_engine.derive_companions(
            primary_item, existing_items, water_classification, measurements, now
        )

    def derive_and_store_companions(
        self,
        session_id: ItemId,
        primary_item: ScopeItem,
        measurements: ScopeMeasurements | None = None,
        now: datetime | None = None,
    ) -> list[ScopeItem]:
        """
        Derive companions for a primary item and persist them.

        The read-derive-persist sequence runs under the session's lock so
        concurrent passes for one session each see the previous pass's
        companions.

        Args:
            session_id: Inspection session
            primary_item: The persisted primary item
            measurements: Room measurements for quantity formulas
            now: Evaluation time

        Returns:
            The persisted companion items
        """
        store = self._require_store()
        with self.locks.hold(session_id):
            existing = store.get_scope_items(session_id)
            classification = store.get_water_classification(session_id)
            companions = self.companion_engine.derive_companions(
                primary_item, existing, classification, measurements, now
            )
            if not companions:
                return []
            created = store.create_scope_items(companions)

        logger.info(
            "Session %s: stored %d companion(s) for item %s",
            session_id,
            len(created),
            primary_item.id,
        )
        return created

    def validate_companions(self, items: Sequence[NewScopeItem]) -> ValidationResult:
        return self.companion_engine.validate_companions(items)

    def validate_session_companions(self, session_id: ItemId) -> ValidationResult:
        return self.validate_companions(self._require_store().get_scope_items(session_id))

    # Pricing

    def price_session(
        self,
        session_id: ItemId,
        region_id: str = DEFAULT_REGION,
        peril_type: str | None = None,
    ) -> tuple[list[LineItem], ValidationResult]:
        """Price a session's active scope items."""
        items = self._require_store().get_scope_items(session_id)
        return self.pricing_resolver.price_scope_items(items, region_id, peril_type)

    # Policy and tax configuration

    def ensure_policy_rules(
        self,
        claim_id: ItemId,
        policy_data: Mapping[str, Any] | None = None,
    ) -> list[PolicyRule]:
        """
        Return the claim's policy rules, creating them on first use.

        Rules are seeded from extracted policy-document data when given:
        one rule per coverage with a limit (coverage_a / dwelling, ...),
        sharing the document's deductible and O&P / tax settings. Without
        data a single rule for the default coverage is created.

        Args:
            claim_id: Claim the rules belong to
            policy_data: Extracted policy fields, if any

        Returns:
            The claim's policy rules
        """
        store = self._require_store()
        existing = store.get_policy_rules(claim_id)
        if existing:
            return existing

        data = dict(policy_data or {})
        shared: dict[str, Any] = {
            "claim_id": claim_id,
            "deductible": data.get("deductible", self.config.default_deductible),
            "apply_roof_schedule": data.get(
                "apply_roof_schedule", data.get("roof_schedule", self.carrier.apply_roof_schedule)
            ),
            "roof_schedule_age": data.get("roof_schedule_age"),
            "overhead_pct": data.get("overhead_pct"),
            "profit_pct": data.get("profit_pct"),
            "tax_rate": data.get("tax_rate"),
            "op_excluded_trades": list(data.get("op_excluded_trades") or []),
        }

        seeds: list[PolicyRule] = []
        for coverage, keys in _COVERAGE_LIMIT_KEYS.items():
            limit = next((data[k] for k in keys if data.get(k) is not None), None)
            if limit is not None:
                seeds.append(
                    PolicyRule(coverage_type=coverage, policy_limit=Decimal(str(limit)), **shared)
                )
        if not seeds:
            seeds.append(PolicyRule(coverage_type=self.config.default_coverage_type, **shared))

        created = [store.create_policy_rule(rule) for rule in seeds]
        logger.info(
            "Claim %s: seeded %d policy rule(s) from %s",
            claim_id,
            len(created),
            "policy data" if policy_data else "defaults",
        )
        return created

    def ensure_tax_rules(
        self,
        claim_id: ItemId,
        policy_data: Mapping[str, Any] | None = None,
    ) -> list[TaxRule]:
        """Return the claim's tax rules, seeding a default material tax if a rate is known."""
        store = self._require_store()
        existing = store.get_tax_rules(claim_id)
        if existing:
            return existing

        rate = (policy_data or {}).get("tax_rate")
        if rate is None:
            rate = self.carrier.default_tax_rate
        if rate is None:
            rate = self.config.default_tax_rate
        if not rate:
            return []

        rule = store.create_tax_rule(
            TaxRule(claim_id=claim_id, tax_label="Sales Tax", tax_rate=rate, is_default=True)
        )
        logger.info("Claim %s: seeded default tax rule at %.2f%%", claim_id, rule.tax_rate * 100)
        return [rule]

    # Settlement

    def calculate_settlement(
        self,
        line_items: Sequence[LineItem],
        policy_rules: Sequence[PolicyRule],
        limits: Mapping[str, Decimal | float | int] | None = None,
        tax_rules: Sequence[TaxRule] | None = None,
        *,
        property_age: float | None = None,
    ) -> SettlementResult:
        return self.calculator.calculate(
            line_items, policy_rules, limits, tax_rules, property_age=property_age
        )

    def settle_session(
        self,
        session_id: ItemId,
        claim_id: ItemId,
        policy_data: Mapping[str, Any] | None = None,
        limits: Mapping[str, Decimal | float | int] | None = None,
        property_age: float | None = None,
    ) -> SettlementResult:
        """
        Settle a session's finalized line items.

        Policy and tax rules are created lazily for the claim on first use.

        Raises:
            ConfigurationError: A line item falls in a bucket with no policy rule
        """
        store = self._require_store()
        line_items = store.get_line_items(session_id)
        policy_rules = self.ensure_policy_rules(claim_id, policy_data)
        tax_rules = self.ensure_tax_rules(claim_id, policy_data)
        return self.calculate_settlement(
            line_items, policy_rules, limits, tax_rules, property_age=property_age
        )

    def settle_with_formatter(
        self,
        session_id: ItemId,
        claim_id: ItemId,
        policy_data: Mapping[str, Any] | None = None,
        limits: Mapping[str, Decimal | float | int] | None = None,
        property_age: float | None = None,
    ) -> SettlementFormatter:
        """Settle a session and return a formatter for output."""
        result = self.settle_session(session_id, claim_id, policy_data, limits, property_age)
        return SettlementFormatter(result)

    def configure(
        self,
        carrier: CarrierProfile | str | None = None,
        rule_catalog: RuleCatalog | None = None,
        price_catalog: PriceCatalog | None = None,
    ) -> "SettlementEngine":
        """
        Reconfigure the engine; affected components are rebuilt lazily.

        Returns:
            Self for method chaining
        """
        if carrier is not None:
            self.carrier = (
                carrier if isinstance(carrier, CarrierProfile) else resolve_carrier_profile(carrier)
            )
            self._calculator = None
        if rule_catalog is not None:
            self.rule_catalog = rule_catalog
            self._companion_engine = None
        if price_catalog is not None:
            self.price_catalog = price_catalog
            self._pricing_resolver = None
        return self


# Convenience function for quick settlements
def settle_claim(
    line_items: Sequence[LineItem],
    policy_rules: Sequence[PolicyRule],
    limits: Mapping[str, Decimal | float | int] | None = None,
    tax_rules: Sequence[TaxRule] | None = None,
    property_age: float | None = None,
    carrier: CarrierProfile | str | None = None,
) -> SettlementResult:
    """
    Convenience function for one-off settlements without a store.

    Args:
        line_items: Priced line items
        policy_rules: Per-bucket policy rules
        limits: Optional per-bucket limit overrides
        tax_rules: Optional tax rules
        property_age: Age of the structure in years
        carrier: Carrier profile or carrier code

    Returns:
        SettlementResult
    """
    engine = SettlementEngine(carrier=carrier)
    return engine.calculate_settlement(
        line_items, policy_rules, limits, tax_rules, property_age=property_age
    )
