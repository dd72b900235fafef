"""
Companion-Item Derivation Module.
Infers dependent repair items from a primary trade selection.

Drying implies demolition implies painting: when an adjuster scopes a
primary item, every matching rule in the catalog may add a companion
scope item linked back to the primary through its parent id.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from ..core.models import (
    IssueSeverity,
    NewScopeItem,
    Provenance,
    ScopeMeasurements,
    ValidationResult,
    WaterClassification,
    as_utc,
    utcnow,
)
from ..core.rule_engine import (
    CompanionContext,
    CompanionRule,
    Condition,
    ConditionKind,
    QuantityFormula,
    QuantityKind,
    RuleCatalog,
    evaluate_conditions,
    evaluate_quantity,
)
from ..core.trade_codes import ANY_TRADE, default_catalog_code

logger = logging.getLogger("settlement_engine.modules.companions")

SECONDS_PER_DAY = 86400


def _when(kind: ConditionKind, param=None) -> Condition:
    return Condition(kind, param)


def _qty(kind: QuantityKind = QuantityKind.FIXED, param: float = 1) -> QuantityFormula:
    return QuantityFormula(kind, param)


DEFAULT_COMPANION_RULES: tuple[CompanionRule, ...] = (
    # Drywall
    CompanionRule(
        rule_id="dry-001",
        trigger_code="DRY",
        companion_code="DEM",
        relationship="Drying requires preliminary demolition of affected materials",
        conditions=(_when(ConditionKind.AREA_ABOVE, 100),),
        quantity=_qty(QuantityKind.AREA_PER, 500),
        priority=100,
        deduplication_window_days=7,
    ),
    CompanionRule(
        rule_id="dry-002",
        trigger_code="DRY",
        companion_code="DEM",
        relationship="Category 3 water requires removal of affected porous materials",
        conditions=(_when(ConditionKind.WATER_CATEGORY_IS, 3),),
        priority=110,
        deduplication_window_days=7,
    ),
    CompanionRule(
        rule_id="dry-003",
        trigger_code="DRY",
        companion_code="MIT",
        relationship="Drying requires air movement and dehumidification equipment",
        quantity=_qty(QuantityKind.AREA_PER_MIN_ONE, 200),
        priority=95,
        deduplication_window_days=14,
    ),
    CompanionRule(
        rule_id="dry-004",
        trigger_code="DRY",
        companion_code="PNT",
        relationship="Dried and replaced surfaces require repainting",
        conditions=(_when(ConditionKind.DRYING_NOT_INFEASIBLE),),
        quantity=_qty(QuantityKind.AREA_PER_MIN_ONE, 1000),
        priority=50,
        deduplication_window_days=30,
    ),
    # Mitigation
    CompanionRule(
        rule_id="mit-001",
        trigger_code="MIT",
        companion_code="DRY",
        relationship="Mitigation of a large area requires structural drying",
        conditions=(
            _when(ConditionKind.TRADE_ABSENT, "DRY"),
            _when(ConditionKind.AREA_ABOVE, 50),
        ),
        priority=120,
        deduplication_window_days=7,
    ),
    CompanionRule(
        rule_id="mit-002",
        trigger_code="MIT",
        companion_code="DEM",
        relationship="Class 3 or higher water requires demolition of saturated materials",
        conditions=(_when(ConditionKind.WATER_CLASS_AT_LEAST, 3),),
        priority=105,
        deduplication_window_days=7,
    ),
    # Flooring
    CompanionRule(
        rule_id="flr-001",
        trigger_code="FLR",
        companion_code="DEM",
        relationship="Floor replacement requires removal of existing flooring",
        priority=100,
        deduplication_window_days=7,
    ),
    CompanionRule(
        rule_id="flr-002",
        trigger_code="FLR",
        companion_code="PNT",
        relationship="Flooring replacement requires baseboard and trim touch-up",
        conditions=(_when(ConditionKind.AREA_BELOW, 500),),
        priority=40,
        deduplication_window_days=30,
    ),
    # Demolition
    CompanionRule(
        rule_id="dem-001",
        trigger_code="DEM",
        companion_code="DRY",
        relationship="Demolition in a water loss exposes cavities that require drying",
        conditions=(
            _when(ConditionKind.TRADE_ABSENT, "DRY"),
            _when(ConditionKind.WATER_CLASSIFIED),
        ),
        priority=90,
        deduplication_window_days=14,
    ),
    CompanionRule(
        rule_id="dem-002",
        trigger_code="DEM",
        companion_code="FLR",
        relationship="Demolished flooring must be replaced",
        conditions=(_when(ConditionKind.TRADE_ABSENT, "FLR"),),
        priority=80,
        deduplication_window_days=30,
    ),
    CompanionRule(
        rule_id="dem-003",
        trigger_code="DEM",
        companion_code="PNT",
        relationship="Rebuilt surfaces after demolition require painting",
        priority=70,
        deduplication_window_days=30,
    ),
    # Painting
    CompanionRule(
        rule_id="pnt-001",
        trigger_code="PNT",
        companion_code="DEM",
        relationship="Large-area repainting requires surface preparation and removal",
        conditions=(
            _when(ConditionKind.TRADE_ABSENT, "DEM"),
            _when(ConditionKind.AREA_ABOVE, 300),
        ),
        priority=45,
        deduplication_window_days=30,
    ),
    # Roofing
    CompanionRule(
        rule_id="rfg-001",
        trigger_code="RFG",
        companion_code="DEM",
        relationship="Roof replacement requires tear-off of existing roofing",
        priority=110,
        deduplication_window_days=30,
    ),
    CompanionRule(
        rule_id="rfg-002",
        trigger_code="RFG",
        companion_code="WIN",
        relationship="Large roof replacement requires protection of windows and openings",
        conditions=(_when(ConditionKind.AREA_ABOVE, 1000),),
        priority=35,
        deduplication_window_days=30,
    ),
    # Windows
    CompanionRule(
        rule_id="win-001",
        trigger_code="WIN",
        companion_code="PNT",
        relationship="Window replacement requires painting of trim and casing",
        priority=55,
        deduplication_window_days=30,
    ),
    # Plumbing
    CompanionRule(
        rule_id="plm-001",
        trigger_code="PLM",
        companion_code="DEM",
        relationship="Plumbing leak over a large area requires access demolition",
        conditions=(
            _when(ConditionKind.WATER_CLASSIFIED),
            _when(ConditionKind.AREA_ABOVE, 200),
        ),
        priority=75,
        deduplication_window_days=14,
    ),
    CompanionRule(
        rule_id="plm-002",
        trigger_code="PLM",
        companion_code="DRY",
        relationship="Plumbing leak requires drying of affected materials",
        conditions=(
            _when(ConditionKind.TRADE_ABSENT, "DRY"),
            _when(ConditionKind.WATER_CLASSIFIED),
        ),
        priority=85,
        deduplication_window_days=7,
    ),
    # Electrical
    CompanionRule(
        rule_id="elc-001",
        trigger_code="ELE",
        companion_code="DEM",
        relationship="Extensive rewiring requires wall access demolition",
        conditions=(_when(ConditionKind.LINEAR_FEET_ABOVE, 50),),
        priority=70,
        deduplication_window_days=30,
    ),
    CompanionRule(
        rule_id="elc-002",
        trigger_code="ELE",
        companion_code="PNT",
        relationship="Electrical work requires patching and painting of wall surfaces",
        priority=50,
        deduplication_window_days=30,
    ),
    # Exterior
    CompanionRule(
        rule_id="ext-001",
        trigger_code="EXT",
        companion_code="PNT",
        relationship="Exterior repairs require exterior painting",
        priority=60,
        deduplication_window_days=30,
    ),
    # Category 3 (any trade)
    CompanionRule(
        rule_id="cat3-001",
        trigger_code=ANY_TRADE,
        companion_code="DEM",
        relationship="Category 3 water mandates structural assessment and demolition",
        conditions=(
            _when(ConditionKind.WATER_CATEGORY_IS, 3),
            _when(ConditionKind.TRADE_ABSENT, "DEM"),
        ),
        priority=150,
        deduplication_window_days=7,
    ),
    CompanionRule(
        rule_id="cat3-002",
        trigger_code=ANY_TRADE,
        companion_code="MIT",
        relationship="Category 3 water mandates antimicrobial mitigation",
        conditions=(
            _when(ConditionKind.WATER_CATEGORY_IS, 3),
            _when(ConditionKind.TRADE_ABSENT, "MIT"),
        ),
        priority=140,
        deduplication_window_days=14,
    ),
)


# Module-level default catalog
_default_catalog: RuleCatalog | None = None


def get_default_catalog() -> RuleCatalog:
    """Get or create the default companion rule catalog."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = RuleCatalog(DEFAULT_COMPANION_RULES)
    return _default_catalog


class CompanionEngine:
    """
    Derives companion scope items for a primary item.

    The engine holds no per-call state: every pass builds its own working
    view of the session's active items, so a shared instance is safe to
    reuse as long as callers serialize passes per session.
    """

    # Companion quantity above this multiple of the primary's is suspicious
    DISPROPORTION_RATIO = 10

    def __init__(self, catalog: RuleCatalog | None = None) -> None:
        self.catalog = catalog if catalog is not None else get_default_catalog()

    def derive_companions(
        self,
        primary_item: NewScopeItem,
        existing_items: Sequence[NewScopeItem],
        water_classification: WaterClassification | None = None,
        measurements: ScopeMeasurements | None = None,
        now: datetime | None = None,
    ) -> list[NewScopeItem]:
        """
        Derive the companion items a primary scope item implies.

        Args:
            primary_item: The item just scoped (usually persisted, so it has an id)
            existing_items: Current scope items of the session; never mutated
            water_classification: The session's current classification, if any
            measurements: Room measurements used by quantity formulas
            now: Evaluation time, used for dedup windows and created_at

        Returns:
            New, unsaved companion items in rule priority order
        """
        now = as_utc(now) if now else utcnow()
        working = [item for item in existing_items if item.is_active]
        ctx = CompanionContext(
            primary_item=primary_item,
            existing_items=working,
            measurements=measurements or ScopeMeasurements(),
            water_classification=water_classification,
            evaluated_at=now,
        )

        companions: list[NewScopeItem] = []
        for rule in self.catalog.rules_for_trigger(primary_item.trade_code):
            companion = self._apply_rule(rule, ctx)
            if companion is None:
                continue
            companions.append(companion)
            working.append(companion)

        logger.info(
            "Derived %d companion(s) for %s item %s",
            len(companions),
            primary_item.trade_code,
            getattr(primary_item, "id", None),
        )
        return companions

    def _apply_rule(self, rule: CompanionRule, ctx: CompanionContext) -> NewScopeItem | None:
        """Evaluate a single rule; any failure inside a strategy skips the rule."""
        try:
            matched = evaluate_conditions(rule, ctx)
        except Exception:
            logger.warning("Condition of rule %s failed; treating as false", rule.rule_id, exc_info=True)
            return None
        if not matched:
            return None

        if self._within_dedup_window(rule, ctx):
            logger.debug("Rule %s skipped: %s added recently", rule.rule_id, rule.companion_code)
            return None

        try:
            quantity = max(0.0, evaluate_quantity(rule, ctx))
        except Exception:
            logger.warning("Quantity of rule %s failed; using 0", rule.rule_id, exc_info=True)
            quantity = 0.0
        if quantity <= 0:
            logger.debug("Rule %s skipped: no positive quantity", rule.rule_id)
            return None
        if rule.minimum_threshold is not None and quantity < rule.minimum_threshold:
            quantity = float(rule.minimum_threshold)

        primary = ctx.primary_item
        return NewScopeItem(
            session_id=primary.session_id,
            room_id=primary.room_id,
            damage_id=primary.damage_id,
            trade_code=rule.companion_code,
            catalog_code=default_catalog_code(rule.companion_code),
            description=f"Auto-added: {rule.relationship}",
            quantity=quantity,
            unit=rule.unit,
            provenance=Provenance.COMPANION_AUTO_ADDED,
            parent_scope_item_id=getattr(primary, "id", None),
            created_at=ctx.evaluated_at,
        )

    @staticmethod
    def _within_dedup_window(rule: CompanionRule, ctx: CompanionContext) -> bool:
        if rule.deduplication_window_days is None:
            return False
        existing = next(iter(ctx.items_of_trade(rule.companion_code)), None)
        if existing is None:
            return False
        if existing.created_at is None:
            return True
        age_days = (ctx.evaluated_at - as_utc(existing.created_at)).total_seconds() / SECONDS_PER_DAY
        return age_days <= rule.deduplication_window_days

    def validate_companions(self, items: Iterable[NewScopeItem]) -> ValidationResult:
        """
        Check parent linkage and quantities of a session's scope items.

        A companion is any item with a parent. Its parent must be an existing
        item of the same session (error) and its quantity must be positive
        (warning). Quantities more than ten times the primary's are flagged
        as disproportionate (warning).
        """
        items = list(items)
        by_id = {item.id: item for item in items if getattr(item, "id", None) is not None}
        result = ValidationResult()

        for item in items:
            parent_id = item.parent_scope_item_id
            if parent_id is None:
                continue
            item_id = getattr(item, "id", None)

            parent = by_id.get(parent_id)
            if parent is None:
                result.add(
                    IssueSeverity.ERROR,
                    f"Companion {item.trade_code} references non-existent primary item {parent_id}",
                    item_id=item_id,
                    code="missing_parent",
                )
            elif parent.session_id != item.session_id:
                result.add(
                    IssueSeverity.ERROR,
                    f"Companion {item.trade_code} parent {parent_id} belongs to another session",
                    item_id=item_id,
                    code="cross_session_parent",
                )

            if item.quantity <= 0:
                result.add(
                    IssueSeverity.WARNING,
                    f"Companion {item.trade_code} item has quantity <= 0",
                    item_id=item_id,
                    code="non_positive_quantity",
                )
            elif parent is not None and parent.quantity > 0:
                if item.quantity / parent.quantity > self.DISPROPORTION_RATIO:
                    result.add(
                        IssueSeverity.WARNING,
                        f"Companion quantity ({item.quantity:g}) is disproportionate "
                        f"to primary ({parent.quantity:g})",
                        item_id=item_id,
                        code="disproportionate_quantity",
                    )

        return result


# Convenience functions

def derive_companions(
    primary_item: NewScopeItem,
    existing_items: Sequence[NewScopeItem],
    water_classification: WaterClassification | None = None,
    measurements: ScopeMeasurements | None = None,
    now: datetime | None = None,
) -> list[NewScopeItem]:
    """Derive companions with the default catalog."""
    return CompanionEngine().derive_companions(
        primary_item, existing_items, water_classification, measurements, now
    )


def validate_companions(items: Iterable[NewScopeItem]) -> ValidationResult:
    return CompanionEngine().validate_companions(items)
