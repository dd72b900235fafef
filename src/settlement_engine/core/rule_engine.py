"""
Declarative rule catalog for companion item derivation.

Rules are immutable rows. Conditions and quantity formulas are referenced
by name and resolved through strategy registries, so a catalog can be
serialized, audited and extended without touching engine code.
"""

import math
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..exceptions import RuleCatalogError
from .models import NewScopeItem, ScopeMeasurements, WaterClassification, utcnow
from .trade_codes import ANY_TRADE, normalize_trade_code


class ConditionKind(str, Enum):
    """Built-in condition strategies."""

    ALWAYS = "always"
    AREA_ABOVE = "area_above"
    AREA_BELOW = "area_below"
    LINEAR_FEET_ABOVE = "linear_feet_above"
    WATER_CLASSIFIED = "water_classified"
    WATER_CATEGORY_IS = "water_category_is"
    WATER_CLASS_AT_LEAST = "water_class_at_least"
    DRYING_NOT_INFEASIBLE = "drying_not_infeasible"
    TRADE_ABSENT = "trade_absent"


class QuantityKind(str, Enum):
    """Built-in quantity formulas."""

    FIXED = "fixed"
    AREA_PER = "area_per"  # ceil(area / param)
    AREA_PER_MIN_ONE = "area_per_min_one"  # max(1, ceil(area / param))


def _key(kind: str | Enum) -> str:
    return kind.value if isinstance(kind, Enum) else str(kind)


@dataclass(frozen=True)
class Condition:
    """A named condition strategy and its parameter."""

    kind: str
    param: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _key(self.kind))


@dataclass(frozen=True)
class QuantityFormula:
    """A named quantity strategy and its parameter."""

    kind: str = QuantityKind.FIXED.value
    param: float = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _key(self.kind))


@dataclass(frozen=True)
class CompanionRule:
    """Definition of a companion addition rule."""

    rule_id: str
    trigger_code: str
    companion_code: str
    relationship: str
    conditions: tuple[Condition, ...] = ()
    quantity: QuantityFormula = field(default_factory=QuantityFormula)
    priority: int = 0
    deduplication_window_days: int | None = None
    minimum_threshold: float | None = None
    unit: str = "EA"

    def __post_init__(self) -> None:
        trigger = self.trigger_code.strip()
        trigger = ANY_TRADE if trigger.lower() == ANY_TRADE else normalize_trade_code(trigger)
        object.__setattr__(self, "trigger_code", trigger)
        object.__setattr__(self, "companion_code", normalize_trade_code(self.companion_code))
        object.__setattr__(self, "conditions", tuple(self.conditions))

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "CompanionRule":
        """Build a rule from its serialized form (see RuleCatalog.to_records)."""
        data = dict(record)
        data["conditions"] = tuple(
            Condition(**c) if isinstance(c, dict) else c for c in data.get("conditions", ())
        )
        quantity = data.get("quantity")
        if isinstance(quantity, dict):
            data["quantity"] = QuantityFormula(**quantity)
        elif quantity is None:
            data.pop("quantity", None)
        return cls(**data)


@dataclass
class CompanionContext:
    """Evaluation context handed to condition and quantity strategies."""

    primary_item: NewScopeItem
    existing_items: list[NewScopeItem]
    measurements: ScopeMeasurements = field(default_factory=ScopeMeasurements)
    water_classification: WaterClassification | None = None
    evaluated_at: datetime = field(default_factory=utcnow)

    @property
    def affected_area(self) -> float:
        return self.measurements.affected_area

    @property
    def gross_area(self) -> float:
        return self.measurements.gross_area or 0.0

    @property
    def linear_feet(self) -> float:
        return self.measurements.linear_feet

    def items_of_trade(self, trade_code: str) -> list[NewScopeItem]:
        """Working items of a trade, matching aliases (DRYWALL is DRY)."""
        code = normalize_trade_code(trade_code)
        return [i for i in self.existing_items if normalize_trade_code(i.trade_code) == code]

    def trade_exists(self, trade_code: str) -> bool:
        return bool(self.items_of_trade(trade_code))

    def trade_quantity(self, trade_code: str) -> float:
        return sum(item.quantity for item in self.items_of_trade(trade_code))

    def find_items(self, predicate: Callable[[NewScopeItem], bool]) -> list[NewScopeItem]:
        return [item for item in self.existing_items if predicate(item)]


ConditionStrategy = Callable[[CompanionContext, Any], bool]
QuantityStrategy = Callable[[CompanionContext, float], float]

_CONDITIONS: dict[str, ConditionStrategy] = {}
_QUANTITIES: dict[str, QuantityStrategy] = {}


def register_condition(
    name: str | Enum,
) -> Callable[[ConditionStrategy], ConditionStrategy]:
    """Decorator for registering a named condition strategy."""

    def decorator(func: ConditionStrategy) -> ConditionStrategy:
        _CONDITIONS[_key(name)] = func
        return func

    return decorator


def register_quantity(
    name: str | Enum,
) -> Callable[[QuantityStrategy], QuantityStrategy]:
    """Decorator for registering a named quantity strategy."""

    def decorator(func: QuantityStrategy) -> QuantityStrategy:
        _QUANTITIES[_key(name)] = func
        return func

    return decorator


@register_condition(ConditionKind.ALWAYS)
def _always(ctx: CompanionContext, param: Any) -> bool:
    return True


@register_condition(ConditionKind.AREA_ABOVE)
def _area_above(ctx: CompanionContext, param: Any) -> bool:
    return ctx.affected_area > float(param)


@register_condition(ConditionKind.AREA_BELOW)
def _area_below(ctx: CompanionContext, param: Any) -> bool:
    return ctx.affected_area < float(param)


@register_condition(ConditionKind.LINEAR_FEET_ABOVE)
def _linear_feet_above(ctx: CompanionContext, param: Any) -> bool:
    return ctx.linear_feet > float(param)


@register_condition(ConditionKind.WATER_CLASSIFIED)
def _water_classified(ctx: CompanionContext, param: Any) -> bool:
    return ctx.water_classification is not None


@register_condition(ConditionKind.WATER_CATEGORY_IS)
def _water_category_is(ctx: CompanionContext, param: Any) -> bool:
    wc = ctx.water_classification
    return wc is not None and int(wc.category) == int(param)


@register_condition(ConditionKind.WATER_CLASS_AT_LEAST)
def _water_class_at_least(ctx: CompanionContext, param: Any) -> bool:
    wc = ctx.water_classification
    return wc is not None and int(wc.water_class) >= int(param)


@register_condition(ConditionKind.DRYING_NOT_INFEASIBLE)
def _drying_not_infeasible(ctx: CompanionContext, param: Any) -> bool:
    # No classification means drying has not been ruled out
    wc = ctx.water_classification
    return wc is None or wc.drying_possible


@register_condition(ConditionKind.TRADE_ABSENT)
def _trade_absent(ctx: CompanionContext, param: Any) -> bool:
    return not ctx.trade_exists(str(param))


@register_quantity(QuantityKind.FIXED)
def _fixed(ctx: CompanionContext, param: float) -> float:
    return float(param)


@register_quantity(QuantityKind.AREA_PER)
def _area_per(ctx: CompanionContext, param: float) -> float:
    return float(math.ceil(ctx.affected_area / float(param)))


@register_quantity(QuantityKind.AREA_PER_MIN_ONE)
def _area_per_min_one(ctx: CompanionContext, param: float) -> float:
    return float(max(1, math.ceil(ctx.affected_area / float(param))))


def evaluate_conditions(rule: CompanionRule, ctx: CompanionContext) -> bool:
    """All conditions must hold; a rule without conditions always applies."""
    return all(_CONDITIONS[c.kind](ctx, c.param) for c in rule.conditions)


def evaluate_quantity(rule: CompanionRule, ctx: CompanionContext) -> float:
    return float(_QUANTITIES[rule.quantity.kind](ctx, rule.quantity.param))


class RuleCatalog:
    """
    Ordered, trigger-indexed collection of companion rules.

    Declaration order is preserved and breaks priority ties, so the
    catalog behaves like a flat list sorted once per trigger code.
    """

    def __init__(self, rules: Iterable[CompanionRule] = ()) -> None:
        self._rules: dict[str, CompanionRule] = {}
        self._order: dict[str, int] = {}
        self._trigger_index: dict[str, list[str]] = {}
        self._disabled: set[str] = set()
        self._sorted_cache: dict[str, list[CompanionRule]] = {}
        self._sequence = 0
        for rule in rules:
            self.add_rule(rule)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(sorted(self._rules.values(), key=lambda r: self._order[r.rule_id]))

    def add_rule(self, rule: CompanionRule) -> None:
        """Add a rule; ids must be unique and strategies must be registered."""
        if rule.rule_id in self._rules:
            raise RuleCatalogError(f"Duplicate companion rule id: {rule.rule_id}")
        for condition in rule.conditions:
            if condition.kind not in _CONDITIONS:
                raise RuleCatalogError(
                    f"Rule {rule.rule_id}: unknown condition '{condition.kind}'"
                )
        if rule.quantity.kind not in _QUANTITIES:
            raise RuleCatalogError(
                f"Rule {rule.rule_id}: unknown quantity formula '{rule.quantity.kind}'"
            )

        self._rules[rule.rule_id] = rule
        self._order[rule.rule_id] = self._sequence
        self._sequence += 1
        self._trigger_index.setdefault(rule.trigger_code, []).append(rule.rule_id)
        self._sorted_cache.clear()

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule from the catalog."""
        if rule_id not in self._rules:
            return False

        rule = self._rules.pop(rule_id)
        self._trigger_index[rule.trigger_code].remove(rule_id)
        self._order.pop(rule_id)
        self._disabled.discard(rule_id)
        self._sorted_cache.clear()
        return True

    def get_rule(self, rule_id: str) -> CompanionRule | None:
        return self._rules.get(rule_id)

    def enable_rule(self, rule_id: str) -> bool:
        if rule_id in self._rules:
            self._disabled.discard(rule_id)
            self._sorted_cache.clear()
            return True
        return False

    def disable_rule(self, rule_id: str) -> bool:
        if rule_id in self._rules:
            self._disabled.add(rule_id)
            self._sorted_cache.clear()
            return True
        return False

    def is_enabled(self, rule_id: str) -> bool:
        return rule_id in self._rules and rule_id not in self._disabled

    def rules_for_trigger(self, trade_code: str) -> list[CompanionRule]:
        """Enabled rules for a trade plus wildcard rules, priority descending."""
        code = normalize_trade_code(trade_code)
        if code not in self._sorted_cache:
            ids = self._trigger_index.get(code, []) + self._trigger_index.get(ANY_TRADE, [])
            candidates = [self._rules[i] for i in ids if i not in self._disabled]
            self._sorted_cache[code] = sorted(
                candidates, key=lambda r: (-r.priority, self._order[r.rule_id])
            )
        return list(self._sorted_cache[code])

    def list_rules(self) -> list[dict[str, Any]]:
        """List all rules with their status."""
        return [
            {
                "rule_id": rule.rule_id,
                "trigger_code": rule.trigger_code,
                "companion_code": rule.companion_code,
                "priority": rule.priority,
                "enabled": self.is_enabled(rule.rule_id),
                "relationship": rule.relationship,
            }
            for rule in self
        ]

    def to_records(self) -> list[dict[str, Any]]:
        """Serializable form of every rule, in declaration order."""
        return [asdict(rule) for rule in self]

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]]) -> "RuleCatalog":
        return cls(CompanionRule.from_record(record) for record in records)
