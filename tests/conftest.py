"""
Shared fixtures for the settlement engine tests.
"""

import threading
from collections.abc import Sequence
from datetime import datetime, timezone

import pytest

from settlement_engine.core.models import (
    LineItem,
    NewScopeItem,
    PolicyRule,
    ScopeItem,
    ScopeMeasurements,
    TaxRule,
    WaterClassification,
)
from settlement_engine.modules.pricing import InMemoryPriceCatalog, seed_catalog

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class InMemorySessionStore:
    """Minimal SessionStore used by engine tests."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._next_id = 1
        self.scope_items: list[ScopeItem] = []
        self.classifications: dict[int, WaterClassification] = {}
        self.line_items: dict[int, list[LineItem]] = {}
        self.policy_rules: list[PolicyRule] = []
        self.tax_rules: list[TaxRule] = []
        self.create_calls = 0

    def _new_id(self) -> int:
        with self._guard:
            value = self._next_id
            self._next_id += 1
            return value

    def add_scope_item(self, item: NewScopeItem) -> ScopeItem:
        stored = ScopeItem(id=self._new_id(), **item.model_dump(exclude={"id"}))
        self.scope_items.append(stored)
        return stored

    def get_scope_items(self, session_id: int) -> list[ScopeItem]:
        return [item for item in self.scope_items if item.session_id == session_id]

    def create_scope_items(self, items: Sequence[NewScopeItem]) -> list[ScopeItem]:
        self.create_calls += 1
        return [self.add_scope_item(item) for item in items]

    def get_water_classification(self, session_id: int) -> WaterClassification | None:
        return self.classifications.get(session_id)

    def set_water_classification(
        self, session_id: int, classification: WaterClassification
    ) -> None:
        self.classifications[session_id] = classification

    def get_line_items(self, session_id: int) -> list[LineItem]:
        return list(self.line_items.get(session_id, []))

    def get_policy_rules(self, claim_id: int) -> list[PolicyRule]:
        return [rule for rule in self.policy_rules if rule.claim_id == claim_id]

    def create_policy_rule(self, rule: PolicyRule) -> PolicyRule:
        self.policy_rules.append(rule)
        return rule

    def get_tax_rules(self, claim_id: int) -> list[TaxRule]:
        return [rule for rule in self.tax_rules if rule.claim_id == claim_id]

    def create_tax_rule(self, rule: TaxRule) -> TaxRule:
        self.tax_rules.append(rule)
        return rule


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation time."""
    return FIXED_NOW


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def price_catalog() -> InMemoryPriceCatalog:
    """Seed catalog with national-average prices."""
    return seed_catalog()


@pytest.fixture
def drywall_item(now: datetime) -> ScopeItem:
    """A persisted primary drywall item."""
    return ScopeItem(
        id=1,
        session_id=10,
        room_id=100,
        damage_id=1000,
        trade_code="DRY",
        catalog_code="DRY-SHEET-SF",
        description="Replace drywall",
        quantity=600,
        unit="SF",
        created_at=now,
    )


@pytest.fixture
def large_area() -> ScopeMeasurements:
    return ScopeMeasurements(affected_area=600)
