#!/usr/bin/env python3
"""
Sample Settlement Script.
Demonstrates usage of the Scope & Settlement Rules Engine.
"""

from decimal import Decimal

from settlement_engine import NewScopeItem, ScopeItem, ScopeMeasurements, SettlementEngine
from settlement_engine.config import configure_logging
from settlement_engine.modules.pricing import seed_catalog
from settlement_engine.modules.water_classification import protocol_questions


class DemoStore:
    """Throwaway in-memory store for the demo."""

    def __init__(self) -> None:
        self.scope_items = []
        self.classifications = {}
        self.line_items = {}
        self.policy_rules = []
        self.tax_rules = []

    def get_scope_items(self, session_id):
        return [item for item in self.scope_items if item.session_id == session_id]

    def create_scope_items(self, items):
        created = [
            ScopeItem(id=len(self.scope_items) + i + 1, **item.model_dump(exclude={"id"}))
            for i, item in enumerate(items)
        ]
        self.scope_items.extend(created)
        return created

    def get_water_classification(self, session_id):
        return self.classifications.get(session_id)

    def set_water_classification(self, session_id, classification):
        self.classifications[session_id] = classification

    def get_line_items(self, session_id):
        return self.line_items.get(session_id, [])

    def get_policy_rules(self, claim_id):
        return [rule for rule in self.policy_rules if rule.claim_id == claim_id]

    def create_policy_rule(self, rule):
        self.policy_rules.append(rule)
        return rule

    def get_tax_rules(self, claim_id):
        return [rule for rule in self.tax_rules if rule.claim_id == claim_id]

    def create_tax_rule(self, rule):
        self.tax_rules.append(rule)
        return rule


SESSION_ID = 1
CLAIM_ID = 2024001

POLICY_DATA = {
    "dwelling": 250000,
    "other_structures": 25000,
    "deductible": 1000,
    "tax_rate": 8.25,
}


def main() -> None:
    """Run sample settlement demonstration."""
    configure_logging("WARNING")

    print("=" * 70)
    print("SCOPE & SETTLEMENT RULES ENGINE - SAMPLE SESSION")
    print("=" * 70)
    print()

    store = DemoStore()
    engine = SettlementEngine(store=store, price_catalog=seed_catalog(), carrier="CARRIER_STATE_FARM")

    # Water intake
    print("Water damage intake:")
    for question in protocol_questions():
        print(f"  {question.step}. {question.question}")
    result = engine.record_water_classification(
        SESSION_ID,
        {"water_source": "Dishwasher supply failure", "affected_area": 220},
    )
    classification = result.classification
    print(
        f"Classified: category {classification.category.value}, "
        f"class {classification.water_class.value}, "
        f"drying possible: {classification.drying_possible}"
    )
    print()

    # Primary item plus derived companions
    [primary] = store.create_scope_items(
        [
            NewScopeItem(
                session_id=SESSION_ID,
                room_id=10,
                trade_code="DRY",
                catalog_code="DRY-SHEET-SF",
                description="Replace kitchen drywall",
                quantity=220,
                unit="SF",
            )
        ]
    )
    companions = engine.derive_and_store_companions(
        SESSION_ID, primary, ScopeMeasurements(affected_area=220)
    )
    print(f"Primary item: {primary.trade_code} x {primary.quantity:g} {primary.unit}")
    for companion in companions:
        print(f"  + {companion.trade_code} x {companion.quantity:g}  {companion.description}")
    print()

    # Pricing
    line_items, pricing = engine.price_session(SESSION_ID)
    for issue in pricing.issues:
        print(f"Pricing {issue.severity.value}: {issue.message}")
    store.line_items[SESSION_ID] = line_items
    print(f"Priced {len(line_items)} line item(s), total ${sum(li.total_price for li in line_items):,.2f}")
    print()

    # Settlement
    formatter = engine.settle_with_formatter(
        SESSION_ID, CLAIM_ID, POLICY_DATA, limits={"A": Decimal("250000")}
    )
    print(formatter.to_text())

    print()
    print("-" * 70)
    print("JSON Output (first 500 chars):")
    print("-" * 70)
    json_output = formatter.to_json()
    print(json_output[:500] + "..." if len(json_output) > 500 else json_output)


if __name__ == "__main__":
    main()
