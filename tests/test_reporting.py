"""
Tests for settlement report formatting.
"""

import json
from decimal import Decimal

import pytest

from settlement_engine.core.models import LineItem, PolicyRule, TaxRule
from settlement_engine.modules.settlement import calculate_settlement
from settlement_engine.reporting import SettlementFormatter


@pytest.fixture
def formatter() -> SettlementFormatter:
    lines = [
        LineItem(code="DRY-SHEET-SF", trade_code="DRY", description="Drywall", quantity=1, unit_price=Decimal("1000")),
        LineItem(code="PNT-INT-SF", trade_code="PNT", description="Paint", quantity=1, unit_price=Decimal("1000")),
        LineItem(code="FLR-CARPET-SF", trade_code="FLR", description="Carpet", quantity=1, unit_price=Decimal("1000")),
    ]
    rule = PolicyRule(policy_limit=Decimal("4000"), deductible=Decimal("500"))
    result = calculate_settlement(lines, [rule], tax_rules=[TaxRule(tax_label="State Tax", tax_rate=5)])
    return SettlementFormatter(result)


class TestSettlementFormatter:
    """Tests for SettlementFormatter."""

    def test_text_sections(self, formatter: SettlementFormatter) -> None:
        """The text report has a header, coverage block, totals and issues."""
        text = formatter.to_text()
        assert "CLAIM SETTLEMENT SUMMARY" in text
        assert "COVERAGE A" in text
        assert "LINE ITEMS" in text
        assert "State Tax: $150.00" in text
        assert "Total RCV: $3,750.00" in text
        assert "Net Claim: $2,970.00" in text
        assert "ISSUES" in text
        assert text.rstrip().endswith("=" * SettlementFormatter.WIDTH)

    def test_text_without_lines(self, formatter: SettlementFormatter) -> None:
        assert "LINE ITEMS" not in formatter.to_text(include_lines=False)

    def test_dict_totals_are_floats(self, formatter: SettlementFormatter) -> None:
        data = formatter.to_dict()
        assert data["totals"]["total_rcv"] == pytest.approx(3750.0)
        assert data["totals"]["net_claim"] == pytest.approx(2970.0)
        assert data["tax_breakdown"] == {"State Tax": pytest.approx(150.0)}
        assert data["op_eligible"] is True
        assert data["carrier_code"] == "DEFAULT"
        assert data["labor_efficiency"] == 1.0
        assert data["coverages"][0]["near_limit"] is True
        assert data["lines"][0]["depreciation_type"] == "Recoverable"

    def test_json_round_trips(self, formatter: SettlementFormatter) -> None:
        """JSON output is valid and matches the dictionary form."""
        data = json.loads(formatter.to_json())
        assert data["totals"]["total_acv"] == pytest.approx(3470.0)
        assert data["issues"][0]["code"] == "policy_limit_utilization"
