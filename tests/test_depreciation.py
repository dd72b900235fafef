"""
Tests for per-item depreciation.
"""

from decimal import Decimal

import pytest

from settlement_engine.core.models import DepreciationType, LineItem, PolicyRule
from settlement_engine.modules.depreciation import (
    DepreciationBasis,
    age_life_percentage,
    compute_depreciation,
    depreciation_category,
    life_expectancy,
)


def _item(trade_code: str = "PNT", rcv: str = "1000", **kwargs) -> LineItem:
    return LineItem(trade_code=trade_code, quantity=1, unit_price=Decimal(rcv), **kwargs)


@pytest.fixture
def roof_rule() -> PolicyRule:
    return PolicyRule(apply_roof_schedule=True, roof_schedule_age=15)


class TestExplicitDepreciation:
    """Explicit values on the line item win."""

    def test_explicit_amount(self) -> None:
        outcome = compute_depreciation(_item(depreciation_amount=Decimal("150")))
        assert outcome.amount == Decimal("150.00")
        assert outcome.percentage == pytest.approx(0.15)
        assert outcome.basis == "explicit_amount"
        assert outcome.depreciation_type == DepreciationType.RECOVERABLE

    def test_explicit_percentage(self) -> None:
        """Whole-percent input is stored as a fraction and applied to RCV."""
        outcome = compute_depreciation(_item(depreciation_percentage=25))
        assert outcome.amount == Decimal("250.00")
        assert outcome.basis == "explicit_percentage"

    def test_amount_clamped_to_rcv(self) -> None:
        """Depreciation never exceeds the line's RCV."""
        outcome = compute_depreciation(_item(depreciation_amount=Decimal("1500")))
        assert outcome.amount == Decimal("1000.00")
        assert outcome.percentage == pytest.approx(1.0)

    def test_zero_rcv(self) -> None:
        outcome = compute_depreciation(_item(rcv="0", depreciation_amount=Decimal("10")))
        assert outcome.amount == Decimal("0")
        assert outcome.percentage == 0.0

    def test_explicit_type_respected(self) -> None:
        outcome = compute_depreciation(
            _item(depreciation_percentage=0.1, depreciation_type=DepreciationType.NON_RECOVERABLE)
        )
        assert outcome.depreciation_type == DepreciationType.NON_RECOVERABLE


class TestCategoryRates:
    """Tests for the default-rate table."""

    @pytest.mark.parametrize(
        ("trade_code", "expected"),
        [
            ("RFG", Decimal("200.00")),
            ("SDG", Decimal("150.00")),
            ("DRY", Decimal("100.00")),
            ("PNT", Decimal("80.00")),
            ("DEM", Decimal("0.00")),
            ("MIT", Decimal("0.00")),
            ("XYZ", Decimal("120.00")),
        ],
    )
    def test_rate_by_trade(self, trade_code: str, expected: Decimal) -> None:
        """Unknown categories use the fallback rate."""
        outcome = compute_depreciation(_item(trade_code))
        assert outcome.amount == expected
        assert outcome.basis == "category_rate"

    def test_category_keyword_beats_trade(self) -> None:
        """A free-text category is matched by keyword before the trade map."""
        item = _item("GEN", category="Roof Covering")
        assert depreciation_category(item) == "roofing"
        assert compute_depreciation(item).amount == Decimal("200.00")


class TestAgeLife:
    """Tests for age / life expectancy depreciation."""

    def test_age_life_percentage(self) -> None:
        assert age_life_percentage(5, 10) == pytest.approx(0.5)
        assert age_life_percentage(30, 10) == 1.0
        assert age_life_percentage(5, 0) == 0.0
        assert age_life_percentage(0, 10) == 0.0

    def test_carpet_half_life(self) -> None:
        """Five-year-old carpet with a ten-year life is 50% depreciated."""
        item = _item("FLR", description="Carpet - remove and replace", age=5)
        assert life_expectancy(item) == 10
        outcome = compute_depreciation(item)
        assert outcome.amount == Decimal("500.00")
        assert outcome.basis == "age_life"

    def test_capped_at_full_life(self) -> None:
        item = _item("PNT", age=20)
        assert compute_depreciation(item).amount == Decimal("1000.00")

    def test_explicit_life_expectancy(self) -> None:
        item = _item("PNT", age=5, life_expectancy=20)
        assert compute_depreciation(item).amount == Decimal("250.00")

    def test_zero_life_means_no_depreciation(self) -> None:
        """Debris and general items have no useful life to depreciate."""
        outcome = compute_depreciation(_item("GEN", age=10))
        assert outcome.amount == Decimal("0.00")
        assert outcome.basis == "age_life"

    def test_no_age_uses_category_rate(self) -> None:
        item = _item("FLR", description="Carpet")
        assert compute_depreciation(item).basis == "category_rate"


class TestRoofSchedule:
    """Tests for the roof payment schedule."""

    def test_old_roof_on_schedule(self, roof_rule: PolicyRule) -> None:
        """A roof older than the schedule age is paid on the schedule, non-recoverable."""
        outcome = compute_depreciation(_item("RFG"), roof_rule, property_age=20)
        assert outcome.amount == Decimal("750.00")
        assert outcome.basis == "roof_schedule"
        assert outcome.depreciation_type == DepreciationType.NON_RECOVERABLE

    def test_young_roof_off_schedule(self, roof_rule: PolicyRule) -> None:
        outcome = compute_depreciation(_item("RFG"), roof_rule, property_age=10)
        assert outcome.amount == Decimal("200.00")
        assert outcome.depreciation_type == DepreciationType.RECOVERABLE

    def test_item_age_beats_property_age(self, roof_rule: PolicyRule) -> None:
        outcome = compute_depreciation(_item("RFG", age=18), roof_rule, property_age=5)
        assert outcome.basis == "roof_schedule"

    def test_schedule_only_for_roofing(self, roof_rule: PolicyRule) -> None:
        outcome = compute_depreciation(_item("SDG"), roof_rule, property_age=40)
        assert outcome.basis == "category_rate"

    def test_schedule_needs_age_threshold(self) -> None:
        """Without a schedule age the roof schedule never applies."""
        rule = PolicyRule(apply_roof_schedule=True)
        outcome = compute_depreciation(_item("RFG"), rule, property_age=40)
        assert outcome.basis == "category_rate"


class TestRecoverability:
    """Tests for recoverable vs non-recoverable depreciation."""

    def test_code_upgrade_non_recoverable(self) -> None:
        outcome = compute_depreciation(_item("DRY", is_code_upgrade=True))
        assert outcome.depreciation_type == DepreciationType.NON_RECOVERABLE

    def test_op_ineligible_non_recoverable(self) -> None:
        outcome = compute_depreciation(_item("DRY", op_eligible_default=False))
        assert outcome.depreciation_type == DepreciationType.NON_RECOVERABLE

    def test_default_recoverable(self) -> None:
        outcome = compute_depreciation(_item("DRY"))
        assert outcome.depreciation_type == DepreciationType.RECOVERABLE


class TestDepreciationBasis:
    """Tests for what percentage depreciation is taken against."""

    def test_materials_only(self) -> None:
        item = _item("DRY", material_cost=Decimal("300"), labor_cost=Decimal("700"))
        outcome = compute_depreciation(item, basis=DepreciationBasis.MATERIALS_ONLY)
        assert outcome.amount == Decimal("30.00")
        assert outcome.percentage == pytest.approx(0.03)

    def test_materials_only_without_split_uses_rcv(self) -> None:
        """With no cost split the whole RCV counts as material."""
        outcome = compute_depreciation(_item("DRY"), basis="materials_only")
        assert outcome.amount == Decimal("100.00")

    def test_materials_only_roof_schedule(self, roof_rule: PolicyRule) -> None:
        item = _item("RFG", age=20, material_cost=Decimal("600"))
        outcome = compute_depreciation(item, roof_rule, basis="materials_only")
        assert outcome.amount == Decimal("450.00")
        assert outcome.basis == "roof_schedule"

    def test_rcv_before_op_matches_full(self) -> None:
        """Line totals carry no O&P, so both RCV bases agree per line."""
        item = _item("PNT")
        assert (
            compute_depreciation(item, basis=DepreciationBasis.RCV_BEFORE_OP).amount
            == compute_depreciation(item).amount
            == Decimal("80.00")
        )

    def test_explicit_amount_ignores_basis(self) -> None:
        item = _item("DRY", depreciation_amount=Decimal("75"), material_cost=Decimal("100"))
        assert compute_depreciation(item, basis="materials_only").amount == Decimal("75.00")
