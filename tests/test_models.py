"""
Tests for core data models.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from settlement_engine.core.models import (
    ContaminationLevel,
    CostType,
    IssueSeverity,
    LineItem,
    NewScopeItem,
    PolicyRule,
    Provenance,
    ScopeItem,
    ScopeItemStatus,
    ScopeMeasurements,
    TaxRule,
    ValidationResult,
    WaterCategory,
    WaterClass,
    WaterClassification,
    WaterSource,
    as_utc,
    coverage_bucket_name,
    normalize_percent,
    to_money,
)


class TestHelpers:
    """Tests for model-level helpers."""

    def test_normalize_percent(self) -> None:
        """Whole percents become fractions; fractions pass through."""
        assert normalize_percent(10) == pytest.approx(0.10)
        assert normalize_percent(0.25) == pytest.approx(0.25)
        assert normalize_percent(None) is None

    def test_to_money_rounds_half_up(self) -> None:
        """Money rounds to cents, half-up."""
        assert to_money(Decimal("2.345")) == Decimal("2.35")
        assert to_money(Decimal("2.344")) == Decimal("2.34")
        assert to_money(3) == Decimal("3.00")

    def test_coverage_bucket_name(self) -> None:
        """Bucket labels are canonicalized."""
        assert coverage_bucket_name("a") == "Coverage A"
        assert coverage_bucket_name("coverage c") == "Coverage C"
        assert coverage_bucket_name("Coverage D") == "Coverage D"
        assert coverage_bucket_name("Flood") == "Flood"

    def test_as_utc_treats_naive_as_utc(self) -> None:
        """Naive datetimes are assumed to be UTC."""
        naive = datetime(2025, 1, 1, 8, 0)
        assert as_utc(naive) == datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


class TestScopeItem:
    """Tests for scope item models."""

    def test_trade_code_is_normalized(self) -> None:
        """Trade codes are stripped and upper-cased."""
        item = NewScopeItem(trade_code=" dry ", quantity=1)
        assert item.trade_code == "DRY"

    def test_defaults(self) -> None:
        """New items are active voice items without a parent."""
        item = NewScopeItem(trade_code="PNT")
        assert item.status == ScopeItemStatus.ACTIVE
        assert item.provenance == Provenance.VOICE
        assert item.parent_scope_item_id is None
        assert item.is_active

    def test_negative_quantity_rejected(self) -> None:
        """Quantities are non-negative."""
        with pytest.raises(ValidationError):
            NewScopeItem(trade_code="DRY", quantity=-1)

    def test_soft_delete_returns_removed_copy(self) -> None:
        """Soft delete never mutates the original item."""
        item = ScopeItem(id=7, session_id=1, trade_code="DEM", quantity=2)
        removed = item.soft_delete()

        assert removed.status == ScopeItemStatus.REMOVED
        assert not removed.is_active
        assert removed.id == 7
        assert item.status == ScopeItemStatus.ACTIVE


class TestScopeMeasurements:
    """Tests for ScopeMeasurements."""

    def test_gross_area_defaults_to_affected(self) -> None:
        """Gross area falls back to the affected area."""
        measurements = ScopeMeasurements(affected_area=250)
        assert measurements.gross_area == 250
        assert measurements.linear_feet == 0

    def test_explicit_gross_area(self) -> None:
        """An explicit gross area is kept."""
        measurements = ScopeMeasurements(affected_area=250, gross_area=400)
        assert measurements.gross_area == 400


class TestWaterClassification:
    """Tests for WaterClassification."""

    def test_is_frozen(self) -> None:
        """Classifications are immutable value objects."""
        classification = WaterClassification(
            category=WaterCategory.CATEGORY_1,
            water_class=WaterClass.CLASS_1,
            source=WaterSource.CLEAN,
            contamination_level=ContaminationLevel.LOW,
            drying_possible=True,
            classified_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        with pytest.raises(ValidationError):
            classification.category = WaterCategory.CATEGORY_3


class TestPolicyRule:
    """Tests for PolicyRule."""

    def test_percentages_normalized(self) -> None:
        """Whole percents are stored as fractions."""
        rule = PolicyRule(overhead_pct=10, profit_pct=0.15, tax_rate=8)
        assert rule.overhead_pct == pytest.approx(0.10)
        assert rule.profit_pct == pytest.approx(0.15)
        assert rule.tax_rate == pytest.approx(0.08)

    def test_coverage_type_and_bucket(self) -> None:
        """Coverage type is stored as a letter, bucket as a label."""
        rule = PolicyRule(coverage_type="Coverage b")
        assert rule.coverage_type == "B"
        assert rule.bucket == "Coverage B"

    def test_excluded_trades_upper_cased(self) -> None:
        """Excluded trade codes are upper-cased."""
        rule = PolicyRule(op_excluded_trades=["mit", " dem"])
        assert rule.op_excluded_trades == ["MIT", "DEM"]

    def test_defaults(self) -> None:
        """Unset rules have no limit and no deductible."""
        rule = PolicyRule()
        assert rule.policy_limit is None
        assert rule.deductible == Decimal("0")
        assert rule.apply_roof_schedule is False


class TestTaxRule:
    """Tests for TaxRule."""

    def test_cost_type_aliases(self) -> None:
        """Legacy cost-type spellings are accepted."""
        assert TaxRule(tax_rate=8, applies_to_cost_type="materials_only").applies_to_cost_type == CostType.MATERIAL
        assert TaxRule(tax_rate=8, applies_to_cost_type="labor_only").applies_to_cost_type == CostType.LABOR
        assert TaxRule(tax_rate=8, applies_to_cost_type="ALL").applies_to_cost_type == CostType.ALL

    def test_rate_normalized(self) -> None:
        """Tax rate percents become fractions."""
        assert TaxRule(tax_rate=8.25).tax_rate == pytest.approx(0.0825)

    def test_empty_categories_apply_to_everything(self) -> None:
        """No category filter means every item is taxed."""
        rule = TaxRule(tax_rate=0.08)
        assert rule.applies_to("anything", "XYZ")
        assert rule.applies_to(None, None)

    def test_category_filter(self) -> None:
        """Category filters match category or trade code, case-insensitively."""
        rule = TaxRule(tax_rate=0.08, applies_to_categories=["rfg", "Roofing"])
        assert rule.applies_to(None, "RFG")
        assert rule.applies_to("roofing", "GEN")
        assert not rule.applies_to("PNT", "PNT")


class TestLineItem:
    """Tests for LineItem model."""

    def test_total_calculation(self) -> None:
        """Test that total is calculated from quantity and unit price."""
        item = LineItem(code="DEM-DRY-SF", quantity=3, unit_price=Decimal("12.50"))
        assert item.total_price == Decimal("37.50")

    def test_explicit_total(self) -> None:
        """Test that explicit total is preserved."""
        item = LineItem(
            code="DEM-DRY-SF",
            quantity=3,
            unit_price=Decimal("12.50"),
            total_price=Decimal("40.00"),
        )
        assert item.total_price == Decimal("40.00")

    def test_depreciation_percentage_normalized(self) -> None:
        """Explicit depreciation percents are stored as fractions."""
        item = LineItem(quantity=1, unit_price=Decimal("100"), depreciation_percentage=25)
        assert item.depreciation_percentage == pytest.approx(0.25)

    def test_trade_code_upper_cased(self) -> None:
        item = LineItem(trade_code="rfg")
        assert item.trade_code == "RFG"


class TestValidationResult:
    """Tests for ValidationResult."""

    def test_valid_without_errors(self) -> None:
        """Warnings alone keep a result valid."""
        result = ValidationResult()
        result.add(IssueSeverity.WARNING, "check this")
        assert result.valid
        assert len(result.warnings) == 1
        assert result.errors == []

    def test_invalid_with_error(self) -> None:
        """Any error makes the result invalid."""
        result = ValidationResult()
        result.add(IssueSeverity.ERROR, "broken", item_id=3, code="bad")
        assert not result.valid
        assert result.errors[0].item_id == 3
        assert result.errors[0].code == "bad"
