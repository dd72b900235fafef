"""
Tests for trade code normalization.
"""

import pytest

from settlement_engine.core.trade_codes import (
    default_catalog_code,
    normalize_trade_code,
    resolve_category,
    resolve_mitigation_category,
    trade_from_catalog_code,
)


class TestTradeCodes:
    """Tests for trade code helpers."""

    @pytest.mark.parametrize(
        ("alias", "expected"),
        [
            ("drywall", "DRY"),
            ("DYW", "DRY"),
            (" roof ", "RFG"),
            ("ELC", "ELE"),
            ("hvac", "HVA"),
            ("XYZ", "XYZ"),
            (None, "GEN"),
            ("", "GEN"),
        ],
    )
    def test_normalize(self, alias: str | None, expected: str) -> None:
        """Aliases map to canonical codes; unknown codes pass through upper-cased."""
        assert normalize_trade_code(alias) == expected

    def test_trade_from_catalog_code(self) -> None:
        assert trade_from_catalog_code("DEM-DRY-SF") == "DEM"
        assert trade_from_catalog_code("wtr_airf") == "WTR"
        assert trade_from_catalog_code("DYW-1/2") == "DRY"
        assert trade_from_catalog_code(None) is None
        assert trade_from_catalog_code("12-ABC") is None

    def test_default_catalog_codes(self) -> None:
        assert default_catalog_code("DEM") == "DEM-DRY-SF"
        assert default_catalog_code("paint") == "PNT-INT-SF"
        assert default_catalog_code("HVA") is None

    def test_mitigation_category(self) -> None:
        """Mitigation is categorized by peril; water is the default."""
        assert resolve_mitigation_category("Fire") == "FIR"
        assert resolve_mitigation_category("hail") == "WND"
        assert resolve_mitigation_category("mold") == "MLR"
        assert resolve_mitigation_category(None) == "WTR"
        assert resolve_mitigation_category("earthquake") == "WTR"

    def test_resolve_category(self) -> None:
        assert resolve_category("carpet") == "FLR"
        assert resolve_category("MIT", "smoke") == "FIR"
        assert resolve_category("XYZ") == "GEN"
        assert resolve_category(None) == "GEN"
