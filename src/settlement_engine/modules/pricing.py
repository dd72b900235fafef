"""
Pricing Resolution Module.
Resolves catalog and regional prices for scope items and validates estimates.
"""

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Protocol

from pydantic import BaseModel, Field, field_validator

from ..core.models import (
    IssueSeverity,
    LineItem,
    NewScopeItem,
    ValidationResult,
    normalize_percent,
    to_money,
)
from ..core.trade_codes import default_catalog_code, normalize_trade_code, resolve_category

logger = logging.getLogger("settlement_engine.modules.pricing")

DEFAULT_REGION = "US_NATIONAL"


class CatalogItem(BaseModel):
    """A priceable catalog entry."""

    code: str
    description: str = ""
    unit: str = "EA"
    trade_code: str = "GEN"
    default_waste_factor: float = Field(default=0, ge=0)

    @field_validator("code", "trade_code")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("default_waste_factor")
    @classmethod
    def _fraction(cls, value: float) -> float:
        return normalize_percent(value)


class RegionalPrice(BaseModel):
    """Per-unit cost components of a catalog code in one region."""

    code: str
    region_id: str
    material_cost: Decimal = Field(default=Decimal("0"), ge=0)
    labor_cost: Decimal = Field(default=Decimal("0"), ge=0)
    equipment_cost: Decimal = Field(default=Decimal("0"), ge=0)


class UnitPriceBreakdown(BaseModel):
    material_cost: Decimal  # after waste
    labor_cost: Decimal
    equipment_cost: Decimal
    waste_factor: float
    unit_price: Decimal


class PriceCatalog(Protocol):
    """Price lookups supplied by the storage layer."""

    def get_catalog_item(self, code: str) -> CatalogItem | None: ...

    def get_regional_price(self, code: str, region_id: str) -> RegionalPrice | None: ...


class InMemoryPriceCatalog:
    """Dictionary-backed PriceCatalog for tests, scripts and seeding."""

    def __init__(
        self,
        items: Iterable[CatalogItem] = (),
        prices: Iterable[RegionalPrice] = (),
    ) -> None:
        self._items: dict[str, CatalogItem] = {}
        self._prices: dict[tuple[str, str], RegionalPrice] = {}
        for item in items:
            self.add_item(item)
        for price in prices:
            self.set_price(price)

    def add_item(self, item: CatalogItem) -> None:
        self._items[item.code] = item

    def set_price(self, price: RegionalPrice) -> None:
        self._prices[(price.code.strip().upper(), price.region_id)] = price

    def get_catalog_item(self, code: str) -> CatalogItem | None:
        return self._items.get(code.strip().upper())

    def get_regional_price(self, code: str, region_id: str) -> RegionalPrice | None:
        return self._prices.get((code.strip().upper(), region_id))


SEED_CATALOG_ITEMS: tuple[CatalogItem, ...] = (
    CatalogItem(code="MIT-AIRM-DAY", description="Air mover per day", unit="DAY", trade_code="MIT"),
    CatalogItem(code="DEM-DRY-SF", description="Remove & reset drywall, per SF", unit="SF", trade_code="DEM"),
    CatalogItem(
        code="DRY-SHEET-SF",
        description="Drywall sheet installation, per SF",
        unit="SF",
        trade_code="DRY",
        default_waste_factor=10,
    ),
    CatalogItem(
        code="PNT-INT-SF",
        description="Interior paint, per SF",
        unit="SF",
        trade_code="PNT",
        default_waste_factor=10,
    ),
    CatalogItem(
        code="FLR-CARPET-SF",
        description="Carpet installation, per SF",
        unit="SF",
        trade_code="FLR",
        default_waste_factor=12,
    ),
    CatalogItem(
        code="RFG-SHIN-AR",
        description="Architectural shingles, per SQ",
        unit="SQ",
        trade_code="RFG",
        default_waste_factor=10,
    ),
    CatalogItem(
        code="WIN-DOUBLE-EA",
        description="Double-hung window, each",
        unit="EA",
        trade_code="WIN",
        default_waste_factor=5,
    ),
)

SEED_REGIONAL_PRICES: tuple[RegionalPrice, ...] = tuple(
    RegionalPrice(
        code=code,
        region_id=DEFAULT_REGION,
        material_cost=Decimal(material),
        labor_cost=Decimal(labor),
        equipment_cost=Decimal(equipment),
    )
    for code, material, labor, equipment in (
        ("MIT-AIRM-DAY", "10.00", "10.00", "40.00"),
        ("DEM-DRY-SF", "0.50", "1.50", "0.25"),
        ("DRY-SHEET-SF", "0.75", "1.50", "0.25"),
        ("PNT-INT-SF", "0.35", "0.75", "0.15"),
        ("FLR-CARPET-SF", "2.50", "1.50", "0.50"),
        ("RFG-SHIN-AR", "100.00", "40.00", "5.00"),
        ("WIN-DOUBLE-EA", "150.00", "75.00", "10.00"),
    )
)


def seed_catalog() -> InMemoryPriceCatalog:
    """A catalog holding the seed items and their national-average prices."""
    return InMemoryPriceCatalog(SEED_CATALOG_ITEMS, SEED_REGIONAL_PRICES)


class PricingResolver:
    """
    Prices scope items against a catalog.

    Unpriceable items (no catalog code, unknown code, no regional price)
    are skipped with a warning rather than failing the estimate.
    """

    def __init__(self, catalog: PriceCatalog) -> None:
        self.catalog = catalog

    @staticmethod
    def unit_price_breakdown(
        catalog_item: CatalogItem,
        regional_price: RegionalPrice,
        waste_factor: float | None = None,
    ) -> UnitPriceBreakdown:
        """Waste applies to material only; labor and equipment are taken as-is."""
        waste = normalize_percent(waste_factor)
        if waste is None:
            waste = catalog_item.default_waste_factor

        material = to_money(regional_price.material_cost * (1 + Decimal(str(waste))))
        labor = to_money(regional_price.labor_cost)
        equipment = to_money(regional_price.equipment_cost)
        return UnitPriceBreakdown(
            material_cost=material,
            labor_cost=labor,
            equipment_cost=equipment,
            waste_factor=waste,
            unit_price=to_money(material + labor + equipment),
        )

    def calculate_line_item_price(
        self,
        catalog_item: CatalogItem,
        regional_price: RegionalPrice,
        quantity: float,
        waste_factor: float | None = None,
    ) -> LineItem:
        """
        Price a quantity of a catalog item.

        Args:
            catalog_item: Catalog entry being priced
            regional_price: Regional unit costs for the entry
            quantity: Quantity in the catalog unit
            waste_factor: Override for the catalog's default waste factor

        Returns:
            A LineItem with unit price, total and extended cost split
        """
        breakdown = self.unit_price_breakdown(catalog_item, regional_price, waste_factor)
        qty = Decimal(str(quantity))
        trade = normalize_trade_code(catalog_item.trade_code)
        return LineItem(
            code=catalog_item.code,
            trade_code=trade,
            category=resolve_category(trade),
            description=catalog_item.description,
            quantity=quantity,
            unit=catalog_item.unit,
            unit_price=breakdown.unit_price,
            total_price=to_money(breakdown.unit_price * qty),
            material_cost=to_money(breakdown.material_cost * qty),
            labor_cost=to_money(breakdown.labor_cost * qty),
            equipment_cost=to_money(breakdown.equipment_cost * qty),
        )

    def price_scope_item(
        self,
        item: NewScopeItem,
        region_id: str = DEFAULT_REGION,
        peril_type: str | None = None,
    ) -> LineItem | None:
        """Price one scope item; returns None when it cannot be priced."""
        if not item.is_active:
            return None

        item_id = getattr(item, "id", None)
        code = item.catalog_code or default_catalog_code(item.trade_code)
        if not code:
            logger.warning("Scope item %s (%s) has no catalog code", item_id, item.trade_code)
            return None

        try:
            catalog_item = self.catalog.get_catalog_item(code)
            regional_price = (
                self.catalog.get_regional_price(code, region_id) if catalog_item else None
            )
        except Exception:
            logger.warning("Price lookup failed for %s in %s", code, region_id, exc_info=True)
            return None

        if catalog_item is None:
            logger.warning("Catalog code %s not found (scope item %s)", code, item_id)
            return None
        if regional_price is None:
            logger.warning("No %s price for %s (scope item %s)", region_id, code, item_id)
            return None

        line = self.calculate_line_item_price(catalog_item, regional_price, item.quantity)
        trade = normalize_trade_code(item.trade_code)
        return line.model_copy(
            update={
                "session_id": item.session_id,
                "scope_item_id": item_id,
                "room_id": item.room_id,
                "trade_code": trade,
                "category": resolve_category(trade, peril_type),
                "description": item.description or catalog_item.description,
                "provenance": item.provenance,
            }
        )

    def price_scope_items(
        self,
        items: Iterable[NewScopeItem],
        region_id: str = DEFAULT_REGION,
        peril_type: str | None = None,
    ) -> tuple[list[LineItem], ValidationResult]:
        """Price every active item, reporting unpriceable items and estimate issues."""
        line_items: list[LineItem] = []
        result = ValidationResult()

        for item in items:
            if not item.is_active:
                logger.debug("Skipping removed scope item %s", getattr(item, "id", None))
                continue
            line = self.price_scope_item(item, region_id, peril_type)
            if line is None:
                result.add(
                    IssueSeverity.WARNING,
                    f"Could not price {item.trade_code} item "
                    f"({item.catalog_code or default_catalog_code(item.trade_code) or 'no code'})",
                    item_id=getattr(item, "id", None),
                    code="unpriced_item",
                )
                continue
            line_items.append(line)

        result.issues.extend(self.validate_estimate(line_items).issues)
        logger.info(
            "Priced %d line item(s) in %s with %d issue(s)",
            len(line_items),
            region_id,
            len(result.issues),
        )
        return line_items, result

    @staticmethod
    def validate_estimate(line_items: Sequence[LineItem]) -> ValidationResult:
        """Duplicate codes and trade sequencing (warnings), bad quantities (errors)."""
        result = ValidationResult()

        seen: set[str] = set()
        for item in line_items:
            if item.code is None:
                continue
            if item.code in seen:
                result.add(
                    IssueSeverity.WARNING,
                    f"Duplicate item: {item.code} appears multiple times",
                    item_id=item.id,
                    code="duplicate_item",
                )
            seen.add(item.code)

        # Common sequence: DEM -> DRY -> PNT
        trades = {normalize_trade_code(item.trade_code) for item in line_items}
        if "DRY" in trades and "DEM" not in trades:
            result.add(
                IssueSeverity.WARNING,
                "Drywall work (DRY) present without Demolition (DEM); verify existing condition",
                code="missing_demolition",
            )
        if "PNT" in trades and "DRY" not in trades:
            result.add(
                IssueSeverity.WARNING,
                "Painting (PNT) present without Drywall (DRY); verify surface prep",
                code="missing_drywall",
            )

        for item in line_items:
            if item.quantity <= 0:
                result.add(
                    IssueSeverity.ERROR,
                    f"Item {item.code} has invalid quantity",
                    item_id=item.id,
                    code="invalid_quantity",
                )

        return result
