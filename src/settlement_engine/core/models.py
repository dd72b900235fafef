"""
Core data models for the Scope & Settlement Rules Engine.
Uses Pydantic for validation and serialization.

Percentages and rates are stored as fractions (0.10 == 10%). Values that
arrive as whole percents (10) are normalized once, here, by the model
validators; downstream code never re-checks the convention.
"""

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

ItemId = int | str

CENT = Decimal("0.01")

_COVERAGE_PATTERN = re.compile(r"^(?:coverage\s*)?([A-D])$", re.IGNORECASE)


def normalize_percent(value: float | None) -> float | None:
    """Return a rate in fraction form: values above 1 are treated as whole percents."""
    if value is None:
        return None
    value = float(value)
    return value / 100 if value > 1 else value


def to_money(value: Decimal | float | int) -> Decimal:
    """Round to cents, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def coverage_bucket_name(value: str) -> str:
    """Canonical bucket label: "A", "coverage a" and "Coverage A" all map to "Coverage A"."""
    text = value.strip()
    match = _COVERAGE_PATTERN.match(text)
    if match:
        return f"Coverage {match.group(1).upper()}"
    return text


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so aware and naive values compare safely."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class WaterCategory(int, Enum):
    """Water damage categories per IICRC S500 standard."""

    CATEGORY_1 = 1  # Clean water
    CATEGORY_2 = 2  # Gray water
    CATEGORY_3 = 3  # Black water (sewage/contaminated)


class WaterClass(int, Enum):
    """IICRC class: extent of wetting / evaporation load."""

    CLASS_1 = 1
    CLASS_2 = 2
    CLASS_3 = 3
    CLASS_4 = 4  # Specialty drying or not dryable


class WaterSource(str, Enum):
    CLEAN = "clean"
    GRAY = "gray"
    BLACK = "black"


class ContaminationLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ScopeItemStatus(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class Provenance(str, Enum):
    """How a scope item came to exist."""

    VOICE = "voice"
    AUTO_SCOPE = "auto_scope"
    COMPANION_AUTO_ADDED = "companion_auto_added"
    SUPPLEMENTAL_NEW = "supplemental_new"
    SUPPLEMENTAL_MODIFIED = "supplemental_modified"


class DepreciationType(str, Enum):
    RECOVERABLE = "Recoverable"
    NON_RECOVERABLE = "Non-Recoverable"


class CostType(str, Enum):
    """Cost portion a tax rule applies to."""

    MATERIAL = "material"
    LABOR = "labor"
    ALL = "all"


class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class NewScopeItem(BaseModel):
    """A scope item that has not been persisted yet (no identity)."""

    session_id: ItemId | None = None
    room_id: ItemId | None = None
    damage_id: ItemId | None = None
    trade_code: str
    catalog_code: str | None = None
    description: str = ""
    quantity: float = Field(default=0, ge=0)
    unit: str = "EA"
    status: ScopeItemStatus = ScopeItemStatus.ACTIVE
    provenance: Provenance = Provenance.VOICE
    parent_scope_item_id: ItemId | None = None
    created_at: datetime | None = None

    @field_validator("trade_code")
    @classmethod
    def _upper_trade_code(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def is_active(self) -> bool:
        return self.status == ScopeItemStatus.ACTIVE


class ScopeItem(NewScopeItem):
    """A single persisted unit of repair work."""

    id: ItemId

    def soft_delete(self) -> "ScopeItem":
        """Return a removed copy; scope items are never physically deleted."""
        return self.model_copy(update={"status": ScopeItemStatus.REMOVED})


class ScopeMeasurements(BaseModel):
    """Measurements used by companion quantity formulas."""

    affected_area: float = Field(default=0, ge=0)
    gross_area: float | None = Field(default=None, ge=0)
    linear_feet: float = Field(default=0, ge=0)

    def model_post_init(self, __context: Any) -> None:
        """Gross area falls back to the affected area."""
        if self.gross_area is None:
            self.gross_area = self.affected_area


class WaterProtocolResponses(BaseModel):
    """Answers to the seven-question water damage intake."""

    water_source: str = ""
    standing_water_start: datetime | None = None
    standing_water_end: datetime | None = None
    affected_area: float | None = None
    visible_contamination: bool = False
    affected_materials: str | None = None
    notes: str | None = None


class WaterClassification(BaseModel):
    """IICRC-style classification attached to an inspection session."""

    model_config = ConfigDict(frozen=True)

    category: WaterCategory
    water_class: WaterClass
    source: WaterSource
    contamination_level: ContaminationLevel
    drying_possible: bool
    classified_at: datetime
    notes: str | None = None


class PolicyRule(BaseModel):
    """Per-claim, per-coverage configuration."""

    claim_id: ItemId | None = None
    coverage_type: str = "A"
    policy_limit: Decimal | None = Field(default=None, ge=0)
    deductible: Decimal = Field(default=Decimal("0"), ge=0)
    apply_roof_schedule: bool = False
    roof_schedule_age: float | None = Field(default=None, ge=0)
    overhead_pct: float | None = Field(default=None, ge=0)
    profit_pct: float | None = Field(default=None, ge=0)
    tax_rate: float | None = Field(default=None, ge=0)
    op_excluded_trades: list[str] = Field(default_factory=list)

    @field_validator("coverage_type")
    @classmethod
    def _coverage_letter(cls, value: str) -> str:
        match = _COVERAGE_PATTERN.match(value.strip())
        return match.group(1).upper() if match else value.strip()

    @field_validator("overhead_pct", "profit_pct", "tax_rate")
    @classmethod
    def _fraction(cls, value: float | None) -> float | None:
        return normalize_percent(value)

    @field_validator("op_excluded_trades")
    @classmethod
    def _upper_trades(cls, value: list[str]) -> list[str]:
        return [trade.strip().upper() for trade in value]

    @property
    def bucket(self) -> str:
        return coverage_bucket_name(self.coverage_type)


class TaxRule(BaseModel):
    """Per-claim tax configuration."""

    claim_id: ItemId | None = None
    tax_label: str = "Sales Tax"
    tax_rate: float = Field(ge=0)
    applies_to_categories: list[str] = Field(default_factory=list)
    applies_to_cost_type: CostType = CostType.MATERIAL
    is_default: bool = False

    @field_validator("tax_rate")
    @classmethod
    def _fraction(cls, value: float) -> float:
        return normalize_percent(value)

    @field_validator("applies_to_cost_type", mode="before")
    @classmethod
    def _cost_type_alias(cls, value: Any) -> Any:
        aliases = {"materials_only": "material", "materials": "material", "labor_only": "labor"}
        if isinstance(value, str):
            return aliases.get(value.strip().lower(), value.strip().lower())
        return value

    def applies_to(self, category: str | None, trade_code: str | None) -> bool:
        """Empty category list applies to everything."""
        if not self.applies_to_categories:
            return True
        wanted = {c.strip().lower() for c in self.applies_to_categories}
        return (category or "").strip().lower() in wanted or (
            trade_code or ""
        ).strip().lower() in wanted


class LineItem(BaseModel):
    """Priced form of a scope item (a finalized estimate row)."""

    id: ItemId | None = None
    session_id: ItemId | None = None
    scope_item_id: ItemId | None = None
    room_id: ItemId | None = None
    code: str | None = Field(default=None, description="Catalog / Xactimate code")
    trade_code: str = "GEN"
    category: str | None = None
    description: str = ""
    quantity: float = Field(default=0, ge=0)
    unit: str = "EA"
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    total_price: Decimal | None = None
    # Extended (quantity-multiplied) cost split, used for tax bases
    material_cost: Decimal | None = Field(default=None, ge=0)
    labor_cost: Decimal | None = Field(default=None, ge=0)
    equipment_cost: Decimal | None = Field(default=None, ge=0)
    depreciation_amount: Decimal | None = Field(default=None, ge=0)
    depreciation_percentage: float | None = Field(default=None, ge=0)
    depreciation_type: DepreciationType | None = None
    coverage_bucket: str | None = None
    structure: str | None = None
    age: float | None = Field(default=None, ge=0)
    life_expectancy: float | None = Field(default=None, ge=0)
    is_code_upgrade: bool = False
    op_eligible_default: bool = True
    provenance: Provenance | None = None

    @field_validator("trade_code")
    @classmethod
    def _upper_trade_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("depreciation_percentage")
    @classmethod
    def _fraction(cls, value: float | None) -> float | None:
        return normalize_percent(value)

    def model_post_init(self, __context: Any) -> None:
        """Calculate total if not provided."""
        if self.total_price is None:
            self.total_price = to_money(Decimal(str(self.quantity)) * self.unit_price)

    def cost_split(self) -> tuple[Decimal, Decimal]:
        """(material, labor) portions of the RCV; with no split the whole RCV is material."""
        rcv = self.total_price or Decimal("0")
        material, labor = self.material_cost, self.labor_cost
        if material is None and labor is None:
            return rcv, Decimal("0")
        if material is None:
            material = max(Decimal("0"), rcv - labor)
        elif labor is None:
            labor = max(Decimal("0"), rcv - material)
        return material, labor


class ValidationIssue(BaseModel):
    severity: IssueSeverity
    message: str
    item_id: ItemId | None = None
    code: str | None = None


class ValidationResult(BaseModel):
    """A set of issues is valid iff it holds no error-severity issue."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    def add(
        self,
        severity: IssueSeverity,
        message: str,
        item_id: ItemId | None = None,
        code: str | None = None,
    ) -> None:
        self.issues.append(
            ValidationIssue(severity=severity, message=message, item_id=item_id, code=code)
        )


class LineSettlement(BaseModel):
    """Settlement figures for one line item."""

    line_item_id: ItemId | None = None
    code: str | None = None
    trade_code: str
    category: str | None = None
    description: str = ""
    coverage_bucket: str
    rcv: Decimal
    depreciation_amount: Decimal = Decimal("0")
    depreciation_percentage: float = 0.0
    depreciation_type: DepreciationType = DepreciationType.RECOVERABLE
    depreciation_basis: str = "category_rate"
    acv: Decimal = Decimal("0")
    op_eligible: bool = False
    tax_amount: Decimal = Decimal("0")


class CoverageSummary(BaseModel):
    """Totals for one coverage bucket."""

    coverage_bucket: str
    line_item_total: Decimal = Decimal("0")
    overhead_amount: Decimal = Decimal("0")
    profit_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    rcv: Decimal = Decimal("0")
    recoverable_depreciation: Decimal = Decimal("0")
    non_recoverable_depreciation: Decimal = Decimal("0")
    acv: Decimal = Decimal("0")
    policy_limit: Decimal | None = None
    utilization: float | None = None
    near_limit: bool = False


class SettlementResult(BaseModel):
    """Claim-level settlement output."""

    calculated_at: datetime = Field(default_factory=utcnow)
    carrier_code: str = "DEFAULT"
    labor_efficiency: float = 1.0
    lines: list[LineSettlement] = Field(default_factory=list)
    coverages: list[CoverageSummary] = Field(default_factory=list)
    trades_involved: list[str] = Field(default_factory=list)
    op_threshold: int = 3
    op_eligible: bool = False
    overhead_amount: Decimal = Decimal("0")
    profit_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    tax_breakdown: dict[str, Decimal] = Field(default_factory=dict)
    line_item_total: Decimal = Decimal("0")
    total_rcv: Decimal = Decimal("0")
    total_depreciation: Decimal = Decimal("0")
    recoverable_depreciation: Decimal = Decimal("0")
    non_recoverable_depreciation: Decimal = Decimal("0")
    total_acv: Decimal = Decimal("0")
    deductible: Decimal = Decimal("0")
    net_claim: Decimal = Decimal("0")
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    def coverage(self, bucket: str) -> CoverageSummary | None:
        name = coverage_bucket_name(bucket)
        return next((c for c in self.coverages if c.coverage_bucket == name), None)
