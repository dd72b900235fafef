"""
Depreciation Module.
Canonical default-rate table, life-expectancy table and per-item depreciation.

Precedence for a single line item:
    1. explicit depreciation amount
    2. explicit depreciation percentage
    3. roof payment schedule (roofing only, when the policy applies one)
    4. age / life expectancy
    5. category default rate (fallback rate when the category is unknown)
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ..config import Settings, settings as default_settings
from ..core.models import DepreciationType, LineItem, PolicyRule, to_money


class DepreciationBasis(str, Enum):
    """Portion of an item's RCV that percentage depreciation is taken against."""

    RCV_FULL = "rcv_full"
    # Line totals never include O&P, so this matches RCV_FULL per line
    RCV_BEFORE_OP = "rcv_before_op"
    MATERIALS_ONLY = "materials_only"


# Canonical default depreciation rates by category (fractions of RCV)
DEFAULT_DEPRECIATION_RATES: dict[str, float] = {
    "roofing": 0.20,
    "siding": 0.15,
    "exterior": 0.15,
    "interior": 0.10,
    "flooring": 0.10,
    "painting": 0.08,
    "mitigation": 0.0,
    "demolition": 0.0,
    "general": 0.0,
}

TRADE_DEPRECIATION_CATEGORIES: dict[str, str] = {
    "RFG": "roofing",
    "SDG": "siding",
    "EXT": "exterior",
    "PNT": "painting",
    "FLR": "flooring",
    "MIT": "mitigation",
    "DEM": "demolition",
    "GEN": "general",
    "DRY": "interior",
    "INS": "interior",
    "CAB": "interior",
    "CTR": "interior",
    "FRM": "interior",
    "DOR": "interior",
    "WIN": "interior",
}

# Substrings of free-text categories, checked in order
_CATEGORY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("roof", "roofing"),
    ("siding", "siding"),
    ("exterior", "exterior"),
    ("paint", "painting"),
    ("floor", "flooring"),
    ("carpet", "flooring"),
    ("mitigation", "mitigation"),
    ("demo", "demolition"),
    ("drywall", "interior"),
    ("interior", "interior"),
)

# Useful life in years: keyword lives plus a category default
LIFE_EXPECTANCY_TABLE: dict[str, dict[str, float]] = {
    "roofing": {
        "3-tab": 20,
        "laminated": 30,
        "metal": 50,
        "tile": 50,
        "flat": 20,
        "wood shake": 30,
        "felt": 30,
        "ice & water": 30,
        "ridge vent": 25,
        "drip edge": 25,
        "flashing": 25,
        "default": 25,
    },
    "siding": {
        "vinyl": 40,
        "aluminum": 40,
        "wood": 30,
        "fiber cement": 50,
        "hardie": 50,
        "stucco": 50,
        "brick": 100,
        "default": 35,
    },
    "soffit_fascia": {"default": 25},
    "gutters": {"default": 20},
    "windows": {"default": 30},
    "doors": {"default": 30},
    "drywall": {"default": 70},
    "painting": {"default": 7},
    "flooring": {
        "carpet": 10,
        "hardwood": 50,
        "laminate": 15,
        "tile": 50,
        "vinyl": 20,
        "lvp": 20,
        "default": 20,
    },
    "plumbing": {"default": 40},
    "electrical": {"default": 40},
    "hvac": {"default": 15},
    "fencing": {"default": 20},
    "cabinetry": {"default": 50},
    "debris": {"default": 0},
    "general": {"default": 0},
}

TRADE_LIFE_CATEGORIES: dict[str, str] = {
    "RFG": "roofing",
    "SDG": "siding",
    "WIN": "windows",
    "DOR": "doors",
    "DRY": "drywall",
    "PNT": "painting",
    "FLR": "flooring",
    "PLM": "plumbing",
    "ELE": "electrical",
    "HVA": "hvac",
    "CAB": "cabinetry",
    "DEM": "debris",
    "GEN": "general",
}


@dataclass(frozen=True)
class DepreciationOutcome:
    """Depreciation decided for one line item."""

    amount: Decimal
    percentage: float  # fraction of RCV
    depreciation_type: DepreciationType
    basis: str  # explicit_amount | explicit_percentage | roof_schedule | age_life | category_rate


def depreciation_category(item: LineItem) -> str | None:
    """Rate-table category for an item: its own category first, then its trade."""
    if item.category:
        text = item.category.strip().lower()
        if text in DEFAULT_DEPRECIATION_RATES:
            return text
        for keyword, category in _CATEGORY_KEYWORDS:
            if keyword in text:
                return category
    return TRADE_DEPRECIATION_CATEGORIES.get(item.trade_code)


def default_rate(item: LineItem, config: Settings | None = None) -> float:
    config = config or default_settings
    category = depreciation_category(item)
    if category is None:
        return config.fallback_depreciation_rate
    return DEFAULT_DEPRECIATION_RATES[category]


def is_roofing(item: LineItem) -> bool:
    return depreciation_category(item) == "roofing"


def life_expectancy(item: LineItem) -> float | None:
    """Useful life from the item, else from the life-expectancy table."""
    if item.life_expectancy is not None:
        return item.life_expectancy

    text = f"{item.category or ''} {item.description}".lower()
    table_key = TRADE_LIFE_CATEGORIES.get(item.trade_code)
    if table_key is None and item.category:
        key = item.category.strip().lower().replace("/", "_").replace(" ", "_")
        table_key = key if key in LIFE_EXPECTANCY_TABLE else None
    if table_key is None:
        return None

    lives = LIFE_EXPECTANCY_TABLE[table_key]
    for keyword, years in lives.items():
        if keyword != "default" and keyword in text:
            return years
    return lives["default"]


def age_life_percentage(age: float, life: float) -> float:
    """Straight-line depreciation capped at 100%; zero life means no depreciation."""
    if life <= 0 or age <= 0:
        return 0.0
    return min(1.0, age / life)


def roof_schedule_applies(
    item: LineItem, policy_rule: PolicyRule | None, property_age: float | None
) -> bool:
    if policy_rule is None or not policy_rule.apply_roof_schedule or not is_roofing(item):
        return False
    if policy_rule.roof_schedule_age is None:
        return False
    roof_age = item.age if item.age is not None else property_age
    if roof_age is None:
        return False
    return roof_age >= policy_rule.roof_schedule_age


def depreciable_base(item: LineItem, basis: DepreciationBasis | str) -> Decimal:
    if DepreciationBasis(basis) == DepreciationBasis.MATERIALS_ONLY:
        material, _ = item.cost_split()
        return material
    return item.total_price or Decimal("0")


def compute_depreciation(
    item: LineItem,
    policy_rule: PolicyRule | None = None,
    property_age: float | None = None,
    config: Settings | None = None,
    basis: DepreciationBasis | str = DepreciationBasis.RCV_FULL,
) -> DepreciationOutcome:
    """
    Decide depreciation for one priced line item.

    Args:
        item: The line item (its total price is the RCV)
        policy_rule: Policy rule of the item's coverage bucket
        property_age: Age of the structure, used when the item has no age
        config: Settings override
        basis: What percentage depreciation is taken against; explicit
            amounts are used as given

    Returns:
        Amount clamped to [0, RCV], the effective percentage, type and basis
    """
    config = config or default_settings
    rcv = item.total_price or Decimal("0")
    base = depreciable_base(item, basis)
    on_schedule = roof_schedule_applies(item, policy_rule, property_age)

    if item.depreciation_amount is not None:
        amount = to_money(item.depreciation_amount)
        source = "explicit_amount"
    elif item.depreciation_percentage is not None:
        amount = to_money(base * Decimal(str(item.depreciation_percentage)))
        source = "explicit_percentage"
    elif on_schedule:
        amount = to_money(base * Decimal(str(config.roof_schedule_depreciation_pct)))
        source = "roof_schedule"
    else:
        life = life_expectancy(item) if item.age is not None else None
        if item.age is not None and life is not None:
            pct = age_life_percentage(item.age, life)
            source = "age_life"
        else:
            pct = default_rate(item, config)
            source = "category_rate"
        amount = to_money(base * Decimal(str(pct)))

    amount = min(max(amount, Decimal("0")), rcv) if rcv > 0 else Decimal("0")
    percentage = float(amount / rcv) if rcv > 0 else 0.0

    non_recoverable = (
        item.depreciation_type == DepreciationType.NON_RECOVERABLE
        or item.is_code_upgrade
        or not item.op_eligible_default
        or on_schedule
    )
    return DepreciationOutcome(
        amount=amount,
        percentage=percentage,
        depreciation_type=(
            DepreciationType.NON_RECOVERABLE if non_recoverable else DepreciationType.RECOVERABLE
        ),
        basis=source,
    )
