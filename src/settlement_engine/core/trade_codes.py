"""
Trade code normalization using Regular Expressions.
Maps trade aliases and catalog codes onto canonical Xactimate trade codes.
"""

import re

# Wildcard trigger for companion rules that react to any primary trade
ANY_TRADE = "any"

TRADE_CODE_ALIASES: dict[str, str] = {
    "RFG": "RFG",
    "ROOF": "RFG",
    "SFT": "RFG",
    "FAS": "RFG",
    "GUT": "RFG",
    "FLS": "RFG",
    "SDG": "SDG",
    "SID": "SDG",
    "SIDING": "SDG",
    "EXT": "EXT",
    "DRY": "DRY",
    "DYW": "DRY",
    "DRYWALL": "DRY",
    "PNT": "PNT",
    "PAINT": "PNT",
    "FLR": "FLR",
    "FLOOR": "FLR",
    "CAR": "FLR",
    "CARPET": "FLR",
    "WIN": "WIN",
    "WINDOW": "WIN",
    "ELE": "ELE",
    "ELC": "ELE",
    "ELEC": "ELE",
    "ELECTRICAL": "ELE",
    "PLM": "PLM",
    "PLUMB": "PLM",
    "PLUMBING": "PLM",
    "HVA": "HVA",
    "HVAC": "HVA",
    "MEC": "HVA",
    "MECHANICAL": "HVA",
    "INS": "INS",
    "INSULATION": "INS",
    "CAB": "CAB",
    "CABINET": "CAB",
    "CTR": "CTR",
    "COUNTERTOP": "CTR",
    "COUNTER": "CTR",
    "FRM": "FRM",
    "FRAME": "FRM",
    "CARPENTRY": "FRM",
    "STRUCTURE": "FRM",
    "APL": "APL",
    "APPLIANCE": "APL",
    "MAJOR_APL": "APL",
    "DOR": "DOR",
    "DOOR": "DOR",
    "DEM": "DEM",
    "DEMO": "DEM",
    "DEMOLITION": "DEM",
    "MIT": "MIT",
    "MITIGATION": "MIT",
    "GEN": "GEN",
    "GENERAL": "GEN",
}

# Default catalog code for each companion trade
COMPANION_DEFAULT_CODES: dict[str, str] = {
    "DEM": "DEM-DRY-SF",
    "DRY": "DRY-X-1-2",
    "PNT": "PNT-INT-SF",
    "FLR": "FLR-CARPET-SF",
    "MIT": "MIT-AIRM-DAY",
    "RFG": "RFG-X-300",
    "WIN": "WIN-DOUBLE-EA",
    "ELE": "ELE-OUTL-EA",
}

PERIL_MITIGATION_CATEGORIES: dict[str, str] = {
    "water": "WTR",
    "flood": "WTR",
    "flooding": "WTR",
    "water damage": "WTR",
    "wet": "WTR",
    "fire": "FIR",
    "smoke": "FIR",
    "fire damage": "FIR",
    "wind": "WND",
    "hail": "WND",
    "windstorm": "WND",
    "mold": "MLR",
    "mold damage": "MLR",
    "other": "GEN",
}

# "DEM-DRY-SF", "WTR_AIRF" -> leading trade segment
CATALOG_PREFIX_PATTERN = re.compile(r"^([A-Z]{2,5})(?:[_\-]|$)", re.IGNORECASE)


def normalize_trade_code(code: str | None) -> str:
    """Canonical trade code for an alias; unknown codes are upper-cased as-is."""
    if not code:
        return "GEN"
    normalized = code.strip().upper()
    return TRADE_CODE_ALIASES.get(normalized, normalized)


def trade_from_catalog_code(catalog_code: str | None) -> str | None:
    """Extract the trade prefix of a catalog code."""
    if not catalog_code:
        return None
    match = CATALOG_PREFIX_PATTERN.match(catalog_code.strip())
    if not match:
        return None
    return normalize_trade_code(match.group(1))


def default_catalog_code(trade_code: str) -> str | None:
    """Default catalog code used when a companion item is created for a trade."""
    return COMPANION_DEFAULT_CODES.get(normalize_trade_code(trade_code))


def resolve_mitigation_category(peril_type: str | None = None) -> str:
    """Estimate category for mitigation work depends on the peril."""
    if not peril_type:
        return "WTR"
    return PERIL_MITIGATION_CATEGORIES.get(peril_type.strip().lower(), "WTR")


def resolve_category(trade_code: str | None, peril_type: str | None = None) -> str:
    """Estimate category for a trade code, peril-aware for mitigation."""
    if not trade_code:
        return "GEN"
    category = TRADE_CODE_ALIASES.get(trade_code.strip().upper())
    if category == "MIT":
        return resolve_mitigation_category(peril_type)
    return category or "GEN"
