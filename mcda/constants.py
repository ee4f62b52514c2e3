"""
mcda/constants.py
-----------------
Domain constants shared across modules.

Placing these here keeps the scoring layer (ScoringEngine), the I/O layer
(data_loader, regions) and the report layer (AllocationExplanationEngine)
aligned on a single source of truth without creating circular imports.
"""

from __future__ import annotations

from mcda.enums import IndicatorDirection, Nuts3Region


# ---------------------------------------------------------------------------
# Indicator registry
# ---------------------------------------------------------------------------
# Each entry drives:
#   - ScoringEngine normalisation direction
#   - AllocationExplanationEngine indicator breakdown (display, unit, scale)
#   - DataLoader column lookup (the keys are the CSV column names)
#
# Keys must exactly match the record keys produced by DataLoader.
# ---------------------------------------------------------------------------

INDICATOR_REGISTRY: dict[str, dict] = {
    "growth_65": {
        "display":   "65+ growth 2022-31",
        "unit":      "%",
        "direction": IndicatorDirection.BENEFIT,
        "scale":     100.0,   # stored as a ratio, shown as percent
    },
    "oadr": {
        "display":   "Old-age dependency",
        "unit":      "%",
        "direction": IndicatorDirection.BENEFIT,
        "scale":     100.0,
    },
    "dwellings_per_1k_65": {
        "display":   "Dwellings per 1k 65+",
        "unit":      "",
        "direction": IndicatorDirection.COST,
        "scale":     1.0,
    },
    "median_income": {
        "display":   "Median household income",
        "unit":      "€",
        "direction": IndicatorDirection.COST,
        "scale":     1.0,
    },
    "grants_per_65": {
        "display":   "Historic grants per 65+",
        "unit":      "€",
        "direction": IndicatorDirection.COST,
        "scale":     1.0,
    },
}


# ---------------------------------------------------------------------------
# Default indicator weights (sum to 1.00)
# ---------------------------------------------------------------------------

DEFAULT_WEIGHTS: dict[str, float] = {
    "growth_65":           0.30,
    "oadr":                0.25,
    "dwellings_per_1k_65": 0.20,
    "median_income":       0.15,
    "grants_per_65":       0.10,
}


# ---------------------------------------------------------------------------
# Local Authorities
# ---------------------------------------------------------------------------

LOCAL_AUTHORITIES: list[str] = [
    "Carlow", "Cavan", "Clare", "Cork City", "Cork County", "Donegal",
    "Dublin City", "Dún Laoghaire-Rathdown", "Fingal", "South Dublin",
    "Galway City", "Galway County", "Kerry", "Kildare", "Kilkenny", "Laois",
    "Leitrim", "Limerick City and County", "Longford", "Louth", "Mayo",
    "Meath", "Monaghan", "Offaly", "Roscommon", "Sligo", "Tipperary",
    "Waterford City and County", "Westmeath", "Wexford", "Wicklow",
]

# The four Dublin LAs are treated as urban (rural index 0); all others rural.
URBAN_LAS: frozenset = frozenset({
    "Dublin City", "Dún Laoghaire-Rathdown", "Fingal", "South Dublin",
})

# County-level source labels that cover several LAs.
COUNTY_FAN_OUT: dict[str, list[str]] = {
    "dublin":  ["Dublin City", "Dún Laoghaire-Rathdown", "Fingal", "South Dublin"],
    "cork":    ["Cork City", "Cork County"],
    "galway":  ["Galway City", "Galway County"],
}


# ---------------------------------------------------------------------------
# NUTS-3 region → canonical county keys
# ---------------------------------------------------------------------------

NUTS3_COUNTIES: dict[Nuts3Region, list[str]] = {
    Nuts3Region.DUBLIN:     ["dublin", "dublin city", "south dublin", "fingal", "dun laoghaire rathdown"],
    Nuts3Region.MID_EAST:   ["kildare", "meath", "wicklow"],
    Nuts3Region.MIDLAND:    ["laois", "longford", "offaly", "westmeath"],
    Nuts3Region.MID_WEST:   ["clare", "limerick", "tipperary"],
    Nuts3Region.SOUTH_EAST: ["carlow", "kilkenny", "waterford", "wexford"],
    Nuts3Region.SOUTH_WEST: ["cork", "kerry"],
    Nuts3Region.WEST:       ["galway", "mayo", "roscommon"],
    Nuts3Region.BORDER:     ["donegal", "leitrim", "cavan", "monaghan", "louth", "sligo"],
}

# Source-file spellings of the NUTS-3 regions, keyed by canonical_key().
NUTS3_LABELS: dict[str, Nuts3Region] = {
    "dublin":     Nuts3Region.DUBLIN,
    "mid east":   Nuts3Region.MID_EAST,
    "midland":    Nuts3Region.MIDLAND,
    "midlands":   Nuts3Region.MIDLAND,
    "mid west":   Nuts3Region.MID_WEST,
    "south east": Nuts3Region.SOUTH_EAST,
    "south west": Nuts3Region.SOUTH_WEST,
    "west":       Nuts3Region.WEST,
    "border":     Nuts3Region.BORDER,
}
