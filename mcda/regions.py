"""
mcda/regions.py
---------------
Local Authority name handling.

Source spreadsheets label the same place many ways ("Co. Cork", "Cork
County Council", "Dun Laoghaire–Rathdown", "DLR").  Everything here maps
those labels onto the 31 canonical LA labels in
:data:`mcda.constants.LOCAL_AUTHORITIES`, the 26 counties, and the 8 NUTS-3
regions.
"""

from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from mcda.constants import (
    COUNTY_FAN_OUT,
    LOCAL_AUTHORITIES,
    NUTS3_COUNTIES,
    NUTS3_LABELS,
    URBAN_LAS,
)
from mcda.enums import Nuts3Region


_DASHES = re.compile(r"[–—-]")
_COUNCIL = re.compile(r"\b(city and county council|county council|council)\b")
_SPACES = re.compile(r"\s+")

# Extra keys that do not fall out of canonicalising an LA label.
_ALIASES: Dict[str, str] = {
    "dlr":                    "Dún Laoghaire-Rathdown",
    "dun laoghaire":          "Dún Laoghaire-Rathdown",
    "cork":                   "Cork County",
    "galway":                 "Galway County",
    "limerick":               "Limerick City and County",
    "waterford":              "Waterford City and County",
    "dublin":                 "Dublin City",
    "limerick city":          "Limerick City and County",
    "waterford city":         "Waterford City and County",
}


def strip_accents(name: str) -> str:
    decomposed = unicodedata.normalize("NFD", str(name or ""))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def canonical_key(name: str) -> str:
    """
    Lower-case, accent-free, dash-free key for *name*.

    ``"Dún Laoghaire–Rathdown County Council"`` → ``"dun laoghaire rathdown"``
    """
    s = strip_accents(name).lower()
    s = _DASHES.sub(" ", s)
    s = _COUNCIL.sub("", s)
    s = re.sub(r"^co\.?\s+", "", s.strip())
    return _SPACES.sub(" ", s).strip()


@lru_cache(maxsize=1)
def _la_lookup() -> Dict[str, str]:
    lookup = {canonical_key(la): la for la in LOCAL_AUTHORITIES}
    lookup.update(_ALIASES)
    return lookup


def resolve_la(raw: str) -> Optional[str]:
    """
    Best-effort resolution of a raw label to one of the 31 LA labels.

    County-only labels that cover more than one LA ("Cork", "Galway",
    "Dublin") resolve to the larger / principal LA.  Returns ``None`` when
    nothing matches.
    """
    key = canonical_key(raw)
    if not key:
        return None
    return _la_lookup().get(key)


def la_to_county(la: str) -> str:
    """
    Collapse one of the 31 LAs to its county key (26 counties).

    ``"Fingal"`` → ``"dublin"``, ``"Cork City"`` → ``"cork"``,
    ``"Tipperary"`` → ``"tipperary"``.
    """
    key = canonical_key(la)
    if key in COUNTY_FAN_OUT:
        return key
    for county, las in COUNTY_FAN_OUT.items():
        if key in (canonical_key(x) for x in las):
            return county
    key = re.sub(r"\b(city and county|city|county)\b", "", key)
    return _SPACES.sub(" ", key).strip()


def county_to_region(label: str) -> Optional[Nuts3Region]:
    """NUTS-3 region for an LA or county label, or ``None`` if unknown."""
    key = canonical_key(label)
    for region, counties in NUTS3_COUNTIES.items():
        if key in counties:
            return region
    county = la_to_county(label)
    for region, counties in NUTS3_COUNTIES.items():
        if county in counties:
            return region
    return None


def parse_region(label: str) -> Optional[Nuts3Region]:
    """Map a source-file NUTS-3 label (``"Mid-East"``, ``"Midlands"``) to the enum."""
    key = canonical_key(label).replace(" region", "").strip()
    return NUTS3_LABELS.get(key)


def las_for_region(region: Nuts3Region) -> List[str]:
    """All LA labels whose county falls in *region*."""
    return [la for la in LOCAL_AUTHORITIES if county_to_region(la) == region]


def default_rural_index(la: str) -> float:
    """``0.0`` for the Dublin LAs, ``1.0`` elsewhere."""
    return 0.0 if la in URBAN_LAS else 1.0


def totals_by_county(values: Dict[str, float]) -> Dict[str, float]:
    """Sum per-LA values into per-county totals (county keys are lower case)."""
    out: Dict[str, float] = {}
    for la, value in values.items():
        county = la_to_county(la)
        out[county] = out.get(county, 0.0) + float(value)
    return out


def fan_out_county(values: Dict[str, float]) -> Dict[str, float]:
    """
    Fan county-level figures out to LA level.

    ``"Co. Dublin"`` is copied to the four Dublin LAs, ``"Co. Cork"`` and
    ``"Co. Galway"`` to their city and county LAs; every other label is
    resolved directly.  Unresolvable labels are dropped.
    """
    out: Dict[str, float] = {}
    for label, value in values.items():
        county = canonical_key(label)
        if county in COUNTY_FAN_OUT:
            for la in COUNTY_FAN_OUT[county]:
                out[la] = value
            continue
        la = resolve_la(label)
        if la is not None:
            out[la] = value
    return out


def missing_las(present: Iterable[str]) -> List[str]:
    """LA labels from the canonical list not found in *present*."""
    have = set(present)
    return [la for la in LOCAL_AUTHORITIES if la not in have]
