from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from mcda.constants import INDICATOR_REGISTRY, LOCAL_AUTHORITIES
from mcda.enums import Nuts3Region
from mcda.regions import county_to_region, default_rural_index, resolve_la

logger = logging.getLogger(__name__)


# Default dataset root, resolved relative to this file so it works regardless
# of which directory the user launches from.
_DEFAULT_BASE = Path(__file__).parent.parent / "data"

# Header variants seen in the source exports, checked in order.
_LA_COLUMNS = ("id", "la", "local authority", "county", "label", "area",
               "county and city", "administrative counties")
_HOSPITAL_TOTAL_COLUMNS = ("hospitals_total", "total_hospitals", "hospitals", "sites")
_HOSPITAL_ACUTE_COLUMNS = ("acute_hospitals_count", "acute")
_HOSPITAL_ACCESS_COLUMNS = ("hospitals_per_100k_65", "access_per_100k_65", "access_per_100k")

_NUMBER_JUNK = re.compile(r"[,€\s]")


class DataLoader:
    """
    Loads indicator and hospital-access CSVs from the ``data`` directory
    and reshapes them into the records consumed by :class:`ScoringEngine`.

    File layout::

        data/
            indicators.csv            one row per LA, one column per indicator
            hospital_access.csv       per-county hospital counts / access

    LA labels are resolved through :func:`mcda.regions.resolve_la`, so the
    files may use county-council or ``Co.`` spellings.
    """

    def __init__(self, base_path: str | Path = _DEFAULT_BASE):
        self._base = Path(base_path)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def load_indicator_table(
        self,
        path: str | Path,
        rural_default: bool = True,
    ) -> List[Dict]:
        """
        Return indicator records (``{"id": la, <indicator>: float, ...}``).

        Parameters
        ----------
        path : str or Path
            CSV path; relative paths not found from the working directory
            are resolved against the base directory.
        rural_default : bool
            When the file has no ``rural_index`` column, fill it from
            :func:`mcda.regions.default_rural_index` (Dublin urban, rest
            rural).  ``False`` leaves it out (no uplift).

        Raises
        ------
        FileNotFoundError
            If the CSV does not exist.
        ValueError
            If no LA column or any registry indicator column is missing.
        """
        df = _lower_columns(self._read(path))
        la_col = _first_present(df, _LA_COLUMNS)
        if la_col is None:
            raise ValueError(
                f"{path}: no Local Authority column (expected one of {list(_LA_COLUMNS)})."
            )

        missing = [name for name in INDICATOR_REGISTRY if name not in df.columns]
        if missing:
            raise ValueError(f"{path}: missing indicator columns: {missing}")

        records: List[Dict] = []
        seen = set()
        unmatched = 0
        for _, row in df.iterrows():
            la = resolve_la(str(row[la_col]))
            if la is None:
                unmatched += 1
                continue
            if la in seen:
                logger.warning("%s: duplicate row for %s ignored", path, la)
                continue
            seen.add(la)

            record = {"id": la}
            for name in INDICATOR_REGISTRY:
                record[name] = to_number(row[name])
            if "rural_index" in df.columns:
                record["rural_index"] = to_number(row["rural_index"])
            elif rural_default:
                record["rural_index"] = default_rural_index(la)
            records.append(record)

        if unmatched:
            logger.warning("%s: %d row(s) did not match a Local Authority", path, unmatched)
        return records

    def load_hospital_access(self, path: str | Path) -> Dict[str, dict]:
        """
        Aggregate a hospital-access CSV to per-LA rows.

        Returns ``{la: {"hospitals_total", "acute_hospitals_count",
        "hospitals_per_100k_65"}}`` for all 31 LAs; LAs absent from the file
        get zero counts and ``None`` access.  Header spellings vary between
        exports, so several variants are accepted for each field.
        """
        df = _lower_columns(self._read(path))
        la_col = _first_present(df, _LA_COLUMNS)
        if la_col is None:
            raise ValueError(f"{path}: no Local Authority / county column.")

        total_col = _first_present(df, _HOSPITAL_TOTAL_COLUMNS)
        acute_col = _first_present(df, _HOSPITAL_ACUTE_COLUMNS)
        access_col = _first_present(df, _HOSPITAL_ACCESS_COLUMNS)

        out: Dict[str, dict] = {}
        unmatched = 0
        for _, row in df.iterrows():
            la = resolve_la(str(row[la_col]))
            if la is None:
                unmatched += 1
                continue

            prev = out.get(la, _empty_hospital_row())
            total = to_number(row[total_col]) if total_col else math.nan
            acute = to_number(row[acute_col]) if acute_col else math.nan
            access = to_number(row[access_col]) if access_col else math.nan

            out[la] = {
                "hospitals_total":       prev["hospitals_total"] + (total if math.isfinite(total) else 0.0),
                "acute_hospitals_count": prev["acute_hospitals_count"] + (acute if math.isfinite(acute) else 0.0),
                "hospitals_per_100k_65": (
                    access if math.isfinite(access) and access > 0
                    else prev["hospitals_per_100k_65"]
                ),
            }

        if unmatched:
            logger.warning("%s: %d row(s) did not match a Local Authority", path, unmatched)

        for la in LOCAL_AUTHORITIES:
            out.setdefault(la, _empty_hospital_row())
        return out

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read(self, path: str | Path) -> pd.DataFrame:
        p = Path(path)
        if not p.exists() and not p.is_absolute():
            p = self._base / p
        if not p.exists():
            raise FileNotFoundError(f"CSV not found: {p}")
        return pd.read_csv(p, skip_blank_lines=True)


# ---------------------------------------------------------------------------
# Reshaping helpers
# ---------------------------------------------------------------------------

def to_number(value) -> float:
    """
    Parse a spreadsheet cell to float.

    Strips ``€``, thousands separators and whitespace.  Returns NaN for
    blanks and anything unparseable so it is excluded downstream.
    """
    if value is None:
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    s = _NUMBER_JUNK.sub("", str(value))
    if not s:
        return math.nan
    try:
        return float(s)
    except ValueError:
        return math.nan


def estimate_la_65(
    region_65: Dict[Nuts3Region, float],
    la_population: Dict[str, float],
) -> Dict[str, float]:
    """
    Downscale NUTS-3 population aged 65+ to LAs by population share.

    Each LA receives ``region_65[region] × pop_la / Σ pop_region``.  LAs
    whose region cannot be determined are left out.
    """
    by_region: Dict[Nuts3Region, List[str]] = {}
    totals: Dict[Nuts3Region, float] = {}
    for la, pop in la_population.items():
        region = county_to_region(la)
        if region is None:
            logger.debug("No NUTS-3 region for %s", la)
            continue
        by_region.setdefault(region, []).append(la)
        totals[region] = totals.get(region, 0.0) + (pop or 0.0)

    out: Dict[str, float] = {}
    for region, las in by_region.items():
        denom = totals[region]
        r65 = region_65.get(region, 0.0)
        for la in las:
            share = (la_population[la] or 0.0) / denom if denom > 0 else 0.0
            out[la] = r65 * share
    return out


def build_inputs(
    region_stats: Dict[Nuts3Region, dict],
    la_population: Dict[str, float],
    dwellings: Dict[str, float],
    income: Dict[str, float],
    grants: Dict[str, float],
    rural_index: Optional[Dict[str, float]] = None,
) -> List[Dict]:
    """
    Assemble indicator records for every LA in *dwellings*.

    Parameters
    ----------
    region_stats:
        ``{region: {"pop_65": persons, "growth_65": ratio, "oadr": ratio}}``
    la_population:
        LA total population (share proxy for downscaling 65+).
    dwellings, income, grants:
        Per-LA housing stock, median household income (€), average annual
        historic grant payments (€).  Income is usually county-level and
        should be passed through :func:`mcda.regions.fan_out_county` first.
    rural_index:
        Optional per-LA rural index; defaults to
        :func:`mcda.regions.default_rural_index`.

    Notes
    -----
    Missing income falls back to the mean of the known incomes.  Per-65+
    ratios are 0 when the LA has no estimated 65+ population.
    """
    region_65 = {r: s.get("pop_65", 0.0) for r, s in region_stats.items()}
    la_65 = estimate_la_65(region_65, la_population)

    known_incomes = [v for v in income.values() if math.isfinite(v)]
    mean_income = sum(known_incomes) / len(known_incomes) if known_incomes else 0.0

    records: List[Dict] = []
    for la in dwellings:
        region = county_to_region(la)
        stats = region_stats.get(region, {}) if region else {}
        p65 = la_65.get(la, 0.0)

        la_income = income.get(la, math.nan)
        if not math.isfinite(la_income):
            la_income = mean_income

        records.append({
            "id":                  la,
            "growth_65":           stats.get("growth_65", 0.0),
            "oadr":                stats.get("oadr", 0.0),
            "dwellings_per_1k_65": dwellings[la] / p65 * 1000 if p65 > 0 else 0.0,
            "median_income":       la_income,
            "grants_per_65":       grants.get(la, 0.0) / p65 if p65 > 0 else 0.0,
            "rural_index": (
                rural_index.get(la, 0.0) if rural_index is not None
                else default_rural_index(la)
            ),
        })
    return records


def _lower_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]
    return df


def _first_present(df: pd.DataFrame, candidates) -> Optional[str]:
    for name in candidates:
        if name in df.columns:
            return name
    return None


def _empty_hospital_row() -> dict:
    return {
        "hospitals_total":       0.0,
        "acute_hospitals_count": 0.0,
        "hospitals_per_100k_65": None,
    }
