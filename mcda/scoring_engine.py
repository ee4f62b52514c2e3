from __future__ import annotations

import math
from typing import Dict, List, Optional

import numpy as np

from mcda.config import DEGENERATE_NORMALIZED_SCORE
from mcda.constants import DEFAULT_WEIGHTS, INDICATOR_REGISTRY
from mcda.enums import IndicatorDirection
from mcda.params import clamp_uplift


# ===========================================================================
# ScoringEngine — normalisation and composite scoring, no allocation logic
# ===========================================================================

class ScoringEngine:
    """
    Converts raw per-region indicator values into composite need scores.

    Design goals
    ------------
    * **Fair** — min-max normalisation removes scale dominance (income in
      euros vs dependency ratios in decimals).
    * **Need-oriented** — cost indicators (income, housing stock, historic
      grants) are inverted so that needy regions score high.
    * **Explainable** — every intermediate value is kept on the result so a
      reviewer can see exactly how each region was scored.
    * **Robust** — weights are renormalised to sum to 1.0; missing values and
      indicators with no spread are handled without NaN leaking through.

    Pipeline::

        indicator records
            → validate_weights (renormalise to sum=1)
            → normalize_indicator (per indicator, with direction)
            → weighted_sum
            → rural uplift
            → results with full breakdown
    """

    # ------------------------------------------------------------------ #
    #  Weight validation + renormalisation
    # ------------------------------------------------------------------ #

    @staticmethod
    def validate_weights(
        weights: Dict[str, float],
        indicators: Optional[Dict[str, dict]] = None,
    ) -> Dict[str, float]:
        """
        Renormalise *weights* so they sum to 1.0.

        Callers may supply arbitrary non-negative weights (e.g. slider values
        ``{30, 25, 20, 15, 10}``); indicators missing from *weights* get 0.

        Raises
        ------
        ValueError
            If a weight names an unknown indicator, is negative or non-finite,
            or if all weights are zero.
        """
        registry = indicators or INDICATOR_REGISTRY

        unknown = set(weights) - set(registry)
        if unknown:
            raise ValueError(
                f"Unknown indicator(s) in weights: {sorted(unknown)}. "
                f"Valid options: {list(registry.keys())}"
            )

        w: Dict[str, float] = {}
        for name in registry:
            value = float(weights.get(name, 0.0))
            if not math.isfinite(value) or value < 0:
                raise ValueError(
                    f"Weight for '{name}' must be a non-negative number (got {value})."
                )
            w[name] = value

        total = sum(w.values())
        if total == 0:
            raise ValueError(
                "All weights are zero — cannot produce a meaningful score."
            )
        return {k: v / total for k, v in w.items()}

    # ------------------------------------------------------------------ #
    #  Min-max normalisation with edge-case handling
    # ------------------------------------------------------------------ #

    @staticmethod
    def normalize_indicator(
        values: list,
        direction: IndicatorDirection = IndicatorDirection.BENEFIT,
    ) -> List[float]:
        """
        Min-max normalise one indicator across all regions to [0, 1].

        Parameters
        ----------
        values : list
            Raw values, one per region.  ``None`` and non-numeric entries are
            treated as missing.
        direction : IndicatorDirection
            ``BENEFIT`` → higher raw values score closer to 1.
            ``COST``    → lower raw values score closer to 1.

        Edge cases
        ----------
        * Missing / non-finite values are excluded from min and max, and the
          region scores 0 on this indicator.
        * All finite values identical → ``0.5`` for each finite region.
        * No finite value at all → ``0.0`` everywhere.
        """
        raw = np.array([_to_float(v) for v in values], dtype=float)
        if raw.size == 0:
            return []

        finite = np.isfinite(raw)
        out = np.zeros(raw.shape, dtype=float)
        if not finite.any():
            return out.tolist()

        min_v = float(raw[finite].min())
        max_v = float(raw[finite].max())

        if max_v == min_v:
            out[finite] = DEGENERATE_NORMALIZED_SCORE
            return out.tolist()

        span = max_v - min_v
        if direction is IndicatorDirection.COST:
            out[finite] = (max_v - raw[finite]) / span
        else:
            out[finite] = (raw[finite] - min_v) / span
        return out.tolist()

    # ------------------------------------------------------------------ #
    #  Weighted scoring with full explainability
    # ------------------------------------------------------------------ #

    @staticmethod
    def compute_composite_scores(
        records: List[Dict],
        weights: Optional[Dict[str, float]] = None,
        rural_uplift: float = 0.0,
        indicators: Optional[Dict[str, dict]] = None,
    ) -> List[Dict]:
        """
        Main entry point.  Produces a composite score per region.

        Parameters
        ----------
        records : list of dict
            ``[{"id": str, <indicator>: float, ..., "rural_index": float}]``
        weights : dict, optional
            Raw (unnormalised) indicator weights.  Defaults to
            :data:`mcda.constants.DEFAULT_WEIGHTS`.
        rural_uplift : float
            Clamped to ``[0, 0.25]``.  Score is multiplied by
            ``1 + uplift × rural_index``.
        indicators : dict, optional
            Indicator registry override (name → ``{"direction": ...}``).

        Returns
        -------
        list of dict, sorted descending by ``score``
            Each entry::

                {
                    "id": str,
                    "score": float,            # after rural uplift
                    "base_score": float,       # before rural uplift
                    "uplift_factor": float,
                    "rural_index": float,
                    "component_scores": {name: weighted_contribution},
                    "normalized":       {name: normalised_value_0_to_1},
                    "raw":              {name: raw_value},
                    "weights_used":     {name: effective_weight},
                }
        """
        if not records:
            return []

        registry = indicators or INDICATOR_REGISTRY
        ids = _record_ids(records)

        effective_weights = ScoringEngine.validate_weights(
            DEFAULT_WEIGHTS if weights is None else weights, registry
        )
        uplift = clamp_uplift(rural_uplift)

        norm_vectors: Dict[str, List[float]] = {}
        raw_vectors: Dict[str, list] = {}
        for name, meta in registry.items():
            raw_vals = [r.get(name) for r in records]
            raw_vectors[name] = raw_vals
            norm_vectors[name] = ScoringEngine.normalize_indicator(
                raw_vals, meta["direction"]
            )

        results = []
        for i, (region_id, record) in enumerate(zip(ids, records)):
            component_scores: Dict[str, float] = {}
            normalized: Dict[str, float] = {}
            raw: Dict[str, object] = {}
            base = 0.0

            for name in registry:
                norm_val = norm_vectors[name][i]
                contribution = effective_weights[name] * norm_val
                component_scores[name] = contribution
                normalized[name] = norm_val
                raw[name] = raw_vectors[name][i]
                base += contribution

            rural_index = _clamp_rural_index(record.get("rural_index"))
            factor = 1.0 + uplift * rural_index

            results.append({
                "id":               region_id,
                "score":            base * factor,
                "base_score":       base,
                "uplift_factor":    factor,
                "rural_index":      rural_index,
                "component_scores": component_scores,
                "normalized":       normalized,
                "raw":              raw,
                "weights_used":     {k: round(v, 4) for k, v in effective_weights.items()},
            })

        results.sort(key=lambda x: x["score"], reverse=True)
        return results

    @staticmethod
    def apply_rural_uplift(
        scores: Dict[str, float],
        rural_index: Dict[str, float],
        rural_uplift: float,
    ) -> Dict[str, float]:
        """
        Apply the rural multiplier to an externally produced score set.

        Regions missing from *rural_index* get no uplift; negative and
        non-finite scores become 0.
        """
        uplift = clamp_uplift(rural_uplift)
        out: Dict[str, float] = {}
        for region_id, score in scores.items():
            s = _to_float(score)
            s = s if math.isfinite(s) and s > 0 else 0.0
            out[region_id] = s * (1.0 + uplift * _clamp_rural_index(rural_index.get(region_id)))
        return out

    @staticmethod
    def score_map(scored: List[Dict]) -> Dict[str, float]:
        """``{id: score}`` view of :meth:`compute_composite_scores` output."""
        return {r["id"]: r["score"] for r in scored}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_float(value) -> float:
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _clamp_rural_index(value) -> float:
    ri = _to_float(value)
    if not math.isfinite(ri):
        return 0.0
    return max(0.0, min(1.0, ri))


def _record_ids(records: List[Dict]) -> List[str]:
    ids = []
    seen = set()
    for record in records:
        region_id = record.get("id")
        if region_id is None:
            raise ValueError(f"Indicator record is missing 'id': {record!r}")
        if region_id in seen:
            raise ValueError(f"Duplicate region id {region_id!r} in indicator records.")
        seen.add(region_id)
        ids.append(region_id)
    return ids
