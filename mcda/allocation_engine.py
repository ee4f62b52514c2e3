"""
mcda/allocation_engine.py
-------------------------
Pure transformation engine: composite scores → euro allocations.

Design contract:
  - No indicator normalisation (ScoringEngine owns that)
  - No I/O, no network, no DataLoader dependency
  - Fully deterministic and stateless (all methods are @staticmethod)
  - Σ euros == budget for every valid input
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Set, Tuple

from mcda.config import CONSTRAINT_TOL
from mcda.params import (
    AllocationParams,
    InfeasibleFloorError,
    validate_budget,
    validate_floor,
    validate_max_share,
)
from mcda.scoring_engine import ScoringEngine

logger = logging.getLogger(__name__)

# Scorer fields carried onto allocations by allocate_scored().
_BREAKDOWN_KEYS = ("base_score", "uplift_factor", "raw", "normalized", "component_scores")


class AllocationEngine:
    """
    Convert per-region composite scores into a euro allocation of a fixed
    budget.

    Passes, in order:
        1. proportional   – euros ∝ score (equal split when Σ score ≤ 0)
        2. floor          – raise regions to ``min_euro_floor``; recover the
                            deficit from donors in proportion to their
                            surplus over the floor
        3. cap            – clip regions to ``max_share × budget``; hand the
                            excess to uncapped regions in proportion to their
                            score, repeating until nobody exceeds the cap
        4. renormalise    – rescale so the total equals the budget exactly

    Output allocations are non-negative and sum to the budget.
    """

    # ------------------------------------------------------------------ #
    #  Public entry points
    # ------------------------------------------------------------------ #

    @staticmethod
    def allocate(
        scores: Dict[str, float],
        budget: float,
        min_euro_floor: float = 0.0,
        max_share_per_region: Optional[float] = None,
    ) -> List[Dict]:
        """
        Allocate *budget* across the regions in *scores*.

        Parameters
        ----------
        scores:
            ``{region_id: composite_score}``.  Negative and non-finite scores
            are treated as 0.  Either a locally computed score set or one
            returned by the scoring service.
        budget:
            Total euros to distribute.  Must be a positive finite number.
        min_euro_floor:
            Minimum euros per region (``0`` disables the floor).
        max_share_per_region:
            Maximum fraction of the budget per region in ``(0, 1]``;
            ``None`` disables the cap.

        Returns
        -------
        List of dicts with keys ``"id"``, ``"score"``, ``"share"``,
        ``"euros"``, ``"euro_share"``, ``"floored"``, ``"capped"``,
        sorted by descending ``"euros"``.

        Raises
        ------
        AllocationConfigError
            Invalid budget, floor or cap.
        InfeasibleFloorError
            ``min_euro_floor × len(scores) > budget``.
        """
        validate_budget(budget)
        validate_floor(min_euro_floor)
        validate_max_share(max_share_per_region)

        if not scores:
            return []

        budget = float(budget)
        floor = float(min_euro_floor or 0.0)
        ids = list(scores.keys())
        clean = AllocationEngine._extract_scores(scores)
        n = len(ids)

        if floor * n > budget * (1 + CONSTRAINT_TOL):
            raise InfeasibleFloorError(
                f"Floor of €{floor:,.2f} across {n} regions needs "
                f"€{floor * n:,.2f}, which exceeds the budget of €{budget:,.2f}."
            )

        if n == 1:
            return AllocationEngine._single_region(ids[0], clean[0], budget)

        cap = AllocationEngine._effective_cap(max_share_per_region, n)
        cap_eur = cap * budget if cap is not None else None

        euros = AllocationEngine._proportional(clean, budget, floor)
        euros, floored = AllocationEngine._apply_floor(euros, floor, budget)
        euros, capped = AllocationEngine._apply_cap(euros, clean, cap_eur, budget)

        # Always rescale; the passes above may leave floating-point drift
        euros = AllocationEngine._renormalize(euros, budget)

        return AllocationEngine._attach_allocations(
            ids, clean, euros, budget, floored, capped
        )

    @staticmethod
    def score_and_allocate(
        records: List[Dict],
        params: Optional[AllocationParams] = None,
    ) -> List[Dict]:
        """
        Full pipeline: indicator records → composite scores → allocation.

        Each output dict carries the allocation keys of :meth:`allocate`
        plus the scorer breakdown (see :meth:`allocate_scored`).
        """
        params = params or AllocationParams()
        params.validate()

        if not records:
            return []

        scored = ScoringEngine.compute_composite_scores(
            records, params.weights, params.effective_uplift()
        )
        return AllocationEngine.allocate_scored(scored, params)

    @staticmethod
    def allocate_scored(
        scored: List[Dict],
        params: Optional[AllocationParams] = None,
    ) -> List[Dict]:
        """
        Allocate :meth:`ScoringEngine.compute_composite_scores` output.

        Adds ``"base_score"``, ``"uplift_factor"``, ``"raw"``,
        ``"normalized"`` and ``"component_scores"`` from the scorer to each
        allocation so the explanation can show the per-indicator breakdown.
        """
        params = params or AllocationParams()
        allocations = AllocationEngine.allocate(
            ScoringEngine.score_map(scored),
            params.budget,
            params.min_euro_floor,
            params.max_share_per_region,
        )

        by_id = {s["id"]: s for s in scored}
        for a in allocations:
            s = by_id[a["id"]]
            for key in _BREAKDOWN_KEYS:
                a[key] = s[key]
        return allocations

    @staticmethod
    def allocate_scores(
        scores: Dict[str, float],
        params: Optional[AllocationParams] = None,
    ) -> List[Dict]:
        """Allocate an externally supplied score set with *params*' constraints."""
        params = params or AllocationParams()
        return AllocationEngine.allocate(
            scores,
            params.budget,
            params.min_euro_floor,
            params.max_share_per_region,
        )

    @staticmethod
    def round_to_whole_euros(allocations: List[Dict], budget: float) -> List[Dict]:
        """
        Round ``"euros"`` to whole euros while keeping the exact total.

        Uses **largest remainder**: every region is rounded down, and the
        leftover euros go one each to the regions with the largest
        fractional parts.  Adds ``"euros_rounded"`` (int) to each dict.
        """
        if not allocations:
            return allocations

        target = int(round(budget))
        floors = [int(math.floor(a["euros"])) for a in allocations]
        leftover = target - sum(floors)

        order = sorted(
            range(len(allocations)),
            key=lambda i: allocations[i]["euros"] - floors[i],
            reverse=True,
        )
        for i in order[:max(leftover, 0)]:
            floors[i] += 1

        for a, amount in zip(allocations, floors):
            a["euros_rounded"] = amount
        return allocations

    @staticmethod
    def allocation_summary(allocations: List[Dict], budget: float) -> dict:
        """
        Structured run-level summary.

        Returns
        -------
        dict
            ``total_euros``   — Σ euros (equals budget up to float error)
            ``regions``       — region count
            ``floored``       — ids raised to the floor
            ``capped``        — ids clipped at the cap
            ``largest_share`` — largest euro share of the budget
            ``hhi``           — Herfindahl index of euro shares (concentration)
        """
        if not allocations:
            return {
                "total_euros":   0.0,
                "regions":       0,
                "floored":       [],
                "capped":        [],
                "largest_share": 0.0,
                "hhi":           0.0,
            }

        shares = [a["euros"] / budget for a in allocations]
        return {
            "total_euros":   sum(a["euros"] for a in allocations),
            "regions":       len(allocations),
            "floored":       [a["id"] for a in allocations if a.get("floored")],
            "capped":        [a["id"] for a in allocations if a.get("capped")],
            "largest_share": max(shares),
            "hhi":           sum(s * s for s in shares),
        }

    # ------------------------------------------------------------------ #
    #  Private helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _extract_scores(scores: Dict[str, float]) -> List[float]:
        """Coerce scores to floats; negative / non-finite / missing → 0."""
        clean = []
        for region_id, score in scores.items():
            try:
                value = float(score)
            except (TypeError, ValueError):
                raise ValueError(
                    f"Score for region {region_id!r} is not numeric: {score!r}."
                )
            clean.append(value if math.isfinite(value) and value > 0 else 0.0)
        return clean

    @staticmethod
    def _effective_cap(max_share: Optional[float], n: int) -> Optional[float]:
        """
        Cap share actually enforced.

        A cap below ``1/n`` cannot be met while spending the whole budget;
        it is raised to ``1/n`` (the equal split).
        """
        if max_share is None:
            return None
        max_share = float(max_share)
        if max_share * n < 1.0 - CONSTRAINT_TOL:
            logger.warning(
                "Max share %.4f is infeasible for %d regions; using %.4f (equal split).",
                max_share, n, 1.0 / n,
            )
            return 1.0 / n
        return max_share

    @staticmethod
    def _proportional(scores: List[float], budget: float, floor: float) -> List[float]:
        """
        Euros proportional to score.

        Falls back to an equal split on top of the floor when every score
        is zero.
        """
        total = sum(scores)
        n = len(scores)
        if total <= 0:
            even = max(0.0, (budget - floor * n) / n)
            return [floor + even] * n
        return [s / total * budget for s in scores]

    @staticmethod
    def _apply_floor(
        euros: List[float],
        floor: float,
        budget: float,
    ) -> Tuple[List[float], Set[int]]:
        """
        Raise every region below *floor* to it and recover the deficit from
        donors (regions strictly above the floor) in proportion to their
        surplus over the floor.

        The largest donors give up the most, so a donor can end with fewer
        euros when a floored region's score falls even though its own score
        is unchanged.
        """
        e = list(euros)
        floored: Set[int] = set()
        if floor <= 0:
            return e, floored

        tol = CONSTRAINT_TOL * budget
        deficit = 0.0
        for i, v in enumerate(e):
            if v < floor - tol:
                deficit += floor - v
                e[i] = floor
                floored.add(i)

        if deficit <= 0:
            return e, floored

        donors = [i for i, v in enumerate(e) if v > floor + tol]
        pool = sum(e[i] - floor for i in donors)
        if not donors or pool <= 0:
            logger.warning(
                "Floor deficit of €%.2f left unrecovered: no region above the floor.",
                deficit,
            )
            return e, floored

        for i in donors:
            e[i] = max(floor, e[i] - (e[i] - floor) / pool * deficit)

        return e, floored

    @staticmethod
    def _apply_cap(
        euros: List[float],
        scores: List[float],
        cap_eur: Optional[float],
        budget: float,
    ) -> Tuple[List[float], Set[int]]:
        """
        Clip regions above *cap_eur* and redistribute the excess to regions
        still below the cap, weighted by score among the receivers.

        Repeats until no region exceeds the cap; each pass caps at least one
        new region, so at most ``n`` passes are needed.
        """
        e = list(euros)
        capped: Set[int] = set()
        if cap_eur is None:
            return e, capped

        tol = CONSTRAINT_TOL * budget
        for _ in range(len(e) + 1):
            excess = 0.0
            for i, v in enumerate(e):
                if v > cap_eur + tol:
                    excess += v - cap_eur
                    e[i] = cap_eur
                    capped.add(i)

            if excess <= 0:
                break

            receivers = [i for i, v in enumerate(e) if v < cap_eur - tol]
            if not receivers:
                logger.warning(
                    "Cap excess of €%.2f has no receiver below the cap.", excess
                )
                break

            wsum = sum(scores[i] for i in receivers)
            for i in receivers:
                weight = scores[i] / wsum if wsum > 0 else 1 / len(receivers)
                e[i] += weight * excess

        return e, capped

    @staticmethod
    def _renormalize(euros: List[float], budget: float) -> List[float]:
        """Scale *euros* so they sum to *budget*. Falls back to equal split."""
        total = sum(euros)
        if total <= 0:
            return [budget / len(euros)] * len(euros)
        k = budget / total
        logger.debug("Final renormalisation factor k=%.12f", k)
        return [v * k for v in euros]

    @staticmethod
    def _attach_allocations(
        ids: List[str],
        scores: List[float],
        euros: List[float],
        budget: float,
        floored: Set[int],
        capped: Set[int],
    ) -> List[Dict]:
        """Zip euros back onto region ids, sorted by descending euros."""
        score_total = sum(scores)
        n = len(ids)
        output = []
        for i, region_id in enumerate(ids):
            output.append({
                "id":         region_id,
                "score":      scores[i],
                "share":      scores[i] / score_total if score_total > 0 else 1 / n,
                "euros":      euros[i],
                "euro_share": euros[i] / budget,
                "floored":    i in floored,
                "capped":     i in capped,
            })
        output.sort(key=lambda a: (-a["euros"], a["id"]))
        return output

    @staticmethod
    def _single_region(region_id: str, score: float, budget: float) -> List[Dict]:
        """Trivial case: one region gets the whole budget."""
        return [{
            "id":         region_id,
            "score":      score,
            "share":      1.0,
            "euros":      budget,
            "euro_share": 1.0,
            "floored":    False,
            "capped":     False,
        }]
