"""
mcda/allocation_explanation_engine.py
-------------------------------------
Deterministic, formatting-aware explanation engine for euro allocations.

Design contract:
  - Does NOT compute scores
  - Does NOT compute allocations
  - Does NOT mutate allocations
  - Only interprets and explains AllocationEngine output
  - Fully stateless (all methods are @staticmethod)
"""

import math
from typing import List, Dict, Optional

from mcda.allocation_engine import AllocationEngine
from mcda.constants import INDICATOR_REGISTRY
from mcda.enums import ScoreSource


class AllocationExplanationEngine:
    """
    Produce structured, human-readable explanations for an allocation run.

    Entry point::

        explanation = AllocationExplanationEngine.explain(
            allocations, budget=117_000_000, source=ScoreSource.LOCAL
        )

        Returns a dict with string sections:
        ``summary``            – one-line overview
        ``allocation_table``   – ASCII breakdown table
        ``score_source``       – where the scores came from
        ``constraints``        – which regions hit the floor / cap
        ``concentration``      – concentration band of the euro shares
        ``indicator_breakdown`` – per-indicator scoring of the top region
                                 (empty when scores came from elsewhere)
        ``final_statement``    – closing interpretation sentence
    """

    # ------------------------------------------------------------------ #
    #  Public entry point
    # ------------------------------------------------------------------ #

    @staticmethod
    def explain(
        allocations: List[Dict],
        budget: float,
        source: Optional[ScoreSource] = None,
    ) -> Dict[str, str]:
        """
        Build the full explanation for *allocations*.

        Parameters
        ----------
        allocations:
            Output from ``AllocationEngine.allocate()`` — each dict must
            contain ``"id"``, ``"score"``, ``"euros"``; ``"floored"`` and
            ``"capped"`` are read when present.
        budget:
            The budget the allocation was run against.
        source:
            Score source, or ``None`` when unknown.
        """
        if not allocations:
            return AllocationExplanationEngine._empty_response()

        return {
            "summary":          AllocationExplanationEngine._summary(allocations, budget),
            "allocation_table": AllocationExplanationEngine._allocation_table(allocations, budget),
            "score_source":     AllocationExplanationEngine._score_source(source),
            "constraints":      AllocationExplanationEngine._constraints(allocations),
            "concentration":    AllocationExplanationEngine._concentration(allocations, budget),
            "indicator_breakdown": AllocationExplanationEngine._indicator_breakdown(allocations),
            "final_statement":  AllocationExplanationEngine._final_statement(allocations),
        }

    # ------------------------------------------------------------------ #
    #  Section builders
    # ------------------------------------------------------------------ #

    @staticmethod
    def _summary(allocations: List[Dict], budget: float) -> str:
        """One-sentence overview: region count, total and largest allocation."""
        top = max(allocations, key=lambda x: x["euros"])
        count = len(allocations)
        total = sum(a["euros"] for a in allocations)
        pct = round(top["euros"] / budget * 100, 2)
        return (
            f"€{total:,.0f} allocated across {count} region{'s' if count != 1 else ''}. "
            f"Largest allocation: {top['id']} ({pct}%)."
        )

    @staticmethod
    def _allocation_table(allocations: List[Dict], budget: float) -> str:
        """Fixed-width ASCII table: Region | Score | Share | Euros."""
        width = max(12, max(len(str(a["id"])) for a in allocations))
        lines = [f"{'Region':<{width}}  Score    Share        Allocation (€)"]
        for a in allocations:
            pct = round(a["euros"] / budget * 100, 2)
            flag = " F" if a.get("floored") else (" C" if a.get("capped") else "")
            lines.append(
                f"{a['id']:<{width}}  {a['score']:.3f}  {pct:>6}%  {a['euros']:>16,.0f}{flag}"
            )
        return "\n".join(lines)

    @staticmethod
    def _score_source(source: Optional[ScoreSource]) -> str:
        _SOURCES: Dict[ScoreSource, str] = {
            ScoreSource.LOCAL: (
                "Scores are weighted sums of min-max normalised indicators, "
                "with the rural uplift applied."
            ),
            ScoreSource.BACKEND: (
                "Scores were supplied by the scoring service, with the rural "
                "uplift applied."
            ),
            ScoreSource.FALLBACK: (
                "Scoring service unavailable; scores are the inverse of hospital "
                "access per 100k aged 65+, with the rural uplift applied."
            ),
        }
        return _SOURCES.get(source, "Score source not recorded.")

    @staticmethod
    def _constraints(allocations: List[Dict]) -> str:
        """List the regions raised to the floor and clipped at the cap."""
        floored = [a["id"] for a in allocations if a.get("floored")]
        capped = [a["id"] for a in allocations if a.get("capped")]

        parts = []
        if floored:
            parts.append(
                f"Raised to the minimum floor (F): {', '.join(floored)}."
            )
        if capped:
            parts.append(
                f"Clipped at the maximum share (C): {', '.join(capped)}."
            )
        if not parts:
            return "No floor or cap adjustment was needed."
        return " ".join(parts)

    @staticmethod
    def _concentration(allocations: List[Dict], budget: float) -> str:
        """
        Describe concentration using the Herfindahl index of euro shares,
        relative to the equal-split value ``1/n``:

          > 2.0 × 1/n → Highly concentrated
          > 1.3 × 1/n → Moderately concentrated
          otherwise   → Evenly spread
        """
        summary = AllocationEngine.allocation_summary(allocations, budget)
        hhi = summary["hhi"]
        ratio = hhi * summary["regions"]

        if ratio > 2.0:
            band = "Highly concentrated"
        elif ratio > 1.3:
            band = "Moderately concentrated"
        else:
            band = "Evenly spread"

        return f"{band} allocation (HHI {hhi:.3f}, equal split {1 / summary['regions']:.3f})."

    @staticmethod
    def _indicator_breakdown(allocations: List[Dict]) -> str:
        """
        Raw value, normalised value and weighted contribution of each
        indicator for the largest allocation.

        Only allocations from ``AllocationEngine.allocate_scored`` carry the
        breakdown; anything else yields an empty section.
        """
        top = max(allocations, key=lambda x: x["euros"])
        if "raw" not in top or "component_scores" not in top:
            return ""

        width = max(len(meta["display"]) for meta in INDICATOR_REGISTRY.values())
        lines = [f"Indicator breakdown for {top['id']}:"]
        for name, meta in INDICATOR_REGISTRY.items():
            if name not in top["component_scores"]:
                continue
            lines.append(
                f"  {meta['display']:<{width}}  "
                f"{_format_value(top['raw'].get(name), meta):>12}  "
                f"norm {top['normalized'].get(name, 0.0):.2f}  "
                f"+{top['component_scores'][name]:.3f}"
            )
        if top.get("uplift_factor", 1.0) != 1.0:
            lines.append(f"  Rural uplift ×{top['uplift_factor']:.3f}")
        return "\n".join(lines)

    @staticmethod
    def _final_statement(allocations: List[Dict]) -> str:
        top = max(allocations, key=lambda x: x["euros"])
        bottom = min(allocations, key=lambda x: x["euros"])
        if top["id"] == bottom["id"]:
            return f"{top['id']} receives the full budget."
        return (
            f"{top['id']} shows the highest assessed need; "
            f"{bottom['id']} receives the smallest allocation."
        )

    # ------------------------------------------------------------------ #
    #  Edge-case response
    # ------------------------------------------------------------------ #

    @staticmethod
    def _empty_response() -> Dict[str, str]:
        return {
            "summary":          "No allocation available.",
            "allocation_table": "",
            "score_source":     "",
            "constraints":      "",
            "concentration":    "",
            "indicator_breakdown": "",
            "final_statement":  "",
        }

    # ------------------------------------------------------------------ #
    #  CLI formatter
    # ------------------------------------------------------------------ #

    @staticmethod
    def format_for_cli(explanation: Dict[str, str]) -> str:
        """
        Render all sections as a single printable CLI string.

        Example::

            print(AllocationExplanationEngine.format_for_cli(explanation))
        """
        sections = [
            "=== MCDA Funding Allocation ===",
            explanation["summary"],
            "",
            explanation["allocation_table"],
            "",
            explanation["score_source"],
            explanation["constraints"],
            explanation["concentration"],
        ]
        if explanation.get("indicator_breakdown"):
            sections += ["", explanation["indicator_breakdown"]]
        sections += ["", explanation["final_statement"]]
        return "\n".join(sections)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _format_value(value, meta: dict) -> str:
    """Render a raw indicator value with its registry ``unit`` and ``scale``."""
    try:
        v = float(value) * meta["scale"]
    except (TypeError, ValueError):
        return "n/a"
    if not math.isfinite(v):
        return "n/a"
    if meta["unit"] == "€":
        return f"€{v:,.0f}"
    if meta["unit"] == "%":
        return f"{v:.1f}%"
    return f"{v:,.1f}"
