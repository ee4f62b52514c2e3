"""
tests/test_allocation_engine.py
--------------------------------
Unit tests for AllocationEngine.

Test coverage:
    Empty / single-region edge cases
    Proportional allocation correctness
    Floor pass (donor recovery, no-donor warning)
    Cap pass (score-weighted redistribution, infeasible cap)
    Budget conservation and non-negativity
    Parameter validation errors
    Score coercion (negative / NaN / non-numeric)
    Whole-euro rounding and run summary
    Full score → allocate pipeline
    Monotonicity in a region's own indicator (and its limit under a floor)
"""

import copy
import math
import unittest

from mcda.allocation_engine import AllocationEngine
from mcda.config import CONSERVATION_RTOL
from mcda.params import (
    AllocationConfigError,
    AllocationParams,
    InfeasibleFloorError,
    clamp_uplift,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _euros(scores: dict, budget: float, **kwargs) -> dict:
    """Return {id: euros} for easy assertion."""
    result = AllocationEngine.allocate(scores, budget, **kwargs)
    return {r["id"]: r["euros"] for r in result}


def _total(result: list) -> float:
    return sum(r["euros"] for r in result)


SCENARIO = {"R1": 0.0, "R2": 0.5, "R3": 1.0}


# ===========================================================================
# 1. Edge Cases
# ===========================================================================

class TestEdgeCases(unittest.TestCase):

    def test_empty_input_returns_empty(self):
        self.assertEqual(AllocationEngine.allocate({}, 1000.0), [])

    def test_single_region_gets_full_budget(self):
        result = AllocationEngine.allocate({"Kerry": 0.4}, 5000.0)
        self.assertEqual(len(result), 1)
        self.assertEqual(result[0]["euros"], 5000.0)
        self.assertEqual(result[0]["euro_share"], 1.0)
        self.assertEqual(result[0]["score"], 0.4)

    def test_single_region_ignores_cap(self):
        result = AllocationEngine.allocate({"Kerry": 0.4}, 5000.0, max_share_per_region=0.1)
        self.assertEqual(result[0]["euros"], 5000.0)

    def test_all_zero_scores_split_equally(self):
        result = _euros({"A": 0.0, "B": 0.0, "C": 0.0, "D": 0.0}, 1000.0)
        for v in result.values():
            self.assertAlmostEqual(v, 250.0)

    def test_all_zero_scores_share_is_equal(self):
        result = AllocationEngine.allocate({"A": 0.0, "B": 0.0}, 10.0)
        for r in result:
            self.assertAlmostEqual(r["share"], 0.5)

    def test_output_keys(self):
        result = AllocationEngine.allocate(SCENARIO, 300_000.0)
        for key in ("id", "score", "share", "euros", "euro_share", "floored", "capped"):
            self.assertIn(key, result[0])


# ===========================================================================
# 2. Proportional pass
# ===========================================================================

class TestProportional(unittest.TestCase):

    def test_scenario_without_constraints(self):
        result = _euros(SCENARIO, 300_000.0)
        self.assertAlmostEqual(result["R1"], 0.0)
        self.assertAlmostEqual(result["R2"], 100_000.0)
        self.assertAlmostEqual(result["R3"], 200_000.0)

    def test_share_is_score_share(self):
        result = {r["id"]: r for r in AllocationEngine.allocate(SCENARIO, 300_000.0)}
        self.assertAlmostEqual(result["R3"]["share"], 2 / 3)
        self.assertAlmostEqual(result["R3"]["euro_share"], 2 / 3)

    def test_equal_scores_equal_euros(self):
        result = _euros({"A": 0.7, "B": 0.7, "C": 0.7}, 900.0)
        for v in result.values():
            self.assertAlmostEqual(v, 300.0)

    def test_higher_score_never_gets_less(self):
        scores = {"A": 0.9, "B": 0.6, "C": 0.3, "D": 0.1}
        result = _euros(scores, 10_000.0, min_euro_floor=1000.0, max_share_per_region=0.35)
        ordered = sorted(scores, key=scores.get, reverse=True)
        for hi, lo in zip(ordered, ordered[1:]):
            self.assertGreaterEqual(result[hi] + 1e-6, result[lo])

    def test_sorted_by_euros_then_id(self):
        result = AllocationEngine.allocate({"B": 1.0, "A": 1.0, "C": 3.0}, 500.0)
        self.assertEqual([r["id"] for r in result], ["C", "A", "B"])


# ===========================================================================
# 3. Floor
# ===========================================================================

class TestFloor(unittest.TestCase):

    def test_scenario_with_floor(self):
        result = _euros(SCENARIO, 300_000.0, min_euro_floor=50_000.0)
        self.assertAlmostEqual(result["R1"], 50_000.0)
        self.assertAlmostEqual(result["R2"], 87_500.0)
        self.assertAlmostEqual(result["R3"], 162_500.0)

    def test_floored_flag(self):
        result = {r["id"]: r for r in AllocationEngine.allocate(
            SCENARIO, 300_000.0, min_euro_floor=50_000.0
        )}
        self.assertTrue(result["R1"]["floored"])
        self.assertFalse(result["R2"]["floored"])

    def test_every_region_meets_floor(self):
        scores = {"A": 10.0, "B": 0.1, "C": 0.01, "D": 0.0}
        result = _euros(scores, 1_000.0, min_euro_floor=100.0)
        for v in result.values():
            self.assertGreaterEqual(v, 100.0 - 1e-6)

    def test_floor_exactly_budget_over_n(self):
        result = _euros({"A": 5.0, "B": 1.0}, 100.0, min_euro_floor=50.0)
        self.assertAlmostEqual(result["A"], 50.0)
        self.assertAlmostEqual(result["B"], 50.0)

    def test_infeasible_floor_raises(self):
        with self.assertRaises(InfeasibleFloorError):
            AllocationEngine.allocate(SCENARIO, 300_000.0, min_euro_floor=150_000.0)

    def test_infeasible_floor_is_config_error(self):
        self.assertTrue(issubclass(InfeasibleFloorError, AllocationConfigError))
        self.assertTrue(issubclass(AllocationConfigError, ValueError))

    def test_no_donor_logs_warning(self):
        with self.assertLogs("mcda.allocation_engine", level="WARNING"):
            euros, floored = AllocationEngine._apply_floor([10.0, 10.0], 20.0, 20.0)
        self.assertEqual(euros, [20.0, 20.0])
        self.assertEqual(floored, {0, 1})


# ===========================================================================
# 4. Cap
# ===========================================================================

class TestCap(unittest.TestCase):

    def test_scenario_with_floor_and_cap(self):
        result = _euros(
            SCENARIO, 300_000.0, min_euro_floor=50_000.0, max_share_per_region=0.5
        )
        self.assertAlmostEqual(result["R1"], 50_000.0)
        self.assertAlmostEqual(result["R2"], 100_000.0)
        self.assertAlmostEqual(result["R3"], 150_000.0)

    def test_excess_redistributed_by_score(self):
        result = _euros({"A": 10.0, "B": 3.0, "C": 1.0}, 1400.0, max_share_per_region=0.5)
        self.assertAlmostEqual(result["A"], 700.0)
        self.assertAlmostEqual(result["B"], 525.0)
        self.assertAlmostEqual(result["C"], 175.0)

    def test_capped_flag(self):
        result = {r["id"]: r for r in AllocationEngine.allocate(
            {"A": 10.0, "B": 3.0, "C": 1.0}, 1400.0, max_share_per_region=0.5
        )}
        self.assertTrue(result["A"]["capped"])
        self.assertFalse(result["B"]["capped"])

    def test_dominating_region_iterates_to_cap(self):
        scores = {"BIG": 1e9, "A": 1.0, "B": 1.0, "C": 1.0, "D": 1.0}
        result = _euros(scores, 1000.0, max_share_per_region=0.4)
        self.assertAlmostEqual(result["BIG"], 400.0, delta=1e-3)
        for rid in "ABCD":
            self.assertAlmostEqual(result[rid], 150.0, delta=1e-3)

    def test_no_region_exceeds_cap(self):
        scores = {"A": 9.0, "B": 7.0, "C": 1.0, "D": 0.5, "E": 0.1}
        result = _euros(scores, 10_000.0, max_share_per_region=0.25)
        for v in result.values():
            self.assertLessEqual(v, 2500.0 + 1e-6)

    def test_infeasible_cap_becomes_equal_split(self):
        scores = {"A": 4.0, "B": 3.0, "C": 2.0, "D": 1.0}
        with self.assertLogs("mcda.allocation_engine", level="WARNING"):
            result = _euros(scores, 1000.0, max_share_per_region=0.1)
        for v in result.values():
            self.assertAlmostEqual(v, 250.0, places=6)

    def test_cap_of_one_is_no_op(self):
        capped = _euros(SCENARIO, 300_000.0, max_share_per_region=1.0)
        plain = _euros(SCENARIO, 300_000.0)
        for rid in SCENARIO:
            self.assertAlmostEqual(capped[rid], plain[rid])


# ===========================================================================
# 5. Conservation
# ===========================================================================

class TestConservation(unittest.TestCase):

    CASES = [
        ({"A": 0.2, "B": 0.3, "C": 0.5}, 1_000.0, 0.0, None),
        ({"A": 0.9, "B": 0.05, "C": 0.05}, 117_000_000.0, 250_000.0, 0.12),
        ({"A": 0.0, "B": 0.0}, 77.0, 10.0, 0.6),
        ({"A": 3.0, "B": 1.0, "C": 0.0, "D": 0.0, "E": 0.2}, 50_000.0, 5_000.0, 0.3),
    ]

    def test_total_equals_budget(self):
        for scores, budget, floor, cap in self.CASES:
            result = AllocationEngine.allocate(scores, budget, floor, cap)
            self.assertTrue(
                math.isclose(_total(result), budget, rel_tol=CONSERVATION_RTOL),
                f"{scores} → {_total(result)} != {budget}",
            )

    def test_no_negative_allocations(self):
        for scores, budget, floor, cap in self.CASES:
            for r in AllocationEngine.allocate(scores, budget, floor, cap):
                self.assertGreaterEqual(r["euros"], 0.0)

    def test_idempotent(self):
        scores, budget, floor, cap = self.CASES[1]
        first = AllocationEngine.allocate(scores, budget, floor, cap)
        second = AllocationEngine.allocate(scores, budget, floor, cap)
        self.assertEqual(first, second)

    def test_does_not_mutate_scores(self):
        scores = {"A": 0.9, "B": -1.0, "C": 0.3}
        snapshot = copy.deepcopy(scores)
        AllocationEngine.allocate(scores, 100.0, 10.0, 0.5)
        self.assertEqual(scores, snapshot)


# ===========================================================================
# 6. Validation
# ===========================================================================

class TestValidation(unittest.TestCase):

    def test_zero_budget_raises(self):
        with self.assertRaises(AllocationConfigError):
            AllocationEngine.allocate(SCENARIO, 0.0)

    def test_negative_budget_raises(self):
        with self.assertRaises(AllocationConfigError):
            AllocationEngine.allocate(SCENARIO, -10.0)

    def test_nan_budget_raises(self):
        with self.assertRaises(AllocationConfigError):
            AllocationEngine.allocate(SCENARIO, float("nan"))

    def test_negative_floor_raises(self):
        with self.assertRaises(AllocationConfigError):
            AllocationEngine.allocate(SCENARIO, 100.0, min_euro_floor=-1.0)

    def test_cap_out_of_range_raises(self):
        for cap in (0.0, -0.2, 1.5):
            with self.assertRaises(AllocationConfigError):
                AllocationEngine.allocate(SCENARIO, 100.0, max_share_per_region=cap)

    def test_non_numeric_floor_is_config_error(self):
        with self.assertRaises(AllocationConfigError):
            AllocationEngine.allocate(SCENARIO, 100.0, min_euro_floor="lots")

    def test_non_numeric_cap_is_config_error(self):
        with self.assertRaises(AllocationConfigError):
            AllocationEngine.allocate(SCENARIO, 100.0, max_share_per_region="half")

    def test_non_numeric_budget_is_config_error(self):
        with self.assertRaises(AllocationConfigError):
            AllocationEngine.allocate(SCENARIO, [100.0])

    def test_params_validate_non_numeric(self):
        with self.assertRaises(AllocationConfigError):
            AllocationParams(min_euro_floor=object()).validate()
        with self.assertRaises(AllocationConfigError):
            AllocationParams(max_share_per_region="0.5x").validate()

    def test_non_numeric_uplift_is_config_error(self):
        with self.assertRaises(AllocationConfigError):
            AllocationParams(rural_uplift="high").effective_uplift()

    def test_uplift_none_and_nan_clamp_to_zero(self):
        self.assertEqual(clamp_uplift(None), 0.0)
        self.assertEqual(clamp_uplift(float("nan")), 0.0)
        self.assertEqual(clamp_uplift("0.1"), 0.1)

    def test_negative_and_nan_scores_treated_as_zero(self):
        result = {r["id"]: r for r in AllocationEngine.allocate(
            {"A": -5.0, "B": float("nan"), "C": 2.0}, 100.0
        )}
        self.assertEqual(result["A"]["score"], 0.0)
        self.assertEqual(result["B"]["score"], 0.0)
        self.assertAlmostEqual(result["C"]["euros"], 100.0)

    def test_non_numeric_score_raises(self):
        with self.assertRaises(ValueError):
            AllocationEngine.allocate({"A": "high", "B": 1.0}, 100.0)


# ===========================================================================
# 7. Rounding and summary
# ===========================================================================

class TestRoundingAndSummary(unittest.TestCase):

    def test_thirds_round_to_budget(self):
        result = AllocationEngine.allocate({"A": 1.0, "B": 1.0, "C": 1.0}, 100.0)
        AllocationEngine.round_to_whole_euros(result, 100.0)
        self.assertEqual(sum(r["euros_rounded"] for r in result), 100)
        self.assertEqual(sorted(r["euros_rounded"] for r in result), [33, 33, 34])

    def test_rounding_empty(self):
        self.assertEqual(AllocationEngine.round_to_whole_euros([], 100.0), [])

    def test_summary(self):
        result = AllocationEngine.allocate(
            SCENARIO, 300_000.0, min_euro_floor=50_000.0, max_share_per_region=0.5
        )
        summary = AllocationEngine.allocation_summary(result, 300_000.0)
        self.assertEqual(summary["regions"], 3)
        self.assertAlmostEqual(summary["total_euros"], 300_000.0)
        self.assertEqual(summary["floored"], ["R1"])
        self.assertEqual(summary["capped"], ["R3"])
        self.assertAlmostEqual(summary["largest_share"], 0.5)
        self.assertAlmostEqual(summary["hhi"], 0.25 + 1 / 9 + 1 / 36)

    def test_summary_empty(self):
        summary = AllocationEngine.allocation_summary([], 100.0)
        self.assertEqual(summary["regions"], 0)
        self.assertEqual(summary["hhi"], 0.0)


# ===========================================================================
# 8. Pipeline
# ===========================================================================

class TestScoreAndAllocate(unittest.TestCase):

    RECORDS = [
        {"id": "R1", "growth_65": 10, "rural_index": 0.0},
        {"id": "R2", "growth_65": 20, "rural_index": 0.0},
        {"id": "R3", "growth_65": 30, "rural_index": 0.0},
    ]

    def test_pipeline_matches_direct_allocation(self):
        params = AllocationParams(
            budget=300_000.0, weights={"growth_65": 1.0},
            min_euro_floor=50_000.0, max_share_per_region=0.5,
        )
        result = {r["id"]: r["euros"] for r in
                  AllocationEngine.score_and_allocate(self.RECORDS, params)}
        self.assertAlmostEqual(result["R1"], 50_000.0)
        self.assertAlmostEqual(result["R2"], 100_000.0)
        self.assertAlmostEqual(result["R3"], 150_000.0)

    def test_pipeline_carries_score_breakdown(self):
        params = AllocationParams(budget=1000.0, weights={"growth_65": 1.0})
        result = AllocationEngine.score_and_allocate(self.RECORDS, params)
        for r in result:
            self.assertIn("base_score", r)
            self.assertAlmostEqual(r["uplift_factor"], 1.0)

    def test_pipeline_empty(self):
        self.assertEqual(AllocationEngine.score_and_allocate([]), [])

    def test_allocate_scores_uses_params(self):
        params = AllocationParams(budget=1400.0, max_share_per_region=0.5)
        result = {r["id"]: r["euros"] for r in AllocationEngine.allocate_scores(
            {"A": 10.0, "B": 3.0, "C": 1.0}, params
        )}
        self.assertAlmostEqual(result["A"], 700.0)

# ===========================================================================
# 9. Monotonicity in a region's own indicator
# ===========================================================================

def _euros_for(records: list, params: AllocationParams, region_id: str) -> float:
    result = AllocationEngine.score_and_allocate(records, params)
    return next(r["euros"] for r in result if r["id"] == region_id)


class TestMonotonicity(unittest.TestCase):

    def _records(self, x_growth: float) -> list:
        return [
            {"id": "X", "growth_65": x_growth, "oadr": 0.20, "median_income": 48_000,
             "dwellings_per_1k_65": 2100, "grants_per_65": 18.0, "rural_index": 1.0},
            {"id": "Y", "growth_65": 0.10, "oadr": 0.30, "median_income": 41_000,
             "dwellings_per_1k_65": 2600, "grants_per_65": 30.0, "rural_index": 1.0},
            {"id": "Z", "growth_65": 0.30, "oadr": 0.25, "median_income": 63_000,
             "dwellings_per_1k_65": 1900, "grants_per_65": 12.0, "rural_index": 0.0},
        ]

    def test_raising_own_benefit_indicator_never_lowers_euros_without_floor(self):
        params = AllocationParams(budget=1000.0, rural_uplift=0.2, min_euro_floor=0.0)
        previous = -1.0
        for growth in (0.05, 0.10, 0.20, 0.40, 0.80):
            euros = _euros_for(self._records(growth), params, "X")
            self.assertGreaterEqual(euros + 1e-9, previous, f"growth={growth}")
            previous = euros

    def test_raising_one_score_never_lowers_its_euros_without_floor(self):
        previous = -1.0
        for a in (0.0, 0.1, 0.5, 1.0, 3.0):
            euros = _euros({"A": a, "B": 0.6, "C": 0.3}, 900.0)["A"]
            self.assertGreaterEqual(euros + 1e-9, previous)
            previous = euros

    def test_active_floor_can_lower_a_donor_with_unchanged_score(self):
        """
        X is already the maximum on growth, so raising its growth leaves X's
        score at 1 but lowers Z's.  Z stays floored, the deficit grows, and
        recovery in proportion to surplus over the floor takes more from X:

            before: X = 400 + 750 × 800 / 850    ≈ 1105.88
            after:  X = 400 + 750 × 900 / 987.5  ≈ 1083.54
        """
        params = AllocationParams(
            budget=1950.0, weights={"growth_65": 0.5, "oadr": 0.5},
            rural_uplift=0.0, min_euro_floor=400.0,
        )

        def records(x_growth):
            return [
                {"id": "X", "growth_65": x_growth, "oadr": 4.0},
                {"id": "Y", "growth_65": 1.0, "oadr": 3.0},
                {"id": "Z", "growth_65": 2.0, "oadr": 0.0},
            ]

        before = {r["id"]: r for r in AllocationEngine.score_and_allocate(records(3.0), params)}
        after = {r["id"]: r for r in AllocationEngine.score_and_allocate(records(5.0), params)}

        self.assertAlmostEqual(before["X"]["score"], 1.0)
        self.assertAlmostEqual(after["X"]["score"], 1.0)
        self.assertTrue(before["Z"]["floored"])
        self.assertTrue(after["Z"]["floored"])
        self.assertAlmostEqual(before["X"]["euros"], 400.0 + 12_000.0 / 17.0, places=6)
        self.assertAlmostEqual(after["X"]["euros"], 400.0 + 675_000.0 / 987.5, places=6)
        self.assertLess(after["X"]["euros"], before["X"]["euros"])


if __name__ == "__main__":
    unittest.main()
