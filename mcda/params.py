from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Dict

from mcda.config import (
    DEFAULT_BUDGET_EUR,
    DEFAULT_RURAL_UPLIFT,
    RURAL_UPLIFT_MIN,
    RURAL_UPLIFT_MAX,
)
from mcda.constants import DEFAULT_WEIGHTS


class AllocationConfigError(ValueError):
    """Raised when allocation parameters cannot produce a valid allocation."""


class InfeasibleFloorError(AllocationConfigError):
    """Raised when floor × region count exceeds the budget."""


@dataclass
class AllocationParams:
    """
    Parameters for a single scoring-and-allocation run.

    ``max_share_per_region=None`` means no cap; ``min_euro_floor=0`` means
    no floor.  Weights need not sum to 1; ScoringEngine renormalises them.
    """
    budget: float = DEFAULT_BUDGET_EUR
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    rural_uplift: float = DEFAULT_RURAL_UPLIFT
    min_euro_floor: float = 0.0
    max_share_per_region: Optional[float] = None

    def effective_uplift(self) -> float:
        """Rural uplift clamped to [RURAL_UPLIFT_MIN, RURAL_UPLIFT_MAX]."""
        return clamp_uplift(self.rural_uplift)

    def validate(self) -> None:
        """
        Check budget, floor and cap.

        Raises
        ------
        AllocationConfigError
            If the budget is not a positive finite number, the floor is
            negative, or the cap lies outside (0, 1].
        """
        validate_budget(self.budget)
        validate_floor(self.min_euro_floor)
        validate_max_share(self.max_share_per_region)


def clamp_uplift(uplift: Optional[float]) -> float:
    if uplift is None:
        return RURAL_UPLIFT_MIN
    value = _as_float(uplift, "Rural uplift")
    if not math.isfinite(value):
        return RURAL_UPLIFT_MIN
    return max(RURAL_UPLIFT_MIN, min(RURAL_UPLIFT_MAX, value))


def validate_budget(budget) -> None:
    value = _as_float(budget, "Budget")
    if not math.isfinite(value) or value <= 0:
        raise AllocationConfigError(
            f"Budget must be a positive finite amount (got {budget!r})."
        )


def validate_floor(min_euro_floor) -> None:
    if min_euro_floor is None:
        return
    value = _as_float(min_euro_floor, "Minimum euro floor")
    if not math.isfinite(value) or value < 0:
        raise AllocationConfigError(
            f"Minimum euro floor must be >= 0 (got {min_euro_floor!r})."
        )


def validate_max_share(max_share) -> None:
    if max_share is None:
        return
    value = _as_float(max_share, "Max share per region")
    if not math.isfinite(value) or not (0.0 < value <= 1.0):
        raise AllocationConfigError(
            f"Max share per region must lie in (0, 1] (got {max_share!r})."
        )


def _as_float(value, label: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise AllocationConfigError(f"{label} must be a number (got {value!r}).")
