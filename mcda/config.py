"""
mcda/config.py
--------------
Tunable allocation parameters.

Keeping these separate from mcda/constants.py (which holds the indicator
registry and Local Authority tables) keeps a clean boundary: this file owns
the numeric knobs a policy analyst may want to change between runs.
"""

import os

# ---------------------------------------------------------------------------
# Budget defaults
# ---------------------------------------------------------------------------
# Default envelope for the housing-adaptation allocation run.

DEFAULT_BUDGET_EUR: float = 117_000_000.0

# Minimum euro amount every Local Authority receives.
DEFAULT_MIN_EURO_FLOOR: float = 250_000.0

# Largest share of the budget any single Local Authority may receive.
DEFAULT_MAX_SHARE: float = 0.12

# ---------------------------------------------------------------------------
# Rural uplift
# ---------------------------------------------------------------------------
# The composite score of a region is multiplied by (1 + uplift × rural_index).
# Uplift values outside [0, RURAL_UPLIFT_MAX] are clamped, never rejected.

DEFAULT_RURAL_UPLIFT: float = 0.15
RURAL_UPLIFT_MIN: float = 0.0
RURAL_UPLIFT_MAX: float = 0.25

# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------
# Score given to every region when an indicator carries no information
# (all finite values identical).

DEGENERATE_NORMALIZED_SCORE: float = 0.5

# ---------------------------------------------------------------------------
# Numerical tolerances
# ---------------------------------------------------------------------------
# CONSTRAINT_TOL  – slack used when comparing an allocation to floor / cap
# CONSERVATION_RTOL – relative tolerance on Σ euros == budget

CONSTRAINT_TOL: float = 1e-9
CONSERVATION_RTOL: float = 1e-6

# ---------------------------------------------------------------------------
# External scoring service
# ---------------------------------------------------------------------------

SCORING_SERVICE_URL: str = os.environ.get(
    "MCDA_SCORING_URL", "http://localhost:3000/api/mcda/allocate"
)
SCORING_SERVICE_TIMEOUT: float = 10.0   # seconds
