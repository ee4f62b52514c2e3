import argparse
import logging
import sys

from mcda.allocation_engine import AllocationEngine
from mcda.allocation_explanation_engine import AllocationExplanationEngine
from mcda.config import (
    DEFAULT_BUDGET_EUR,
    DEFAULT_MAX_SHARE,
    DEFAULT_MIN_EURO_FLOOR,
    DEFAULT_RURAL_UPLIFT,
    SCORING_SERVICE_URL,
)
from mcda.data_loader import DataLoader
from mcda.enums import ScoreSource
from mcda.params import AllocationParams
from mcda.score_service import (
    ScoringServiceClient,
    apply_source_uplift,
    fallback_scores,
    resolve_scores,
)
from mcda.scoring_engine import ScoringEngine


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Regional MCDA funding allocation")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--indicators", help="Indicator CSV (one row per Local Authority)")
    source.add_argument("--hospitals", help="Hospital access CSV (inverse-access proxy score)")
    parser.add_argument("--budget", type=float, default=DEFAULT_BUDGET_EUR, help="Budget in euros")
    parser.add_argument("--rural-uplift", type=float, default=DEFAULT_RURAL_UPLIFT,
                        help="Rural uplift, clamped to 0-0.25")
    parser.add_argument("--min-euro", type=float, default=DEFAULT_MIN_EURO_FLOOR,
                        help="Minimum euros per region")
    parser.add_argument("--max-share", type=float, default=DEFAULT_MAX_SHARE,
                        help="Maximum budget share per region (0-1]")
    parser.add_argument("--no-cap", action="store_true", help="Disable the per-region cap")
    parser.add_argument("--service", nargs="?", const=SCORING_SERVICE_URL, default=None,
                        help="Try the scoring service first (optional URL)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def run(args) -> str:
    params = AllocationParams(
        budget=args.budget,
        rural_uplift=args.rural_uplift,
        min_euro_floor=args.min_euro,
        max_share_per_region=None if args.no_cap else args.max_share,
    )
    params.validate()

    loader = DataLoader()
    client = ScoringServiceClient(url=args.service) if args.service else None
    scored = []

    if args.indicators:
        records = loader.load_indicator_table(args.indicators)
        region_ids = [r["id"] for r in records]
        scored = ScoringEngine.compute_composite_scores(
            records, params.weights, params.effective_uplift()
        )
        local, local_source = ScoringEngine.score_map(scored), ScoreSource.LOCAL
    else:
        access = loader.load_hospital_access(args.hospitals)
        region_ids = list(access.keys())
        local, local_source = fallback_scores(access), ScoreSource.FALLBACK

    scores, source = resolve_scores(client, params, region_ids, local, local_source)
    if source is ScoreSource.LOCAL:
        allocations = AllocationEngine.allocate_scored(scored, params)
    else:
        scores = apply_source_uplift(scores, source, params.effective_uplift())
        allocations = AllocationEngine.allocate_scores(scores, params)

    explanation = AllocationExplanationEngine.explain(allocations, params.budget, source)
    return AllocationExplanationEngine.format_for_cli(explanation)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        print(run(args))
    except (FileNotFoundError, ValueError) as e:
        logging.getLogger("mcda").error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
