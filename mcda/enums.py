from enum import Enum


class IndicatorDirection(Enum):
    """How a raw indicator value maps onto need."""
    BENEFIT = "benefit"   # higher raw value → higher need
    COST = "cost"         # lower raw value → higher need (inverted)


class ScoreSource(Enum):
    """Where the composite scores fed to the allocator came from."""
    LOCAL = "local"        # indicator pipeline in ScoringEngine
    BACKEND = "backend"    # external scoring service
    FALLBACK = "fallback"  # inverse-access proxy when the service is down


class Nuts3Region(Enum):
    """NUTS-3 regional groupings used by some upstream indicator sources."""
    DUBLIN = "dublin"
    MID_EAST = "mid-east"
    MIDLAND = "midland"
    MID_WEST = "mid-west"
    SOUTH_EAST = "south-east"
    SOUTH_WEST = "south-west"
    WEST = "west"
    BORDER = "border"
