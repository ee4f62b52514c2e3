"""HTTP client for the external MCDA scoring service.

The dashboard may ask a backend for a precomputed score set.  When the
service is unreachable or answers with anything unusable, the caller falls
back to a locally computed proxy score; the allocator accepts either source
through the same ``{id: score}`` contract.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import requests

from mcda.config import SCORING_SERVICE_TIMEOUT, SCORING_SERVICE_URL
from mcda.enums import ScoreSource
from mcda.params import AllocationParams
from mcda.regions import default_rural_index
from mcda.scoring_engine import ScoringEngine

logger = logging.getLogger(__name__)


class ScoringServiceError(Exception):
    """Raised when the scoring service fails or returns a malformed body."""

    pass


class ScoringServiceClient:
    """
    Thin client for ``POST /api/mcda/allocate``.

    Request body::

        {"budget": float, "ruralUplift": float, "maxShare": float,
         "minEuro": float, "regionIds": [str, ...]}

    Response body::

        {"scores": {region_id: number}}

    Usage:
        client = ScoringServiceClient()
        scores = client.fetch_scores(params, region_ids)   # None on failure
    """

    def __init__(
        self,
        url: str = SCORING_SERVICE_URL,
        timeout: float = SCORING_SERVICE_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    @staticmethod
    def build_payload(params: AllocationParams, region_ids: List[str]) -> dict:
        return {
            "budget":      params.budget,
            "ruralUplift": params.effective_uplift(),
            "maxShare":    params.max_share_per_region if params.max_share_per_region is not None else 1.0,
            "minEuro":     params.min_euro_floor,
            "regionIds":   list(region_ids),
        }

    def fetch(self, params: AllocationParams, region_ids: List[str]) -> Dict[str, float]:
        """
        Request a score set.

        Raises:
            ScoringServiceError: On connection failure, timeout, HTTP error
                status, or a body without a numeric ``scores`` mapping.
        """
        payload = self.build_payload(params, region_ids)
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.Timeout:
            raise ScoringServiceError(f"Scoring service at {self.url} timed out")
        except requests.ConnectionError:
            raise ScoringServiceError(f"Cannot connect to scoring service at {self.url}")
        except requests.HTTPError as e:
            raise ScoringServiceError(f"Scoring service returned error: {e}")
        except requests.RequestException as e:
            raise ScoringServiceError(f"Scoring service request failed: {e}")
        except ValueError as e:
            raise ScoringServiceError(f"Scoring service returned invalid JSON: {e}")

        scores = body.get("scores") if isinstance(body, dict) else None
        if not isinstance(scores, dict):
            raise ScoringServiceError("Scoring service response has no 'scores' mapping")

        out: Dict[str, float] = {}
        for region_id, value in scores.items():
            try:
                out[str(region_id)] = float(value)
            except (TypeError, ValueError):
                raise ScoringServiceError(
                    f"Non-numeric score for {region_id!r}: {value!r}"
                )
        return out

    def fetch_scores(
        self, params: AllocationParams, region_ids: List[str]
    ) -> Optional[Dict[str, float]]:
        """Like :meth:`fetch` but returns ``None`` instead of raising."""
        try:
            return self.fetch(params, region_ids)
        except ScoringServiceError as e:
            logger.warning("Falling back to local scores: %s", e)
            return None


def fallback_scores(hospital_access: Dict[str, dict]) -> Dict[str, float]:
    """
    Proxy need score from hospital access: fewer hospitals → more need.

    ``1 / hospitals_per_100k_65`` when that is known and positive, else
    ``1 / hospitals_total`` when positive, else 0.
    """
    out: Dict[str, float] = {}
    for la, row in hospital_access.items():
        access = row.get("hospitals_per_100k_65")
        total = row.get("hospitals_total") or 0.0
        if access is not None and math.isfinite(access) and access > 0:
            out[la] = 1.0 / access
        elif total > 0:
            out[la] = 1.0 / total
        else:
            out[la] = 0.0
    return out


def resolve_scores(
    client: Optional[ScoringServiceClient],
    params: AllocationParams,
    region_ids: List[str],
    local_scores: Dict[str, float],
    local_source: ScoreSource = ScoreSource.FALLBACK,
) -> Tuple[Dict[str, float], ScoreSource]:
    """
    Pick the score set to allocate with.

    The backend wins when it answers; regions it omits score 0.  Otherwise
    *local_scores* is used, tagged with *local_source*.
    """
    if client is not None:
        backend = client.fetch_scores(params, region_ids)
        if backend is not None:
            return {rid: backend.get(rid, 0.0) for rid in region_ids}, ScoreSource.BACKEND
    return {rid: local_scores.get(rid, 0.0) for rid in region_ids}, local_source


def apply_source_uplift(
    scores: Dict[str, float],
    source: ScoreSource,
    rural_uplift: float,
) -> Dict[str, float]:
    """
    Rural uplift for a score set that did not come from the local indicator
    pipeline.

    ``LOCAL`` scores already carry the uplift and are returned unchanged.
    Backend and fallback scores are boosted with
    :func:`mcda.regions.default_rural_index`, whichever source answered.
    """
    if source is ScoreSource.LOCAL:
        return dict(scores)
    rural = {region_id: default_rural_index(region_id) for region_id in scores}
    return ScoringEngine.apply_rural_uplift(scores, rural, rural_uplift)
