import math
from typing import Optional

import numpy as np

from .config import CONFIDENCE_THRESHOLD_PERCENT, DISTANCE_THRESHOLD
from .face_types import MatchResult
from .gallery import Gallery


def confidence_percent(distance: float) -> int:
    """round((1 - distance) * 100), half-up, clamped to 0..100."""
    value = math.floor((1.0 - distance) * 100.0 + 0.5)
    return int(min(100, max(0, value)))


def find_best_match(
    query: np.ndarray,
    gallery: Gallery,
    distance_threshold: float = DISTANCE_THRESHOLD,
    confidence_threshold_percent: int = CONFIDENCE_THRESHOLD_PERCENT,
) -> Optional[MatchResult]:
    """Nearest enrolled identity by Euclidean distance, or None.

    Every reference embedding of every identity is compared; an identity
    scores as its closest embedding. On equal distances the identity met
    first in gallery order wins. The match must be strictly closer than
    ``distance_threshold`` and its confidence must reach
    ``confidence_threshold_percent``.
    """
    if len(gallery) == 0:
        return None

    query = np.asarray(query, dtype=np.float64).ravel()
    best_id: Optional[str] = None
    best_name = ""
    best_distance = math.inf

    for identity in gallery:
        matrix = np.vstack(identity.embeddings).astype(np.float64)
        if matrix.shape[1] != query.shape[0]:
            continue
        distances = np.linalg.norm(matrix - query, axis=1)
        idx = int(np.argmin(distances))
        distance = float(distances[idx])
        if distance < best_distance:
            best_distance = distance
            best_id = identity.identity_id
            best_name = identity.name

    if best_id is None or best_distance >= distance_threshold:
        return None

    confidence = confidence_percent(best_distance)
    if confidence < confidence_threshold_percent:
        return None

    return MatchResult(
        identity_id=best_id,
        name=best_name,
        distance=best_distance,
        confidence_percent=confidence,
    )


class FaceMatcher:
    def __init__(
        self,
        distance_threshold: float = DISTANCE_THRESHOLD,
        confidence_threshold_percent: int = CONFIDENCE_THRESHOLD_PERCENT,
    ):
        self.distance_threshold = distance_threshold
        self.confidence_threshold_percent = confidence_threshold_percent

    def match(self, query: np.ndarray, gallery: Gallery) -> Optional[MatchResult]:
        return find_best_match(
            query,
            gallery,
            distance_threshold=self.distance_threshold,
            confidence_threshold_percent=self.confidence_threshold_percent,
        )
