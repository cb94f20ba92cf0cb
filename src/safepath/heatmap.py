from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from safepath.config import HEATMAP_RADIUS_DEG
from safepath.models import Coordinate, HeatPoint, Rating, RatingCell
from safepath.sources import RatingSource

logger = logging.getLogger(__name__)

MIN_SAMPLES = 2
GRID_SIZE_DEG = 0.001  # roughly 100m cells


def intensity_for(average_safety_score: float) -> float:
    # lower safety means more heat
    return min(1.0, max(0.0, (6.0 - average_safety_score) / 5.0))


def build(cells: Iterable[RatingCell]) -> List[HeatPoint]:
    return [
        HeatPoint(coordinate=cell.coordinate, intensity=intensity_for(cell.average_safety_score))
        for cell in cells
        if cell.sample_count >= MIN_SAMPLES
    ]


def bucket_ratings(ratings: Iterable[Rating], grid_size: float = GRID_SIZE_DEG) -> List[RatingCell]:
    """Group individual ratings into grid cells keyed by rounded lat/lng."""

    scores: Dict[Tuple[int, int], List[int]] = defaultdict(list)
    for rating in ratings:
        key = (round(rating.coordinate.lat / grid_size), round(rating.coordinate.lng / grid_size))
        scores[key].append(rating.safety_score)

    cells = []
    for (lat_idx, lng_idx), values in scores.items():
        cells.append(
            RatingCell(
                coordinate=Coordinate(round(lat_idx * grid_size, 6), round(lng_idx * grid_size, 6)),
                average_safety_score=round(sum(values) / len(values), 1),
                sample_count=len(values),
            )
        )
    return cells


class HeatmapAggregator:
    def __init__(self, ratings: RatingSource) -> None:
        self.ratings = ratings

    def build(self, cells: Iterable[RatingCell]) -> List[HeatPoint]:
        return build(cells)

    def for_viewport(self, center: Coordinate, radius_deg: float = HEATMAP_RADIUS_DEG) -> List[HeatPoint]:
        try:
            cells = self.ratings.nearby(center, radius_deg)
        except Exception as exc:
            logger.warning("Heatmap ratings unavailable near %.4f,%.4f: %s", center.lat, center.lng, exc)
            return []
        return build(cells)
