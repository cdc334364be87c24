"""Cross-source merge of point features.

Deduplication is an approximate spatial join: coordinates are snapped to a
square grid of ``cell_size`` degrees (0.02 deg, roughly 2 km north-south)
and only the first feature seen in a cell is kept.  Two genuinely distinct
stations closer together than one cell collapse into one; that loss of
precision is accepted.  Callers control which source wins by the order in
which they pass the sequences.
"""
from __future__ import annotations

import logging
import math
from itertools import chain
from typing import Iterable, List, Set, Tuple

from .entities import EventFeature


logger = logging.getLogger(__name__)

DEFAULT_CELL_SIZE = 0.02


def grid_cell(lat: float, lon: float, cell_size: float = DEFAULT_CELL_SIZE) -> Tuple[int, int]:
    # Half-up rounding; round() would send exact .5 boundaries to the even cell.
    return (
        math.floor(lat / cell_size + 0.5),
        math.floor(lon / cell_size + 0.5),
    )


def deduplicate(features: Iterable[EventFeature], cell_size: float = DEFAULT_CELL_SIZE) -> List[EventFeature]:
    if cell_size <= 0:
        raise ValueError("cell_size must be positive")
    seen: Set[Tuple[int, int]] = set()
    kept: List[EventFeature] = []
    dropped = 0
    for feature in features:
        cell = grid_cell(feature.point.lat, feature.point.lon, cell_size)
        if cell in seen:
            dropped += 1
            continue
        seen.add(cell)
        kept.append(feature)
    if dropped:
        logger.info("Deduplicated %d features sharing a grid cell", dropped)
    return kept


def merge_by_priority(*sources: Iterable[EventFeature], cell_size: float = DEFAULT_CELL_SIZE) -> List[EventFeature]:
    """Concatenate ``sources`` highest priority first, then deduplicate."""
    return deduplicate(chain.from_iterable(sources), cell_size)


__all__ = ["DEFAULT_CELL_SIZE", "deduplicate", "grid_cell", "merge_by_priority"]
