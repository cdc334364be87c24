from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from ..classification import bucket_for, cut_points, reference_values
from ..entities import RegionFeature
from ..providers.statfin import MunicipalityBoundary, MunicipalityValue


logger = logging.getLogger(__name__)


def classify_regions(
    boundaries: Sequence[MunicipalityBoundary],
    values: Sequence[MunicipalityValue],
    year: int,
    value_name: str = "value",
) -> Tuple[List[RegionFeature], Dict[str, Any]]:
    """Attach one statistic per municipality polygon and bucket it by quantile.

    Municipalities without a statistic get 0.  When no municipality has a
    positive value the features are returned unclassified and the returned
    metadata says so.
    """
    by_code: Mapping[str, float] = {item.code: item.value for item in values}
    reference = reference_values(by_code.values())
    points = cut_points(reference) if reference else None
    if points is None:
        logger.warning("No positive %s values for %s, leaving regions unclassified", value_name, year)

    features: List[RegionFeature] = []
    total = 0.0
    for boundary in boundaries:
        value = by_code.get(boundary.code, 0.0)
        total += value
        features.append(
            RegionFeature(
                code=boundary.code,
                name=boundary.name,
                geometry=boundary.geometry,
                value=value,
                year=year,
                bucket=bucket_for(value, points) if points else None,
                extra={value_name: value},
            )
        )

    metadata = {
        "year": year,
        "totalMunicipalities": len(features),
        "total": total,
        "classified": points is not None,
    }
    return features, metadata


__all__ = ["classify_regions"]
