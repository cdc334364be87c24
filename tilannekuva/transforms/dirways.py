from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..entities import LINE_TYPES, RouteFeature
from ..providers.marine import Dirway
from .common import to_feature


@to_feature.register
def _dirway(record: Dirway, *, now: Optional[datetime] = None) -> Optional[RouteFeature]:
    if record.geometry.get("type") not in LINE_TYPES or not record.geometry.get("coordinates"):
        return None
    return RouteFeature(
        id=f"dirway-{record.dirway_id}",
        name=record.name,
        geometry=record.geometry,
        properties={**record.properties, "source": "Digitraffic / Väylävirasto"},
    )
