"""Digitraffic winter navigation: fairways (dirways) kept open by icebreakers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .base import SourceAdapter


DIRWAYS_URL = "https://meri.digitraffic.fi/api/winter-navigation/v2/dirways"


@dataclass(frozen=True)
class Dirway:
    dirway_id: str
    name: str
    geometry: Dict[str, Any]
    properties: Dict[str, Any] = field(default_factory=dict)


class DirwayAdapter(SourceAdapter[Dirway]):
    """Icebreaker-assisted routes as published by the winter navigation service."""

    name = "digitraffic-dirways"

    def __init__(self, url: str = DIRWAYS_URL, **kwargs) -> None:
        super().__init__(**kwargs)
        self.url = url

    def fetch(self) -> List[Dirway]:
        payload = self._get_object(self.url)
        return self._each_record(payload.get("features"), self._parse)

    @staticmethod
    def _parse(feature: Dict[str, Any]) -> Optional[Dirway]:
        geometry = feature.get("geometry")
        if not isinstance(geometry, dict):
            return None
        props = dict(feature.get("properties") or {})
        dirway_id = props.pop("id", None) or feature.get("id")
        if dirway_id is None:
            return None
        name = props.pop("name", None) or f"Dirway {dirway_id}"
        # Nested structures (point lists, issuer blocks) are not needed on the map.
        scalars = {key: value for key, value in props.items() if not isinstance(value, (dict, list))}
        return Dirway(dirway_id=str(dirway_id), name=str(name), geometry=geometry, properties=scalars)


__all__ = ["DIRWAYS_URL", "Dirway", "DirwayAdapter"]
