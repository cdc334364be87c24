"""Statistics Finland: PxWeb tables and municipality boundaries.

PxWeb answers ``{"data": [{"key": [...], "values": ["123"]}, ...]}`` where the
position of the municipality code inside ``key`` depends on the table.
Municipality codes come as ``KU091`` and are normalized to the three digit
form the boundary service uses.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .base import SourceAdapter


PXWEB_BASE = "https://pxdata.stat.fi/PXWeb/api/v1/fi/StatFin"
WFS_URL = "https://geo.stat.fi/geoserver/tilastointialueet/wfs"

# Whole country, abroad and unknown.
SKIPPED_CODES = frozenset({"SSS", "200", "X"})


@dataclass(frozen=True)
class MunicipalityValue:
    code: str
    value: float
    year: int


@dataclass(frozen=True)
class MunicipalityBoundary:
    code: str
    name: str
    geometry: Dict[str, Any] = field(default_factory=dict)


def municipality_code(raw: Optional[str]) -> Optional[str]:
    raw = (raw or "").strip()
    if not raw or raw in SKIPPED_CODES:
        return None
    code = raw[2:] if raw.startswith("KU") else raw
    return code if len(code) == 3 else None


def _count(values: Sequence[Any]) -> int:
    try:
        return int(values[0])
    except (IndexError, TypeError, ValueError):
        # PxWeb uses "." and ".." for suppressed or missing cells.
        return 0


def _selection(code: str, values: List[str], filter_: str = "item") -> Dict[str, Any]:
    return {"code": code, "selection": {"filter": filter_, "values": values}}


class PxWebAdapter(SourceAdapter[MunicipalityValue]):
    table = ""
    code_index = 0

    def __init__(self, base_url: str = PXWEB_BASE, **kwargs) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    def query(self, **params: Any) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def fetch(self, year: int, **params: Any) -> List[MunicipalityValue]:
        url = f"{self.base_url}/{self.table}"
        body = {"query": self.query(year=year, **params), "response": {"format": "json"}}
        payload = self._expect(
            self._json(self._request("POST", url, json=body, headers={"Content-Type": "application/json"})),
            dict,
            url,
        )

        def row_total(row: Dict[str, Any]):
            key = row.get("key") or []
            code = municipality_code(key[self.code_index] if len(key) > self.code_index else None)
            if code is None:
                return None
            return code, _count(row.get("values") or [])

        # Rows for several selected categories are summed per municipality.
        totals: Dict[str, int] = {}
        for code, count in self._each_record(payload.get("data"), row_total):
            totals[code] = totals.get(code, 0) + count
        return [MunicipalityValue(code=code, value=float(total), year=int(year)) for code, total in totals.items()]


class PopulationAdapter(PxWebAdapter):
    """Population on 31 December per municipality (table vaerak/11rh)."""

    name = "statfin-population"
    table = "vaerak/statfin_vaerak_pxt_11rh.px"
    code_index = 0

    def query(self, year: int, **params: Any) -> List[Dict[str, Any]]:
        return [
            _selection("Alue", ["*"], "all"),
            _selection("Kansalaisuus", ["SSS"]),
            _selection("Sukupuoli", ["SSS"]),
            _selection("Vuosi", [str(year)]),
            _selection("Tiedot", ["vaesto"]),
        ]


class CrimeAdapter(PxWebAdapter):
    """Offences known to the police per municipality (table rpk/13kq)."""

    name = "statfin-crime"
    table = "rpk/statfin_rpk_pxt_13kq.px"
    code_index = 1

    def query(self, year: int, categories: Sequence[str] = ("SSS",), **params: Any) -> List[Dict[str, Any]]:
        return [
            _selection("Vuosi", [str(year)]),
            _selection("Kunta", ["*"], "all"),
            _selection("ICCS rikosluokka", list(categories) or ["SSS"]),
            _selection("Jutun luokittelu", ["SSS"]),
        ]


class BoundaryAdapter(SourceAdapter[MunicipalityBoundary]):
    """Municipality polygons (1:4.5M generalization) for a given year, WGS84."""

    name = "statfin-boundaries"

    def __init__(self, url: str = WFS_URL, **kwargs) -> None:
        super().__init__(**kwargs)
        self.url = url

    def fetch(self, year: int) -> List[MunicipalityBoundary]:
        params = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeName": f"tilastointialueet:kunta4500k_{year}",
            "outputFormat": "application/json",
            "srsName": "EPSG:4326",
        }
        payload = self._get_object(self.url, params=params)

        def boundary(feature: Dict[str, Any]) -> Optional[MunicipalityBoundary]:
            props = feature.get("properties") or {}
            geometry = feature.get("geometry")
            if not props.get("kunta") or not isinstance(geometry, dict):
                return None
            return MunicipalityBoundary(code=str(props["kunta"]), name=props.get("nimi") or "", geometry=geometry)

        return self._each_record(payload.get("features"), boundary)


__all__ = [
    "BoundaryAdapter",
    "CrimeAdapter",
    "MunicipalityBoundary",
    "MunicipalityValue",
    "PopulationAdapter",
    "municipality_code",
]
