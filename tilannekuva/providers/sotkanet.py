"""THL Sotkanet health and welfare indicators per municipality.

The ``/json`` endpoint answers flat rows such as
``{"indicator": 5641, "region": 46, "year": 2023, "gender": "total", "value": 196}``
where ``region`` is an internal id; ``/regions`` maps it to a municipality
code.  Data is published under CC BY 4.0 and must be attributed to THL.
"""
from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, List, Optional

from .base import ProviderError, SourceAdapter, safe_float
from .statfin import MunicipalityValue


SOTKANET_BASE = "https://sotkanet.fi/rest/1.1"


@dataclass(frozen=True)
class Indicator:
    id: str
    label: str
    unit: str


INDICATORS: Dict[str, Indicator] = {
    item.id: item
    for item in (
        Indicator("5641", "Sairastavuusindeksi", "indeksi"),
        Indicator("186", "Yleiskuolleisuus", "/ 100k as."),
        Indicator("127", "Väestö", "henkilöä"),
        Indicator("3694", "Sydän- ja verisuonitautikuolleisuus", "/ 100k as."),
        Indicator("5643", "Syöpäindeksi", "indeksi"),
        Indicator("5659", "Alkoholisairastavuus", "indeksi"),
    )
}


class SotkanetAdapter(SourceAdapter[MunicipalityValue]):
    """One indicator for one year, keyed by three digit municipality code."""

    name = "sotkanet"

    def __init__(self, base_url: str = SOTKANET_BASE, **kwargs) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self._region_codes: Optional[Dict[Any, str]] = None
        self._lock = Lock()

    def fetch(self, indicator: str, year: int) -> List[MunicipalityValue]:
        if indicator not in INDICATORS:
            raise ProviderError(f"unknown indicator {indicator}")
        params = {"indicator": indicator, "years": str(year), "genders": "total"}
        results = self._gather(
            {
                "data": lambda: self._get_list(f"{self.base_url}/json", params=params),
                "regions": self._municipality_codes,
            }
        )
        if results["data"] is None or results["regions"] is None:
            raise ProviderError("indicator data or region list unavailable")
        codes: Dict[Any, str] = results["regions"]

        def value(row: Dict[str, Any]) -> Optional[MunicipalityValue]:
            code = codes.get(row["region"])
            number = safe_float(row.get("value"))
            if code is None or number is None:
                return None
            return MunicipalityValue(code=code, value=number, year=int(year))

        return self._each_record(results["data"], value)

    # Helpers ------------------------------------------------------------
    def _municipality_codes(self) -> Dict[Any, str]:
        """Region id -> municipality code; loaded once per adapter, regions rarely change."""
        with self._lock:
            if self._region_codes is None:
                regions = self._get_list(f"{self.base_url}/regions")
                self._region_codes = dict(self._each_record(regions, _municipality_region))
            return self._region_codes


def _municipality_region(region: Dict[str, Any]):
    code = str(region.get("code") or "")
    if len(code) != 3 or not code.isdigit():
        return None
    return region["id"], code


__all__ = ["INDICATORS", "Indicator", "SotkanetAdapter"]
