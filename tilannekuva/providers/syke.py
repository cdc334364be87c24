from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .base import ProviderError, SourceAdapter, parse_timestamp, safe_float


SYKE_BASE = "https://rajapinnat.ymparisto.fi/api/Hydrologiarajapinta/1.1/odata"

# Suure_Id 9 = ice thickness, Tila_Id 1 = active station
STATION_QUERY = {
    "$filter": "Suure_Id eq 9 and Tila_Id eq 1",
    "$select": "Paikka_Id,Nimi,KoordLat,KoordLong,KuntaNimi,JarviNimi",
}
MEASUREMENT_QUERY = {
    "$orderby": "Aika desc",
    "$top": "500",
    "$select": "Paikka_Id,Aika,Arvo",
}


@dataclass(frozen=True)
class IceMeasurement:
    station_id: str
    station_name: str
    lat: float
    lon: float
    thickness: float
    timestamp: datetime
    municipality: Optional[str] = None
    lake_name: Optional[str] = None


def parse_ddmmss(value: Optional[str]) -> Optional[float]:
    """Convert a ``DDMMSS`` coordinate string to decimal degrees.

    >>> round(parse_ddmmss("633104"), 4)
    63.5178

    Returns ``None`` for anything shorter than five characters or not numeric.
    """
    text = (value or "").strip()
    if len(text) < 5 or not text.isdigit():
        return None
    degrees = int(text[:-4])
    minutes = int(text[-4:-2])
    seconds = int(text[-2:])
    result = degrees + minutes / 60 + seconds / 3600
    return result or None


def _by_site(row: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
    return row["Paikka_Id"], row


class SykeIceAdapter(SourceAdapter[IceMeasurement]):
    """Latest ice thickness per active SYKE observation site."""

    name = "syke-ice"

    def __init__(self, base_url: str = SYKE_BASE, **kwargs) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    def fetch(self) -> List[IceMeasurement]:
        results = self._gather(
            {
                "stations": lambda: self._get_object(f"{self.base_url}/Paikka", params=STATION_QUERY),
                "measurements": lambda: self._get_object(
                    f"{self.base_url}/Jaanpaksuus", params=MEASUREMENT_QUERY
                ),
            }
        )
        if results["stations"] is None or results["measurements"] is None:
            raise ProviderError("ice stations or measurements unavailable")

        stations = dict(self._each_record(results["stations"].get("value"), _by_site))

        # Measurements arrive newest first; the first row per site wins.
        latest: Dict[Any, Dict[str, Any]] = {}
        for site_id, row in self._each_record(results["measurements"].get("value"), _by_site):
            latest.setdefault(site_id, row)

        now = self.clock()

        def observation(item) -> Optional[IceMeasurement]:
            site_id, row = item
            station = stations.get(site_id)
            if station is None:
                return None
            thickness = safe_float(row.get("Arvo"))
            if thickness is None or thickness < 0:
                return None
            lat = parse_ddmmss(station.get("KoordLat"))
            lon = parse_ddmmss(station.get("KoordLong"))
            if lat is None or lon is None:
                return None
            return IceMeasurement(
                station_id=f"syke-{site_id}",
                station_name=station.get("Nimi") or f"Site {site_id}",
                lat=lat,
                lon=lon,
                thickness=thickness,
                timestamp=parse_timestamp(row.get("Aika"), now),
                municipality=station.get("KuntaNimi") or None,
                lake_name=station.get("JarviNimi") or None,
            )

        observations = self._each_record(latest.items(), observation)
        self._log.info("SYKE: %d sites, %d measurements joined", len(stations), len(observations))
        return observations


__all__ = ["IceMeasurement", "SykeIceAdapter", "parse_ddmmss"]
