from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import ProviderError, SourceAdapter, parse_timestamp, safe_float


RATA_BASE = "https://rata.digitraffic.fi/api/v1"

EXCLUDED_CATEGORIES = frozenset({"Locomotive", "Shunting"})


@dataclass(frozen=True)
class TrainPosition:
    train_number: int
    departure_date: str
    train_type: str
    train_category: str
    commuter_line: Optional[str]
    lat: Optional[float]
    lon: Optional[float]
    speed: float
    late_minutes: int
    timestamp: datetime


def delay_minutes(timetable_rows: List[Dict[str, Any]]) -> int:
    """Lateness reported by the last timetable row that carries a difference."""
    for row in reversed(timetable_rows or []):
        difference = row.get("differenceInMinutes")
        if difference is not None:
            return int(difference)
    return 0


class RailAdapter(SourceAdapter[TrainPosition]):
    """Latest train locations joined with today's train metadata and delays."""

    name = "digitraffic-rail"

    def __init__(self, base_url: str = RATA_BASE, **kwargs) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    def fetch(self) -> List[TrainPosition]:
        now = self.clock()
        results = self._gather(
            {
                "locations": lambda: self._get_list(f"{self.base_url}/train-locations/latest"),
                "trains": lambda: self._get_list(f"{self.base_url}/trains/{now.date().isoformat()}"),
            }
        )
        if results["locations"] is None or results["trains"] is None:
            raise ProviderError("train locations or timetables unavailable")

        trains = dict(
            self._each_record(
                results["trains"], lambda train: (f"{train['trainNumber']}-{train['departureDate']}", train)
            )
        )

        def position(location: Dict[str, Any]) -> Optional[TrainPosition]:
            info = trains.get(f"{location['trainNumber']}-{location['departureDate']}")
            if info is None or info.get("trainCategory") in EXCLUDED_CATEGORIES:
                return None
            coordinates = (location.get("location") or {}).get("coordinates") or [None, None]
            return TrainPosition(
                train_number=location["trainNumber"],
                departure_date=location["departureDate"],
                train_type=info.get("trainType") or "",
                train_category=info.get("trainCategory") or "",
                commuter_line=info.get("commuterLineID") or None,
                lat=safe_float(coordinates[1]) if len(coordinates) > 1 else None,
                lon=safe_float(coordinates[0]),
                speed=safe_float(location.get("speed")) or 0.0,
                late_minutes=delay_minutes(info.get("timetableRows") or []),
                timestamp=parse_timestamp(location.get("timestamp"), now),
            )

        positions = self._each_record(results["locations"], position)
        self._log.info(
            "%d trains with location (from %d locations, %d trains)",
            len(positions),
            len(results["locations"]),
            len(trains),
        )
        return positions


__all__ = ["RailAdapter", "TrainPosition", "delay_minutes"]
