"""Fingrid open data: latest grid state for Finland.

The provider allows roughly ten requests a minute, so datasets are fetched
one after another with ``interval`` seconds in between.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..entities import format_instant
from .base import MALFORMED, ProviderError, SourceAdapter, parse_timestamp, safe_float


FINGRID_BASE = "https://data.fingrid.fi/api"

DATASETS: Dict[str, int] = {
    "production": 192,
    "consumption": 124,
    "wind": 75,
    "nuclear": 188,
    "hydro": 123,
    "surplus": 198,
}

TRANSFERS: Tuple[Tuple[str, int], ...] = (
    ("FI-SE1", 87),
    ("FI-SE3", 89),
    ("FI-EE", 180),
    ("FI-NO", 187),
)


@dataclass(frozen=True)
class CrossBorderTransfer:
    connection: str
    value: float
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class EnergyOverview:
    """Latest MW values; positive transfers are exports."""

    production: float
    consumption: float
    wind: float
    nuclear: float
    hydro: float
    surplus: float
    transfers: Tuple[CrossBorderTransfer, ...] = field(default_factory=tuple)
    timestamp: Optional[datetime] = None

    @property
    def other(self) -> float:
        return max(0.0, self.production - self.wind - self.nuclear - self.hydro)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "production": self.production,
            "consumption": self.consumption,
            "wind": self.wind,
            "nuclear": self.nuclear,
            "hydro": self.hydro,
            "surplus": self.surplus,
            "other": self.other,
            "transfers": [
                {
                    "connection": transfer.connection,
                    "value": transfer.value,
                    "timestamp": format_instant(transfer.timestamp) if transfer.timestamp else None,
                }
                for transfer in self.transfers
            ],
            "timestamp": format_instant(self.timestamp) if self.timestamp else None,
        }


class FingridAdapter(SourceAdapter[EnergyOverview]):
    name = "fingrid"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = FINGRID_BASE,
        interval: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.interval = interval
        self._sleep = sleep

    def fetch(self) -> List[EnergyOverview]:
        if not self.api_key:
            self._log.warning("Fingrid API key not configured, skipping energy overview")
            return []

        now = self.clock()
        calls = 0
        values: Dict[str, float] = {}
        latest: Optional[datetime] = None
        for key, dataset_id in DATASETS.items():
            if calls:
                self._sleep(self.interval)
            calls += 1
            value, when = self._latest_point(dataset_id, now)
            values[key] = value
            if when is not None and (latest is None or when > latest):
                latest = when

        transfers: List[CrossBorderTransfer] = []
        for connection, dataset_id in TRANSFERS:
            self._sleep(self.interval)
            value, when = self._latest_point(dataset_id, now)
            transfers.append(CrossBorderTransfer(connection=connection, value=value, timestamp=when))

        return [EnergyOverview(transfers=tuple(transfers), timestamp=latest, **values)]

    # Helpers ------------------------------------------------------------
    def _latest_point(self, dataset_id: int, now: datetime) -> Tuple[float, Optional[datetime]]:
        """Latest value of one dataset within the past hour; 0 when unavailable."""
        params = {
            "startTime": format_instant(now - timedelta(hours=1)),
            "endTime": format_instant(now),
            "format": "json",
            "pageSize": "1",
            "sortOrder": "desc",
        }
        try:
            payload = self._get_object(
                f"{self.base_url}/datasets/{dataset_id}/data",
                params=params,
                headers={"x-api-key": self.api_key},
            )
            points = payload.get("data") or []
            if not points:
                return 0.0, None
            point = points[0]
            start = point.get("startTime")
            return safe_float(point.get("value")) or 0.0, parse_timestamp(start, now) if start else None
        except ProviderError as exc:
            self._log.warning("Fingrid dataset %s unavailable: %s", dataset_id, exc)
            reason = str(exc)
        except MALFORMED as exc:
            self._log.warning("Fingrid dataset %s sent a malformed payload: %r", dataset_id, exc)
            reason = "malformed payload"
        if self.registry is not None:
            self.registry.record_provider_error(f"{self.name}:{dataset_id}", reason)
        return 0.0, None


__all__ = ["CrossBorderTransfer", "DATASETS", "EnergyOverview", "FingridAdapter", "TRANSFERS"]
