"""FMI radar composite frames served through WMS.

No request is made here: a frame is just a ``GetMap`` URL for one timestamp,
and the map client loads the images itself.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from urllib.parse import urlencode


@dataclass(frozen=True)
class RadarConfig:
    wms_base_url: str = "https://openwms.fmi.fi/geoserver/Radar/wms"
    layer: str = "Radar:suomi_dbz_eureffin"
    frame_count: int = 24
    interval_minutes: int = 5
    north: float = 70.5
    south: float = 58.5
    east: float = 33.0
    west: float = 17.5
    size: int = 512


@dataclass(frozen=True)
class RadarFrame:
    url: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "timestamp": self.timestamp}


def radar_frames(now: datetime, config: RadarConfig = RadarConfig()) -> List[RadarFrame]:
    """The last ``frame_count`` frames, oldest first, on the ``interval_minutes`` boundary before ``now``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    latest = now.replace(minute=now.minute - now.minute % config.interval_minutes, second=0, microsecond=0)

    frames: List[RadarFrame] = []
    for index in range(config.frame_count - 1, -1, -1):
        moment = latest - timedelta(minutes=index * config.interval_minutes)
        timestamp = moment.strftime("%Y-%m-%dT%H:%M:%SZ")
        params = {
            "service": "WMS",
            "version": "1.3.0",
            "request": "GetMap",
            "layers": config.layer,
            "crs": "EPSG:4326",
            # WMS 1.3.0 with EPSG:4326 takes lat,lon axis order.
            "bbox": f"{config.south},{config.west},{config.north},{config.east}",
            "width": str(config.size),
            "height": str(config.size),
            "format": "image/png",
            "transparent": "true",
            "time": timestamp,
        }
        frames.append(RadarFrame(url=f"{config.wms_base_url}?{urlencode(params)}", timestamp=timestamp))
    return frames


__all__ = ["RadarConfig", "RadarFrame", "radar_frames"]
