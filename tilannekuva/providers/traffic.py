from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .base import ProviderError, SourceAdapter, parse_timestamp


MESSAGES_URL = "https://tie.digitraffic.fi/api/traffic-message/v1/messages"

SITUATION_TYPES = (
    "TRAFFIC_ANNOUNCEMENT",
    "ROAD_WORK",
    "WEIGHT_RESTRICTION",
    "EXEMPTED_TRANSPORT",
)


@dataclass(frozen=True)
class TrafficSituation:
    """One Digitraffic situation reduced to its preferred announcement."""

    situation_id: str
    situation_type: str
    announcement_type: Optional[str]
    geometry_type: Optional[str]
    coordinates: Any
    title: Optional[str]
    feature_names: Tuple[str, ...]
    location_description: str
    received_at: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    road_number: Optional[str] = None
    municipality: Optional[str] = None
    sender: Optional[str] = None


def _preferred_announcement(announcements: List[Dict[str, Any]]) -> Dict[str, Any]:
    for announcement in announcements:
        if announcement.get("language") == "FI":
            return announcement
    return announcements[0] if announcements else {}


class TrafficMessageAdapter(SourceAdapter[TrafficSituation]):
    """Active Fintraffic traffic messages, one parallel request per situation type."""

    name = "fintraffic-messages"

    def __init__(self, url: str = MESSAGES_URL, situation_types=SITUATION_TYPES, **kwargs) -> None:
        super().__init__(**kwargs)
        self.url = url
        self.situation_types = tuple(situation_types)

    def fetch(self) -> List[TrafficSituation]:
        responses = self._gather(
            {situation_type: self._fetch_type(situation_type) for situation_type in self.situation_types}
        )
        if responses and all(payload is None for payload in responses.values()):
            raise ProviderError("every situation type failed")

        now = self.clock()
        situations: List[TrafficSituation] = []
        for situation_type in self.situation_types:
            payload = responses.get(situation_type) or {}
            situations.extend(
                self._each_record(
                    payload.get("features"),
                    lambda feature, situation_type=situation_type: self._parse(feature, situation_type, now),
                )
            )
        return situations

    # Helpers ------------------------------------------------------------
    def _fetch_type(self, situation_type: str):
        params = {"situationType": situation_type, "inactiveHours": "0"}
        return lambda: self._get_object(self.url, params=params)

    @staticmethod
    def _parse(feature: Dict[str, Any], situation_type: str, now: datetime) -> TrafficSituation:
        props = feature.get("properties") or {}
        geometry = feature.get("geometry") or {}
        announcement = _preferred_announcement(props.get("announcements") or [])
        timing = announcement.get("timeAndDuration") or {}
        location = announcement.get("location") or {}
        details = announcement.get("locationDetails") or {}
        primary = (
            (details.get("roadAddressLocation") or {}).get("primaryPoint")
            or (location.get("roadAddressLocation") or {}).get("primaryPoint")
            or {}
        )
        road_number = primary.get("roadNumber")
        start = timing.get("startTime")
        end = timing.get("endTime")
        return TrafficSituation(
            situation_id=str(props["situationId"]),
            situation_type=props.get("situationType") or situation_type,
            announcement_type=props.get("trafficAnnouncementType"),
            geometry_type=geometry.get("type"),
            coordinates=geometry.get("coordinates"),
            title=announcement.get("title"),
            feature_names=tuple(
                item.get("name", "") for item in announcement.get("features") or [] if item.get("name")
            ),
            location_description=location.get("description") or "",
            received_at=now,
            start_time=parse_timestamp(start, now) if start else None,
            end_time=parse_timestamp(end, now) if end else None,
            road_number=str(road_number) if road_number else None,
            municipality=primary.get("municipality"),
            sender=announcement.get("sender"),
        )


__all__ = ["SITUATION_TYPES", "TrafficMessageAdapter", "TrafficSituation"]
