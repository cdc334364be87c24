from __future__ import annotations

import pytest

from conftest import NOW
from tilannekuva.aggregate import deduplicate, grid_cell, merge_by_priority
from tilannekuva.entities import Category, EventFeature, Point, Severity


def feature(feature_id: str, lat: float, lon: float) -> EventFeature:
    return EventFeature(
        id=feature_id,
        point=Point(lon=lon, lat=lat),
        category=Category.WEATHER,
        severity=Severity.LOW,
        title=feature_id,
        description="",
        location_name=feature_id,
        timestamp=NOW,
        source="test",
    )


def test_nearby_stations_share_a_cell():
    assert grid_cell(60.17, 24.94) == grid_cell(60.171, 24.941)


def test_higher_priority_source_survives():
    fmi = [feature("fmi-1", 60.17, 24.94)]
    road = [feature("rw-1", 60.171, 24.941)]

    merged = merge_by_priority(fmi, road)

    assert [f.id for f in merged] == ["fmi-1"]
    assert [f.id for f in merge_by_priority(road, fmi)] == ["rw-1"]


def test_distinct_cells_are_kept_in_order():
    features = [feature("a", 60.17, 24.94), feature("b", 61.5, 23.7), feature("c", 60.1701, 24.9401)]

    assert [f.id for f in deduplicate(features)] == ["a", "b"]


def test_cell_size_is_configurable():
    features = [feature("a", 60.17, 24.94), feature("b", 60.171, 24.941)]

    assert len(deduplicate(features, cell_size=0.0001)) == 2
    with pytest.raises(ValueError):
        deduplicate(features, cell_size=0)


def test_empty_input():
    assert merge_by_priority([], []) == []
