from __future__ import annotations

from datetime import datetime, timezone

import pytest

from requests_mock import Mocker


NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class TimeController:
    def __init__(self) -> None:
        self.now = 0.0

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def requests_mock():
    with Mocker() as mock:
        yield mock


@pytest.fixture
def time_controller() -> TimeController:
    return TimeController()


@pytest.fixture
def clock():
    return lambda: NOW
