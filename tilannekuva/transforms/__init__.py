"""Raw provider records to canonical features, one module per domain."""
from . import dirways, ice, road_weather, snow, train, traffic, transit, weather  # noqa: F401  (register transforms)
from .common import normalize, to_feature
from .regions import classify_regions

__all__ = ["classify_regions", "normalize", "to_feature"]
