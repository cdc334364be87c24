"""Quantile bucketing shared by the statistical region layers.

Cut points are recomputed from the reference set on every call, so a value's
bucket can move when the distribution changes between requests.
"""
from __future__ import annotations

import math
from numbers import Real
from typing import Iterable, List, Sequence, Tuple

from .entities import Bucket


class ClassificationError(ValueError):
    """Raised when there is nothing to classify against."""


def reference_values(values: Iterable[object]) -> List[float]:
    """Keep the positive, finite numbers of ``values`` in their original order."""
    result: List[float] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, Real):
            continue
        number = float(value)
        if math.isfinite(number) and number > 0:
            result.append(number)
    return result


def cut_points(reference: Sequence[float]) -> Tuple[float, float, float]:
    """Return ``(q1, q2, q3)`` taken by index ``floor(n * p)`` of the sorted set."""
    if not reference:
        raise ClassificationError("reference set is empty")
    ordered = sorted(reference)
    n = len(ordered)
    return (
        ordered[math.floor(n * 0.25)],
        ordered[math.floor(n * 0.5)],
        ordered[math.floor(n * 0.75)],
    )


def bucket_for(value: float, points: Tuple[float, float, float]) -> Bucket:
    q1, q2, q3 = points
    if value <= q1:
        return Bucket.LOW
    if value <= q2:
        return Bucket.MEDIUM
    if value <= q3:
        return Bucket.HIGH
    return Bucket.VERY_HIGH


def categorize(value: float, reference: Sequence[float]) -> Bucket:
    """Bucket ``value`` against ``reference``.

    ``reference`` is expected to be pre-filtered with :func:`reference_values`;
    an empty set raises :class:`ClassificationError`.
    """
    return bucket_for(value, cut_points(reference))


__all__ = ["ClassificationError", "bucket_for", "categorize", "cut_points", "reference_values"]
