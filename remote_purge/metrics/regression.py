# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Ordinary least-squares line fit over (x, y) samples."""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

# Denominators below this are treated as a vertical/degenerate fit
_EPSILON = 1e-9


@dataclass(frozen=True)
class Regression:
    slope: Optional[float]
    intercept: Optional[float]
    points: int

    @property
    def defined(self) -> bool:
        return self.slope is not None


def linear_regression(
    points: Iterable[Sequence[float]],
    window: Optional[int] = None,
) -> Regression:
    """Fit ``y = slope * x + intercept`` through *points*.

    slope = (nΣxy − ΣxΣy) / (nΣx² − (Σx)²), intercept = (Σy − slope·Σx) / n.

    x values are shifted by the first x before summing; the slope is
    unchanged and the sums stay small for epoch-second timestamps.

    Args:
        points: (x, y) pairs, oldest first.
        window: Only use the last *window* points.

    Returns:
        Regression with slope/intercept None when fewer than 2 points are
        available or all x values coincide.
    """
    data = [(float(p[0]), float(p[1])) for p in points]
    if window is not None and window > 0:
        data = data[-window:]

    n = len(data)
    if n < 2:
        return Regression(slope=None, intercept=None, points=n)

    x0 = data[0][0]
    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for x, y in data:
        dx = x - x0
        sum_x += dx
        sum_y += y
        sum_xy += dx * y
        sum_xx += dx * dx

    denominator = n * sum_xx - sum_x * sum_x
    if abs(denominator) < _EPSILON:
        return Regression(slope=None, intercept=None, points=n)

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    # Intercept in the shifted frame, then moved back to the original x axis
    shifted_intercept = (sum_y - slope * sum_x) / n
    intercept = shifted_intercept - slope * x0
    return Regression(slope=slope, intercept=intercept, points=n)


def trend_label(slope: Optional[float], tolerance: float = 1e-12) -> str:
    """``positive`` / ``flat`` / ``negative``, or ``insufficient`` without a fit."""
    if slope is None:
        return "insufficient"
    if slope > tolerance:
        return "positive"
    if slope < -tolerance:
        return "negative"
    return "flat"
