from collections.abc import Sequence

import numpy as np

from core.types import MetricTrend


def linear_trend(series: Sequence[float], window: int | None = None) -> float:
    """Least-squares slope of value against index position (x = 0..n-1).

    Returns 0.0 for fewer than two points. ``window`` keeps only the last
    ``window`` values.
    """
    if window is not None:
        series = series[-window:] if window > 0 else []
    n = len(series)
    if n < 2:
        return 0.0
    y = np.asarray(series, dtype=np.float64)
    if np.ptp(y) == 0.0:
        return 0.0
    # Centered form of (nΣxy − ΣxΣy) / (nΣx² − (Σx)²); avoids cancellation on long windows
    x = np.arange(n, dtype=np.float64)
    x -= x.mean()
    return float(np.dot(x, y - y.mean()) / np.dot(x, x))


def classify_trend(slope: float, threshold: float = 0.05) -> MetricTrend:
    if slope > threshold:
        return MetricTrend.IMPROVING
    if slope < -threshold:
        return MetricTrend.DECLINING
    return MetricTrend.STABLE
