"""Control chart over closed issues (lead or cycle time)."""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np

from pm_app.analytics.lifecycle.cycle_time import nearest_rank_percentile
from pm_app.core.dates import normalize_timestamp
from pm_app.core.models import ControlChart, ControlChartPoint, LifecycleRecord

METRIC_FIELDS = {
    "leadTime": "lead_time",
    "lead_time": "lead_time",
    "cycleTime": "cycle_time",
    "cycle_time": "cycle_time",
}


def control_chart(records: Iterable[LifecycleRecord], metric: str = "lead_time") -> ControlChart:
    """Per-issue metric values sorted by close date, with statistical bands.

    ``std_dev`` is the population standard deviation; ``ucl = mean + 3σ`` and
    ``lcl = max(0, mean - 3σ)``. Points above the UCL or below the LCL are
    outliers. Percentiles use nearest rank.

    Raises
    ------
    ValueError
        If ``metric`` is not lead or cycle time.
    """
    field_name = METRIC_FIELDS.get(metric)
    if field_name is None:
        raise ValueError(f"Unsupported control chart metric: {metric!r}")

    usable = []
    for rec in records:
        value = getattr(rec, field_name)
        closed = normalize_timestamp(rec.issue.closed_at)
        if rec.state != "closed" or rec.malformed or value is None or closed is None:
            continue
        usable.append((closed, rec.iid, rec, value))
    if not usable:
        return ControlChart(metric=field_name)
    usable.sort(key=lambda item: (item[0], item[1]))

    values = np.array([item[3] for item in usable], dtype=float)
    mean = float(values.mean())
    std = float(values.std(ddof=0))
    ucl = mean + 3 * std
    lcl = max(0.0, mean - 3 * std)
    points = tuple(
        ControlChartPoint(
            iid=rec.iid,
            title=rec.title,
            web_url=rec.issue.web_url,
            value=value,
            date=closed.to_pydatetime(),
            is_outlier=value > ucl or value < lcl,
        )
        for closed, _, rec, value in usable
    )
    raw = [item[3] for item in usable]
    return ControlChart(
        metric=field_name,
        data_points=points,
        mean=round(mean, 2),
        median=float(nearest_rank_percentile(raw, 0.5)),
        std_dev=round(std, 2),
        p85=float(nearest_rank_percentile(raw, 0.85)),
        p95=float(nearest_rank_percentile(raw, 0.95)),
        ucl=round(ucl, 2),
        lcl=round(lcl, 2),
    )
