"""
Metric aggregation

On-demand summaries over the current buffer for dashboards and reports.
Ingest is lenient (any value is buffered), so every read path here drops
non-finite and negative values before computing statistics.
"""

import math
import statistics
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from .performance_types import Metric, VitalRating, WebVital


def clean_values(values: Iterable[float]) -> List[float]:
    """Keep finite, non-negative numbers"""
    cleaned = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value) and value >= 0:
            cleaned.append(float(value))
    return cleaned


def percentile(values: Sequence[float], q: float) -> float:
    """Linear-interpolated percentile (q in 0-100); 0.0 for no data"""
    values = clean_values(values)
    if not values:
        return 0.0
    return float(np.percentile(values, q))


def average_metric_value(metrics: Iterable[Metric], name: str) -> float:
    """Mean value of the named metric; 0.0 when nothing usable was recorded"""
    values = clean_values(m.value for m in metrics if m.name == name)
    if not values:
        return 0.0
    return statistics.mean(values)


@dataclass
class MetricAggregate:
    """Summary statistics for one metric name"""
    name: str
    count: int
    mean: float
    median: float
    p75: float
    p95: float
    p99: float
    min: float
    max: float
    dropped: int = 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "mean": self.mean,
            "median": self.median,
            "p75": self.p75,
            "p95": self.p95,
            "p99": self.p99,
            "min": self.min,
            "max": self.max,
            "dropped": self.dropped,
        }


def summarize(name: str, raw_values: Sequence[float]) -> Optional[MetricAggregate]:
    values = clean_values(raw_values)
    if not values:
        return None

    samples = np.asarray(values, dtype=float)
    return MetricAggregate(
        name=name,
        count=len(values),
        mean=float(np.mean(samples)),
        median=float(np.median(samples)),
        p75=float(np.percentile(samples, 75)),
        p95=float(np.percentile(samples, 95)),
        p99=float(np.percentile(samples, 99)),
        min=float(np.min(samples)),
        max=float(np.max(samples)),
        dropped=len(raw_values) - len(values),
    )


def aggregate_metrics(metrics: Iterable[Metric]) -> Dict[str, MetricAggregate]:
    """Per-name aggregates over a metric buffer"""
    grouped: Dict[str, List[float]] = defaultdict(list)
    for metric in metrics:
        grouped[metric.name].append(metric.value)

    aggregates = {}
    for name, values in grouped.items():
        summary = summarize(name, values)
        if summary is not None:
            aggregates[name] = summary
    return aggregates


def aggregate_vitals(vitals: Iterable[WebVital]) -> Dict[str, Dict[str, object]]:
    """Latest value and rating per vital, with rating counts"""
    result: Dict[str, Dict[str, object]] = {}
    for vital in vitals:
        entry = result.setdefault(vital.name.value, {
            "count": 0,
            "latest": None,
            "rating": None,
            "ratings": {rating.value: 0 for rating in VitalRating},
        })
        entry["count"] += 1
        entry["latest"] = vital.value
        entry["rating"] = vital.rating.value
        entry["ratings"][vital.rating.value] += 1
    return result


def performance_score(
    average_page_load: float,
    average_api_response: float,
    page_load_target: float,
    api_response_target: float
) -> float:
    """
    0-100 score from page-load and API averages against their targets.

    Each component is 100 at or under target and falls off as target/actual.
    Components with no data are left out; with no data at all the score is 100.
    """
    components = []
    for average, target in ((average_page_load, page_load_target), (average_api_response, api_response_target)):
        if average > 0 and target > 0:
            components.append(100.0 * min(1.0, target / average))

    if not components:
        return 100.0
    return round(statistics.mean(components), 1)
