"""
Pass/fail thresholds for a stress run.

A threshold pairs a metric name with a small expression such as
``p(90) < 3000`` or ``rate < 0.15``.  Thresholds are evaluated once,
after the run, against a :class:`MetricSnapshot` that can be built from
Locust's live statistics or from the ``*_stats.csv`` file Locust writes
with ``--csv``.

Supported metrics and aggregates:

- ``response_time``: ``p(N)``, ``avg``, ``min``, ``max``, ``med`` (ms)
- ``failure_rate``: ``rate`` (failed requests / total requests)
- ``request_rate``: ``rate`` (requests per second), ``count``
- ``checks``: ``rate`` (passed checks / total checks)

Key Concepts Demonstrated:
- Declarative thresholds parsed once and validated up front
- One evaluation path shared by the live run and the CI gate
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

_EXPRESSION = re.compile(
    r"^\s*(?P<aggregate>p\(\s*(?P<percentile>\d+(?:\.\d+)?)\s*\)|[a-z]+)"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*"
    r"(?P<value>-?\d+(?:\.\d+)?)\s*$"
)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

METRIC_AGGREGATES: dict[str, frozenset[str]] = {
    "response_time": frozenset({"p", "avg", "min", "max", "med"}),
    "failure_rate": frozenset({"rate"}),
    "request_rate": frozenset({"rate", "count"}),
    "checks": frozenset({"rate"}),
}

# Percentile columns present in Locust's stats CSV, keyed by fraction.
CSV_PERCENTILE_COLUMNS: dict[float, str] = {
    0.5: "50%",
    0.66: "66%",
    0.75: "75%",
    0.8: "80%",
    0.9: "90%",
    0.95: "95%",
    0.98: "98%",
    0.99: "99%",
    0.999: "99.9%",
    0.9999: "99.99%",
    1.0: "100%",
}


@dataclass(frozen=True)
class Threshold:
    """A parsed ``<aggregate> <op> <value>`` expression bound to a metric."""

    metric: str
    expression: str
    aggregate: str
    op: str
    value: float
    percentile: float | None = None

    @classmethod
    def parse(cls, metric: str, expression: str) -> Threshold:
        """
        Parse a threshold expression for *metric*.

        Args:
            metric: One of the keys of :data:`METRIC_AGGREGATES`.
            expression: Text such as ``"p(90)<3000"`` or ``"rate > 10"``.

        Returns:
            The parsed threshold.

        Raises:
            ValueError: If the metric is unknown, the expression does not
                parse, or the aggregate does not apply to the metric.
        """
        if metric not in METRIC_AGGREGATES:
            raise ValueError(f"Unknown threshold metric: {metric!r}")

        match = _EXPRESSION.match(str(expression))
        if match is None:
            raise ValueError(f"Cannot parse threshold {expression!r} for {metric}")

        percentile = None
        aggregate = match.group("aggregate")
        if match.group("percentile") is not None:
            aggregate = "p"
            percentile = float(match.group("percentile")) / 100.0
            if not 0.0 <= percentile <= 1.0:
                raise ValueError(f"Percentile out of range in {expression!r}")
        elif aggregate == "p":
            raise ValueError(f"Percentile aggregate needs a value, e.g. p(95): {expression!r}")

        if aggregate not in METRIC_AGGREGATES[metric]:
            raise ValueError(f"Aggregate {aggregate!r} is not valid for metric {metric}")

        return cls(
            metric=metric,
            expression=str(expression).strip(),
            aggregate=aggregate,
            op=match.group("op"),
            value=float(match.group("value")),
            percentile=percentile,
        )

    def check(self, actual: float) -> bool:
        return _OPERATORS[self.op](actual, self.value)


def parse_thresholds(raw: Mapping[str, Iterable[str] | str]) -> tuple[Threshold, ...]:
    """Parse ``{metric: [expr, ...]}`` (a bare string counts as one expression)."""
    thresholds: list[Threshold] = []
    for metric, expressions in raw.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        for expression in expressions:
            thresholds.append(Threshold.parse(metric, expression))
    return tuple(thresholds)


@dataclass
class MetricSnapshot:
    """
    End-of-run numbers a threshold can be evaluated against.

    Attributes:
        request_count: Total requests issued.
        failure_count: Requests the host counted as failed.
        requests_per_second: Average throughput over the run.
        avg_ms / min_ms / max_ms / median_ms: Response-time aggregates.
        percentiles: Response-time percentiles in ms, keyed by fraction
            (``0.9`` for p90).  Missing keys make ``p(N)`` unevaluable.
        check_pass_rate: Passed checks / total checks, when known.
    """

    request_count: int = 0
    failure_count: int = 0
    requests_per_second: float = 0.0
    avg_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    median_ms: float = 0.0
    percentiles: dict[float, float] = field(default_factory=dict)
    check_pass_rate: float | None = None

    @property
    def failure_rate(self) -> float:
        if self.request_count <= 0:
            return 0.0
        return self.failure_count / self.request_count

    def value_for(self, threshold: Threshold) -> float:
        """
        Return the observed value *threshold* should be compared with.

        Raises:
            ValueError: If the snapshot lacks the data (e.g. a percentile
                the CSV does not report, or check results for ``checks``).
        """
        metric, aggregate = threshold.metric, threshold.aggregate
        if metric == "response_time":
            if aggregate == "p":
                key = _match_percentile(self.percentiles, threshold.percentile)
                if key is None:
                    raise ValueError(f"No data for {threshold.expression} on {metric}")
                return self.percentiles[key]
            return {
                "avg": self.avg_ms,
                "min": self.min_ms,
                "max": self.max_ms,
                "med": self.median_ms,
            }[aggregate]
        if metric == "failure_rate":
            return self.failure_rate
        if metric == "request_rate":
            if aggregate == "count":
                return float(self.request_count)
            return self.requests_per_second
        if self.check_pass_rate is None:
            raise ValueError("No check results recorded")
        return self.check_pass_rate


def _match_percentile(percentiles: Mapping[float, float], wanted: float | None) -> float | None:
    if wanted is None:
        return None
    for key in percentiles:
        if abs(key - wanted) < 1e-9:
            return key
    return None


@dataclass(frozen=True)
class ThresholdResult:
    threshold: Threshold
    actual: float | None
    passed: bool
    error: str | None = None


def evaluate(thresholds: Iterable[Threshold], snapshot: MetricSnapshot) -> list[ThresholdResult]:
    """
    Evaluate each threshold against *snapshot*.

    A threshold whose value cannot be computed counts as failed and
    carries the reason in ``error``.
    """
    results: list[ThresholdResult] = []
    for threshold in thresholds:
        try:
            actual = snapshot.value_for(threshold)
        except ValueError as exc:
            results.append(ThresholdResult(threshold, None, False, str(exc)))
            continue
        results.append(ThresholdResult(threshold, actual, threshold.check(actual)))
    return results


def snapshot_from_stats(
    entry: Any,
    thresholds: Iterable[Threshold] = (),
    check_pass_rate: float | None = None,
) -> MetricSnapshot:
    """
    Build a snapshot from a Locust ``StatsEntry`` (usually ``stats.total``).

    Percentiles are computed for every ``p(N)`` the thresholds ask for,
    plus the CSV set so log output stays comparable with the CI gate.
    """
    wanted = set(CSV_PERCENTILE_COLUMNS)
    wanted.update(t.percentile for t in thresholds if t.percentile is not None)

    percentiles: dict[float, float] = {}
    if entry.num_requests:
        for fraction in sorted(wanted):
            percentiles[fraction] = float(entry.get_response_time_percentile(fraction) or 0.0)

    return MetricSnapshot(
        request_count=int(entry.num_requests),
        failure_count=int(entry.num_failures),
        requests_per_second=float(entry.total_rps or 0.0),
        avg_ms=float(entry.avg_response_time or 0.0),
        min_ms=float(entry.min_response_time or 0.0),
        max_ms=float(entry.max_response_time or 0.0),
        median_ms=float(entry.median_response_time or 0.0),
        percentiles=percentiles,
        check_pass_rate=check_pass_rate,
    )


def _parse_float(value: Any, field_name: str) -> float:
    """
    Coerce a CSV cell to ``float``, stripping ``%`` suffixes if present.

    Raises:
        ValueError: If the value is missing, empty, or non-numeric.
    """
    if value is None:
        raise ValueError(f"Missing field: {field_name}")

    text = str(value).strip().replace("%", "")
    if text == "" or text == "N/A":
        raise ValueError(f"Empty value for field: {field_name}")

    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Non-numeric value for {field_name}: {value}") from exc


def snapshot_from_csv_row(row: Mapping[str, str]) -> MetricSnapshot:
    """
    Build a snapshot from the ``Aggregated`` row of a Locust stats CSV.

    Percentile columns that are absent or ``N/A`` are skipped; thresholds
    on them fail with a "no data" error during evaluation.
    """
    percentiles: dict[float, float] = {}
    for fraction, column in CSV_PERCENTILE_COLUMNS.items():
        cell = row.get(column)
        if cell in (None, "", "N/A"):
            continue
        percentiles[fraction] = _parse_float(cell, column)

    return MetricSnapshot(
        request_count=int(_parse_float(row.get("Request Count"), "Request Count")),
        failure_count=int(_parse_float(row.get("Failure Count"), "Failure Count")),
        requests_per_second=_parse_float(row.get("Requests/s"), "Requests/s"),
        avg_ms=_parse_float(row.get("Average Response Time"), "Average Response Time"),
        min_ms=_parse_float(row.get("Min Response Time"), "Min Response Time"),
        max_ms=_parse_float(row.get("Max Response Time"), "Max Response Time"),
        median_ms=_parse_float(row.get("Median Response Time"), "Median Response Time"),
        percentiles=percentiles,
    )
