"""
PromQL query catalog, classifier and Prometheus API URL builders.

The catalog mixes cheap lookups (``up``) with expensive range-vector
aggregations so that a random pick per iteration exercises both the
head block and longer TSDB scans.
"""

from __future__ import annotations

from urllib.parse import quote

QUERY_CATALOG: tuple[str, ...] = (
    "up",
    "prometheus_build_info",
    "prometheus_tsdb_head_series",
    "prometheus_tsdb_head_samples_appended_total",
    "rate(prometheus_tsdb_head_samples_appended_total[5m])",
    "sum(rate(container_cpu_usage_seconds_total[5m])) by (namespace)",
    "count(up == 1)",
    "prometheus_config_last_reload_successful",
    "topk(10, sum(rate(container_cpu_usage_seconds_total[1h])) by (pod))",
    "histogram_quantile(0.95, rate(prometheus_http_request_duration_seconds_bucket[10m]))",
    "sum(increase(prometheus_tsdb_compaction_duration_seconds_sum[2h])) by (job)",
    "avg_over_time(prometheus_tsdb_head_series[30m])",
    "rate(prometheus_rule_evaluation_duration_seconds_sum[15m])",
)

QUERY_TYPES = ("rate", "aggregation", "histogram", "topk", "simple")

# Checked in order; the first rule with a matching marker wins.
_CLASSIFIER_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("rate", ("rate(", "increase(")),
    ("aggregation", ("sum(", "avg(")),
    ("histogram", ("histogram_quantile",)),
    ("topk", ("topk(",)),
)

METADATA_LABELS = ("job", "instance")

# Characters JavaScript's encodeURIComponent leaves untouched on top of
# the unreserved set that ``quote`` already keeps.
_COMPONENT_SAFE = "!*'()"


def classify_query(query: str) -> str:
    """
    Classify a PromQL expression by substring inspection.

    Precedence is ``rate`` > ``aggregation`` > ``histogram`` > ``topk`` >
    ``simple``, so ``sum(rate(x[5m]))`` is a ``rate`` query and so is
    ``histogram_quantile(0.9, sum(rate(x[5m])))``.

    Args:
        query: The PromQL expression.

    Returns:
        One of :data:`QUERY_TYPES`.
    """
    for query_type, markers in _CLASSIFIER_RULES:
        if any(marker in query for marker in markers):
            return query_type
    return "simple"


def encode_component(value: str) -> str:
    """Percent-encode *value* the way ``encodeURIComponent`` does."""
    return quote(value, safe=_COMPONENT_SAFE)


def instant_query_url(base_url: str, query: str) -> str:
    """Build ``/api/v1/query?query=<expr>``."""
    return f"{base_url}/api/v1/query?query={encode_component(query)}"


def range_query_url(base_url: str, query: str, start: int, end: int, step: int) -> str:
    """Build ``/api/v1/query_range`` for ``[start, end]`` at *step* seconds."""
    return (
        f"{base_url}/api/v1/query_range?query={encode_component(query)}"
        f"&start={int(start)}&end={int(end)}&step={int(step)}"
    )


def label_values_url(base_url: str, label: str) -> str:
    return f"{base_url}/api/v1/label/{label}/values"


def series_url(base_url: str, query: str) -> str:
    return f"{base_url}/api/v1/series?match[]={encode_component(query)}"


def metadata_urls(base_url: str, query: str) -> list[str]:
    """
    Return the metadata endpoints one iteration may pick from.

    The list holds label-value lookups for ``job`` and ``instance``
    followed by a series match on *query*.
    """
    urls = [label_values_url(base_url, label) for label in METADATA_LABELS]
    urls.append(series_url(base_url, query))
    return urls
