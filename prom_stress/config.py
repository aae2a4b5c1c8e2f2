"""
Stress-test configuration.

Two kinds of configuration feed a run:

1. :class:`TargetConfig`: *where* traffic goes.  Read from environment
   variables once at process start and passed explicitly to the driver.
2. :class:`StressProfile`: *how much* traffic and what counts as a pass:
   the staged ramp and the thresholds.  Built-in defaults can be replaced
   by a YAML file named in ``STRESS_PROFILE``.

Environment variables:

- ``CLUSTER_CONTEXT``: cluster name used in the Prometheus service name
  (default ``aws``)
- ``NAMESPACE``: namespace the Prometheus stack runs in (default
  ``monitoring``)
- ``testid``: identifier sent as ``X-Test-ID`` (default generated at
  setup as ``stress-<epoch ms>``)
- ``PROMETHEUS_URL``: full base URL, overrides the service-name default
- ``STRESS_PROFILE``: path to a YAML run profile

Key Concepts Demonstrated:
- Environment-variable overrides with sensible defaults
- Immutable configuration objects threaded through the code instead of
  module-level globals
- Profile files validated up front so a bad file fails before any load
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

from prom_stress.shape import Stage
from prom_stress.thresholds import Threshold, parse_thresholds

DEFAULT_CLUSTER_CONTEXT = "aws"
DEFAULT_NAMESPACE = "monitoring"
PROMETHEUS_PORT = 9090

DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage(duration=15, target=20),
    Stage(duration=120, target=80),
    Stage(duration=180, target=150),
    Stage(duration=120, target=200),
    Stage(duration=30, target=0),
)

DEFAULT_THRESHOLDS: tuple[Threshold, ...] = parse_thresholds(
    {
        "response_time": ["p(90)<3000"],
        "failure_rate": ["rate<0.15"],
        "request_rate": ["rate>10"],
    }
)


class ProfileError(ValueError):
    """Raised when a run profile file is missing data or malformed."""


@dataclass(frozen=True)
class TargetConfig:
    """
    Where the stress test sends traffic.

    Attributes:
        cluster_context: Cluster name embedded in the Prometheus service
            name (``kube-prometheus-stack-<context>-prometheus``).
        namespace: Namespace of the Prometheus stack; reported in logs.
        test_id: Explicit test identifier, or ``None`` to generate one at
            setup.
        url_override: Full base URL that replaces the service-name
            default (e.g. a ``kubectl port-forward`` address).
    """

    cluster_context: str = DEFAULT_CLUSTER_CONTEXT
    namespace: str = DEFAULT_NAMESPACE
    test_id: str | None = None
    url_override: str | None = None

    @property
    def prometheus_service(self) -> str:
        return f"kube-prometheus-stack-{self.cluster_context}-prometheus"

    @property
    def prometheus_url(self) -> str:
        if self.url_override:
            return self.url_override.rstrip("/")
        return f"http://{self.prometheus_service}:{PROMETHEUS_PORT}"


def _env(environ: Mapping[str, str], name: str) -> str | None:
    """Return a stripped env value, treating blank strings as unset."""
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_config(environ: Mapping[str, str] | None = None) -> TargetConfig:
    """
    Build a :class:`TargetConfig` from environment variables.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.

    Returns:
        The immutable target configuration.
    """
    if environ is None:
        environ = os.environ
    return TargetConfig(
        cluster_context=_env(environ, "CLUSTER_CONTEXT") or DEFAULT_CLUSTER_CONTEXT,
        namespace=_env(environ, "NAMESPACE") or DEFAULT_NAMESPACE,
        test_id=_env(environ, "testid"),
        url_override=_env(environ, "PROMETHEUS_URL"),
    )


@dataclass(frozen=True)
class StressProfile:
    """The staged ramp plus the thresholds the run is judged against."""

    stages: tuple[Stage, ...] = DEFAULT_STAGES
    thresholds: tuple[Threshold, ...] = DEFAULT_THRESHOLDS


def load_profile(path: Path | str | None = None) -> StressProfile:
    """
    Load a run profile from YAML, or return the built-in default.

    The file looks like::

        stages:
          - {duration: 15s, target: 20}
          - {duration: 2m, target: 80}
        thresholds:
          response_time: ["p(90)<3000"]
          failure_rate: ["rate<0.15"]

    Either key may be omitted to keep its default.

    Args:
        path: YAML file to read, or ``None`` for the defaults.

    Returns:
        The validated profile.

    Raises:
        ProfileError: If the file cannot be read or any entry is invalid.
    """
    if path is None:
        return StressProfile()

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ProfileError(f"Cannot read profile {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ProfileError(f"Profile {path} must be a mapping")

    stages = DEFAULT_STAGES
    if "stages" in data:
        raw_stages = data["stages"]
        if not isinstance(raw_stages, list) or not raw_stages:
            raise ProfileError("'stages' must be a non-empty list")
        try:
            stages = tuple(Stage.from_dict(raw) for raw in raw_stages)
        except (KeyError, TypeError, ValueError) as exc:
            raise ProfileError(f"Invalid stage in {path}: {exc}") from exc

    thresholds = DEFAULT_THRESHOLDS
    if "thresholds" in data:
        raw_thresholds = data["thresholds"] or {}
        if not isinstance(raw_thresholds, dict):
            raise ProfileError("'thresholds' must map metric names to expressions")
        try:
            thresholds = parse_thresholds(raw_thresholds)
        except (TypeError, ValueError) as exc:
            raise ProfileError(f"Invalid threshold in {path}: {exc}") from exc

    return StressProfile(stages=stages, thresholds=thresholds)


def profile_from_env(environ: Mapping[str, str] | None = None) -> StressProfile:
    """Load the profile named by ``STRESS_PROFILE``, or the default."""
    if environ is None:
        environ = os.environ
    return load_profile(_env(environ, "STRESS_PROFILE"))
