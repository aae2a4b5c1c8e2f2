"""
Traffic driver: setup, one iteration of PromQL traffic, teardown.

The driver holds everything an iteration needs (target configuration,
random source, clock, check recorder) but nothing about concurrency.
Whatever runs the virtual users (Locust in production, a plain loop or
a test) calls :meth:`TrafficDriver.iterate` with its own HTTP client and
iteration counter, and sleeps :meth:`TrafficDriver.think_time` between
calls.

Each iteration issues, in order:

1. an instant query for a random catalog entry (always),
2. a 30-minute range query over the same expression (every 5th
   iteration),
3. a metadata lookup (every 8th iteration).

Key Concepts Demonstrated:
- Injected random source and clock for deterministic tests
- Failures recorded as check outcomes instead of exceptions
- Fire-and-observe traffic: no retries, no backoff
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import requests

from prom_stress.checks import CheckRecorder
from prom_stress.config import TargetConfig
from prom_stress.http import HttpClient, RequestsClient
from prom_stress.queries import (
    QUERY_CATALOG,
    classify_query,
    instant_query_url,
    metadata_urls,
    range_query_url,
)

logger = logging.getLogger(__name__)

USER_AGENT = "prom-stress-test"

PROBE_TIMEOUT = 10.0
INSTANT_TIMEOUT = 30.0
RANGE_TIMEOUT = 60.0
METADATA_TIMEOUT = 30.0

RANGE_EVERY = 5
METADATA_EVERY = 8
PROGRESS_EVERY = 50

RANGE_WINDOW_SECONDS = 1800
RANGE_STEP_SECONDS = 30

MAX_RESPONSE_MS = 10_000
MAX_THINK_TIME = 2.0


@dataclass(frozen=True)
class TestContext:
    """Created once by :meth:`TrafficDriver.setup`; read-only afterwards."""

    __test__ = False

    start_time: float
    test_id: str


@dataclass(frozen=True)
class IterationResult:
    """What one iteration sent, for logging and assertions."""

    query: str
    query_type: str
    instant_url: str
    instant_ok: bool
    range_url: str | None = None
    range_ok: bool | None = None
    metadata_url: str | None = None


def _safe_json(response: Any) -> dict[str, Any]:
    """Return response JSON as a dict, or ``{}`` if parsing fails."""
    try:
        data = response.json()
    except ValueError:
        return {}

    if isinstance(data, dict):
        return data
    return {}


def _transport_failed(response: Any) -> bool:
    return response.status_code == 0 or getattr(response, "error", None) is not None


def _status_is_200(response: Any) -> bool:
    return response.status_code == 200


def _elapsed_ms(response: Any) -> float:
    elapsed = getattr(response, "elapsed", None)
    if elapsed is None:
        return 0.0
    return elapsed.total_seconds() * 1000.0


def _response_time_acceptable(response: Any) -> bool:
    return _elapsed_ms(response) < MAX_RESPONSE_MS


def _has_valid_data(response: Any) -> bool:
    return _safe_json(response).get("status") == "success"


INSTANT_CHECKS = {
    "query success": _status_is_200,
    "response time acceptable": _response_time_acceptable,
    "has valid data": _has_valid_data,
}

RANGE_CHECKS = {
    "range query success": _status_is_200,
}


def issues_range_query(iteration: int) -> bool:
    return iteration % RANGE_EVERY == 0


def issues_metadata_query(iteration: int) -> bool:
    return iteration % METADATA_EVERY == 0


def logs_progress(iteration: int) -> bool:
    return iteration % PROGRESS_EVERY == 0 and iteration > 0


class TrafficDriver:
    """
    Generates one unit of Prometheus query traffic per :meth:`iterate`.

    Args:
        config: Target configuration.
        client: Client used for the setup probe; defaults to a plain
            ``requests`` session.
        rng: Random source (anything with ``choice`` and ``random``).
        clock: Returns the current time in epoch seconds.
        checks: Recorder that accumulates check outcomes.
    """

    def __init__(
        self,
        config: TargetConfig,
        *,
        client: HttpClient | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        checks: CheckRecorder | None = None,
    ) -> None:
        self.config = config
        self.client = client or RequestsClient()
        self.rng = rng or random.Random()
        self.clock = clock
        self.checks = checks or CheckRecorder()

    @property
    def target_url(self) -> str:
        return self.config.prometheus_url

    def setup(self) -> TestContext:
        """
        Probe the target once and build the run's :class:`TestContext`.

        A failed probe is logged and ignored: the run goes ahead so the
        target's behaviour under load is observed even when it starts out
        unhealthy.
        """
        logger.info("Starting stress test")
        logger.info("Cluster context: %s", self.config.cluster_context)
        logger.info("Namespace: %s", self.config.namespace)
        logger.info("Target: %s", self.target_url)

        probe_url = instant_query_url(self.target_url, "up")
        try:
            response = self.client.get(
                probe_url,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=PROBE_TIMEOUT,
                tags={"query_type": "probe"},
            )
        except requests.RequestException as exc:
            logger.error("Connectivity error: %s", exc)
        else:
            if response.status_code == 200:
                logger.info("Prometheus connected")
            else:
                logger.warning("Prometheus status: %s", response.status_code)

        start_time = self.clock()
        test_id = self.config.test_id or f"stress-{int(start_time * 1000)}"
        return TestContext(start_time=start_time, test_id=test_id)

    def _headers(self, context: TestContext) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "X-Test-ID": context.test_id,
        }

    def _get(self, client: HttpClient, url: str, **kwargs: Any) -> Any:
        """
        Issue one GET; transport errors yield ``None`` instead of raising.

        Locust's ``HttpSession`` does not raise on timeouts or refused
        connections.  It returns a response with ``status_code == 0`` and
        the exception in ``error``, which is treated the same way.
        """
        try:
            response = client.get(url, **kwargs)
        except requests.RequestException as exc:
            logger.debug("Request to %s failed: %s", url, exc)
            return None
        if _transport_failed(response):
            logger.debug("Request to %s failed: %s", url, getattr(response, "error", None))
            return None
        return response

    def iterate(
        self,
        client: HttpClient,
        context: TestContext,
        iteration: int,
        vu_id: int,
    ) -> IterationResult:
        """
        Run one iteration of traffic for a virtual user.

        Args:
            client: The virtual user's HTTP client.
            context: Context returned by :meth:`setup`.
            iteration: 0-based iteration index of this virtual user.
            vu_id: Identifier of the virtual user, used in progress logs.

        Returns:
            An :class:`IterationResult` describing the requests issued.
        """
        query = self.rng.choice(QUERY_CATALOG)
        query_type = classify_query(query)
        headers = self._headers(context)

        instant_url = instant_query_url(self.target_url, query)
        response = self._get(
            client,
            instant_url,
            headers=headers,
            timeout=INSTANT_TIMEOUT,
            tags={"query_type": query_type, "iteration": iteration % 100},
        )
        instant_ok = self.checks.check(response, INSTANT_CHECKS)

        range_url = None
        range_ok = None
        if issues_range_query(iteration):
            now = int(self.clock())
            range_url = range_query_url(
                self.target_url,
                query,
                start=now - RANGE_WINDOW_SECONDS,
                end=now,
                step=RANGE_STEP_SECONDS,
            )
            range_response = self._get(
                client,
                range_url,
                headers=headers,
                timeout=RANGE_TIMEOUT,
                tags={"query_type": "range"},
            )
            range_ok = self.checks.check(range_response, RANGE_CHECKS)

        metadata_url = None
        if issues_metadata_query(iteration):
            metadata_url = self.rng.choice(metadata_urls(self.target_url, query))
            self._get(
                client,
                metadata_url,
                headers=headers,
                timeout=METADATA_TIMEOUT,
                tags={"query_type": "metadata"},
            )

        if logs_progress(iteration):
            logger.info("VU %s: %s queries executed", vu_id, iteration)

        return IterationResult(
            query=query,
            query_type=query_type,
            instant_url=instant_url,
            instant_ok=instant_ok,
            range_url=range_url,
            range_ok=range_ok,
            metadata_url=metadata_url,
        )

    def think_time(self) -> float:
        """Seconds to pause before the next iteration, uniform in ``[0, 2)``."""
        return self.rng.random() * MAX_THINK_TIME

    def teardown(self, context: TestContext) -> float:
        """
        Log the end-of-run summary and return the run duration in seconds.
        """
        duration = self.clock() - context.start_time

        logger.info("Stress test finished")
        logger.info("Duration: %.1fs", duration)
        logger.info("Test ID: %s", context.test_id)
        logger.info("Cluster: %s", self.config.cluster_context)
        logger.info("Target: %s", self.target_url)

        for name, (passes, fails) in self.checks.summary().items():
            logger.info("Check %r: %d passed, %d failed", name, passes, fails)
        if self.checks.passes or self.checks.fails:
            logger.info("Checks passed: %.2f%%", self.checks.pass_rate * 100)

        logger.info("To gauge the impact, monitor:")
        logger.info("  - CPU/memory of the Prometheus pods")
        logger.info("  - query duration metrics")
        logger.info("  - TSDB head series/samples")
        return duration
