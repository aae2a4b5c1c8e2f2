"""
Locust entrypoint for the Prometheus stress test.

This is the file the ``locust`` CLI loads.  It adapts
:class:`~prom_stress.driver.TrafficDriver` to Locust:

- :class:`PrometheusStressUser` is the virtual user; its single task runs
  one driver iteration and its ``wait_time`` is the driver's think time.
- :class:`StagedLoadShape` ramps the user count through the profile
  stages and stops the run after the last one.
- ``test_start`` / ``test_stop`` run the driver's setup and teardown;
  ``quitting`` evaluates the thresholds and sets the exit code.

Usage examples::

    # Headless run with the default profile, CSV output for the CI gate:
    locust -f prom_stress/locustfile.py --headless --csv results

    # Against a port-forwarded Prometheus with a custom profile:
    PROMETHEUS_URL=http://localhost:9090 STRESS_PROFILE=stress_profile.yml \\
        locust -f prom_stress/locustfile.py --headless

Key Concepts Demonstrated:
- Locust event hooks mapped onto a setup -> iterate -> teardown lifecycle
- ``LoadTestShape`` for a staged ramp instead of a fixed user count
- Threshold evaluation at ``quitting`` driving the process exit code
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

from locust import HttpUser, LoadTestShape, events, task

from prom_stress.config import StressProfile, load_config, profile_from_env
from prom_stress.driver import TestContext, TrafficDriver
from prom_stress.http import request_name
from prom_stress.shape import spawn_rate_for, target_users_at
from prom_stress.thresholds import ThresholdResult, evaluate, snapshot_from_stats

logger = logging.getLogger(__name__)


class StressRun:
    """
    Per-process run state shared by the users and the event hooks.

    Holds the driver, the profile and, once ``test_start`` has fired, the
    :class:`TestContext`.  The context is written once and only read
    afterwards.
    """

    def __init__(self, driver: TrafficDriver, profile: StressProfile) -> None:
        self.driver = driver
        self.profile = profile
        self.context: TestContext | None = None

    def ensure_context(self) -> TestContext:
        if self.context is None:
            self.context = self.driver.setup()
        return self.context

    def finish(self) -> float | None:
        """Run teardown for the current context and clear it for the next run."""
        if self.context is None:
            return None
        duration = self.driver.teardown(self.context)
        self.context = None
        return duration


RUN = StressRun(TrafficDriver(load_config()), profile_from_env())


class LocustClientAdapter:
    """Present a Locust ``HttpSession`` as a :class:`~prom_stress.http.HttpClient`."""

    def __init__(self, session: Any) -> None:
        self.session = session

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str],
        timeout: float,
        tags: dict[str, Any],
    ) -> Any:
        return self.session.get(
            url,
            headers=headers,
            timeout=timeout,
            name=request_name(url, tags),
            context=dict(tags),
        )


class PrometheusStressUser(HttpUser):
    """
    Virtual user that issues random PromQL queries in a loop.

    ``vu_id`` is 1-based and unique within the Locust process;
    ``iteration`` counts completed task runs from 0.
    """

    host = RUN.driver.target_url
    stress_run = RUN

    _vu_ids = itertools.count(1)

    vu_id: int
    iteration: int

    def on_start(self) -> None:
        self.vu_id = next(self._vu_ids)
        self.iteration = 0
        self.prom_client = LocustClientAdapter(self.client)

    def wait_time(self) -> float:
        return self.stress_run.driver.think_time()

    @task
    def query_prometheus(self) -> None:
        """Run one driver iteration and advance the counter."""
        context = self.stress_run.ensure_context()
        self.stress_run.driver.iterate(self.prom_client, context, self.iteration, self.vu_id)
        self.iteration += 1


class StagedLoadShape(LoadTestShape):
    """Follow the profile stages, then stop the run."""

    stages = RUN.profile.stages

    def tick(self) -> tuple[int, float] | None:
        run_time = self.get_run_time()
        users = target_users_at(self.stages, run_time)
        if users is None:
            return None
        return users, spawn_rate_for(self.stages, run_time)


@events.test_start.add_listener
def _on_test_start(environment, **_kwargs) -> None:
    """Probe the target and create the run's context."""
    RUN.ensure_context()


@events.test_stop.add_listener
def _on_test_stop(environment, **_kwargs) -> None:
    """Log the end-of-run summary."""
    RUN.finish()


def apply_thresholds(environment: Any, run: StressRun) -> list[ThresholdResult]:
    """
    Evaluate the profile thresholds against the aggregated stats.

    Any breach is logged and turns the process exit code to 1; the run
    itself is never interrupted by a threshold.

    Args:
        environment: The Locust environment (needs ``stats.total``).
        run: The run whose profile and check results are used.

    Returns:
        One result per threshold.
    """
    stats = getattr(environment, "stats", None)
    if stats is None:
        return []

    # A process that ran no iterations (e.g. the master) has no check data.
    checks = run.driver.checks
    check_pass_rate = checks.pass_rate if checks.passes + checks.fails else None

    snapshot = snapshot_from_stats(
        stats.total,
        run.profile.thresholds,
        check_pass_rate=check_pass_rate,
    )
    results = evaluate(run.profile.thresholds, snapshot)

    breached = False
    for result in results:
        label = f"{result.threshold.metric}: {result.threshold.expression}"
        if result.passed:
            logger.info("Threshold passed - %s (actual %.2f)", label, result.actual)
        elif result.error:
            breached = True
            logger.error("Threshold failed - %s (%s)", label, result.error)
        else:
            breached = True
            logger.error("Threshold failed - %s (actual %.2f)", label, result.actual)

    if breached:
        environment.process_exit_code = 1
    return results


@events.quitting.add_listener
def _on_quitting(environment, **_kwargs) -> None:
    apply_thresholds(environment, RUN)
