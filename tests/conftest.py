"""
Shared pytest fixtures for the stress-test suite.

Fixtures build a :class:`~prom_stress.driver.TrafficDriver` wired to test
doubles (recording HTTP client, scripted random source, frozen clock) so
every test is deterministic and never touches the network.

Key Concepts Demonstrated:
- Dependency injection instead of patching module globals
- Fixture dependencies (driver -> client, rng, clock)
- Environment isolation via ``monkeypatch``
"""

from __future__ import annotations

# Locust monkey-patches the stdlib through gevent on import; importing it
# before requests/ssl are loaded keeps that patching complete.
import locust  # noqa: F401

import pytest

from prom_stress.checks import CheckRecorder
from prom_stress.config import TargetConfig
from prom_stress.driver import TestContext, TrafficDriver
from tests.fakes import FROZEN_NOW, RecordingClient, ScriptedRandom


@pytest.fixture(autouse=True)
def _clean_stress_env(monkeypatch):
    """Remove stress-test variables so the host environment never leaks in."""
    for name in ("CLUSTER_CONTEXT", "NAMESPACE", "testid", "PROMETHEUS_URL", "STRESS_PROFILE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def target_config() -> TargetConfig:
    """Default target: cluster ``aws``, namespace ``monitoring``."""
    return TargetConfig()


@pytest.fixture
def client() -> RecordingClient:
    """HTTP client that answers every GET with a successful response."""
    return RecordingClient()


@pytest.fixture
def rng() -> ScriptedRandom:
    """Random source that always picks the first element (``up``)."""
    return ScriptedRandom(choice_indexes=[0], floats=[0.5])


@pytest.fixture
def clock():
    """Frozen clock returning :data:`FROZEN_NOW`."""
    return lambda: FROZEN_NOW


@pytest.fixture
def driver(target_config, client, rng, clock) -> TrafficDriver:
    """Traffic driver wired to the test doubles above."""
    return TrafficDriver(
        target_config,
        client=client,
        rng=rng,
        clock=clock,
        checks=CheckRecorder(),
    )


@pytest.fixture
def context() -> TestContext:
    return TestContext(start_time=FROZEN_NOW, test_id="stress-test-fixture")
