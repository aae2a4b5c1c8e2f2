"""
Smoke tests against a live Prometheus HTTP API.

These tests send exactly the requests a stress iteration sends, once
each, and assert the same checks.  If they fail the stress run would
only measure errors, so it should not be started.

Nothing is mocked: every request goes to ``PROMETHEUS_URL``.

Key SDET Concepts Demonstrated:
- Smoke testing against a running stack
- Reusing production URL builders so smoke and load traffic match
- Plain ``requests`` for fast HTTP-level checks
"""

from __future__ import annotations

import time

import pytest

from prom_stress.config import TargetConfig
from prom_stress.driver import INSTANT_CHECKS, TrafficDriver
from prom_stress.http import RequestsClient
from prom_stress.queries import (
    QUERY_CATALOG,
    instant_query_url,
    metadata_urls,
    range_query_url,
)

pytestmark = pytest.mark.smoke


@pytest.fixture(scope="module")
def http() -> RequestsClient:
    return RequestsClient()


def _get(http, url, timeout=30):
    return http.get(url, headers={"Accept": "application/json"}, timeout=timeout, tags={})


def test_up_query_succeeds(prometheus_url, http):
    """Test that the connectivity probe query answers 200 with success status."""
    # Act
    response = _get(http, instant_query_url(prometheus_url, "up"), timeout=10)

    # Assert
    assert response.status_code == 200
    assert response.json()["status"] == "success"


@pytest.mark.parametrize("query", QUERY_CATALOG)
def test_catalog_query_passes_instant_checks(prometheus_url, http, query):
    response = _get(http, instant_query_url(prometheus_url, query))

    for name, predicate in INSTANT_CHECKS.items():
        assert predicate(response), f"check {name!r} failed for {query}"


def test_range_query_succeeds(prometheus_url, http):
    now = time.time()

    response = _get(http, range_query_url(prometheus_url, "up", now - 1800, now, 30), timeout=60)

    assert response.status_code == 200


@pytest.mark.parametrize("index", range(3))
def test_metadata_endpoints_answer(prometheus_url, http, index):
    url = metadata_urls(prometheus_url, "up")[index]

    response = _get(http, url)

    assert response.status_code == 200


def test_driver_iteration_against_live_target(prometheus_url):
    """Test one full driver iteration (instant, range, metadata) end to end."""
    # Arrange
    driver = TrafficDriver(TargetConfig(url_override=prometheus_url))
    context = driver.setup()

    # Act
    result = driver.iterate(RequestsClient(), context, iteration=0, vu_id=1)

    # Assert
    assert result.instant_ok is True
    assert result.range_ok is True
    assert driver.checks.fails == 0
