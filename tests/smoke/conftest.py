"""
Smoke-test fixtures for a live Prometheus.

Provides the ``prometheus_url`` session-scoped fixture.  The URL is read
from ``PROMETHEUS_URL`` when this module is imported, before the
suite-wide fixture that scrubs stress-test variables runs; without it
every smoke test is skipped.

Key SDET Concepts Demonstrated:
- Session-scoped URL fixtures shared across the smoke suite
- Skipping live-stack tests cleanly when no target is configured
"""

from __future__ import annotations

import os

import pytest

LIVE_PROMETHEUS_URL = os.getenv("PROMETHEUS_URL", "").strip().rstrip("/")


@pytest.fixture(scope="session")
def prometheus_url() -> str:
    """Return the live Prometheus base URL or skip the test."""
    if not LIVE_PROMETHEUS_URL:
        pytest.skip("PROMETHEUS_URL is not set; smoke tests need a live Prometheus")
    return LIVE_PROMETHEUS_URL
