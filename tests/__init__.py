"""
Test suite for the Prometheus stress-test package.

This package contains:
- unit/: Offline tests for queries, checks, ramps, thresholds, the driver
  and the Locust adapter
- smoke/: Live checks against ``PROMETHEUS_URL`` (skipped when unset)
- fakes.py: Recording HTTP client, scripted random source, fake responses
"""
