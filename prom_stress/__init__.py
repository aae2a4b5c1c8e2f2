"""
Prometheus stress-test package (Locust-based).

Drives synthetic PromQL traffic against a Prometheus HTTP API while the
number of concurrent virtual users ramps through a staged profile, and
gates the run on latency, failure-rate and throughput thresholds.

The traffic logic lives in :mod:`prom_stress.driver` and does not import
Locust; :mod:`prom_stress.locustfile` adapts it to Locust's ``HttpUser``,
``LoadTestShape`` and event hooks.

Usage::

    locust -f prom_stress/locustfile.py --headless --csv results

    python -m prom_stress.check_thresholds --stats results_stats.csv

Key Concepts Demonstrated:
- Staged ramp profile expressed as a Locust ``LoadTestShape``
- Non-fatal response checks aggregated into a pass-rate report
- Threshold gates evaluated at run end (live stats or CSV output)
"""

__version__ = "0.1.0"
