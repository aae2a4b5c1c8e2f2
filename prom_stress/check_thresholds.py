"""
Validate Locust CSV output against the run profile thresholds.

After a headless ``locust --csv <prefix>`` run, CI invokes this script
to decide whether the build passes.  It reads ``<prefix>_stats.csv``,
extracts the **Aggregated** row and evaluates every threshold of the
profile (the built-in default, ``--profile`` or ``STRESS_PROFILE``):

- **response_time**: percentiles / average / min / max / median in ms
- **failure_rate**: ``Failure Count / Request Count``
- **request_rate**: ``Requests/s`` (or total ``count``)

``checks`` thresholds cannot be evaluated from the CSV (Locust does not
record check outcomes there) and are reported as failed with a reason.

Exit codes follow a three-state convention so that CI can distinguish
"thresholds breached" from "script crashed":

- ``0``: all thresholds passed
- ``1``: at least one threshold was breached
- ``2``: the script itself failed (missing file, bad YAML, etc.)
"""

from __future__ import annotations

import argparse
import csv
import sys
from collections.abc import Sequence
from pathlib import Path

from prom_stress.config import load_profile, profile_from_env
from prom_stress.thresholds import ThresholdResult, evaluate, snapshot_from_csv_row

# Three-state exit codes so CI can tell "test failed" from "script crashed".
EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the threshold checker."""
    parser = argparse.ArgumentParser(
        description="Check Locust stats CSV against stress-test thresholds."
    )
    parser.add_argument(
        "--stats",
        required=True,
        type=Path,
        help="Path to Locust *_stats.csv file",
    )
    parser.add_argument(
        "--profile",
        type=Path,
        default=None,
        help="Path to a YAML run profile (defaults to STRESS_PROFILE or built-in)",
    )
    return parser.parse_args(argv)


def _load_aggregated_row(stats_path: Path) -> dict[str, str]:
    """
    Find and return the ``Aggregated`` summary row from a Locust stats CSV.

    Locust writes one row per request name plus a final ``Aggregated``
    row that summarises all traffic.  Both the ``Name`` and ``Type``
    columns are checked, since the column layout varies between Locust
    versions.

    Raises:
        ValueError: If no ``Aggregated`` row is found.
    """
    with stats_path.open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))

    for row in rows:
        if row.get("Name") == "Aggregated" or row.get("Type") == "Aggregated":
            return row

    raise ValueError("Could not find 'Aggregated' row in stats CSV")


def _print_summary(results: Sequence[ThresholdResult], passed: bool) -> None:
    """Print a human-readable results table to stdout for CI logs."""
    print("Stress Test Threshold Check")
    print("-" * 72)
    print(f"{'Metric':<16}{'Threshold':<22}{'Actual':>14}{'Status':>12}")
    print("-" * 72)

    for result in results:
        status = "PASS" if result.passed else "FAIL"
        actual = "n/a" if result.actual is None else f"{result.actual:.2f}"
        print(
            f"{result.threshold.metric:<16}{result.threshold.expression:<22}"
            f"{actual:>14}{status:>12}"
        )
        if result.error:
            print(f"    {result.error}")

    print("-" * 72)
    print(f"Overall: {'PASS' if passed else 'FAIL'}")


def main(argv: Sequence[str] | None = None) -> int:
    """
    Entry point: load the profile, parse the CSV, evaluate and print.

    Returns:
        ``EXIT_PASS`` (0) if all thresholds are met,
        ``EXIT_THRESHOLD_BREACH`` (1) if any are breached, or
        ``EXIT_SCRIPT_ERROR`` (2) on unexpected failures.
    """
    args = parse_args(argv)

    try:
        profile = load_profile(args.profile) if args.profile else profile_from_env()
        row = _load_aggregated_row(args.stats)
        snapshot = snapshot_from_csv_row(row)

        if snapshot.request_count <= 0:
            raise ValueError("Request Count must be > 0 for threshold checks")

        results = evaluate(profile.thresholds, snapshot)
        passed = all(result.passed for result in results)
        _print_summary(results, passed)
        return EXIT_PASS if passed else EXIT_THRESHOLD_BREACH
    except Exception as exc:
        print(f"Threshold check failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
