"""
Non-fatal response checks.

A check is a named predicate over a response.  Failing a check never
stops the iteration; the outcome is only counted so the end-of-run
report (and a ``checks`` threshold) can reflect it.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]


class CheckRecorder:
    """
    Count pass/fail outcomes per check name.

    Locust users run as greenlets inside one process, so plain counters
    are updated without locking.
    """

    def __init__(self) -> None:
        self.passed: Counter[str] = Counter()
        self.failed: Counter[str] = Counter()

    def check(self, response: Any, predicates: Mapping[str, Predicate]) -> bool:
        """
        Evaluate every predicate against *response* and record the results.

        Args:
            response: The response object, or ``None`` when the request
                never produced one (transport failure).  ``None`` fails
                every predicate.
            predicates: Check name mapped to a predicate.

        Returns:
            ``True`` if all predicates passed.
        """
        all_passed = True
        for name, predicate in predicates.items():
            outcome = False
            if response is not None:
                try:
                    outcome = bool(predicate(response))
                except Exception as exc:
                    logger.debug("Check %r raised %s", name, exc)
                    outcome = False

            if outcome:
                self.passed[name] += 1
            else:
                self.failed[name] += 1
                all_passed = False
        return all_passed

    @property
    def passes(self) -> int:
        return sum(self.passed.values())

    @property
    def fails(self) -> int:
        return sum(self.failed.values())

    @property
    def pass_rate(self) -> float:
        """Fraction of recorded checks that passed (1.0 when none ran)."""
        total = self.passes + self.fails
        if total == 0:
            return 1.0
        return self.passes / total

    def summary(self) -> dict[str, tuple[int, int]]:
        """Return ``{name: (passes, fails)}`` in first-seen order."""
        names = list(dict.fromkeys([*self.passed, *self.failed]))
        return {name: (self.passed[name], self.failed[name]) for name in names}
