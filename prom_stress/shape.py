"""
Staged load profile for Locust.

A run is described as an ordered list of :class:`Stage` values, each
saying "ramp to *target* users over *duration* seconds".  The user count
starts at zero and is interpolated linearly from the previous stage's
target to the current one, so the profile below::

    15s -> 20, 2m -> 80, 3m -> 150, 2m -> 200, 30s -> 0

warms up to 20 users, climbs to 200 over seven minutes and then drains
back to zero before the run stops.

Key Concepts Demonstrated:
- Pure ramp arithmetic kept separate from the Locust shape class
  (see :mod:`prom_stress.locustfile`) so it can be unit-tested without
  a runner
- Human-friendly duration strings (``"15s"``, ``"2m"``, ``"1h30m"``)
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str | int | float) -> float:
    """
    Convert a duration into seconds.

    Args:
        value: A number of seconds, or a string made of one or more
            ``<number><unit>`` parts where unit is ``ms``, ``s``, ``m``
            or ``h`` (``"1h30m"``, ``"2m"``, ``"500ms"``).

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If the string is empty or contains anything other
            than number/unit pairs.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        raise ValueError("Duration must not be empty")

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


@dataclass(frozen=True)
class Stage:
    """One leg of the ramp: reach ``target`` users over ``duration`` seconds."""

    duration: float
    target: int

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ValueError(f"Stage duration must be >= 0, got {self.duration}")
        if isinstance(self.target, bool) or not isinstance(self.target, int):
            raise ValueError(f"Stage target must be an integer, got {self.target!r}")
        if self.target < 0:
            raise ValueError(f"Stage target must be >= 0, got {self.target}")

    @classmethod
    def from_dict(cls, raw: dict) -> Stage:
        """Build a stage from ``{"duration": "2m", "target": 80}``."""
        return cls(duration=parse_duration(raw["duration"]), target=raw["target"])


def total_duration(stages: Sequence[Stage]) -> float:
    """Return the wall-clock length of the whole profile in seconds."""
    return sum(stage.duration for stage in stages)


def _locate(stages: Sequence[Stage], elapsed: float) -> tuple[int, float, Stage] | None:
    """Find ``(start_users, progress, stage)`` for *elapsed*, or ``None`` when done."""
    previous_target = 0
    stage_start = 0.0
    for stage in stages:
        stage_end = stage_start + stage.duration
        if elapsed < stage_end:
            progress = (elapsed - stage_start) / stage.duration
            return previous_target, progress, stage
        previous_target = stage.target
        stage_start = stage_end
    return None


def target_users_at(stages: Sequence[Stage], elapsed: float) -> int | None:
    """
    Return how many users should be active *elapsed* seconds into the run.

    Args:
        stages: The ordered ramp profile.
        elapsed: Seconds since the run started.

    Returns:
        The interpolated user count (rounded up), or ``None`` once every
        stage has completed and the run should stop.
    """
    located = _locate(stages, max(elapsed, 0.0))
    if located is None:
        return None
    start_users, progress, stage = located
    users = math.ceil(start_users + (stage.target - start_users) * progress)
    return max(users, 0)


def spawn_rate_for(stages: Sequence[Stage], elapsed: float) -> float:
    """
    Return the users-per-second rate needed to follow the current ramp.

    Locust needs a spawn rate alongside the user count; using the slope of
    the active stage lets the runner keep pace with the interpolated
    target.  The rate never drops below 1.
    """
    located = _locate(stages, max(elapsed, 0.0))
    if located is None:
        return 1.0
    start_users, _, stage = located
    slope = abs(stage.target - start_users) / stage.duration
    return max(slope, 1.0)

