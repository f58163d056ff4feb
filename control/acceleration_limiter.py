"""
Acceleration and jerk limiting with brake keeping near a stop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

# Target velocities below this are treated as a stop request.
STOP_TARGET_VEL_EPSILON = 1e-2


def apply_diff_limit_filter(
    input_val: float,
    prev_val: float,
    dt: float,
    max_rate: float,
    min_rate: Optional[float] = None,
) -> float:
    """
    Limit the change from prev_val to input_val to [min_rate * dt, max_rate * dt].

    With min_rate omitted the limit is symmetric: +-|max_rate| * dt.
    """
    if min_rate is None:
        max_rate = abs(max_rate)
        min_rate = -max_rate
    diff = float(np.clip(input_val - prev_val, min_rate * dt, max_rate * dt))
    return float(prev_val + diff)


@dataclass(frozen=True)
class AccelerationLimits:
    """Acceleration (m/s^2) and jerk (m/s^3) bounds of the emitted command."""

    max_acc: float = 3.0
    min_acc: float = -5.0
    max_jerk: float = 2.0
    min_jerk: float = -5.0


@dataclass(frozen=True)
class BrakeKeepingParams:
    """Brake keeping near the stop point."""

    enabled: bool = False
    brake_keeping_acc: float = -0.2  # m/s^2 ceiling while holding
    brake_keeping_stop_dist: float = 1.0  # m


class AccelerationLimiter:
    """Clamp acceleration, hold brakes near a stop, then limit jerk."""

    def __init__(self, limits: AccelerationLimits, brake_keeping: Optional[BrakeKeepingParams] = None) -> None:
        self.limits = limits
        self.brake_keeping = brake_keeping or BrakeKeepingParams()

    def clamp(self, acc: float) -> float:
        """Clamp to [min_acc, max_acc]."""
        return float(np.clip(acc, self.limits.min_acc, self.limits.max_acc))

    def brake_keeping_ceiling(self, stop_dist: Optional[float], target_velocity: Optional[float]) -> Optional[float]:
        """Acceleration ceiling while holding the vehicle at a stop, or None."""
        bk = self.brake_keeping
        if not bk.enabled or stop_dist is None or target_velocity is None:
            return None
        if stop_dist < bk.brake_keeping_stop_dist and abs(target_velocity) < STOP_TARGET_VEL_EPSILON:
            return bk.brake_keeping_acc
        return None

    def limit(
        self,
        raw_acc: float,
        previous_command: float,
        dt: float,
        stop_dist: Optional[float] = None,
        target_velocity: Optional[float] = None,
    ) -> float:
        """
        Limit a raw acceleration command.

        Args:
            raw_acc: Acceleration before limiting (m/s^2)
            previous_command: Previously emitted acceleration (m/s^2)
            dt: Time since the previous command (s)
            stop_dist: Signed stop distance, enables brake keeping when given
            target_velocity: Commanded velocity, enables brake keeping when given

        Returns:
            Limited acceleration (m/s^2)
        """
        acc = self.clamp(raw_acc)
        ceiling = self.brake_keeping_ceiling(stop_dist, target_velocity)
        if ceiling is not None:
            acc = min(acc, ceiling)
        return apply_diff_limit_filter(acc, previous_command, dt, self.limits.max_jerk, self.limits.min_jerk)
