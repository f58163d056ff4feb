"""
Smooth-stop deceleration law used while approaching a stop point.

Instead of velocity feedback, the command is staged between a few fixed
accelerations: a strong deceleration computed from the remaining distance
while the vehicle will not stop soon enough, a weak deceleration for the last
moments of the approach, and hard stop accelerations once the stop point has
been passed or the vehicle is at rest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

_EPSILON = 1e-9
# Weak deceleration is held this long after the vehicle comes to rest.
WEAK_ACC_HOLD_TIME = 0.5


@dataclass(frozen=True)
class SmoothStopParams:
    """Configuration for the smooth stop law."""

    max_strong_acc: float = -0.5  # m/s^2
    min_strong_acc: float = -1.0  # m/s^2
    weak_acc: float = -0.3  # m/s^2
    weak_stop_acc: float = -0.8  # m/s^2
    strong_stop_acc: float = -3.4  # m/s^2
    max_fast_vel: float = 0.5  # m/s
    min_running_vel: float = 0.01  # m/s
    min_running_acc: float = 0.01  # m/s^2
    weak_stop_time: float = 0.8  # s
    weak_stop_dist: float = -0.3  # m (negative = past the stop point)
    strong_stop_dist: float = -0.5  # m


class SmoothStop:
    """Staged deceleration toward a stop point."""

    def __init__(self, params: SmoothStopParams) -> None:
        self.params = params
        self._strong_acc: Optional[float] = None
        self._weak_acc_time: Optional[float] = None
        self._target_velocity = 0.0

    @property
    def is_initialized(self) -> bool:
        return self._strong_acc is not None

    @property
    def strong_acc(self) -> Optional[float]:
        return self._strong_acc

    @property
    def target_velocity(self) -> float:
        return self._target_velocity

    def init(self, pred_vel_in_target: float, pred_stop_dist: float, timestamp: Optional[float] = None) -> None:
        """Prepare the law with the delay-predicted velocity and stop distance."""
        p = self.params
        self._weak_acc_time = timestamp
        self._target_velocity = abs(pred_vel_in_target)

        # stop point is already reached
        if pred_stop_dist < _EPSILON:
            self._strong_acc = p.min_strong_acc
            return

        strong_acc = -(pred_vel_in_target ** 2) / (2.0 * pred_stop_dist)
        self._strong_acc = max(min(strong_acc, p.max_strong_acc), p.min_strong_acc)
        logger.debug(
            f"[SMOOTH_STOP] init: pred_vel={pred_vel_in_target:.3f}, "
            f"pred_stop_dist={pred_stop_dist:.3f}, strong_acc={self._strong_acc:.3f}"
        )

    @staticmethod
    def calc_time_to_stop(vel_hist: Sequence[Tuple[float, float]], now: float) -> Optional[float]:
        """
        Fit v = a * t + b over the velocity history and solve v = 0.

        Args:
            vel_hist: (timestamp, velocity) pairs
            now: Current time; the fit uses times relative to it

        Returns:
            Time until the vehicle stops, or None when no positive estimate exists
        """
        n = float(len(vel_hist))
        if n == 0:
            return None

        mean_t = 0.0
        mean_v = 0.0
        sum_tv = 0.0
        sum_tt = 0.0
        for stamp, vel in vel_hist:
            t = stamp - now
            mean_t += t / n
            mean_v += vel / n
            sum_tv += t * vel
            sum_tt += t * t

        denominator = n * mean_t * mean_t - sum_tt
        if abs(denominator) < _EPSILON:
            return None

        a = (n * mean_t * mean_v - sum_tv) / denominator
        b = mean_v - a * mean_t
        if abs(a) < _EPSILON:
            return None

        time_to_stop = -b / a
        if time_to_stop > 0.0:
            return time_to_stop
        return None

    def calculate(
        self,
        stop_dist: float,
        current_vel: float,
        current_acc: float,
        vel_hist: Sequence[Tuple[float, float]],
        delay_time: float,
        now: float,
        dt: float = 0.0,
    ) -> float:
        """
        Compute the smooth stop acceleration command.

        Args:
            stop_dist: Signed distance to the stop point (negative = passed)
            current_vel: Current velocity (m/s)
            current_acc: Current acceleration (m/s^2)
            vel_hist: Recent (timestamp, velocity) pairs
            delay_time: Actuation delay (s)
            now: Current time (s)
            dt: Cycle time, used to advance the velocity target

        Returns:
            Acceleration command (m/s^2)
        """
        if self._strong_acc is None:
            raise RuntimeError("SmoothStop.calculate called before init")

        acc = self._calculate_acc(stop_dist, current_vel, current_acc, vel_hist, delay_time, now)
        self._target_velocity = max(0.0, min(self._target_velocity, self._target_velocity + acc * dt))
        return acc

    def _calculate_acc(self, stop_dist, current_vel, current_acc, vel_hist, delay_time, now) -> float:
        p = self.params
        time_to_stop = self.calc_time_to_stop(vel_hist, now)

        is_fast_vel = abs(current_vel) > p.max_fast_vel
        is_running = abs(current_vel) > p.min_running_vel or abs(current_acc) > p.min_running_acc

        # past the stop point
        if stop_dist < p.strong_stop_dist:
            return p.strong_stop_acc
        if stop_dist < p.weak_stop_dist:
            return p.weak_stop_acc

        if is_running:
            # will not stop within the weak stop time
            if time_to_stop is not None and time_to_stop > p.weak_stop_time + delay_time:
                return self._strong_acc
            if time_to_stop is None and is_fast_vel:
                return self._strong_acc

            self._weak_acc_time = now
            return p.weak_acc

        if self._weak_acc_time is not None and now - self._weak_acc_time < WEAK_ACC_HOLD_TIME:
            return p.weak_acc

        return p.strong_stop_acc
