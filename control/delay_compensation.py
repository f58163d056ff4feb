"""
Actuation delay compensation.

Commands issued during the last delay_compensation_time seconds have not
taken effect yet, so the speed the vehicle will have when the next command
acts is the current speed plus those pending accelerations integrated over
their durations. Commands are in the driving direction, so the integration is
done on the speed and the sign of the current velocity is applied last.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Deque, Iterator, NamedTuple

from control.control_data import Motion

# Below this speed the measured velocity is used as-is.
LOW_VELOCITY_THRESHOLD = 0.1


class CommandRecord(NamedTuple):
    timestamp: float
    acceleration: float


class CommandHistory:
    """
    Ring buffer of recently issued accelerations.

    Entries older than the horizon are evicted, keeping one entry that
    straddles the start of the window.
    """

    def __init__(self, horizon: float, control_period: float) -> None:
        self.horizon = horizon
        # dt is never shorter than half a control period
        maxlen = int(math.ceil(horizon / (0.5 * control_period))) + 2 if control_period > 0.0 else None
        self._records: Deque[CommandRecord] = deque(maxlen=maxlen)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CommandRecord]:
        return iter(self._records)

    @property
    def maxlen(self):
        return self._records.maxlen

    def append(self, timestamp: float, acceleration: float) -> None:
        self._records.append(CommandRecord(timestamp, acceleration))

    def evict(self, now: float) -> None:
        """Drop entries that no longer overlap [now - horizon, now]."""
        window_start = now - self.horizon
        while len(self._records) > 1 and self._records[1].timestamp <= window_start:
            self._records.popleft()

    def clear(self) -> None:
        self._records.clear()


def predict_velocity_in_target_point(
    current_motion: Motion,
    history: CommandHistory,
    delay_time: float,
    now: float,
) -> float:
    """
    Predict the velocity at the time the next command takes effect.

    Args:
        current_motion: Measured velocity and acceleration
        history: Recently issued acceleration commands
        delay_time: Actuation delay (s)
        now: Current time (s)

    Returns:
        Predicted velocity (m/s); never of opposite sign to the current one
    """
    current_vel = current_motion.velocity
    if abs(current_vel) < LOW_VELOCITY_THRESHOLD:
        return current_vel

    records = list(history)
    if not records:
        pred_vel = current_vel + current_motion.acceleration * delay_time
        return _keep_sign(pred_vel, current_vel)

    window_start = now - delay_time
    pred_vel = abs(current_vel)

    # part of the window older than the history uses the oldest command
    uncovered = records[0].timestamp - window_start
    if uncovered > 0.0:
        pred_vel += records[0].acceleration * min(uncovered, delay_time)

    for i, record in enumerate(records):
        seg_end = records[i + 1].timestamp if i + 1 < len(records) else now
        seg_start = max(record.timestamp, window_start)
        if seg_end > seg_start:
            pred_vel += record.acceleration * (seg_end - seg_start)

    return math.copysign(pred_vel, current_vel) if pred_vel > 0.0 else 0.0


def _keep_sign(pred_vel: float, current_vel: float) -> float:
    if pred_vel * current_vel > 0.0:
        return pred_vel
    return 0.0
