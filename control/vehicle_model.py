"""
Longitudinal vehicle dynamics model.
Used for closed-loop simulation and tests.
"""

from collections import deque
from typing import Deque, Tuple

import numpy as np

from control.slope_compensation import GRAVITY


class LongitudinalVehicleModel:
    """
    Point-mass vehicle moving along a straight road.

    The commanded acceleration reaches the vehicle after a dead time and a
    first-order lag. A road grade adds -g * sin(pitch). While standing still
    a braking command holds the vehicle instead of reversing it.
    """

    def __init__(self, delay: float = 0.1, time_constant: float = 0.1,
                 road_pitch: float = 0.0, x: float = 0.0, velocity: float = 0.0):
        """
        Initialize vehicle model.

        Args:
            delay: Actuation dead time (seconds)
            time_constant: First-order lag of the acceleration response (seconds)
            road_pitch: Road grade, positive uphill (radians)
            x: Initial position along the road (meters)
            velocity: Initial velocity (m/s)
        """
        self.delay = delay
        self.time_constant = time_constant
        self.road_pitch = road_pitch
        self.x = x
        self.velocity = velocity
        self.acceleration = 0.0  # actuated (drive/brake) acceleration
        self.measured_acceleration = 0.0  # along the road, grade included
        self.time = 0.0
        self._pending: Deque[Tuple[float, float]] = deque()
        self._active_command = 0.0

    def _grade_acc(self) -> float:
        return -GRAVITY * np.sin(self.road_pitch)

    def _holds_at_standstill(self, net_acc: float) -> bool:
        # brakes hold the vehicle unless the drive command pulls it forward
        return self.acceleration <= 0.0 or net_acc <= 0.0

    def update(self, acc_cmd: float, dt: float) -> Tuple[float, float, float]:
        """
        Advance the vehicle by one time step.

        Args:
            acc_cmd: Commanded acceleration (m/s^2)
            dt: Time step (seconds)

        Returns:
            New (x, velocity, acceleration)
        """
        self.time += dt
        self._pending.append((self.time, acc_cmd))
        while self._pending and self._pending[0][0] <= self.time - self.delay:
            self._active_command = self._pending.popleft()[1]

        if self.time_constant > 0.0:
            alpha = min(1.0, dt / self.time_constant)
        else:
            alpha = 1.0
        self.acceleration += alpha * (self._active_command - self.acceleration)

        net_acc = self.acceleration + self._grade_acc()
        if self.velocity == 0.0 and self._holds_at_standstill(net_acc):
            self.measured_acceleration = 0.0
            return self.x, self.velocity, 0.0

        new_velocity = self.velocity + net_acc * dt
        # braking stops the vehicle, it does not reverse it
        if self.velocity > 0.0 and new_velocity < 0.0:
            new_velocity = 0.0
        self.x += 0.5 * (self.velocity + new_velocity) * dt
        self.velocity = new_velocity
        self.measured_acceleration = net_acc
        return self.x, self.velocity, net_acc
