"""
Open-loop command profiles for the STOPPED and EMERGENCY states.

Both ramp toward a fixed target at a fixed rate and ignore the trajectory.
"""

from dataclasses import dataclass

from control.acceleration_limiter import apply_diff_limit_filter
from control.control_data import Motion


@dataclass(frozen=True)
class StoppedStateParams:
    """Hold command while stopped."""

    vel: float = 0.0  # m/s
    acc: float = -3.4  # m/s^2
    jerk: float = -5.0  # m/s^3, magnitude is the ramp rate


@dataclass(frozen=True)
class EmergencyStateParams:
    """Emergency deceleration."""

    vel: float = 0.0  # m/s
    acc: float = -5.0  # m/s^2, magnitude is also the velocity ramp rate
    jerk: float = -3.0  # m/s^3, magnitude is the acceleration ramp rate


def calc_stopped_command(params: StoppedStateParams, prev_acc: float, dt: float) -> Motion:
    """Ramp acceleration toward the stopped hold value."""
    acc = apply_diff_limit_filter(params.acc, prev_acc, dt, params.jerk)
    return Motion(velocity=params.vel, acceleration=acc)


def calc_emergency_command(params: EmergencyStateParams, prev_command: Motion, dt: float) -> Motion:
    """Ramp velocity and acceleration toward the emergency values."""
    vel = apply_diff_limit_filter(params.vel, prev_command.velocity, dt, params.acc)
    acc = apply_diff_limit_filter(params.acc, prev_command.acceleration, dt, params.jerk)
    return Motion(velocity=vel, acceleration=acc)
