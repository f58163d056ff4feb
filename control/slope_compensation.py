"""
Gravity feedforward for road grade.
"""

import math
from dataclasses import dataclass

import numpy as np

from control.control_data import Shift

GRAVITY = 9.80665  # m/s^2


@dataclass(frozen=True)
class SlopeCompensationParams:
    """Slope compensation settings. Pitch is positive uphill."""

    enabled: bool = False
    max_pitch_rad: float = 0.1
    min_pitch_rad: float = -0.1


def apply_slope_compensation(acc: float, pitch: float, shift: Shift, params: SlopeCompensationParams) -> float:
    """
    Add the acceleration needed to counter gravity on a grade.

    Args:
        acc: Acceleration before compensation (m/s^2)
        pitch: Filtered road pitch (rad), positive uphill
        shift: Driving direction
        params: Slope compensation settings

    Returns:
        Compensated acceleration (m/s^2)
    """
    if not params.enabled:
        return acc
    pitch_limited = float(np.clip(pitch, params.min_pitch_rad, params.max_pitch_rad))
    sign = 1.0 if shift == Shift.FORWARD else -1.0
    return acc + sign * GRAVITY * math.sin(pitch_limited)
