"""
Data format definitions for longitudinal controller inputs and outputs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List
import numpy as np


@dataclass
class Pose:
    """Vehicle or trajectory pose."""
    position: np.ndarray  # [x, y, z]
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0])
    )  # [x, y, z, w] quaternion


@dataclass
class Odometry:
    """Odometry sample: pose plus longitudinal velocity."""
    timestamp: float
    pose: Pose
    velocity: float  # m/s, negative when reversing


@dataclass
class AccelerationReport:
    """Longitudinal acceleration estimate."""
    timestamp: float
    acceleration: float  # m/s^2


@dataclass
class TrajectoryPoint:
    """Single point in the reference trajectory."""
    x: float
    y: float
    heading: float  # radians
    velocity: float  # m/s
    acceleration: float = 0.0  # m/s^2, used as feedforward
    z: float = 0.0


@dataclass
class Trajectory:
    """Reference trajectory."""
    timestamp: float
    points: List[TrajectoryPoint]

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class LongitudinalCommand:
    """Longitudinal command sent to actuation."""
    timestamp: float
    velocity: float  # m/s
    acceleration: float  # m/s^2


@dataclass
class LongitudinalOutput:
    """Command plus the debug scalars of the cycle that produced it."""
    command: LongitudinalCommand
    debug_values: Dict[str, Any] = field(default_factory=dict)
