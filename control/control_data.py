"""
Per-cycle control data derived from pose, motion, trajectory and clock.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from control.lowpass_filter import LowpassFilter1d
from data.formats.data_format import Pose, Trajectory
from trajectory.utils import (
    calc_pitch_by_trajectory,
    calc_stop_distance,
    find_nearest_index,
    normalize_angle,
    road_pitch_from_pose,
    yaw_from_quaternion,
)

logger = logging.getLogger(__name__)

SHIFT_VELOCITY_EPSILON = 1e-5


@dataclass(frozen=True)
class Motion:
    """Velocity and acceleration at one instant."""
    velocity: float = 0.0  # m/s
    acceleration: float = 0.0  # m/s^2


class Shift(Enum):
    FORWARD = 0
    REVERSE = 1


@dataclass(frozen=True)
class ControlData:
    """Everything one control cycle needs, derived once at its start."""
    timestamp: float
    dt: float
    current_motion: Motion
    nearest_idx: int = 0  # 0 when no point is within tolerance
    is_far_from_trajectory: bool = False
    shift: Shift = Shift.FORWARD
    stop_dist: float = 0.0  # positive before the stop point
    slope_angle: float = 0.0  # filtered pitch, positive uphill
    raw_pitch: float = 0.0  # pose pitch before filtering
    traj_pitch: float = 0.0  # trajectory pitch before filtering
    stopped_duration: float = 0.0  # time spent inside the STOPPED entry bounds
    is_steer_converged: bool = True


def calc_dt(timestamp: float, prev_timestamp: Optional[float], control_period: float) -> float:
    """
    Time since the previous cycle, clamped to [0.5, 2.0] control periods.

    The first cycle uses the nominal control period.
    """
    if prev_timestamp is None:
        return control_period
    dt = timestamp - prev_timestamp
    return min(max(dt, 0.5 * control_period), 2.0 * control_period)


class ControlDataExtractor:
    """
    Derives ControlData each cycle.

    Keeps the memory the derivation needs across cycles: previous timestamp,
    pitch filter, last shift and the last time the vehicle was moving.
    """

    def __init__(self, control_period: float = 0.03, wheel_base: float = 2.7,
                 vehicle_length: float = 0.0,
                 ego_nearest_dist_threshold: float = 3.0,
                 ego_nearest_yaw_threshold: float = 1.046,
                 traj_trans_dev: float = 3.0, traj_rot_dev: float = 0.7854,
                 stopped_state_entry_vel: float = 0.1, stopped_state_entry_acc: float = 0.1,
                 use_trajectory_for_pitch: bool = False, lpf_pitch_gain: float = 0.95):
        """
        Initialize extractor.

        Args:
            control_period: Nominal cycle time (s)
            wheel_base: Vehicle wheelbase (m), span used for trajectory pitch
            vehicle_length: Vehicle length (m); half of it is taken off the stop distance
            ego_nearest_dist_threshold: Max distance to accept a nearest point (m)
            ego_nearest_yaw_threshold: Max heading difference to accept a nearest point (rad)
            traj_trans_dev: Distance deviation that marks the vehicle far from the trajectory (m)
            traj_rot_dev: Heading deviation that marks the vehicle far from the trajectory (rad)
            stopped_state_entry_vel: |v| above this counts as moving (m/s)
            stopped_state_entry_acc: |a| above this counts as moving (m/s^2)
            use_trajectory_for_pitch: Use trajectory elevation instead of pose pitch
            lpf_pitch_gain: Low-pass gain for pitch
        """
        self.control_period = control_period
        self.wheel_base = wheel_base
        self.vehicle_length = vehicle_length
        self.ego_nearest_dist_threshold = ego_nearest_dist_threshold
        self.ego_nearest_yaw_threshold = ego_nearest_yaw_threshold
        self.traj_trans_dev = traj_trans_dev
        self.traj_rot_dev = traj_rot_dev
        self.stopped_state_entry_vel = stopped_state_entry_vel
        self.stopped_state_entry_acc = stopped_state_entry_acc
        self.use_trajectory_for_pitch = use_trajectory_for_pitch
        self.lpf_pitch = LowpassFilter1d(gain=lpf_pitch_gain)

        self.prev_timestamp: Optional[float] = None
        self.prev_shift = Shift.FORWARD
        self.last_running_time: Optional[float] = None

    def reset(self):
        self.lpf_pitch.reset()
        self.prev_timestamp = None
        self.prev_shift = Shift.FORWARD
        self.last_running_time = None

    def extract(self, pose: Pose, motion: Motion, trajectory: Optional[Trajectory],
                timestamp: float, is_steer_converged: bool = True) -> ControlData:
        """
        Build the control data for this cycle.

        Args:
            pose: Current vehicle pose
            motion: Current velocity and acceleration
            trajectory: Reference trajectory (may be None or empty)
            timestamp: Current time (s)
            is_steer_converged: External steering convergence flag

        Returns:
            ControlData for this cycle
        """
        dt = calc_dt(timestamp, self.prev_timestamp, self.control_period)
        self.prev_timestamp = timestamp

        stopped_duration = self._update_stopped_duration(motion, timestamp)
        points = trajectory.points if trajectory is not None else []
        yaw = yaw_from_quaternion(pose.orientation)

        nearest_idx_opt = find_nearest_index(
            points, pose.position, yaw,
            self.ego_nearest_dist_threshold, self.ego_nearest_yaw_threshold,
        )
        is_far = nearest_idx_opt is None
        nearest_idx = 0 if nearest_idx_opt is None else nearest_idx_opt
        if nearest_idx_opt is None:
            logger.debug("[CONTROL_DATA] No trajectory point within tolerance; nearest index defaults to 0")
        else:
            nearest = points[nearest_idx]
            trans_dev = math.hypot(nearest.x - pose.position[0], nearest.y - pose.position[1])
            rot_dev = abs(normalize_angle(nearest.heading - yaw))
            if trans_dev > self.traj_trans_dev or rot_dev > self.traj_rot_dev:
                is_far = True

        shift = self._get_shift(points, nearest_idx)
        stop_dist = calc_stop_distance(points, pose.position, 0.5 * self.vehicle_length)

        raw_pitch = road_pitch_from_pose(pose)
        traj_pitch = calc_pitch_by_trajectory(points, nearest_idx, self.wheel_base) if points else 0.0
        selected_pitch = traj_pitch if self.use_trajectory_for_pitch else raw_pitch
        slope_angle = self.lpf_pitch.filter(selected_pitch)

        return ControlData(
            timestamp=timestamp,
            dt=dt,
            current_motion=motion,
            nearest_idx=nearest_idx,
            is_far_from_trajectory=is_far,
            shift=shift,
            stop_dist=stop_dist,
            slope_angle=slope_angle,
            raw_pitch=raw_pitch,
            traj_pitch=traj_pitch,
            stopped_duration=stopped_duration,
            is_steer_converged=is_steer_converged,
        )

    def _update_stopped_duration(self, motion: Motion, timestamp: float) -> float:
        if (
            self.last_running_time is None
            or abs(motion.velocity) > self.stopped_state_entry_vel
            or abs(motion.acceleration) > self.stopped_state_entry_acc
        ):
            self.last_running_time = timestamp
        return timestamp - self.last_running_time

    def _get_shift(self, points, nearest_idx: int) -> Shift:
        if not points:
            return self.prev_shift
        target_vel = points[nearest_idx].velocity
        if target_vel > SHIFT_VELOCITY_EPSILON:
            shift = Shift.FORWARD
        elif target_vel < -SHIFT_VELOCITY_EPSILON:
            shift = Shift.REVERSE
        else:
            shift = self.prev_shift
        self.prev_shift = shift
        return shift
