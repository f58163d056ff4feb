"""
Control state machine: DRIVE / STOPPING / STOPPED / EMERGENCY.

The transition is a pure function of the current state, the cycle's control
data and static parameters. Entering STOPPING uses a stricter stop distance
than leaving it (drive_state_stop_dist vs. drive_state_stop_dist +
drive_state_offset_stop_dist) so a stop distance hovering at the threshold
cannot chatter between DRIVE and STOPPING.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from control.control_data import ControlData


class ControlState(Enum):
    DRIVE = 0
    STOPPING = 1
    STOPPED = 2
    EMERGENCY = 3


EMERGENCY_CAUSE_TRACKING_ERROR = "large_tracking_error"
EMERGENCY_CAUSE_OVERSHOOT = "overshoot"


@dataclass(frozen=True)
class StateTransitionParams:
    """Thresholds and enable flags for state transitions."""

    # drive
    drive_state_stop_dist: float = 0.5  # m
    drive_state_offset_stop_dist: float = 1.0  # m
    # stopping
    stopping_state_stop_dist: float = 0.49  # m
    # stopped
    stopped_state_entry_duration_time: float = 0.1  # s
    stopped_state_entry_vel: float = 0.1  # m/s
    stopped_state_entry_acc: float = 0.1  # m/s^2
    # emergency
    emergency_state_overshoot_stop_dist: float = 1.5  # m
    emergency_state_traj_trans_dev: float = 3.0  # m
    emergency_state_traj_rot_dev: float = 0.7854  # rad
    # enable flags
    enable_smooth_stop: bool = True
    enable_overshoot_emergency: bool = True
    enable_large_tracking_error_emergency: bool = True
    enable_keep_stopped_until_steer_convergence: bool = False


def emergency_causes(data: ControlData, params: StateTransitionParams) -> Tuple[str, ...]:
    """Names of the emergency conditions active for this cycle."""
    causes = []
    if params.enable_large_tracking_error_emergency and data.is_far_from_trajectory:
        causes.append(EMERGENCY_CAUSE_TRACKING_ERROR)
    if params.enable_overshoot_emergency and data.stop_dist < -params.emergency_state_overshoot_stop_dist:
        causes.append(EMERGENCY_CAUSE_OVERSHOOT)
    return tuple(causes)


def is_stopped(data: ControlData, params: StateTransitionParams) -> bool:
    """Vehicle has stayed inside the STOPPED entry bounds long enough."""
    return data.stopped_duration > params.stopped_state_entry_duration_time


def update_control_state(current_state: ControlState, data: ControlData,
                         params: StateTransitionParams) -> ControlState:
    """
    Evaluate the next control state.

    Args:
        current_state: State of the previous cycle
        data: Control data of this cycle
        params: Transition thresholds and enable flags

    Returns:
        Next control state
    """
    p = params
    stop_dist = data.stop_dist

    if emergency_causes(data, p):
        return ControlState.EMERGENCY

    departure_from_stopping = stop_dist > p.drive_state_stop_dist + p.drive_state_offset_stop_dist
    departure_from_stopped = stop_dist > p.drive_state_stop_dist
    keep_stopped = p.enable_keep_stopped_until_steer_convergence and not data.is_steer_converged
    stopped = is_stopped(data, p)

    if current_state == ControlState.DRIVE:
        if p.enable_smooth_stop:
            if stop_dist < p.drive_state_stop_dist:
                return ControlState.STOPPING
        elif stopped and not departure_from_stopped:
            return ControlState.STOPPED
        return ControlState.DRIVE

    if current_state == ControlState.STOPPING:
        if stopped and stop_dist < p.stopping_state_stop_dist:
            return ControlState.STOPPED
        if departure_from_stopping:
            return ControlState.DRIVE
        return ControlState.STOPPING

    if current_state == ControlState.STOPPED:
        if departure_from_stopped and not keep_stopped:
            return ControlState.DRIVE
        return ControlState.STOPPED

    # EMERGENCY: recovered once no emergency condition holds
    if stopped:
        return ControlState.STOPPED
    return ControlState.DRIVE
