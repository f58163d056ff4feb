"""
Debug scalars computed by the longitudinal controller each cycle.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class DebugValues:
    """Per-cycle scalars exposed for telemetry."""
    dt: float = 0.0
    current_vel: float = 0.0
    current_acc: float = 0.0
    target_vel: float = 0.0
    target_acc: float = 0.0
    nearest_vel: float = 0.0
    nearest_acc: float = 0.0
    shift: int = 0
    pitch_lpf_rad: float = 0.0
    pitch_raw_rad: float = 0.0
    pitch_raw_traj_rad: float = 0.0
    error_vel: float = 0.0
    error_vel_filtered: float = 0.0
    control_state: int = 0
    acc_cmd_pid_applied: float = 0.0
    acc_cmd_acc_limited: float = 0.0
    acc_cmd_slope_applied: float = 0.0
    acc_cmd_jerk_limited: float = 0.0
    acc_cmd_published: float = 0.0
    acc_cmd_fb_p_contribution: float = 0.0
    acc_cmd_fb_i_contribution: float = 0.0
    acc_cmd_fb_d_contribution: float = 0.0
    flag_stopping: int = 0
    flag_emergency_stop: int = 0
    predicted_vel: float = 0.0
    stop_dist: float = 0.0
    emergency_cause: str = ""

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        values['pitch_lpf_deg'] = math.degrees(self.pitch_lpf_rad)
        values['pitch_raw_deg'] = math.degrees(self.pitch_raw_rad)
        values['pitch_raw_traj_deg'] = math.degrees(self.pitch_raw_traj_rad)
        return values
