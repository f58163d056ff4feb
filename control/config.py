"""
Configuration for the longitudinal controller.

Parameters are read from the ``control.longitudinal`` section of the YAML
config (see config/longitudinal_controller.yaml). Defaults match that file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from control.acceleration_limiter import AccelerationLimits, BrakeKeepingParams
from control.pid_controller import PIDParams
from control.profiles import EmergencyStateParams, StoppedStateParams
from control.slope_compensation import SlopeCompensationParams
from control.smooth_stop import SmoothStopParams
from control.state_machine import StateTransitionParams

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when the controller parameters are inconsistent."""


@dataclass(frozen=True)
class LongitudinalControllerConfig:
    """Complete longitudinal controller configuration."""

    # timing
    longitudinal_ctrl_period: float = 0.03  # s
    delay_compensation_time: float = 0.17  # s

    # vehicle
    wheel_base: float = 2.7  # m
    vehicle_length: float = 0.0  # m, half is subtracted from the stop distance

    # nearest point search
    ego_nearest_dist_threshold: float = 3.0  # m
    ego_nearest_yaw_threshold: float = 1.046  # rad

    # velocity feedback
    lpf_vel_error_gain: float = 0.9
    current_vel_threshold_pid_integrate: float = 0.5  # m/s

    # pitch
    use_trajectory_for_pitch_calculation: bool = False
    lpf_pitch_gain: float = 0.95

    state_transition: StateTransitionParams = field(default_factory=StateTransitionParams)
    pid: PIDParams = field(default_factory=PIDParams)
    smooth_stop: SmoothStopParams = field(default_factory=SmoothStopParams)
    stopped_state: StoppedStateParams = field(default_factory=StoppedStateParams)
    emergency_state: EmergencyStateParams = field(default_factory=EmergencyStateParams)
    acceleration_limits: AccelerationLimits = field(default_factory=AccelerationLimits)
    brake_keeping: BrakeKeepingParams = field(default_factory=BrakeKeepingParams)
    slope_compensation: SlopeCompensationParams = field(default_factory=SlopeCompensationParams)

    def validate(self) -> None:
        """Raise ConfigurationError listing every inconsistent parameter."""
        errors: List[str] = []
        lim = self.acceleration_limits
        st = self.state_transition
        ss = self.smooth_stop
        slope = self.slope_compensation

        if self.longitudinal_ctrl_period <= 0.0:
            errors.append(f"longitudinal_ctrl_period must be positive, got {self.longitudinal_ctrl_period}")
        if self.delay_compensation_time < 0.0:
            errors.append(f"delay_compensation_time must be >= 0, got {self.delay_compensation_time}")
        if self.wheel_base <= 0.0:
            errors.append(f"wheel_base must be positive, got {self.wheel_base}")
        if self.vehicle_length < 0.0:
            errors.append(f"vehicle_length must be >= 0, got {self.vehicle_length}")
        if lim.min_acc > lim.max_acc:
            errors.append(f"min_acc ({lim.min_acc}) > max_acc ({lim.max_acc})")
        if not lim.min_acc <= 0.0 <= lim.max_acc:
            errors.append(f"acceleration range [{lim.min_acc}, {lim.max_acc}] must contain 0")
        if not lim.min_jerk <= 0.0 <= lim.max_jerk:
            errors.append(f"jerk range [{lim.min_jerk}, {lim.max_jerk}] must contain 0")
        for name in ('lpf_vel_error_gain', 'lpf_pitch_gain'):
            gain = getattr(self, name)
            if not 0.0 <= gain < 1.0:
                errors.append(f"{name} must be in [0, 1), got {gain}")
        if self.pid.min_out > self.pid.max_out:
            errors.append(f"pid min_out ({self.pid.min_out}) > max_out ({self.pid.max_out})")
        if self.pid.min_i_effort > self.pid.max_i_effort:
            errors.append(f"pid min_i_effort ({self.pid.min_i_effort}) > max_i_effort ({self.pid.max_i_effort})")
        if st.stopping_state_stop_dist > st.drive_state_stop_dist:
            errors.append(
                f"stopping_state_stop_dist ({st.stopping_state_stop_dist}) > "
                f"drive_state_stop_dist ({st.drive_state_stop_dist})"
            )
        if st.drive_state_offset_stop_dist < 0.0:
            errors.append(f"drive_state_offset_stop_dist must be >= 0, got {st.drive_state_offset_stop_dist}")
        if st.emergency_state_overshoot_stop_dist < 0.0:
            errors.append(
                f"emergency_state_overshoot_stop_dist must be >= 0, got {st.emergency_state_overshoot_stop_dist}"
            )
        if ss.min_strong_acc > ss.max_strong_acc:
            errors.append(
                f"smooth_stop_min_strong_acc ({ss.min_strong_acc}) > smooth_stop_max_strong_acc ({ss.max_strong_acc})"
            )
        if ss.strong_stop_dist > ss.weak_stop_dist:
            errors.append(
                f"smooth_stop_strong_stop_dist ({ss.strong_stop_dist}) > smooth_stop_weak_stop_dist ({ss.weak_stop_dist})"
            )
        if slope.min_pitch_rad > slope.max_pitch_rad:
            errors.append(f"min_pitch_rad ({slope.min_pitch_rad}) > max_pitch_rad ({slope.max_pitch_rad})")
        if self.brake_keeping.brake_keeping_acc > 0.0:
            errors.append(f"brake_keeping_acc must be <= 0, got {self.brake_keeping.brake_keeping_acc}")

        if errors:
            for error in errors:
                logger.error(f"[CONFIG] {error}")
            raise ConfigurationError("Invalid longitudinal controller config: " + "; ".join(errors))


def build_longitudinal_config(longitudinal_cfg: dict) -> LongitudinalControllerConfig:
    """Build a LongitudinalControllerConfig from the ``control.longitudinal`` dict."""
    cfg = longitudinal_cfg or {}

    state_transition = StateTransitionParams(
        drive_state_stop_dist=float(cfg.get('drive_state_stop_dist', 0.5)),
        drive_state_offset_stop_dist=float(cfg.get('drive_state_offset_stop_dist', 1.0)),
        stopping_state_stop_dist=float(cfg.get('stopping_state_stop_dist', 0.49)),
        stopped_state_entry_duration_time=float(cfg.get('stopped_state_entry_duration_time', 0.1)),
        stopped_state_entry_vel=float(cfg.get('stopped_state_entry_vel', 0.1)),
        stopped_state_entry_acc=float(cfg.get('stopped_state_entry_acc', 0.1)),
        emergency_state_overshoot_stop_dist=float(cfg.get('emergency_state_overshoot_stop_dist', 1.5)),
        emergency_state_traj_trans_dev=float(cfg.get('emergency_state_traj_trans_dev', 3.0)),
        emergency_state_traj_rot_dev=float(cfg.get('emergency_state_traj_rot_dev', 0.7854)),
        enable_smooth_stop=bool(cfg.get('enable_smooth_stop', True)),
        enable_overshoot_emergency=bool(cfg.get('enable_overshoot_emergency', True)),
        enable_large_tracking_error_emergency=bool(cfg.get('enable_large_tracking_error_emergency', True)),
        enable_keep_stopped_until_steer_convergence=bool(
            cfg.get('enable_keep_stopped_until_steer_convergence', False)
        ),
    )

    pid = PIDParams(
        kp=float(cfg.get('kp', 1.0)),
        ki=float(cfg.get('ki', 0.1)),
        kd=float(cfg.get('kd', 0.0)),
        max_out=float(cfg.get('max_out', 1.0)),
        min_out=float(cfg.get('min_out', -1.0)),
        max_p_effort=float(cfg.get('max_p_effort', 1.0)),
        min_p_effort=float(cfg.get('min_p_effort', -1.0)),
        max_i_effort=float(cfg.get('max_i_effort', 0.3)),
        min_i_effort=float(cfg.get('min_i_effort', -0.3)),
        max_d_effort=float(cfg.get('max_d_effort', 0.0)),
        min_d_effort=float(cfg.get('min_d_effort', 0.0)),
    )

    smooth_stop = SmoothStopParams(
        max_strong_acc=float(cfg.get('smooth_stop_max_strong_acc', -0.5)),
        min_strong_acc=float(cfg.get('smooth_stop_min_strong_acc', -1.0)),
        weak_acc=float(cfg.get('smooth_stop_weak_acc', -0.3)),
        weak_stop_acc=float(cfg.get('smooth_stop_weak_stop_acc', -0.8)),
        strong_stop_acc=float(cfg.get('smooth_stop_strong_stop_acc', -3.4)),
        max_fast_vel=float(cfg.get('smooth_stop_max_fast_vel', 0.5)),
        min_running_vel=float(cfg.get('smooth_stop_min_running_vel', 0.01)),
        min_running_acc=float(cfg.get('smooth_stop_min_running_acc', 0.01)),
        weak_stop_time=float(cfg.get('smooth_stop_weak_stop_time', 0.8)),
        weak_stop_dist=float(cfg.get('smooth_stop_weak_stop_dist', -0.3)),
        strong_stop_dist=float(cfg.get('smooth_stop_strong_stop_dist', -0.5)),
    )

    stopped_state = StoppedStateParams(
        vel=float(cfg.get('stopped_vel', 0.0)),
        acc=float(cfg.get('stopped_acc', -3.4)),
        jerk=float(cfg.get('stopped_jerk', -5.0)),
    )

    emergency_state = EmergencyStateParams(
        vel=float(cfg.get('emergency_vel', 0.0)),
        acc=float(cfg.get('emergency_acc', -5.0)),
        jerk=float(cfg.get('emergency_jerk', -3.0)),
    )

    acceleration_limits = AccelerationLimits(
        max_acc=float(cfg.get('max_acc', 3.0)),
        min_acc=float(cfg.get('min_acc', -5.0)),
        max_jerk=float(cfg.get('max_jerk', 2.0)),
        min_jerk=float(cfg.get('min_jerk', -5.0)),
    )

    brake_keeping = BrakeKeepingParams(
        enabled=bool(cfg.get('enable_brake_keeping_before_stop', False)),
        brake_keeping_acc=float(cfg.get('brake_keeping_acc', -0.2)),
        brake_keeping_stop_dist=float(cfg.get('brake_keeping_stop_dist', 1.0)),
    )

    slope_compensation = SlopeCompensationParams(
        enabled=bool(cfg.get('enable_slope_compensation', False)),
        max_pitch_rad=float(cfg.get('max_pitch_rad', 0.1)),
        min_pitch_rad=float(cfg.get('min_pitch_rad', -0.1)),
    )

    return LongitudinalControllerConfig(
        longitudinal_ctrl_period=float(cfg.get('longitudinal_ctrl_period', 0.03)),
        delay_compensation_time=float(cfg.get('delay_compensation_time', 0.17)),
        wheel_base=float(cfg.get('wheel_base', 2.7)),
        vehicle_length=float(cfg.get('vehicle_length', 0.0)),
        ego_nearest_dist_threshold=float(cfg.get('ego_nearest_dist_threshold', 3.0)),
        ego_nearest_yaw_threshold=float(cfg.get('ego_nearest_yaw_threshold', 1.046)),
        lpf_vel_error_gain=float(cfg.get('lpf_vel_error_gain', 0.9)),
        current_vel_threshold_pid_integrate=float(cfg.get('current_vel_threshold_pid_integration', 0.5)),
        use_trajectory_for_pitch_calculation=bool(cfg.get('use_trajectory_for_pitch_calculation', False)),
        lpf_pitch_gain=float(cfg.get('lpf_pitch_gain', 0.95)),
        state_transition=state_transition,
        pid=pid,
        smooth_stop=smooth_stop,
        stopped_state=stopped_state,
        emergency_state=emergency_state,
        acceleration_limits=acceleration_limits,
        brake_keeping=brake_keeping,
        slope_compensation=slope_compensation,
    )
