"""
Longitudinal controller.

Each cycle (run) derives the control data, evaluates the DRIVE / STOPPING /
STOPPED / EMERGENCY state machine, computes the raw command of the active
state and limits it. The controller owns every piece of mutable state:
command histories, filters, the smooth stop law and the previous commands.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from control.acceleration_limiter import AccelerationLimiter
from control.config import LongitudinalControllerConfig
from control.control_data import ControlData, ControlDataExtractor, Motion, Shift
from control.debug_values import DebugValues
from control.delay_compensation import CommandHistory, predict_velocity_in_target_point
from control.pid_controller import VelocityFeedbackController
from control.profiles import calc_emergency_command, calc_stopped_command
from control.slope_compensation import apply_slope_compensation
from control.smooth_stop import SmoothStop
from control.state_machine import ControlState, emergency_causes, update_control_state
from data.formats.data_format import (
    AccelerationReport,
    LongitudinalCommand,
    LongitudinalOutput,
    Odometry,
    Trajectory,
)
from trajectory.utils import (
    calc_interpolated_point,
    calc_position_after_time_delay,
    is_valid_trajectory,
    yaw_from_quaternion,
)

logger = logging.getLogger(__name__)

# Span of the velocity history used by the smooth stop regression
VELOCITY_HISTORY_DURATION = 0.5  # s


class LongitudinalController:
    """Velocity and acceleration command generator for trajectory following."""

    def __init__(self, config: Optional[LongitudinalControllerConfig] = None):
        """
        Initialize controller.

        Args:
            config: Controller configuration; defaults are used when omitted

        Raises:
            ConfigurationError: If the configuration is inconsistent
        """
        self.config = config or LongitudinalControllerConfig()
        self.config.validate()
        cfg = self.config
        st = cfg.state_transition

        self.extractor = ControlDataExtractor(
            control_period=cfg.longitudinal_ctrl_period,
            wheel_base=cfg.wheel_base,
            vehicle_length=cfg.vehicle_length,
            ego_nearest_dist_threshold=cfg.ego_nearest_dist_threshold,
            ego_nearest_yaw_threshold=cfg.ego_nearest_yaw_threshold,
            traj_trans_dev=st.emergency_state_traj_trans_dev,
            traj_rot_dev=st.emergency_state_traj_rot_dev,
            stopped_state_entry_vel=st.stopped_state_entry_vel,
            stopped_state_entry_acc=st.stopped_state_entry_acc,
            use_trajectory_for_pitch=cfg.use_trajectory_for_pitch_calculation,
            lpf_pitch_gain=cfg.lpf_pitch_gain,
        )
        self.velocity_controller = VelocityFeedbackController(
            cfg.pid,
            lpf_vel_error_gain=cfg.lpf_vel_error_gain,
            current_vel_threshold_pid_integrate=cfg.current_vel_threshold_pid_integrate,
        )
        self.smooth_stop = SmoothStop(cfg.smooth_stop)
        self.limiter = AccelerationLimiter(cfg.acceleration_limits, cfg.brake_keeping)
        self.command_history = CommandHistory(cfg.delay_compensation_time, cfg.longitudinal_ctrl_period)
        self.velocity_history: Deque[Tuple[float, float]] = deque()

        self._state_handlers: Dict[ControlState, Callable[[ControlData], Tuple[Motion, float]]] = {
            ControlState.DRIVE: self._calc_drive_command,
            ControlState.STOPPING: self._calc_stopping_command,
            ControlState.STOPPED: self._calc_stopped_command,
            ControlState.EMERGENCY: self._calc_emergency_command,
        }

        self.odometry: Optional[Odometry] = None
        self.acceleration: Optional[AccelerationReport] = None
        self.trajectory: Optional[Trajectory] = None
        self.is_steer_converged = True

        self.control_state = ControlState.STOPPED
        self.prev_ctrl_cmd = Motion()
        self.prev_raw_ctrl_cmd = Motion()
        self.debug_values = DebugValues()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def set_odometry(self, odometry: Odometry) -> None:
        self.odometry = odometry

    def set_acceleration(self, acceleration: AccelerationReport) -> None:
        self.acceleration = acceleration

    def set_trajectory(self, trajectory: Trajectory) -> bool:
        """
        Store a new reference trajectory.

        Invalid trajectories (fewer than two points or non-finite values) are
        rejected and the previous trajectory is kept.

        Returns:
            True if the trajectory was accepted
        """
        if not is_valid_trajectory(trajectory):
            logger.warning(
                f"[TRAJECTORY] Rejected invalid trajectory with {len(trajectory.points)} points; "
                f"keeping previous"
            )
            return False
        self.trajectory = trajectory
        return True

    def set_steer_converged(self, is_steer_converged: bool) -> None:
        self.is_steer_converged = bool(is_steer_converged)

    def set_input_data(self, odometry: Optional[Odometry] = None,
                       acceleration: Optional[AccelerationReport] = None,
                       trajectory: Optional[Trajectory] = None,
                       is_steer_converged: Optional[bool] = None) -> None:
        """Store whichever inputs are given."""
        if odometry is not None:
            self.set_odometry(odometry)
        if acceleration is not None:
            self.set_acceleration(acceleration)
        if trajectory is not None:
            self.set_trajectory(trajectory)
        if is_steer_converged is not None:
            self.set_steer_converged(is_steer_converged)

    def is_ready(self) -> bool:
        return self.odometry is not None and self.trajectory is not None

    # ------------------------------------------------------------------
    # Control cycle
    # ------------------------------------------------------------------

    def run(self, timestamp: float) -> Optional[LongitudinalOutput]:
        """
        Execute one control cycle.

        Args:
            timestamp: Current time (s, monotonic)

        Returns:
            Command and debug values, or None while inputs are missing
        """
        if not self.is_ready():
            logger.warning(
                f"[LONGITUDINAL] Waiting for inputs: odometry={self.odometry is not None}, "
                f"trajectory={self.trajectory is not None}"
            )
            return None

        current_acc = self.acceleration.acceleration if self.acceleration is not None else 0.0
        motion = Motion(velocity=self.odometry.velocity, acceleration=current_acc)
        data = self.extractor.extract(
            self.odometry.pose, motion, self.trajectory, timestamp, self.is_steer_converged
        )
        self.command_history.evict(timestamp)
        self.debug_values = DebugValues(dt=data.dt, current_vel=motion.velocity, current_acc=motion.acceleration)

        st_params = self.config.state_transition
        if data.is_far_from_trajectory and not st_params.enable_large_tracking_error_emergency:
            # state is kept; only this cycle's command is an emergency one
            logger.warning("[LONGITUDINAL] Far from trajectory; emitting emergency command")
            raw_cmd, raw_acc = self._calc_emergency_command(data)
            ctrl_cmd = Motion(raw_cmd.velocity, self.limiter.clamp(raw_cmd.acceleration))
            self.debug_values.flag_emergency_stop = 1
            return self._finish_cycle(data, raw_cmd, ctrl_cmd, raw_acc, keep_history=False)

        self._transition(data)

        raw_cmd, raw_acc = self._state_handlers[self.control_state](data)

        if self.control_state == ControlState.EMERGENCY:
            ctrl_cmd = Motion(raw_cmd.velocity, self.limiter.clamp(raw_cmd.acceleration))
        else:
            limited_acc = self.limiter.limit(
                raw_cmd.acceleration,
                self.prev_ctrl_cmd.acceleration,
                data.dt,
                stop_dist=data.stop_dist,
                target_velocity=raw_cmd.velocity,
            )
            ctrl_cmd = Motion(raw_cmd.velocity, limited_acc)

        keep_history = self.control_state == ControlState.DRIVE
        return self._finish_cycle(data, raw_cmd, ctrl_cmd, raw_acc, keep_history)

    def _transition(self, data: ControlData) -> None:
        prev_state = self.control_state
        next_state = update_control_state(prev_state, data, self.config.state_transition)
        if next_state == prev_state:
            return

        logger.info(f"[STATE] {prev_state.name} -> {next_state.name} (stop_dist={data.stop_dist:.3f})")

        if prev_state == ControlState.DRIVE:
            self.velocity_controller.reset()

        if next_state == ControlState.STOPPING:
            pred_vel = predict_velocity_in_target_point(
                data.current_motion, self.command_history,
                self.config.delay_compensation_time, data.timestamp,
            )
            pred_stop_dist = data.stop_dist - 0.5 * (
                pred_vel + data.current_motion.velocity
            ) * self.config.delay_compensation_time
            self.smooth_stop.init(pred_vel, pred_stop_dist, data.timestamp)
        elif next_state == ControlState.DRIVE and prev_state in (ControlState.STOPPED, ControlState.STOPPING):
            # departure: do not start from a braking command
            self.prev_ctrl_cmd = Motion(
                self.prev_ctrl_cmd.velocity, max(0.0, self.prev_ctrl_cmd.acceleration)
            )
            self.prev_raw_ctrl_cmd = Motion(
                self.prev_raw_ctrl_cmd.velocity, max(0.0, self.prev_raw_ctrl_cmd.acceleration)
            )
        elif next_state == ControlState.EMERGENCY:
            causes = emergency_causes(data, self.config.state_transition)
            logger.warning(
                f"[STATE] Emergency stop: causes={', '.join(causes)}, "
                f"stop_dist={data.stop_dist:.3f}, far={data.is_far_from_trajectory}"
            )

        self.control_state = next_state

    def _finish_cycle(self, data: ControlData, raw_cmd: Motion, ctrl_cmd: Motion,
                      raw_acc: float, keep_history: bool) -> LongitudinalOutput:
        if keep_history:
            self.command_history.append(data.timestamp, raw_acc)
        else:
            self.command_history.clear()

        self.velocity_history.append((data.timestamp, data.current_motion.velocity))
        while self.velocity_history and data.timestamp - self.velocity_history[0][0] > VELOCITY_HISTORY_DURATION:
            self.velocity_history.popleft()

        self.prev_raw_ctrl_cmd = Motion(raw_cmd.velocity, raw_acc)
        self.prev_ctrl_cmd = ctrl_cmd

        dv = self.debug_values
        dv.shift = data.shift.value
        dv.stop_dist = data.stop_dist
        dv.pitch_lpf_rad = data.slope_angle
        dv.pitch_raw_rad = data.raw_pitch
        dv.pitch_raw_traj_rad = data.traj_pitch
        dv.control_state = self.control_state.value
        dv.flag_stopping = int(self.control_state == ControlState.STOPPING)
        if self.control_state == ControlState.EMERGENCY:
            dv.flag_emergency_stop = 1
            dv.emergency_cause = ",".join(emergency_causes(data, self.config.state_transition))
        dv.acc_cmd_jerk_limited = ctrl_cmd.acceleration
        dv.acc_cmd_published = ctrl_cmd.acceleration
        if self.trajectory is not None:
            nearest = self.trajectory.points[data.nearest_idx]
            dv.nearest_vel = nearest.velocity
            dv.nearest_acc = nearest.acceleration

        logger.debug(
            f"[LONGITUDINAL] state={self.control_state.name}, v={data.current_motion.velocity:.3f}, "
            f"stop_dist={data.stop_dist:.3f}, cmd_vel={ctrl_cmd.velocity:.3f}, "
            f"cmd_acc={ctrl_cmd.acceleration:.3f}"
        )

        command = LongitudinalCommand(
            timestamp=data.timestamp,
            velocity=ctrl_cmd.velocity,
            acceleration=ctrl_cmd.acceleration,
        )
        return LongitudinalOutput(command=command, debug_values=dv.to_dict())

    # ------------------------------------------------------------------
    # Per-state raw commands: (command for the limiter, acceleration before slope compensation)
    # ------------------------------------------------------------------

    def _calc_drive_command(self, data: ControlData) -> Tuple[Motion, float]:
        cfg = self.config
        pose = self.odometry.pose
        current_vel = data.current_motion.velocity

        target_position = calc_position_after_time_delay(
            pose.position, yaw_from_quaternion(pose.orientation),
            cfg.delay_compensation_time, current_vel,
        )
        target = calc_interpolated_point(self.trajectory.points, target_position)
        pred_vel = predict_velocity_in_target_point(
            data.current_motion, self.command_history, cfg.delay_compensation_time, data.timestamp
        )

        fb = self.velocity_controller.update(
            target.velocity, target.acceleration, pred_vel, data.dt, return_metadata=True
        )
        clamped_acc = self.limiter.clamp(fb['acceleration'])
        slope_acc = apply_slope_compensation(clamped_acc, data.slope_angle, data.shift, cfg.slope_compensation)

        dv = self.debug_values
        dv.target_vel = target.velocity
        dv.target_acc = target.acceleration
        dv.predicted_vel = pred_vel
        dv.error_vel = fb['error_vel']
        dv.error_vel_filtered = fb['error_vel_filtered']
        dv.acc_cmd_pid_applied = fb['acceleration']
        dv.acc_cmd_acc_limited = clamped_acc
        dv.acc_cmd_slope_applied = slope_acc
        dv.acc_cmd_fb_p_contribution = fb['p_term']
        dv.acc_cmd_fb_i_contribution = fb['i_term']
        dv.acc_cmd_fb_d_contribution = fb['d_term']

        return Motion(velocity=target.velocity, acceleration=slope_acc), clamped_acc

    def _calc_stopping_command(self, data: ControlData) -> Tuple[Motion, float]:
        motion = data.current_motion
        acc = self.smooth_stop.calculate(
            data.stop_dist, motion.velocity, motion.acceleration,
            list(self.velocity_history), self.config.delay_compensation_time,
            data.timestamp, data.dt,
        )
        sign = 1.0 if data.shift == Shift.FORWARD else -1.0
        vel = sign * self.smooth_stop.target_velocity
        self.debug_values.target_vel = vel
        self.debug_values.target_acc = acc
        return Motion(velocity=vel, acceleration=acc), acc

    def _calc_stopped_command(self, data: ControlData) -> Tuple[Motion, float]:
        cmd = calc_stopped_command(self.config.stopped_state, self.prev_raw_ctrl_cmd.acceleration, data.dt)
        self.debug_values.target_vel = cmd.velocity
        self.debug_values.target_acc = cmd.acceleration
        return cmd, cmd.acceleration

    def _calc_emergency_command(self, data: ControlData) -> Tuple[Motion, float]:
        # never above the last emitted command
        prev = Motion(
            self.prev_raw_ctrl_cmd.velocity,
            min(self.prev_raw_ctrl_cmd.acceleration, self.prev_ctrl_cmd.acceleration),
        )
        cmd = calc_emergency_command(self.config.emergency_state, prev, data.dt)
        self.debug_values.target_vel = cmd.velocity
        self.debug_values.target_acc = cmd.acceleration
        return cmd, cmd.acceleration

    def reset(self) -> None:
        """Return to the initial STOPPED state and drop all memory."""
        self.extractor.reset()
        self.velocity_controller.reset()
        self.smooth_stop = SmoothStop(self.config.smooth_stop)
        self.command_history.clear()
        self.velocity_history.clear()
        self.control_state = ControlState.STOPPED
        self.prev_ctrl_cmd = Motion()
        self.prev_raw_ctrl_cmd = Motion()
        self.debug_values = DebugValues()
