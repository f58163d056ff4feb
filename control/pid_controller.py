"""
PID controller for longitudinal velocity tracking.
The feedback output is an acceleration correction added to the trajectory
feedforward acceleration.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union

import numpy as np

from control.lowpass_filter import LowpassFilter1d


@dataclass(frozen=True)
class PIDParams:
    """Gains and per-term limits of the velocity PID."""

    kp: float = 1.0
    ki: float = 0.1
    kd: float = 0.0
    max_out: float = 1.0
    min_out: float = -1.0
    max_p_effort: float = 1.0
    min_p_effort: float = -1.0
    max_i_effort: float = 0.3
    min_i_effort: float = -0.3
    max_d_effort: float = 0.0
    min_d_effort: float = 0.0


class PIDController:
    """
    PID controller with integral windup protection.
    """

    def __init__(self, params: PIDParams):
        """
        Initialize PID controller.

        Args:
            params: Gains plus output and per-term limits
        """
        self.params = params
        self.integral = 0.0
        self.prev_error = 0.0
        self._is_first_time = True

    @property
    def kp(self) -> float:
        return self.params.kp

    @property
    def ki(self) -> float:
        return self.params.ki

    @property
    def kd(self) -> float:
        return self.params.kd

    def update(self, error: float, dt: float, enable_integration: bool = True,
               return_metadata: bool = False) -> Union[float, Dict[str, float]]:
        """
        Update PID controller.

        Args:
            error: Current error
            dt: Time step
            enable_integration: Accumulate the integral this step
            return_metadata: If True, return a dict with the term contributions

        Returns:
            Control output, or a metadata dict when requested
        """
        p = self.params

        # Integral term; bounded so ki * integral stays inside the I-effort limits
        if enable_integration:
            self.integral += error * dt
            if p.ki > 0.0:
                self.integral = float(np.clip(self.integral, p.min_i_effort / p.ki, p.max_i_effort / p.ki))
        p_term = float(np.clip(p.kp * error, p.min_p_effort, p.max_p_effort))
        i_term = float(np.clip(p.ki * self.integral, p.min_i_effort, p.max_i_effort))

        # Derivative term
        if self._is_first_time or dt < 1e-6:
            d_error = 0.0
        else:
            d_error = (error - self.prev_error) / dt
        d_term = float(np.clip(p.kd * d_error, p.min_d_effort, p.max_d_effort))

        self.prev_error = error
        self._is_first_time = False

        output = float(np.clip(p_term + i_term + d_term, p.min_out, p.max_out))

        if return_metadata:
            return {
                'output': output,
                'p_term': p_term,
                'i_term': i_term,
                'd_term': d_term,
            }
        return output

    def reset(self):
        """Reset controller state."""
        self.integral = 0.0
        self.prev_error = 0.0
        self._is_first_time = True


class VelocityFeedbackController:
    """
    Velocity tracking: trajectory feedforward acceleration plus PID on the
    (low-pass filtered) velocity error.
    """

    def __init__(self, params: PIDParams, lpf_vel_error_gain: float = 0.9,
                 current_vel_threshold_pid_integrate: float = 0.5):
        """
        Initialize velocity feedback controller.

        Args:
            params: PID gains and limits
            lpf_vel_error_gain: Low-pass gain applied to the velocity error
            current_vel_threshold_pid_integrate: Integration is suppressed below this speed (m/s)
        """
        self.pid = PIDController(params)
        self.lpf_vel_error = LowpassFilter1d(gain=lpf_vel_error_gain)
        self.current_vel_threshold_pid_integrate = current_vel_threshold_pid_integrate

    def update(self, target_velocity: float, feedforward_acc: float, current_velocity: float,
               dt: float, return_metadata: bool = False) -> Union[float, Dict[str, float]]:
        """
        Compute the acceleration command before limiting.

        Args:
            target_velocity: Reference velocity (m/s)
            feedforward_acc: Reference acceleration (m/s^2)
            current_velocity: Measured or delay-predicted velocity (m/s)
            dt: Time step (s)
            return_metadata: If True, also return error and PID term breakdown

        Returns:
            Acceleration command, or a metadata dict when requested
        """
        current_vel_abs = abs(current_velocity)
        enable_integration = current_vel_abs > self.current_vel_threshold_pid_integrate
        error_vel = abs(target_velocity) - current_vel_abs
        error_vel_filtered = self.lpf_vel_error.filter(error_vel)

        pid_result = self.pid.update(error_vel_filtered, dt, enable_integration, return_metadata=True)
        acceleration = feedforward_acc + pid_result['output']

        if return_metadata:
            return {
                'acceleration': acceleration,
                'pid_output': pid_result['output'],
                'error_vel': error_vel,
                'error_vel_filtered': error_vel_filtered,
                'p_term': pid_result['p_term'],
                'i_term': pid_result['i_term'],
                'd_term': pid_result['d_term'],
                'integration_enabled': enable_integration,
            }
        return acceleration

    def reset(self, error_value: Optional[float] = None):
        """Drop integral, derivative and error-filter memory."""
        self.pid.reset()
        self.lpf_vel_error.reset(error_value)
