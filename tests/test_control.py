"""
Tests for the velocity feedback building blocks: low-pass filter and PID.
"""

import pytest
from control.lowpass_filter import LowpassFilter1d
from control.pid_controller import PIDController, PIDParams, VelocityFeedbackController


def test_lowpass_first_sample_initializes():
    """First sample passes through unfiltered."""
    lpf = LowpassFilter1d(gain=0.9)
    assert lpf.value is None
    assert lpf.filter(2.0) == pytest.approx(2.0)
    assert lpf.filter(0.0) == pytest.approx(1.8)


def test_lowpass_reset_rearms_initialization():
    lpf = LowpassFilter1d(gain=0.5, initial_value=1.0)
    assert lpf.filter(3.0) == pytest.approx(2.0)
    lpf.reset()
    assert lpf.filter(5.0) == pytest.approx(5.0)


def test_pid_controller():
    """Test PID controller."""
    pid = PIDController(PIDParams(kp=1.0, ki=0.1, kd=0.5, max_d_effort=1.0, min_d_effort=-1.0))

    # Test step response
    output = pid.update(1.0, dt=0.1)

    assert output is not None
    assert -1.0 <= output <= 1.0


def test_pid_terms_clipped_individually():
    """P term saturates at its own effort limit before the output limit."""
    params = PIDParams(kp=2.0, ki=0.0, kd=0.0, max_out=5.0, min_out=-5.0,
                       max_p_effort=1.0, min_p_effort=-1.0)
    pid = PIDController(params)
    meta = pid.update(3.0, dt=0.03, return_metadata=True)
    assert meta['p_term'] == pytest.approx(1.0)
    assert meta['output'] == pytest.approx(1.0)

    meta = pid.update(-3.0, dt=0.03, return_metadata=True)
    assert meta['p_term'] == pytest.approx(-1.0)


def test_pid_integral_bounded_by_effort():
    """Integral accumulation cannot push ki * integral past the I-effort limits."""
    pid = PIDController(PIDParams(kp=0.0, ki=0.1, max_i_effort=0.3, min_i_effort=-0.3))
    for _ in range(1000):
        meta = pid.update(10.0, dt=0.1, return_metadata=True)
    assert meta['i_term'] == pytest.approx(0.3)
    assert pid.integral == pytest.approx(3.0)

    # unwinds immediately once the error reverses
    meta = pid.update(-1.0, dt=0.1, return_metadata=True)
    assert meta['i_term'] < 0.3


def test_pid_integration_disabled_keeps_integral():
    pid = PIDController(PIDParams(kp=0.0, ki=1.0))
    pid.update(1.0, dt=0.1)
    integral = pid.integral
    pid.update(1.0, dt=0.1, enable_integration=False)
    assert pid.integral == pytest.approx(integral)


def test_pid_derivative_zero_on_first_call_and_tiny_dt():
    params = PIDParams(kp=0.0, ki=0.0, kd=1.0, max_d_effort=10.0, min_d_effort=-10.0,
                       max_out=10.0, min_out=-10.0)
    pid = PIDController(params)
    assert pid.update(1.0, dt=0.1, return_metadata=True)['d_term'] == 0.0
    assert pid.update(2.0, dt=1e-9, return_metadata=True)['d_term'] == 0.0
    assert pid.update(3.0, dt=0.1, return_metadata=True)['d_term'] == pytest.approx(10.0)


def test_pid_reset():
    pid = PIDController(PIDParams())
    pid.update(1.0, dt=0.1)
    pid.reset()
    assert pid.integral == 0.0
    assert pid.prev_error == 0.0


class TestVelocityFeedbackController:
    """Feedforward plus PID on the filtered velocity error."""

    def test_zero_error_returns_feedforward(self):
        controller = VelocityFeedbackController(PIDParams())
        acc = controller.update(target_velocity=10.0, feedforward_acc=0.0, current_velocity=10.0, dt=0.03)
        assert acc == pytest.approx(0.0)

        acc = controller.update(target_velocity=10.0, feedforward_acc=-0.4, current_velocity=10.0, dt=0.03)
        assert acc == pytest.approx(-0.4)

    def test_error_uses_speed_magnitudes(self):
        """Reverse driving uses |target| - |current| like forward driving."""
        controller = VelocityFeedbackController(PIDParams(ki=0.0))
        meta = controller.update(target_velocity=-2.0, feedforward_acc=0.0, current_velocity=-1.5,
                                 dt=0.03, return_metadata=True)
        assert meta['error_vel'] == pytest.approx(0.5)
        assert meta['acceleration'] == pytest.approx(0.5)

    def test_integration_gated_by_current_speed(self):
        controller = VelocityFeedbackController(PIDParams(), current_vel_threshold_pid_integrate=0.5)
        meta = controller.update(1.0, 0.0, 0.3, dt=0.03, return_metadata=True)
        assert meta['integration_enabled'] is False
        assert controller.pid.integral == 0.0

        meta = controller.update(1.0, 0.0, 0.6, dt=0.03, return_metadata=True)
        assert meta['integration_enabled'] is True
        assert controller.pid.integral > 0.0

    def test_error_is_low_pass_filtered(self):
        controller = VelocityFeedbackController(PIDParams(), lpf_vel_error_gain=0.9)
        controller.update(10.0, 0.0, 10.0, dt=0.03)
        meta = controller.update(11.0, 0.0, 10.0, dt=0.03, return_metadata=True)
        assert meta['error_vel'] == pytest.approx(1.0)
        assert meta['error_vel_filtered'] == pytest.approx(0.1)

    def test_reset_clears_filter_and_integral(self):
        controller = VelocityFeedbackController(PIDParams())
        for _ in range(10):
            controller.update(5.0, 0.0, 4.0, dt=0.03)
        controller.reset()
        assert controller.pid.integral == 0.0
        meta = controller.update(5.0, 0.0, 3.0, dt=0.03, return_metadata=True)
        assert meta['error_vel_filtered'] == pytest.approx(2.0)
