"""
Tests for actuation delay compensation.
"""

import pytest
from control.control_data import Motion
from control.delay_compensation import CommandHistory, predict_velocity_in_target_point

DELAY = 0.17
PERIOD = 0.03


def filled_history(acc, now, delay=DELAY, period=PERIOD):
    """History of a constant command issued every period up to now."""
    history = CommandHistory(delay, period)
    t = now - 1.0
    while t <= now + 1e-9:
        history.append(t, acc)
        history.evict(t)
        t += period
    return history


def test_history_capacity_from_period():
    history = CommandHistory(0.17, 0.03)
    # dt is at least half a period: ceil(0.17 / 0.015) + 2
    assert history.maxlen == 14


def test_evict_keeps_entry_straddling_window_start():
    history = CommandHistory(horizon=0.1, control_period=0.03)
    for t in (0.0, 0.03, 0.06, 0.09, 0.12):
        history.append(t, 1.0)
    history.evict(now=0.12)
    stamps = [r.timestamp for r in history]
    # window starts at 0.02: 0.0 still covers [0.02, 0.03)
    assert stamps[0] == pytest.approx(0.0)

    history.evict(now=0.15)
    stamps = [r.timestamp for r in history]
    assert stamps[0] == pytest.approx(0.03)
    assert stamps[0] <= 0.15 - 0.1 < stamps[1]


def test_low_velocity_returns_current():
    history = filled_history(1.0, now=5.0)
    motion = Motion(velocity=0.05, acceleration=1.0)
    assert predict_velocity_in_target_point(motion, history, DELAY, now=5.0) == pytest.approx(0.05)


def test_empty_history_uses_current_acceleration():
    history = CommandHistory(DELAY, PERIOD)
    motion = Motion(velocity=5.0, acceleration=-1.0)
    assert predict_velocity_in_target_point(motion, history, DELAY, now=1.0) == pytest.approx(5.0 - DELAY)


def test_constant_command_integrates_over_delay():
    history = filled_history(-0.5, now=5.0)
    motion = Motion(velocity=5.0, acceleration=0.0)
    pred = predict_velocity_in_target_point(motion, history, DELAY, now=5.0)
    assert pred == pytest.approx(5.0 - 0.5 * DELAY)


def test_short_history_extends_oldest_command():
    history = CommandHistory(DELAY, PERIOD)
    history.append(4.97, 1.0)
    history.append(5.0, 1.0)
    motion = Motion(velocity=5.0, acceleration=0.0)
    pred = predict_velocity_in_target_point(motion, history, DELAY, now=5.0)
    assert pred == pytest.approx(5.0 + DELAY)


def test_piecewise_commands():
    history = CommandHistory(horizon=0.2, control_period=0.1)
    history.append(0.8, 1.0)
    history.append(0.9, -1.0)
    history.append(1.0, 2.0)
    motion = Motion(velocity=3.0, acceleration=0.0)
    # [0.8, 0.9) at +1, [0.9, 1.0) at -1, command at 1.0 not yet applied
    pred = predict_velocity_in_target_point(motion, history, 0.2, now=1.0)
    assert pred == pytest.approx(3.0)


def test_prediction_never_flips_sign():
    history = filled_history(-5.0, now=5.0, delay=1.0)
    motion = Motion(velocity=1.0, acceleration=-5.0)
    assert predict_velocity_in_target_point(motion, history, 1.0, now=5.0) == 0.0

    # braking while reversing slows the vehicle down, it does not make it go forward
    motion = Motion(velocity=-1.0, acceleration=0.0)
    history = filled_history(-5.0, now=5.0, delay=1.0)
    assert predict_velocity_in_target_point(motion, history, 1.0, now=5.0) == 0.0


def test_reverse_commands_act_on_speed():
    """Positive commands speed the vehicle up in its driving direction."""
    history = filled_history(0.5, now=5.0)
    motion = Motion(velocity=-5.0, acceleration=0.0)
    pred_vel = predict_velocity_in_target_point(motion, history, DELAY, now=5.0)
    assert pred_vel == pytest.approx(-(5.0 + 0.5 * DELAY))

    history = filled_history(-0.5, now=5.0)
    pred_vel = predict_velocity_in_target_point(motion, history, DELAY, now=5.0)
    assert pred_vel == pytest.approx(-(5.0 - 0.5 * DELAY))


def test_reverse_without_history_uses_measured_acceleration():
    motion = Motion(velocity=-2.0, acceleration=-1.0)
    pred_vel = predict_velocity_in_target_point(motion, CommandHistory(DELAY, PERIOD), DELAY, now=5.0)
    assert pred_vel == pytest.approx(-2.0 - DELAY)


def test_clear():
    history = filled_history(1.0, now=5.0)
    history.clear()
    assert len(history) == 0
