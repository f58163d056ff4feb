"""
Tests for the longitudinal vehicle model used in simulation.
"""

import pytest
from control.slope_compensation import GRAVITY
from control.vehicle_model import LongitudinalVehicleModel


def test_constant_acceleration_without_delay():
    vehicle = LongitudinalVehicleModel(delay=0.0, time_constant=0.0)
    for _ in range(100):
        vehicle.update(1.0, 0.01)
    assert vehicle.velocity == pytest.approx(1.0)
    assert vehicle.x == pytest.approx(0.5)


def test_dead_time_delays_response():
    vehicle = LongitudinalVehicleModel(delay=0.1, time_constant=0.0)
    for _ in range(5):
        vehicle.update(1.0, 0.01)
    assert vehicle.velocity == 0.0
    for _ in range(10):
        vehicle.update(1.0, 0.01)
    assert vehicle.velocity > 0.0


def test_braking_stops_without_reversing():
    vehicle = LongitudinalVehicleModel(delay=0.0, time_constant=0.0, velocity=1.0)
    for _ in range(100):
        vehicle.update(-3.0, 0.01)
    assert vehicle.velocity == 0.0
    assert vehicle.measured_acceleration == 0.0


def test_grade_held_at_standstill_while_braking():
    vehicle = LongitudinalVehicleModel(delay=0.0, time_constant=0.0, road_pitch=-0.1)
    for _ in range(100):
        vehicle.update(-0.5, 0.01)
    assert vehicle.velocity == 0.0


def test_uphill_grade_decelerates():
    vehicle = LongitudinalVehicleModel(delay=0.0, time_constant=0.0, road_pitch=0.05, velocity=5.0)
    _, _, acc = vehicle.update(0.0, 0.01)
    assert acc == pytest.approx(-GRAVITY * 0.0499792, rel=1e-4)
    assert vehicle.velocity < 5.0


def test_first_order_lag():
    vehicle = LongitudinalVehicleModel(delay=0.0, time_constant=0.5)
    vehicle.update(1.0, 0.1)
    assert vehicle.acceleration == pytest.approx(0.2)
