"""
Tests for trajectory geometry helpers.
"""

import math

import numpy as np
import pytest

from data.formats.data_format import Pose, Trajectory, TrajectoryPoint
from trajectory.utils import (
    calc_arc_length,
    calc_interpolated_point,
    calc_pitch_by_trajectory,
    calc_position_after_time_delay,
    calc_signed_arc_length,
    calc_stop_distance,
    find_nearest_index,
    is_valid_trajectory,
    normalize_angle,
    pitch_from_quaternion,
    quaternion_from_yaw_pitch,
    road_pitch_from_pose,
    search_zero_velocity_index,
    yaw_from_quaternion,
)


def line(num_points=11, velocity=2.0, spacing=1.0):
    return [TrajectoryPoint(x=i * spacing, y=0.0, heading=0.0, velocity=velocity, acceleration=0.1 * i)
            for i in range(num_points)]


def test_normalize_angle():
    assert normalize_angle(3 * math.pi) == pytest.approx(math.pi)
    assert normalize_angle(-0.5) == pytest.approx(-0.5)


def test_quaternion_round_trip_angles():
    q = quaternion_from_yaw_pitch(0.7, 0.1)
    assert yaw_from_quaternion(q) == pytest.approx(0.7)
    assert pitch_from_quaternion(q) == pytest.approx(0.1)


def test_road_pitch_positive_uphill():
    """Nose-up pose (negative quaternion pitch) is an uphill grade."""
    pose = Pose(position=np.zeros(3), orientation=quaternion_from_yaw_pitch(0.0, -0.05))
    assert road_pitch_from_pose(pose) == pytest.approx(0.05)


def test_is_valid_trajectory():
    assert is_valid_trajectory(Trajectory(0.0, line()))
    assert not is_valid_trajectory(Trajectory(0.0, line(num_points=1)))
    points = line()
    points[2].x = float('inf')
    assert not is_valid_trajectory(Trajectory(0.0, points))


def test_find_nearest_index_with_tolerances():
    points = line()
    assert find_nearest_index(points, [3.4, 0.2], 0.0, 3.0, 1.046) == 3
    assert find_nearest_index(points, [3.4, 5.0], 0.0, 3.0, 1.046) is None
    assert find_nearest_index(points, [3.4, 0.0], math.pi, 3.0, 1.046) is None
    assert find_nearest_index([], [0.0, 0.0], 0.0, 3.0, 1.046) is None


def test_arc_lengths():
    points = line()
    assert calc_arc_length(points, 2, 7) == pytest.approx(5.0)
    assert calc_arc_length(points, 7, 2) == pytest.approx(-5.0)
    assert calc_signed_arc_length(points, [2.5, 0.3], 7) == pytest.approx(4.5)
    assert calc_signed_arc_length(points, [8.5, 0.0], 7) == pytest.approx(-1.5)


def test_stop_distance():
    points = line()
    for p in points[6:]:
        p.velocity = 0.0
    assert search_zero_velocity_index(points) == 6
    assert calc_stop_distance(points, [1.5, 0.0]) == pytest.approx(4.5)
    assert calc_stop_distance(points, [1.5, 0.0], offset=1.0) == pytest.approx(3.5)
    assert calc_stop_distance(points[:1], [1.5, 0.0]) == 0.0


def test_stop_distance_beyond_trajectory_end():
    points = line()
    assert calc_stop_distance(points, [12.0, 0.0]) == pytest.approx(-2.0)


def test_interpolated_point():
    points = line()
    p = calc_interpolated_point(points, [2.25, 0.5])
    assert p.x == pytest.approx(2.25)
    assert p.acceleration == pytest.approx(0.225)
    assert p.velocity == pytest.approx(2.0)


def test_interpolated_point_beyond_ends():
    points = line()
    assert calc_interpolated_point(points, [-3.0, 0.0]) is points[0]
    assert calc_interpolated_point(points, [15.0, 0.0]) is points[-1]


def test_pitch_by_trajectory():
    points = [TrajectoryPoint(x=float(i), y=0.0, heading=0.0, velocity=1.0, z=0.1 * i) for i in range(10)]
    assert calc_pitch_by_trajectory(points, 0, 2.5) == pytest.approx(math.atan(0.1))
    # near the goal the last wheelbase span is used
    assert calc_pitch_by_trajectory(points, 8, 2.5) == pytest.approx(math.atan(0.1))
    assert calc_pitch_by_trajectory(points[:1], 0, 2.5) == 0.0


def test_position_after_time_delay():
    x, y = calc_position_after_time_delay([1.0, 2.0, 0.0], math.pi / 2, 0.5, 4.0)
    assert x == pytest.approx(1.0)
    assert y == pytest.approx(4.0)
