"""
Pose and trajectory geometry used by the longitudinal controller.

Positions are planar for distance and heading computations; the z coordinate
is only used for the trajectory elevation angle.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from data.formats.data_format import Pose, Trajectory, TrajectoryPoint


ZERO_VELOCITY_EPSILON = 1e-3


def normalize_angle(angle: float) -> float:
    """Wrap an angle to [-pi, pi]."""
    return float(np.arctan2(np.sin(angle), np.cos(angle)))


def yaw_from_quaternion(q: Sequence[float]) -> float:
    """Yaw (rotation about z) of an [x, y, z, w] quaternion."""
    x, y, z, w = (float(v) for v in q)
    return math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))


def pitch_from_quaternion(q: Sequence[float]) -> float:
    """Pitch (rotation about y) of an [x, y, z, w] quaternion.

    Right-handed convention: a positive value points the nose down.
    """
    x, y, z, w = (float(v) for v in q)
    sinp = 2.0 * (w * y - z * x)
    sinp = max(-1.0, min(1.0, sinp))
    return math.asin(sinp)


def quaternion_from_yaw_pitch(yaw: float, pitch: float = 0.0) -> np.ndarray:
    """Build an [x, y, z, w] quaternion from yaw and pitch (zero roll)."""
    cy, sy = math.cos(yaw * 0.5), math.sin(yaw * 0.5)
    cp, sp = math.cos(pitch * 0.5), math.sin(pitch * 0.5)
    return np.array([-sy * sp, cy * sp, sy * cp, cy * cp])


def road_pitch_from_pose(pose: Pose) -> float:
    """Road grade seen from the vehicle pose, positive uphill."""
    return -pitch_from_quaternion(pose.orientation)


def _xy(points: Sequence[TrajectoryPoint]) -> np.ndarray:
    return np.array([[p.x, p.y] for p in points], dtype=float).reshape(-1, 2)


def is_valid_trajectory(trajectory: Trajectory) -> bool:
    """A usable trajectory has at least two points with finite values."""
    if trajectory is None or len(trajectory.points) < 2:
        return False
    for p in trajectory.points:
        values = (p.x, p.y, p.z, p.heading, p.velocity, p.acceleration)
        if not all(math.isfinite(float(v)) for v in values):
            return False
    return True


def find_nearest_index(
    points: Sequence[TrajectoryPoint],
    position: Sequence[float],
    yaw: float,
    max_dist: float,
    max_yaw: float,
) -> Optional[int]:
    """Index of the closest point within distance and heading tolerances."""
    if len(points) == 0:
        return None
    xy = _xy(points)
    d2 = np.sum((xy - np.asarray(position[:2], dtype=float)) ** 2, axis=1)
    headings = np.array([p.heading for p in points], dtype=float)
    yaw_dev = np.abs(np.arctan2(np.sin(headings - yaw), np.cos(headings - yaw)))
    valid = (d2 <= max_dist ** 2) & (yaw_dev <= max_yaw)
    if not np.any(valid):
        return None
    d2 = np.where(valid, d2, np.inf)
    return int(np.argmin(d2))


def find_nearest_segment_index(points: Sequence[TrajectoryPoint], position: Sequence[float]) -> int:
    """Index i of the segment [i, i + 1] the position projects onto."""
    xy = _xy(points)
    nearest = int(np.argmin(np.sum((xy - np.asarray(position[:2], dtype=float)) ** 2, axis=1)))
    if nearest == 0:
        return 0
    if nearest == len(points) - 1:
        return len(points) - 2
    if calc_longitudinal_offset_to_segment(points, nearest, position) <= 0.0:
        return nearest - 1
    return nearest


def calc_longitudinal_offset_to_segment(
    points: Sequence[TrajectoryPoint], seg_idx: int, position: Sequence[float]
) -> float:
    """Signed distance from points[seg_idx] to the projection of position on the segment."""
    p0 = np.array([points[seg_idx].x, points[seg_idx].y])
    p1 = np.array([points[seg_idx + 1].x, points[seg_idx + 1].y])
    segment = p1 - p0
    length = float(np.linalg.norm(segment))
    if length < 1e-9:
        return 0.0
    return float(np.dot(np.asarray(position[:2], dtype=float) - p0, segment) / length)


def calc_arc_length(points: Sequence[TrajectoryPoint], src_idx: int, dst_idx: int) -> float:
    """Signed arc length between two trajectory indices."""
    if src_idx > dst_idx:
        return -calc_arc_length(points, dst_idx, src_idx)
    xy = _xy(points[src_idx:dst_idx + 1])
    if len(xy) < 2:
        return 0.0
    return float(np.sum(np.hypot(*np.diff(xy, axis=0).T)))


def calc_signed_arc_length(
    points: Sequence[TrajectoryPoint], position: Sequence[float], dst_idx: int
) -> float:
    """Arc length from the projection of position to points[dst_idx], positive ahead."""
    if len(points) < 2:
        return 0.0
    seg_idx = find_nearest_segment_index(points, position)
    offset = calc_longitudinal_offset_to_segment(points, seg_idx, position)
    return calc_arc_length(points, seg_idx, dst_idx) - offset


def search_zero_velocity_index(points: Sequence[TrajectoryPoint]) -> Optional[int]:
    """First index whose target velocity is zero."""
    for i, p in enumerate(points):
        if abs(p.velocity) < ZERO_VELOCITY_EPSILON:
            return i
    return None


def calc_stop_distance(
    points: Sequence[TrajectoryPoint], position: Sequence[float], offset: float = 0.0
) -> float:
    """Signed distance to the stop point (or trajectory end), positive before it."""
    if len(points) < 2:
        return 0.0
    stop_idx = search_zero_velocity_index(points)
    end_idx = stop_idx if stop_idx is not None else len(points) - 1
    signed_length = calc_signed_arc_length(points, position, end_idx)
    if not math.isfinite(signed_length):
        return 0.0
    return signed_length - offset


def calc_interpolated_point(
    points: Sequence[TrajectoryPoint], position: Sequence[float]
) -> TrajectoryPoint:
    """Trajectory point linearly interpolated at the projection of position.

    Beyond either end of the trajectory the end point is returned.
    """
    if len(points) == 1:
        return points[0]
    front = points[0]
    if calc_longitudinal_offset_to_segment(points, 0, position) < 0.0:
        return front
    back = points[-1]
    last_seg = len(points) - 2
    seg_len = calc_arc_length(points, last_seg, last_seg + 1)
    if calc_longitudinal_offset_to_segment(points, last_seg, position) > seg_len:
        return back

    seg_idx = find_nearest_segment_index(points, position)
    seg_len = calc_arc_length(points, seg_idx, seg_idx + 1)
    offset = calc_longitudinal_offset_to_segment(points, seg_idx, position)
    ratio = 0.0 if seg_len < 1e-9 else min(1.0, max(0.0, offset / seg_len))
    a, b = points[seg_idx], points[seg_idx + 1]

    def lerp(u: float, v: float) -> float:
        return u + (v - u) * ratio

    return TrajectoryPoint(
        x=lerp(a.x, b.x),
        y=lerp(a.y, b.y),
        z=lerp(a.z, b.z),
        heading=a.heading + normalize_angle(b.heading - a.heading) * ratio,
        velocity=lerp(a.velocity, b.velocity),
        acceleration=lerp(a.acceleration, b.acceleration),
    )


def calc_elevation_angle(p_from: TrajectoryPoint, p_to: TrajectoryPoint) -> float:
    """Elevation angle between two points, positive uphill."""
    dz = p_to.z - p_from.z
    dxy = math.hypot(p_to.x - p_from.x, p_to.y - p_from.y)
    return math.atan2(dz, dxy)


def calc_pitch_by_trajectory(
    points: Sequence[TrajectoryPoint], nearest_idx: int, wheel_base: float
) -> float:
    """Road pitch between the nearest point and the point one wheelbase ahead."""
    if len(points) <= 1:
        return 0.0
    origin = points[nearest_idx]
    for i in range(nearest_idx + 1, len(points)):
        if math.hypot(points[i].x - origin.x, points[i].y - origin.y) > wheel_base:
            return calc_elevation_angle(origin, points[i])

    # close to the goal: use the last wheelbase-long stretch
    goal = points[-1]
    for i in range(len(points) - 1, 0, -1):
        if math.hypot(goal.x - points[i].x, goal.y - points[i].y) > wheel_base:
            return calc_elevation_angle(points[i], goal)
    return 0.0


def calc_position_after_time_delay(
    position: Sequence[float], yaw: float, delay_time: float, current_vel: float
) -> Tuple[float, float]:
    """Planar position reached after driving delay_time at current_vel along yaw."""
    travel = current_vel * delay_time
    return (
        float(position[0]) + travel * math.cos(yaw),
        float(position[1]) + travel * math.sin(yaw),
    )
