"""
Longitudinal control stack driver.
Loads the configuration, wires the longitudinal controller to a simulated
vehicle and runs a closed-loop approach to a stop point.
"""

import json
import logging
import math
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import yaml

# Add paths
sys.path.insert(0, str(Path(__file__).parent))

from control.config import build_longitudinal_config
from control.longitudinal_controller import LongitudinalController
from control.state_machine import ControlState
from control.vehicle_model import LongitudinalVehicleModel
from data.formats.data_format import AccelerationReport, Odometry, Pose, Trajectory, TrajectoryPoint
from trajectory.utils import quaternion_from_yaw_pitch

# Configure logging
# Ensure tmp/logs directory exists
log_dir = Path(__file__).parent / 'tmp' / 'logs'
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / 'av_stack.log'

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(str(log_file))
    ]
)
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "longitudinal_controller.yaml"


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file or use defaults.

    A missing default file falls back to built-in defaults; a missing file
    that was asked for explicitly is an error.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
        if not config_path.exists():
            logger.warning(f"Config file not found at {config_path}, using defaults")
            return {}
    else:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}
    logger.info(f"Loaded configuration from {config_path}")
    return config


def make_stop_trajectory(stop_distance: float, cruise_velocity: float, decel: float = 1.0,
                         spacing: float = 0.5, road_pitch: float = 0.0,
                         extension: float = 10.0, timestamp: float = 0.0) -> Trajectory:
    """
    Straight trajectory along +x that cruises and then decelerates to a stop.

    Velocity follows min(cruise, sqrt(2 * decel * remaining)) with a
    feedforward of -decel inside the braking zone. Points past the stop point
    have zero velocity.

    Args:
        stop_distance: Position of the stop point (m)
        cruise_velocity: Velocity before the braking zone (m/s)
        decel: Planned deceleration magnitude (m/s^2)
        spacing: Distance between points (m)
        road_pitch: Road grade, positive uphill (rad)
        extension: Length of the zero-velocity tail past the stop point (m)
        timestamp: Trajectory timestamp (s)
    """
    num_points = int(math.floor((stop_distance + extension) / spacing)) + 1
    points: List[TrajectoryPoint] = []
    for s in np.linspace(0.0, spacing * (num_points - 1), num_points):
        remaining = stop_distance - s
        if remaining <= 1e-9:
            velocity, acceleration = 0.0, 0.0
        else:
            braking_velocity = math.sqrt(2.0 * decel * remaining)
            if braking_velocity < cruise_velocity:
                velocity, acceleration = braking_velocity, -decel
            else:
                velocity, acceleration = cruise_velocity, 0.0
        points.append(TrajectoryPoint(
            x=float(s), y=0.0, heading=0.0, velocity=velocity,
            acceleration=acceleration, z=float(s) * math.tan(road_pitch),
        ))
    return Trajectory(timestamp=timestamp, points=points)


class LongitudinalStack:
    """Closed loop: longitudinal controller driving the vehicle model."""

    def __init__(self, config_path: Optional[str] = None, config: Optional[dict] = None):
        """
        Initialize stack.

        Args:
            config_path: YAML config path (default: config/longitudinal_controller.yaml)
            config: Already loaded config dict; takes precedence over config_path
        """
        self.config = config if config is not None else load_config(config_path)
        control_cfg = self.config.get('control', {}) or {}
        self.controller_config = build_longitudinal_config(control_cfg.get('longitudinal', {}))
        self.controller = LongitudinalController(self.controller_config)
        self.sim_cfg = self.config.get('simulation', {}) or {}
        self.vehicle: Optional[LongitudinalVehicleModel] = None
        self.history: List[dict] = []

    def run(self, stop_distance: Optional[float] = None, cruise_velocity: Optional[float] = None,
            duration: Optional[float] = None, road_pitch: Optional[float] = None) -> dict:
        """
        Simulate an approach to a stop point.

        Returns:
            Summary of the run (final state, velocity, stop error, peak jerk)
        """
        sim = self.sim_cfg
        stop_distance = float(stop_distance if stop_distance is not None else sim.get('stop_distance', 40.0))
        cruise_velocity = float(cruise_velocity if cruise_velocity is not None else sim.get('cruise_velocity', 5.0))
        duration = float(duration if duration is not None else sim.get('duration', 30.0))
        road_pitch = float(road_pitch if road_pitch is not None else sim.get('road_pitch', 0.0))
        dt = self.controller_config.longitudinal_ctrl_period

        self.controller.reset()
        self.history = []
        self.vehicle = LongitudinalVehicleModel(
            delay=float(sim.get('actuation_delay', 0.1)),
            time_constant=float(sim.get('time_constant', 0.1)),
            road_pitch=road_pitch,
        )
        trajectory = make_stop_trajectory(
            stop_distance, cruise_velocity,
            decel=float(sim.get('planned_decel', 1.0)),
            spacing=float(sim.get('point_spacing', 0.5)),
            road_pitch=road_pitch,
        )
        self.controller.set_trajectory(trajectory)
        orientation = quaternion_from_yaw_pitch(0.0, -road_pitch)

        logger.info(
            f"[SIM] Approaching stop at {stop_distance:.1f} m from {cruise_velocity:.1f} m/s "
            f"(pitch={road_pitch:.3f} rad, {duration:.1f} s)"
        )

        num_steps = int(round(duration / dt))
        prev_acc_cmd = 0.0
        max_jerk = 0.0
        states_visited = [self.controller.control_state.name]
        for step in range(num_steps):
            t = step * dt
            x = self.vehicle.x
            pose = Pose(position=np.array([x, 0.0, x * math.tan(road_pitch)]), orientation=orientation)
            self.controller.set_odometry(Odometry(timestamp=t, pose=pose, velocity=self.vehicle.velocity))
            self.controller.set_acceleration(AccelerationReport(timestamp=t, acceleration=self.vehicle.measured_acceleration))

            output = self.controller.run(t)
            acc_cmd = output.command.acceleration
            if step > 0:
                max_jerk = max(max_jerk, abs(acc_cmd - prev_acc_cmd) / dt)
            prev_acc_cmd = acc_cmd

            state = self.controller.control_state.name
            if state != states_visited[-1]:
                states_visited.append(state)
            self.history.append({
                't': t, 'x': x, 'velocity': self.vehicle.velocity,
                'acc_cmd': acc_cmd, 'vel_cmd': output.command.velocity, 'state': state,
            })
            self.vehicle.update(acc_cmd, dt)

        summary = {
            'final_state': self.controller.control_state.name,
            'final_position': self.vehicle.x,
            'final_velocity': self.vehicle.velocity,
            'stop_error': self.vehicle.x - stop_distance,
            'max_jerk': max_jerk,
            'states_visited': states_visited,
            'emergency': ControlState.EMERGENCY.name in states_visited,
            'steps': num_steps,
        }
        logger.info(
            f"[SIM] Done: state={summary['final_state']}, v={summary['final_velocity']:.3f} m/s, "
            f"stop_error={summary['stop_error']:+.3f} m, max_jerk={max_jerk:.2f} m/s^3"
        )
        return summary


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description='Run longitudinal control stop simulation')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to configuration YAML file (default: config/longitudinal_controller.yaml)')
    parser.add_argument('--stop-distance', type=float, default=None,
                        help='Distance to the stop point (m)')
    parser.add_argument('--cruise-speed', type=float, default=None,
                        help='Cruise velocity before braking (m/s)')
    parser.add_argument('--duration', type=float, default=None,
                        help='Simulated time (s)')
    parser.add_argument('--road-pitch', type=float, default=None,
                        help='Road grade, positive uphill (rad)')
    parser.add_argument('--summary-json', type=str, default=None,
                        help='Write the run summary to this JSON file')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')

    args = parser.parse_args()
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    stack = LongitudinalStack(config_path=args.config)
    summary = stack.run(
        stop_distance=args.stop_distance,
        cruise_velocity=args.cruise_speed,
        duration=args.duration,
        road_pitch=args.road_pitch,
    )

    if args.summary_json:
        with open(args.summary_json, 'w') as f:
            json.dump(summary, f, indent=2)
        logger.info(f"Summary written to {args.summary_json}")

    return 1 if summary['emergency'] else 0


if __name__ == "__main__":
    sys.exit(main())
