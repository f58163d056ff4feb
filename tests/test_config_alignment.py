"""
Config alignment tests. No av_stack import; uses yaml directly.
Ensures the shipped YAML, the builder and the dataclass defaults agree.
"""

import pytest
import yaml
from pathlib import Path

from control.config import LongitudinalControllerConfig, build_longitudinal_config

project_root = Path(__file__).parent.parent
CONFIG_PATH = project_root / 'config' / 'longitudinal_controller.yaml'


def _load_config() -> dict:
    if not CONFIG_PATH.exists():
        return {}
    with open(CONFIG_PATH, 'r') as f:
        return yaml.safe_load(f) or {}


def _longitudinal_section() -> dict:
    config = _load_config()
    if not config:
        pytest.skip('longitudinal_controller.yaml not found')
    return config.get('control', {}).get('longitudinal', {})


class TestYamlMatchesDefaults:
    """The shipped YAML reproduces the built-in defaults."""

    def test_yaml_builds_default_config(self):
        assert build_longitudinal_config(_longitudinal_section()) == LongitudinalControllerConfig()

    def test_empty_section_builds_default_config(self):
        assert build_longitudinal_config({}) == LongitudinalControllerConfig()
        assert build_longitudinal_config(None) == LongitudinalControllerConfig()

    def test_every_yaml_key_is_read(self):
        """Changing any key in the YAML changes the built config."""
        section = _longitudinal_section()
        default = build_longitudinal_config(section)
        for key, value in section.items():
            changed = dict(section)
            changed[key] = (not value) if isinstance(value, bool) else float(value) + 0.123
            assert build_longitudinal_config(changed) != default, f'{key} is not read by the builder'

    def test_default_config_is_valid(self):
        build_longitudinal_config(_longitudinal_section()).validate()


class TestSimulationAlignment:
    """Simulation scenario stays inside the controller limits."""

    def test_planned_decel_within_limits(self):
        config = _load_config()
        if not config:
            pytest.skip('longitudinal_controller.yaml not found')
        long_cfg = config.get('control', {}).get('longitudinal', {})
        sim_cfg = config.get('simulation', {})
        planned_decel = float(sim_cfg.get('planned_decel', 1.0))
        min_acc = float(long_cfg.get('min_acc', -5.0))
        assert planned_decel <= -min_acc, f'planned_decel {planned_decel} exceeds |min_acc| {-min_acc}'

    def test_point_spacing_within_nearest_search(self):
        config = _load_config()
        if not config:
            pytest.skip('longitudinal_controller.yaml not found')
        long_cfg = config.get('control', {}).get('longitudinal', {})
        spacing = float(config.get('simulation', {}).get('point_spacing', 0.5))
        assert spacing < float(long_cfg.get('ego_nearest_dist_threshold', 3.0))
