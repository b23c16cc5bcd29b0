from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from tests.conftest import write_pyproject

from drivesense.config import (
    AxisTriple,
    PipelineConfig,
    load_config_mapping,
    load_default_mapping,
    load_pipeline_config,
    load_project_config,
    merge_overrides,
)
from drivesense.samples import Perspective, SensorType


def test_packaged_defaults_match_dataclass_defaults() -> None:
    assert load_pipeline_config() == PipelineConfig()


def test_default_mapping_is_read_only() -> None:
    defaults = load_default_mapping()

    assert defaults["calibration"]["target_count"] == 30
    with pytest.raises(TypeError):
        defaults["calibration"] = {}  # type: ignore[index]


def test_default_values() -> None:
    config = load_pipeline_config()

    assert config.calibration.timeout_ms == 10_000
    assert config.conditioning.accelerometer.max_delta == AxisTriple(0.025, 0.025, 0.05)
    assert config.conditioning.gyroscope.max_delta == AxisTriple.uniform(0.3)
    road = config.conditioning.channel(SensorType.ACCELEROMETER, Perspective.ROAD)
    assert road.alpha == AxisTriple(0.05, 0.05, 0.1)
    assert road.max_delta == config.conditioning.accelerometer.max_delta
    assert config.disturbance.perspectives[Perspective.DRIVER].max_energy == 3.0
    assert config.disturbance.gyro[Perspective.VEHICLE].sensitivity_factor == 75.0
    assert config.vehicle.envelope.max_lateral == 0.9


def test_yaml_override_file(tmp_path: Path) -> None:
    override = tmp_path / "session.yaml"
    override.write_text(
        dedent(
            """
            calibration:
              target_count: 12
            conditioning:
              perspectives:
                driver:
                  accelerometer:
                    alpha: 0.5
            """
        ),
        encoding="utf8",
    )

    config = load_pipeline_config(override)

    assert config.calibration.target_count == 12
    assert config.calibration.timeout_ms == 10_000
    driver = config.conditioning.channel(SensorType.ACCELEROMETER, Perspective.DRIVER)
    assert driver.alpha == AxisTriple.uniform(0.5)


def test_toml_override_file(tmp_path: Path) -> None:
    override = tmp_path / "session.toml"
    override.write_text(
        dedent(
            """
            [disturbance.road]
            threshold = 0.1

            [vehicle.envelope]
            max_braking = 1.2
            """
        ),
        encoding="utf8",
    )

    config = load_pipeline_config(override)

    assert config.disturbance.perspectives[Perspective.ROAD].threshold == 0.1
    assert config.disturbance.perspectives[Perspective.ROAD].decay_factor == 0.95
    assert config.vehicle.envelope.max_braking == 1.2


def test_layers_merge_in_order(tmp_path: Path) -> None:
    write_pyproject(
        tmp_path,
        """
        [tool.drivesense.calibration]
        target_count = 40
        timeout_ms = 5000
        """,
    )
    override = tmp_path / "host.toml"
    override.write_text("[calibration]\ntarget_count = 20\n", encoding="utf8")

    config = load_pipeline_config(
        override,
        overrides={"calibration": {"strategy": "offset"}},
        project_root=tmp_path,
    )

    assert config.calibration.target_count == 20
    assert config.calibration.timeout_ms == 5000
    assert config.calibration.strategy == "offset"


def test_overrides_win_over_files(tmp_path: Path) -> None:
    override = tmp_path / "host.yaml"
    override.write_text("use_calibration: false\n", encoding="utf8")

    config = load_pipeline_config(override, overrides={"use_calibration": True})

    assert config.use_calibration is True


def test_project_config_requires_tool_table(tmp_path: Path) -> None:
    write_pyproject(tmp_path, '[project]\nname = "host"\n')

    assert load_project_config(tmp_path) is None
    assert load_project_config(tmp_path / "missing") is None


def test_search_paths_pick_first_existing_file(tmp_path: Path) -> None:
    second = tmp_path / "second.yaml"
    second.write_text("calibration:\n  target_count: 7\n", encoding="utf8")

    config = load_pipeline_config(search_paths=[tmp_path / "first.yaml", second])

    assert config.calibration.target_count == 7


def test_missing_override_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_pipeline_config(tmp_path / "absent.toml")


def test_invalid_files_raise(tmp_path: Path) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("[calibration\n", encoding="utf8")
    listing = tmp_path / "listing.yaml"
    listing.write_text("- 1\n- 2\n", encoding="utf8")
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf8")

    with pytest.raises(ValueError):
        load_config_mapping(broken)
    with pytest.raises(TypeError):
        load_config_mapping(listing)
    assert dict(load_config_mapping(empty)) == {}


@pytest.mark.parametrize(
    "overrides",
    [
        {"conditioning": {"accelerometer": {"alpha": 1.5}}},
        {"conditioning": {"gyroscope": {"max_delta": {"x": -0.1}}}},
        {"calibration": {"strategy": "sideways"}},
        {"disturbance": {"road": {"decay_factor": 2.0}}},
        {"vehicle": {"envelope": {"max_lateral": 0.0}}},
        {"disturbance": {"max_gap_s": "soon"}},
        {"conditioning": {"filtering_enabled": "false"}},
        {"vehicle": {"use_external_speed": 0}},
        {"use_calibration": "no"},
    ],
)
def test_invalid_values_are_rejected(overrides: dict) -> None:
    with pytest.raises(ValueError):
        load_pipeline_config(overrides=overrides)


def test_merge_overrides_is_deep_and_non_destructive() -> None:
    base = {"calibration": {"target_count": 30, "timeout_ms": 10_000}}
    layer = {"calibration": {"target_count": 10}, "use_calibration": False}

    merged = merge_overrides(base, None, layer)

    assert merged["calibration"] == {"target_count": 10, "timeout_ms": 10_000}
    assert merged["use_calibration"] is False
    assert base["calibration"]["target_count"] == 30
