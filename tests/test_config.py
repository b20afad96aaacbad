import copy
from pathlib import Path

import pytest
import yaml

from riskgate.config_models import ScoringConfig
from riskgate.models import SignalType
from riskgate.validate import ConfigError, load_config, load_yaml, validate_file

from conftest import RAW_CONFIG, ROOT, build_config


def test_repo_config_valid():
    cfg = ScoringConfig.model_validate(load_yaml(ROOT / "config" / "scoring.yaml"))
    assert cfg.signal(SignalType.R1).use_jump_gate is True
    assert cfg.surge_r.thresholds.orange == 2.75
    assert [tier.max_event_count7 for tier in cfg.surge_r.baseline_tiers] == [500, 2000]


def test_defaults_fill_missing_sections():
    cfg = ScoringConfig.model_validate({})
    assert cfg.event_count_floor == 100
    assert cfg.safety.min_output_countries == 200
    assert cfg.weekly.retention_weeks == 260
    assert set(cfg.signals) == {SignalType.R1, SignalType.R2, SignalType.R3, SignalType.R4}


def test_missing_signal_type_rejected():
    payload = copy.deepcopy(RAW_CONFIG)
    del payload["signals"]["R4"]
    with pytest.raises(ValueError):
        ScoringConfig.model_validate(payload)


def test_surge_thresholds_must_increase():
    with pytest.raises(ValueError):
        build_config(surge_r={"thresholds": {"yellow": 2.0, "orange": 1.9, "red": 3.0}})


def test_retention_must_cover_windows():
    with pytest.raises(ValueError):
        build_config(history={"max_retention_days": 7})


def test_load_config_wraps_errors(tmp_path: Path):
    bad = tmp_path / "scoring.yaml"
    bad.write_text(yaml.safe_dump({"tone": {"bad_threshold": 0, "mild_threshold": -1}}))
    with pytest.raises(ConfigError):
        load_config(bad)
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")


def test_validate_file_exits_on_invalid(tmp_path: Path):
    bad = tmp_path / "scoring.yaml"
    bad.write_text(yaml.safe_dump({"event_count_floor": -5}))
    with pytest.raises(SystemExit):
        validate_file(ScoringConfig, bad)
