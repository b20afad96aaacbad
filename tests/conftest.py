import copy
from pathlib import Path

import pytest

from riskgate.config_models import ScoringConfig
from riskgate.validate import load_yaml

ROOT = Path(__file__).resolve().parents[1]
RAW_CONFIG = load_yaml(ROOT / "config" / "scoring.yaml")


def build_config(**sections) -> ScoringConfig:
    """Repo config with top-level sections shallow-merged from ``sections``."""
    payload = copy.deepcopy(RAW_CONFIG)
    for key, value in sections.items():
        if isinstance(value, dict) and isinstance(payload.get(key), dict):
            payload[key].update(value)
        else:
            payload[key] = value
    return ScoringConfig.model_validate(payload)


@pytest.fixture
def config() -> ScoringConfig:
    return build_config()
