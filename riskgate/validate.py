"""Config loading and the validation entrypoint used by CI."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from .config_models import ScoringConfig

ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
SCORING_CONFIG_PATH = CONFIG_DIR / "scoring.yaml"


class ConfigError(RuntimeError):
    pass


def load_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_config(path: Path = SCORING_CONFIG_PATH) -> ScoringConfig:
    """Load and validate the scoring config once per run."""
    try:
        return ScoringConfig.model_validate(load_yaml(path))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    except ValidationError as exc:
        raise ConfigError(f"Invalid scoring config {path}:\n{exc}") from exc


def validate_file(model: type[BaseModel], path: Path) -> None:
    data = load_yaml(path)
    try:
        model.model_validate(data)
    except ValidationError as exc:
        raise SystemExit(f"Validation failed for {path}:\n{exc}") from exc


def main() -> None:
    validate_file(ScoringConfig, SCORING_CONFIG_PATH)


if __name__ == "__main__":
    main()
