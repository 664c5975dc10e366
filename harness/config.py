"""Harness configuration with YAML support."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field

from harness.schemas import BaseSchema


class HarnessConfig(BaseSchema):
    """Settings for one soak run."""

    db_path: str = "./db.sqlite"
    log_file: str | None = "./app.log"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Key generation; seed=None draws one from the clock at startup
    seed: int | None = None
    key_length: int = Field(default=32, ge=1)
    filename_suffix: str = ".temp"

    # Run bounds; both None means run until interrupted or an error occurs
    max_cycles: int | None = Field(default=None, ge=1)
    duration_seconds: float | None = Field(default=None, gt=0)

    refresh_existing: bool = True
    show_progress: bool = True
    summary_path: str | None = None

    busy_timeout_seconds: float = Field(default=5.0, gt=0)


def load_config(yaml_path: str | Path) -> HarnessConfig:
    """Load harness configuration from YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        HarnessConfig instance

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If YAML is invalid or contains bad values
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e

    if not data:
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in {yaml_path}, got {type(data).__name__}")

    try:
        return HarnessConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def save_config(config: HarnessConfig, yaml_path: str | Path) -> None:
    """Save harness configuration to YAML file for reproducibility.

    Args:
        config: HarnessConfig to save
        yaml_path: Path where to save YAML file
    """
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.to_dict()

    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
