import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from cargomap.core.module_tree import DEFAULT_ENTRY_POINTS
from cargomap.core.scanner import DEFAULT_EXCLUDED_DIRS, DEFAULT_EXTENSIONS
from cargomap.core.scoring import DEFAULT_WEIGHTS, ScoringWeights

# Default configuration values
DEFAULT_CONFIG_PATH = "cargomap.config.yaml"
DEFAULT_PROJECT_ROOT = "."
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_HOTSPOT_LIMIT = 10
DEFAULT_HUB_LIMIT = 10
DEFAULT_LOG_LEVEL = "INFO"


class CargoMapConfig(BaseModel):
    """
    Central configuration model for cargomap.
    """
    project_root: str = Field(default=DEFAULT_PROJECT_ROOT)
    source_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    excluded_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRS))
    respect_gitignore: bool = True
    entry_points: List[str] = Field(default_factory=lambda: list(DEFAULT_ENTRY_POINTS))
    search_limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1)
    hotspot_limit: int = Field(default=DEFAULT_HOTSPOT_LIMIT, ge=1)
    hub_limit: int = Field(default=DEFAULT_HUB_LIMIT, ge=1)

    # Partial overrides of the scoring weights, by field name
    scoring_weights: Dict[str, float] = Field(default_factory=dict)

    # Defaults to $CARGO_HOME/registry/src or ~/.cargo/registry/src
    cargo_registry_path: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL

    class Config:
        extra = "allow"

    @field_validator("scoring_weights")
    @classmethod
    def _check_weight_names(cls, value: Dict[str, float]) -> Dict[str, float]:
        DEFAULT_WEIGHTS.with_overrides(value)
        return value

    @field_validator("entry_points")
    @classmethod
    def _require_entry_point(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("entry_points must name at least one file")
        return value

    def weights(self) -> ScoringWeights:
        return DEFAULT_WEIGHTS.with_overrides(self.scoring_weights)

    def root_path(self) -> Path:
        return Path(self.project_root).resolve()

    def registry_path(self) -> Optional[Path]:
        return Path(self.cargo_registry_path).expanduser() if self.cargo_registry_path else None


def load_config(
    config_path: Optional[str] = None,
    cli_args: Optional[Dict[str, Any]] = None,
) -> CargoMapConfig:
    """
    Load configuration from file and overrides.

    Priority:
    1. CLI Arguments (if provided and not None)
    2. Config File (if provided or found at default path)
    3. Default Values

    Args:
        config_path: Path to the YAML config file. If None, tries 'cargomap.config.yaml'.
        cli_args: Dictionary of CLI arguments to override config values.

    Returns:
        CargoMapConfig: The resolved configuration object.
    """
    config_data: Dict[str, Any] = {}

    target_path = config_path if config_path else DEFAULT_CONFIG_PATH
    path_obj = Path(target_path)

    if path_obj.is_file():
        try:
            with open(path_obj, "r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f)
            if file_data:
                config_data.update(file_data)
            logging.info(f"Loaded configuration from {target_path}")
        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load config file {target_path}: {e}")
    elif config_path:
        logging.warning(f"Config file not found at explicit path: {config_path}")
    else:
        logging.info(f"No config file found at {DEFAULT_CONFIG_PATH}, using defaults.")

    if cli_args:
        for key, value in cli_args.items():
            if value is not None:
                config_data[key] = value

    return CargoMapConfig(**config_data)
