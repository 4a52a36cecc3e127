"""YAML configuration loading with `extends` inheritance."""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..all_dataclass import (
    Config,
    FeatureExtractionConfig,
    LoggingConfig,
    SessionConfig,
    StreamConfig,
    TextClassificationConfig,
    TokenClassificationConfig,
)
from ..models.exceptions import ConfigError


SECTIONS = {
    "session": SessionConfig,
    "stream": StreamConfig,
    "feature_extraction": FeatureExtractionConfig,
    "text_classification": TextClassificationConfig,
    "token_classification": TokenClassificationConfig,
    "logging": LoggingConfig,
}


def deep_merge(base: Dict, override: Dict) -> Dict:
    """Merge ``override`` into a copy of ``base``, recursing into nested mappings."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = deep_merge(current, value)
        merged[key] = value
    return merged


def read_yaml(config_path: Path) -> Dict[str, Any]:
    """Read a YAML file, following a chain of ``extends`` keys."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if not isinstance(config_dict, dict):
        raise ConfigError([f"config file {config_path} must contain a mapping"])

    # Handle inheritance
    if "extends" in config_dict:
        base_path = config_path.parent / config_dict.pop("extends")
        config_dict = deep_merge(read_yaml(base_path), config_dict)

    return config_dict


def build_config(raw_config: Dict[str, Any]) -> Config:
    """Map a raw configuration mapping onto the Config dataclass.

    Raises:
        ConfigError: listing every unknown section or invalid section body.
    """
    errors = []
    sections = {}
    for name, value in raw_config.items():
        if name not in SECTIONS:
            errors.append(f"unknown configuration section '{name}'")
            continue
        try:
            sections[name] = SECTIONS[name](**(value or {}))
        except (TypeError, ValueError) as e:
            errors.append(f"invalid '{name}' section: {e}")
    if errors:
        raise ConfigError(errors)
    return Config(**sections)


def load_config(config_path: Optional[Union[str, Path]], logger: Any = None) -> Config:
    """Read a YAML file and build the Config tree from it.

    Args:
        config_path: Path to the YAML configuration file, None for defaults.
        logger: Optional logger announcing the file being read.

    Returns:
        Config with defaults for every missing section.
    """
    if config_path is None:
        return Config()
    if logger:
        logger.info(f"Reading configuration {config_path}")
    return build_config(read_yaml(Path(config_path)))
