"""YAML configuration loading.

Safe YAML loading with ``yaml.safe_load`` so configuration files can never
instantiate arbitrary Python objects. Used by
[NodeConfig.from_yaml()][ringlink.core.node.NodeConfig.from_yaml],
[Pool.from_yaml()][ringlink.core.pool.Pool.from_yaml] and
[BaseService.from_yaml()][ringlink.core.base_service.BaseService.from_yaml].
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load a YAML file into a dictionary.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed mapping, or an empty dict for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping, got {type(data).__name__}")
    return data
