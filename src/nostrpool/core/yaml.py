"""YAML configuration loading.

Used by [RelayPool.from_yaml()][nostrpool.core.pool.RelayPool.from_yaml].
Only ``yaml.safe_load`` is used, so YAML tags cannot instantiate Python
objects.

Examples:
    ```python
    from nostrpool.core.yaml import load_yaml

    config = load_yaml("config/pool.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from nostrpool.exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        Parsed configuration. An empty file yields an empty dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.

    Warning:
        The structure is not validated here. Pass the result to
        [RelayPoolConfig][nostrpool.core.pool.RelayPoolConfig].
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return data
