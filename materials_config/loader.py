"""
Configuration Loader (``materials_config.loader``).

Responsibility
--------------
Reads a YAML file into a ``MaterialsConfig``.  The file holds a single
``materials:`` mapping whose keys are the ``MaterialsConfig`` fields; any
key left out keeps its default.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key  -> ``TypeError`` from the dataclass constructor.
* Invalid value  -> ``ValueError`` from ``MaterialsConfig.__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from materials_config.schema import MaterialsConfig
from materials_kernel.logging_config import get_logger

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(path: Path | str) -> MaterialsConfig:
    """Parse ``path`` into a validated ``MaterialsConfig``."""
    path = Path(path)
    raw = load_yaml_file(path)
    section = raw.get("materials", raw)
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'materials' must be a mapping")

    config = MaterialsConfig.from_dict(section)
    logger.info(
        "materials_config_loaded",
        extra={"path": str(path), "checksum": compute_checksum(config.to_dict())},
    )
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
