"""Typed configuration for the materials workflows."""

from materials_config.loader import compute_checksum, load_config, load_yaml_file
from materials_config.schema import (
    MaterialsConfig,
    ReceiptPostingPolicy,
    ReferenceCodeFormat,
)

__all__ = [
    "MaterialsConfig",
    "ReceiptPostingPolicy",
    "ReferenceCodeFormat",
    "compute_checksum",
    "load_config",
    "load_yaml_file",
]
