"""
Shared utilities for the nwbuild command.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


def load_yaml_config(config_file: Path, required: bool = False) -> Dict[str, Any]:
    """
    Load a YAML file of nwbuild options.

    Keys may use the package.json spelling (``srcDir``, ``outDir``) or
    snake_case (``src_dir``, ``out_dir``).

    Args:
        config_file: Path to YAML configuration file
        required: If True, raise error if file doesn't exist

    Returns:
        Options dictionary (empty dict if file doesn't exist and not required)

    Raises:
        FileNotFoundError: If required=True and file doesn't exist
        ValueError: If YAML parsing fails or the document is not a mapping

    Example:
        >>> config = load_yaml_config(Path("nwbuild.yaml"))
        >>> config.get("flavor", "normal")
    """
    if not config_file.exists():
        if required:
            raise FileNotFoundError(f"Configuration file not found: {config_file}")
        logger.debug(f"Config file not found (optional): {config_file}")
        return {}

    logger.debug(f"Loading configuration from {config_file}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_file}: {e}") from e

    config = config or {}
    if not isinstance(config, dict):
        raise ValueError(f"Expected a mapping of options in {config_file}")
    return config


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


__all__ = ["load_yaml_config", "print_error"]
