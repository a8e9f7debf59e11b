"""
Configuration

All tunables (camera constraints, detection interval, model selection,
matching threshold, enhancement endpoint, storage path, logging) live in
config.yaml at the project root. The file is parsed once and shared by the
whole process; components receive their section as a plain dict and fall
back to their own defaults for keys that are missing.

Usage:
    from facelogin.config import get_matching_config
    matcher = EuclideanIdentityMatcher(get_matching_config())

    # Tests swap the whole configuration in and out:
    set_config({"matching": {"threshold": 0.4}})
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_FILENAME = "config.yaml"

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Parsed config.yaml, shared process-wide
_config_instance: Optional[Dict[str, Any]] = None


def get_project_root() -> Path:
    """
    Locate the directory holding config.yaml.

    Starts at the package directory and checks each parent in turn.

    Raises:
        FileNotFoundError: If no parent directory has a config.yaml.
    """
    directory = Path(__file__).resolve().parent

    while directory != directory.parent:
        if (directory / CONFIG_FILENAME).exists():
            return directory
        directory = directory.parent

    raise FileNotFoundError(
        f"No {CONFIG_FILENAME} found above {Path(__file__).resolve().parent}; "
        "run from a checkout of the project or pass an explicit path."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse a YAML configuration file.

    Args:
        config_path: File to read. Defaults to the project's config.yaml.

    Returns:
        The parsed mapping ({} for an empty file).

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    path = Path(config_path) if config_path is not None else get_project_root() / CONFIG_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    Return the shared configuration, parsing config.yaml on first use.

    Args:
        reload: Re-read the file even if it was already parsed.
    """
    global _config_instance

    if reload or _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def set_config(config: Optional[Dict[str, Any]]) -> None:
    """Replace the shared configuration (None clears it so the next access reloads from disk)."""
    global _config_instance
    _config_instance = config


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Return one top-level section, e.g. "camera" or "matching".

    Raises:
        KeyError: If config.yaml has no such section.
    """
    config = get_config()
    try:
        return config[section_name]
    except KeyError:
        raise KeyError(
            f"Missing configuration section '{section_name}' "
            f"(have: {', '.join(config) or 'none'})"
        ) from None


def get_camera_config() -> Dict[str, Any]:
    return get_section("camera")


def get_live_detection_config() -> Dict[str, Any]:
    return get_section("live_detection")


def get_embedding_config() -> Dict[str, Any]:
    return get_section("embedding")


def get_matching_config() -> Dict[str, Any]:
    return get_section("matching")


def get_enhancement_config() -> Dict[str, Any]:
    return get_section("enhancement")


def get_storage_config() -> Dict[str, Any]:
    return get_section("storage")


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Configure root logging from the "logging" section.

    Args:
        config: Logging section dict. If None, it is read from config.yaml,
                falling back to INFO when the section is absent.
    """
    if config is None:
        config = get_config().get("logging", {})

    level_name = str(config.get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=config.get("format", DEFAULT_LOG_FORMAT),
    )
