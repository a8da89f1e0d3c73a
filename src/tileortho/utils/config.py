"""Configuration loader.

Reads run configuration files in YAML format and returns a dictionary.
Command-line options are overlaid on top of the file contents before
the dictionary is turned into immutable settings objects (see
:mod:`tileortho.mosaic.settings`).
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..errors import ConfigurationError


def load_config(path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML configuration file into a dictionary.

    Parameters
    ----------
    path : str or None
        Path to the YAML configuration file.  ``None`` yields an empty
        configuration so every setting falls back to its default.

    Returns
    -------
    dict
        Parsed configuration dictionary.

    Raises
    ------
    ConfigurationError
        If the file does not exist, cannot be parsed, or does not hold
        a mapping at the top level.
    """
    if path is None:
        return {}
    cfg_path = Path(path)
    if not cfg_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {cfg_path}")
    try:
        with open(cfg_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {cfg_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{cfg_path} must contain a mapping at the top level")
    return data


def merge_overrides(config: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay dotted-key overrides (``"image.road_width": 3.5``) on a config.

    ``None`` values are ignored so unset command-line options keep the
    file value.
    """
    merged: Dict[str, Any] = {k: (dict(v) if isinstance(v, dict) else v) for k, v in config.items()}
    for key, value in overrides.items():
        if value is None:
            continue
        section, _, name = key.rpartition('.')
        if section:
            target = merged.setdefault(section, {})
            if not isinstance(target, dict):
                raise ConfigurationError(f"Section '{section}' must be a mapping")
            target[name] = value
        else:
            merged[name] = value
    return merged
