"""
Configuration loading for tagindex.

Configuration is a plain nested dict built from defaults, a config file
(JSON, TOML or YAML) and TAGINDEX_* environment overrides.
"""

import json
import logging
import os
import sys
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .exit_codes import ConfigError

logger = logging.getLogger("tagindex")

CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']


def get_config_path() -> Path:
    """Get the path to the configuration file.

    Checks in order:
    1. TAGINDEX_CONFIG environment variable
    2. ~/.tagindex/ directory
    """
    if 'TAGINDEX_CONFIG' in os.environ:
        path = Path(os.environ['TAGINDEX_CONFIG']).expanduser()
        if path.exists():
            return path

    tagindex_dir = Path.home() / '.tagindex'
    for filename in CONFIG_FILENAMES:
        path = tagindex_dir / filename
        if path.exists() and path.stat().st_size > 0:
            return path

    # If no file exists, return default path for saving
    return tagindex_dir / 'config.json'


def get_default_config() -> Dict[str, Any]:
    """Get default configuration."""
    return {
        "database": {
            "path": "~/.tagindex/index.db",
        },
        "repositories": {
            "directory": "~/.tagindex/repos",
            "min_check_minutes": 10,
            "check_interval_minutes": 60,
            "fetch_timeout_seconds": 60,
            "workers": 4,
            "locations": [
                {"platform": "github", "url": "https://github.com/{user}/{repo}.git"},
                {"platform": "gitlab", "url": "https://gitlab.com/{user}/{repo}.git"},
                {"platform": "codeberg", "url": "https://codeberg.org/{user}/{repo}.git"},
            ],
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file.

    Args:
        config_path: Explicit file, overrides the lookup

    Raises:
        ConfigError: the file exists but cannot be parsed
    """
    config_path = config_path or get_config_path()
    config = get_default_config()

    if config_path.exists():
        try:
            file_config = _read_config_file(config_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config from {config_path}: {e}") from e
        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigError(f"Config file {config_path} must contain a mapping")
            config = merge_configs(config, file_config)

    return apply_env_overrides(config)


def _read_config_file(config_path: Path) -> Any:
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        with open(config_path, 'rb') as f:
            return tomllib.load(f)
    if suffix in ('.yaml', '.yml'):
        with open(config_path, 'r') as f:
            return yaml.safe_load(f)
    with open(config_path, 'r') as f:
        return json.load(f)


def save_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> Path:
    """
    Save configuration to file.

    TOML cannot be written with the standard library, so TOML configs are
    saved next to the TOML file as JSON.
    """
    config_path = config_path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    suffix = config_path.suffix.lower()
    if suffix in ('.yaml', '.yml'):
        with open(config_path, 'w') as f:
            yaml.safe_dump(config, f, default_flow_style=False)
    else:
        if suffix == '.toml':
            logger.warning("Writing TOML is not supported. Saving as JSON instead.")
            config_path = config_path.with_suffix('.json')
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config: Base configuration
        override_config: Configuration to merge/override with

    Returns:
        Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern TAGINDEX_SECTION_KEY, for
    example TAGINDEX_REPOSITORIES_MIN_CHECK_MINUTES=5. Keys containing
    underscores are matched by longest prefix.
    """
    env_prefix = "TAGINDEX_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        if value.lower() in ('true', 'yes', 'on'):
            typed_value: Any = True
        elif value.lower() in ('false', 'no', 'off'):
            typed_value = False
        elif value.isdigit():
            typed_value = int(value)
        else:
            typed_value = value

        current_level = config
        i = 0
        while i < len(key_parts):
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts = config_key.split('_')
                if key_parts[i:i + len(config_key_parts)] == config_key_parts:
                    if len(config_key_parts) > best_match_len:
                        best_match_len = len(config_key_parts)
                        matched_key = config_key

            if not matched_key:
                break

            if i + best_match_len == len(key_parts):
                if not isinstance(current_level[matched_key], dict):
                    current_level[matched_key] = typed_value
                break

            if isinstance(current_level[matched_key], dict):
                current_level = current_level[matched_key]
                i += best_match_len
            else:
                break

    return config


def configure_logging(config: Optional[Dict[str, Any]] = None, level: Optional[str] = None) -> None:
    """Install a stderr handler on the tagindex logger."""
    settings = (config or get_default_config()).get('logging', {})
    level_name = (level or settings.get('level') or 'INFO').upper()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(settings.get('format', '%(levelname)s: %(message)s')))

    logger.handlers[:] = [handler]
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.propagate = False


def get_repository_locations(config: Dict[str, Any]) -> Dict[str, str]:
    """Map of platform name to clone URL template."""
    locations = config.get('repositories', {}).get('locations', [])
    return {
        str(entry['platform']).lower(): str(entry['url'])
        for entry in locations
        if isinstance(entry, dict) and entry.get('platform') and entry.get('url')
    }


def get_working_directory(config: Dict[str, Any]) -> Path:
    """Root directory for repository working copies."""
    return Path(config.get('repositories', {}).get('directory', '~/.tagindex/repos')).expanduser()


def get_sync_settings(config: Dict[str, Any]) -> Dict[str, int]:
    """Sync timing and pool settings with defaults filled in."""
    defaults = get_default_config()['repositories']
    repos = config.get('repositories', {})
    return {
        key: int(repos.get(key, defaults[key]))
        for key in ('min_check_minutes', 'check_interval_minutes', 'fetch_timeout_seconds', 'workers')
    }


def list_platforms(config: Dict[str, Any]) -> List[str]:
    return sorted(get_repository_locations(config))
