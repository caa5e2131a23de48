#!/usr/bin/env python3

import os
import json
import tomllib
from datetime import timedelta
from pathlib import Path

import logging
import sys

logger = logging.getLogger("repocache")


def configure_logging(config=None):
    """Install the stderr handler using the configured level and format."""
    log_config = (config or get_default_config()).get("logging", {})
    level = str(log_config.get("level", "INFO")).upper()
    fmt = log_config.get("format", "%(levelname)s: %(message)s")

    root = logging.getLogger("repocache")
    root.setLevel(level)
    root.handlers = []
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)
    root.propagate = False
    return root


def get_config_path():
    """Get the path to the configuration file.

    Checks in order:
    1. REPOCACHE_CONFIG environment variable
    2. ~/.repocache/ directory
    """
    if 'REPOCACHE_CONFIG' in os.environ:
        path = Path(os.environ['REPOCACHE_CONFIG'])
        if path.exists():
            return path

    repocache_dir = Path.home() / '.repocache'
    for filename in ['config.json', 'config.toml', 'config.yaml', 'config.yml']:
        path = repocache_dir / filename
        if path.exists() and path.stat().st_size > 10:  # Not empty/trivial
            return path

    # If no file exists, return default path for saving
    return repocache_dir / 'config.json'


def load_config():
    """Load configuration from file."""
    config_path = get_config_path()

    config = get_default_config()

    if config_path.exists():
        try:
            if config_path.suffix.lower() in ['.toml']:
                with open(config_path, 'rb') as f:
                    file_config = tomllib.load(f)
            elif config_path.suffix.lower() in ['.yaml', '.yml']:
                import yaml
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            else:
                with open(config_path, 'r') as f:
                    file_config = json.load(f)

            config = merge_configs(config, file_config)
        except Exception as e:
            logger.error(f"Error loading config from {config_path}: {e}")

    config = apply_env_overrides(config)

    return config


def save_config(config):
    """Save configuration to file."""
    config_path = get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        if config_path.suffix.lower() in ['.toml']:
            import toml
            with open(config_path, 'w') as f:
                toml.dump(config, f)
        elif config_path.suffix.lower() in ['.yaml', '.yml']:
            import yaml
            with open(config_path, 'w') as f:
                yaml.safe_dump(config, f, default_flow_style=False)
        else:
            with open(config_path, 'w') as f:
                json.dump(config, f, indent=2)

        logger.info(f"Configuration saved to {config_path}")
    except Exception as e:
        logger.error(f"Error saving config to {config_path}: {e}")


def get_default_config():
    """Get default configuration."""
    return {
        "github": {
            "token": "",
            "api_url": "https://api.github.com",
            "timeout_seconds": 15,
            "rate_limit": {
                "max_retries": 1,
                "max_wait_seconds": None,
            }
        },
        "cache": {
            "ttl_seconds": 3600,
            "per_page": 30,
            "pages": 1,
            "max_per_page": 100,
            "background_refresh": True,
            "max_workers": 4,
        },
        "database": {},
        "server": {
            "host": "127.0.0.1",
            "port": 8000,
        },
        "logging": {
            "level": "INFO",
            "format": "%(levelname)s: %(message)s"
        },
    }


def get_github_token(config):
    """Resolve the GitHub token from config, then the environment."""
    token = config.get('github', {}).get('token')
    return (
        token
        or os.environ.get('REPOCACHE_GITHUB_TOKEN')
        or os.environ.get('GITHUB_TOKEN')
        or os.environ.get('GITHUB_ACCESS_TOKEN')
    )


def get_ttl(config) -> timedelta:
    """Staleness TTL as a timedelta."""
    seconds = config.get('cache', {}).get('ttl_seconds', 3600)
    return timedelta(seconds=int(seconds))


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: REPOCACHE_SECTION_SUBSECTION_KEY
    For example: REPOCACHE_CACHE_TTL_SECONDS=600
    """
    env_prefix = "REPOCACHE_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        if value.lower() in ('true', 'yes', 'on'):
            typed_value = True
        elif value.lower() in ('false', 'no', 'off'):
            typed_value = False
        elif value.isdigit():
            typed_value = int(value)
        else:
            typed_value = value

        current_level = config
        i = 0
        while i < len(key_parts):
            # Find the longest key in current_level that is a prefix of the remaining key_parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts_from_key = config_key.split('_')
                if key_parts[i : i + len(config_key_parts_from_key)] == config_key_parts_from_key:
                    if len(config_key_parts_from_key) > best_match_len:
                        best_match_len = len(config_key_parts_from_key)
                        matched_key = config_key

            if matched_key:
                if i + best_match_len == len(key_parts):
                    current_level[matched_key] = typed_value
                    break

                if isinstance(current_level[matched_key], dict):
                    current_level = current_level[matched_key]
                    i += best_match_len
                else:
                    # Path conflict, e.g., env var is longer but we found a non-dict value
                    break
            else:
                break

    return config
