"""
Configuration Management
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from donation_backend.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("config") / "donation.conf"

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "blockchain": {
        "rpc_urls": [
            "https://ethereum-sepolia-rpc.publicnode.com",
            "https://rpc2.sepolia.org",
            "https://sepolia.gateway.tenderly.co",
            "wss://ethereum-sepolia-rpc.publicnode.com",
        ],
        "chain_id": 11155111,
        "contract_address": "0xd12c087aA33B4572770C9a2c148Dc52E224cF9Fe",
        "rpc_timeout": 10.0,
        "explorer_url": "https://sepolia.etherscan.io",
    },
    "server": {
        "host": "0.0.0.0",
        "port": 5000,
    },
    "app": {},
}

_ENV_SECTIONS = {
    "BLOCKCHAIN_": "blockchain",
    "SERVER_": "server",
    "APP_": "app",
}


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from defaults, a JSON file and environment variables"""
    config: Dict[str, Any] = {section: dict(values) for section, values in DEFAULTS.items()}

    path = Path(config_file or os.getenv("DONATION_CONFIG") or DEFAULT_CONFIG_FILE)
    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config file {path}: {e}")
        else:
            for section, values in file_config.items():
                if isinstance(values, dict):
                    config.setdefault(section, {}).update(values)
                else:
                    config[section] = values
            logger.info(f"Loaded configuration from {path}")
    else:
        logger.info(f"Config file {path} not found. Using defaults and environment variables.")

    config = _apply_env_overrides(config)
    logger.debug(f"Effective configuration: {json.dumps(config, indent=2, default=str)}")
    return config


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        for prefix, section in _ENV_SECTIONS.items():
            if key.startswith(prefix):
                config.setdefault(section, {})[key[len(prefix):].lower()] = value
                break
    return config


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def get_float(config: Dict[str, Any], key_path: str, default: float) -> float:
    """Read a numeric setting that may arrive as a string from the environment."""
    raw = get_config_value(config, key_path, default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value {raw!r} for {key_path}; using {default}")
        return default


def get_int(config: Dict[str, Any], key_path: str, default: int) -> int:
    raw = get_config_value(config, key_path, default)
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value {raw!r} for {key_path}; using {default}")
        return default


def get_list(config: Dict[str, Any], key_path: str) -> List[str]:
    """Read a list setting; env vars carry lists as comma-separated strings."""
    raw = get_config_value(config, key_path, [])
    if isinstance(raw, str):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return [str(item) for item in raw or []]
