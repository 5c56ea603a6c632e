"""Configuration loading: built-in defaults, TOML files, drop-in overlays and CLI overrides."""

from __future__ import annotations

import argparse
import copy
import logging
import os
import tomllib
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

BASE_CONFIG_PATH = '/etc/mesh2irc/config.toml'
CONFIG_D_PATH = '/etc/mesh2irc/config.d'

DEFAULT_CONFIG: dict[str, Any] = {
    'general': {
        'log_level': 'INFO',
        'stats_interval': 300,
    },
    'irc': {
        'server': 'irc.libera.chat',
        'port': 6697,
        'channel': '#meshtastic',
        'nickname': 'meshtastic-bridge',
        'username': '',
        'realname': '',
        'password': '',
        'use_tls': True,
        'tls_verify': True,
        'connect_timeout': 30,
    },
    'meshtastic': {
        'channel': 0,
    },
    'serial': {
        'port': '',
    },
    'mqtt': {
        'broker': '',
        'port': 1883,
        'topic': 'meshtastic/2/e/#',
        'username': '',
        'password': '',
        'client_id': '',
        'keepalive': 30,
        'channel_id': 'LongFast',
        'gateway_id': '!ircbridge',
        'tls': {'enabled': False, 'verify': True},
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dicts. override values take precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_toml(path: str | Path) -> dict[str, Any]:
    with open(path, 'rb') as f:
        return tomllib.load(f)


def _load_config_dir(config: dict[str, Any], config_d: Path) -> dict[str, Any]:
    """Load all *.toml files from a config.d directory as overlays."""
    if not config_d.is_dir():
        return config
    for override_file in sorted(config_d.glob('*.toml')):
        logger.info(f"Loading config override: {override_file}")
        config = deep_merge(config, _load_toml(override_file))
    return config


def load_config(config_paths: list[str] | None = None) -> dict[str, Any]:
    """Load and merge TOML configuration on top of DEFAULT_CONFIG.

    When no --config paths are provided (default):
      1. Load base config from /etc/mesh2irc/config.toml
      2. Overlay files from /etc/mesh2irc/config.d/*.toml (alphabetical)

    When --config paths are provided:
      Load only those files in order, each overlaying the previous.
      The system paths are skipped.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_paths:
        for path in config_paths:
            if not os.path.exists(path):
                logger.error(f"Config file not found: {path}")
                continue
            logger.info(f"Loading config: {path}")
            config = deep_merge(config, _load_toml(path))
        return config

    if os.path.exists(BASE_CONFIG_PATH):
        config = deep_merge(config, _load_toml(BASE_CONFIG_PATH))
        logger.info(f"Loaded base config from {BASE_CONFIG_PATH}")
    else:
        logger.info(f"Config file not found at {BASE_CONFIG_PATH}. Using defaults.")

    return _load_config_dir(config, Path(CONFIG_D_PATH))


# (argparse dest, config section, config key)
CLI_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    ('irc_server', 'irc', 'server'),
    ('irc_port', 'irc', 'port'),
    ('irc_channel', 'irc', 'channel'),
    ('irc_nick', 'irc', 'nickname'),
    ('irc_tls', 'irc', 'use_tls'),
    ('serial_port', 'serial', 'port'),
    ('meshtastic_channel', 'meshtastic', 'channel'),
    ('mqtt_broker', 'mqtt', 'broker'),
    ('mqtt_port', 'mqtt', 'port'),
    ('mqtt_topic', 'mqtt', 'topic'),
    ('mqtt_username', 'mqtt', 'username'),
    ('mqtt_password', 'mqtt', 'password'),
)


def apply_cli_overrides(config: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    """Command-line values win over anything loaded from files."""
    result = copy.deepcopy(config)
    for dest, section, key in CLI_OVERRIDES:
        value = getattr(args, dest, None)
        if value is not None:
            result.setdefault(section, {})[key] = value
    return result


def log_config_sources(config: dict[str, Any]) -> None:
    """Log configuration summary."""
    irc_cfg = config.get('irc', {})
    mesh_cfg = config.get('meshtastic', {})
    mqtt_cfg = config.get('mqtt', {})
    serial_cfg = config.get('serial', {})

    logger.info(
        f"IRC: {irc_cfg.get('server')}:{irc_cfg.get('port')} channel {irc_cfg.get('channel')} "
        f"as {irc_cfg.get('nickname')} (tls={irc_cfg.get('use_tls')})"
    )
    channel = mesh_cfg.get('channel', 0)
    if mqtt_cfg.get('broker'):
        logger.info(
            f"Meshtastic: MQTT {mqtt_cfg.get('broker')}:{mqtt_cfg.get('port')} "
            f"topic {mqtt_cfg.get('topic')} channel {channel}"
        )
    else:
        logger.info(f"Meshtastic: Serial {serial_cfg.get('port') or 'auto-detect'} channel {channel}")
