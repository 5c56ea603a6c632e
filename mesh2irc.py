#!/usr/bin/env python3
from __future__ import annotations

__version__ = "0.1.0"

import argparse
import logging
import signal
import sys

from config_loader import apply_cli_overrides, load_config
from meshbridge import MeshIrcBridge
from meshbridge.serial_detect import list_port_lines

# Initialize logging (console only) - will be reconfigured after config load
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

# Library loggers that are chatty at INFO; only let them through with --debug
NOISY_LOGGERS = ("meshtastic", "irc.client")


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Relay text between a Meshtastic mesh and an IRC channel")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--config", action="append", default=None, help="Path to TOML config file (can be specified multiple times; overrides default config loading)")
    parser.add_argument("--list-ports", action="store_true", help="List serial ports and exit")

    irc = parser.add_argument_group("IRC")
    irc.add_argument("--irc-server", help="IRC server hostname")
    irc.add_argument("--irc-port", type=int, help="IRC server port")
    irc.add_argument("--irc-channel", help="IRC channel to join (e.g. #meshtastic)")
    irc.add_argument("--irc-nick", help="IRC nickname")
    irc.add_argument("--irc-tls", type=parse_bool, metavar="true|false", help="Use TLS for the IRC connection")

    mesh = parser.add_argument_group("Meshtastic")
    mesh.add_argument("--serial-port", help="Serial device of the Meshtastic radio (auto-detected if omitted)")
    mesh.add_argument("--meshtastic-channel", type=int, help="Meshtastic channel index to bridge")
    mesh.add_argument("--mqtt-broker", help="Use an MQTT broker instead of a serial radio")
    mesh.add_argument("--mqtt-port", type=int, help="MQTT broker port")
    mesh.add_argument("--mqtt-topic", help="MQTT subscription topic")
    mesh.add_argument("--mqtt-username", help="MQTT username")
    mesh.add_argument("--mqtt-password", help="MQTT password")
    return parser


def configure_logging(config: dict, debug: bool) -> None:
    log_level_str = str(config.get('general', {}).get('log_level', 'INFO')).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    if debug:
        log_level = logging.DEBUG
    logger.setLevel(log_level)
    logging.getLogger().setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else max(log_level, logging.WARNING))


def main(argv: list[str] | None = None) -> int:
    args: argparse.Namespace = build_parser().parse_args(argv)

    if args.list_ports:
        lines = list_port_lines()
        if not lines:
            print("No serial ports found")
        for line in lines:
            print(line)
        return 0

    if args.debug:
        logger.setLevel(logging.DEBUG)

    config = apply_cli_overrides(load_config(args.config), args)
    configure_logging(config, args.debug)

    bridge = MeshIrcBridge(config, debug=args.debug, version=__version__)

    # Ensure signals from systemd (SIGTERM) and ctrl-c (SIGINT) are handled
    signal.signal(signal.SIGTERM, bridge.handle_signal)
    signal.signal(signal.SIGINT, bridge.handle_signal)

    return bridge.run()


if __name__ == "__main__":
    sys.exit(main())
