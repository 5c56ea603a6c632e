"""Serial port enumeration and Meshtastic device heuristics."""
from __future__ import annotations

import logging
from collections.abc import Iterable

from serial.tools import list_ports
from serial.tools.list_ports_common import ListPortInfo

logger = logging.getLogger(__name__)

# Known Meshtastic USB vendor/product IDs
MESHTASTIC_USB_IDS: frozenset[tuple[int, int]] = frozenset({
    (0x239A, 0x4000),  # RAK4631 (Adafruit)
    (0x239A, 0x8029),  # RAK4631 alternate
    (0x303A, 0x1001),  # ESP32-S3
    (0x10C4, 0xEA60),  # CP210x
    (0x0403, 0x6001),  # FTDI FT232
    (0x0403, 0x6015),  # FTDI FT-X
    (0x1A86, 0x55D4),  # CH9102
    (0x2E8A, 0x000A),  # Raspberry Pi Pico
})

# Generic USB-UART bridges that may or may not be a radio
COMMON_UART_IDS: frozenset[tuple[int, int]] = frozenset({
    (0x10C4, 0xEA60),
    (0x1A86, 0x7523),  # CH340
    (0x1A86, 0x55D4),
    (0x0403, 0x6001),
    (0x0403, 0x6015),
})

PRODUCT_KEYWORDS = (
    "RAK4631", "LILYGO", "T-Beam", "T-Echo", "Heltec", "Nano G1", "Station G1",
    "CP210", "CH910", "FT232", "Meshtastic", "WisBlock",
)
MANUFACTURER_KEYWORDS = ("meshtastic", "rak", "lilygo", "heltec")


def is_likely_meshtastic(port: ListPortInfo) -> bool:
    if port.vid is None:
        return False
    if (port.vid, port.pid) in MESHTASTIC_USB_IDS:
        return True

    manufacturer = (port.manufacturer or "").lower()
    if any(keyword in manufacturer for keyword in MANUFACTURER_KEYWORDS):
        return True

    product = port.product or ""
    if any(keyword in product for keyword in PRODUCT_KEYWORDS):
        return True

    serial_number = port.serial_number or ""
    return serial_number.startswith("M") or "mesh" in serial_number


def is_possible_meshtastic(port: ListPortInfo) -> bool:
    if port.vid is None:
        return False
    if (port.vid, port.pid) in COMMON_UART_IDS:
        return True
    product = (port.product or "").lower()
    return any(keyword in product for keyword in ("esp32", "usb", "uart"))


def describe_port(port: ListPortInfo) -> str:
    if port.vid is None:
        return "Unknown device"
    manufacturer = port.manufacturer or "Unknown"
    product = port.product or "Unknown"
    return f"{manufacturer} - {product} (VID:{port.vid:04X} PID:{port.pid:04X})"


def candidate_ports(ports: Iterable[ListPortInfo] | None = None) -> list[str]:
    """Return device paths worth probing, likely Meshtastic radios first."""
    if ports is None:
        ports = list_ports.comports()

    likely: list[str] = []
    possible: list[str] = []
    for port in ports:
        if "Bluetooth" in port.device:
            continue
        if is_likely_meshtastic(port):
            logger.info(f"[SERIAL] Found likely Meshtastic device: {port.device} - {describe_port(port)}")
            likely.append(port.device)
        elif is_possible_meshtastic(port):
            logger.info(f"[SERIAL] Found possible Meshtastic device: {port.device} - {describe_port(port)}")
            possible.append(port.device)

    return likely + possible


def list_port_lines(ports: Iterable[ListPortInfo] | None = None) -> list[str]:
    """Human-readable lines for --list-ports."""
    if ports is None:
        ports = list_ports.comports()
    return [f"{port.device} - {describe_port(port)}" for port in ports]
