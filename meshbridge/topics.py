"""MQTT topic and client-id helpers for the Meshtastic gateway layout."""
from __future__ import annotations

import os
import re

import paho.mqtt.client as mqtt


def sanitize_client_id(name: str, prefix: str = "meshtastic-irc-") -> str:
    """Convert a name to a valid MQTT client ID."""
    client_id = prefix + name.replace(" ", "_")
    client_id = re.sub(r"[^a-zA-Z0-9_-]", "", client_id)
    return client_id[:23]


def default_client_id() -> str:
    return sanitize_client_id(str(os.getpid()))


def derive_publish_topic(subscribe_topic: str, channel_id: str, gateway_id: str) -> str:
    """Gateways publish to <root>/<channel_id>/<gateway_id>.

    ``msh/US/2/e/#`` becomes ``msh/US/2/e/LongFast/!ircbridge``. A topic
    without a trailing wildcard is used as-is.
    """
    if subscribe_topic.endswith("/#"):
        return f"{subscribe_topic[:-2]}/{channel_id}/{gateway_id}"
    if subscribe_topic == "#":
        return f"{channel_id}/{gateway_id}"
    return subscribe_topic


def matches(subscription: str, topic: str) -> bool:
    return mqtt.topic_matches_sub(subscription, topic)
