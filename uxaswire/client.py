"""
uxaswire Client — MQTT transport for addressed, attributed messages.

Each envelope is published as a single MQTT message. The envelope
address doubles as the topic: "afrl.cmasi.AirVehicleState" is published
on "<prefix>/afrl/cmasi/AirVehicleState".
"""

import logging
import os
import time

import paho.mqtt.client as mqtt

from .protocol import (
    AddressedAttributedMessage, MessageAttributes, ValidationError, decode,
)
from .ratelimit import RateLimiter, get_default as get_rate_limiter, sender_key

log = logging.getLogger("uxaswire.client")

DEFAULT_TOPIC_PREFIX = "uxas"


def default_topic_prefix() -> str:
    return os.environ.get("UXASWIRE_TOPIC_PREFIX", DEFAULT_TOPIC_PREFIX)


# ── Topic Mapping ─────────────────────────────────────────────────

def address_to_topic(address, prefix: str = None) -> str:
    """Map a dot-delimited address onto an MQTT topic."""
    if isinstance(address, (bytes, bytearray)):
        address = address.decode("utf-8", errors="replace")
    if not address:
        raise ValidationError("Address must not be empty to be published")
    if any(c in address for c in "+#/"):
        raise ValidationError(f"Address cannot be mapped to an MQTT topic: {address!r}")
    prefix = prefix if prefix is not None else default_topic_prefix()
    return f"{prefix}/{address.replace('.', '/')}"


def topic_to_address(topic: str, prefix: str = None) -> str:
    """Inverse of address_to_topic."""
    prefix = prefix if prefix is not None else default_topic_prefix()
    head = prefix + "/"
    if not topic.startswith(head) or len(topic) == len(head):
        raise ValidationError(f"Topic {topic!r} is not under prefix {prefix!r}")
    return topic[len(head):].replace("/", ".")


# ── Client ────────────────────────────────────────────────────────

class EnvelopeClient:
    """MQTT client that speaks addressed, attributed messages.

    Every outgoing envelope is stamped with this client's sender group,
    entity id and service id; unset ids go out as "0". Incoming envelopes
    carrying this client's full identity are skipped, but only when an
    entity or service id was configured. Subclass and override
    `on_envelope()` to handle incoming traffic.
    """

    def __init__(self, name: str, sender_group: str = "",
                 entity_id: str = None, service_id: str = None,
                 mqtt_host: str = "localhost", mqtt_port: int = 1883,
                 mqtt_user: str = None, mqtt_pass: str = None,
                 addresses: list = None, topic_prefix: str = None,
                 rate_limiter: RateLimiter = None):
        self.name = name
        self.has_identity = entity_id is not None or service_id is not None
        self.identity = MessageAttributes(
            sender_group=sender_group,
            sender_entity_id="0" if entity_id is None else entity_id,
            sender_service_id="0" if service_id is None else service_id,
        )
        self.mqtt_host = mqtt_host
        self.mqtt_port = mqtt_port
        self.addresses = addresses or []
        self.topic_prefix = topic_prefix if topic_prefix is not None else default_topic_prefix()
        self.rate_limiter = rate_limiter or get_rate_limiter()

        self.sent_count = 0
        self.received_count = 0
        self.dropped_count = 0
        self.skipped_count = 0
        self.start_time = time.time()

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2,
                                  client_id=f"uxaswire-{name}")
        if mqtt_user and mqtt_pass:
            self.client.username_pw_set(mqtt_user, mqtt_pass)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message

    def subscriptions(self) -> list:
        """Topics to subscribe on connect. No addresses means everything."""
        if not self.addresses:
            return [f"{self.topic_prefix}/#"]
        return [address_to_topic(a, self.topic_prefix) for a in self.addresses]

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        for topic in self.subscriptions():
            client.subscribe(topic)
        log.info(f"🛰️ Client [{self.name}] connected | topics: {self.subscriptions()}")

    def _is_own(self, envelope: AddressedAttributedMessage) -> bool:
        if not self.has_identity:
            return False
        attrs = envelope.attributes
        return (attrs.sender_group == self.identity.sender_group
                and attrs.sender_entity_id == self.identity.sender_entity_id
                and attrs.sender_service_id == self.identity.sender_service_id)

    def _on_message(self, client, userdata, msg):
        envelope = decode(msg.payload)
        if envelope is None:
            self.dropped_count += 1
            log.warning(f"⚠️ Could not decode frame on {msg.topic} ({len(msg.payload)} bytes)")
            return

        if self._is_own(envelope):
            self.skipped_count += 1
            log.debug(f"[{self.name}] skipping own envelope on {msg.topic}")
            return

        if not self.rate_limiter.check_inbound(envelope):
            self.dropped_count += 1
            log.warning(f"🚫 [{self.name}] dropping envelope from {sender_key(envelope)} (rate limited)")
            return

        self.received_count += 1
        self.on_envelope(envelope, msg.topic)

    def on_envelope(self, envelope: AddressedAttributedMessage, topic: str):
        """Override this to handle incoming envelopes."""
        pass

    def build(self, address, payload=b"", content_type="lmcp",
              descriptor=None) -> AddressedAttributedMessage:
        """Build an envelope stamped with this client's identity."""
        attrs = MessageAttributes(
            content_type=content_type,
            descriptor=address if descriptor is None else descriptor,
            sender_group=self.identity.sender_group,
            sender_entity_id=self.identity.sender_entity_id,
            sender_service_id=self.identity.sender_service_id,
        )
        return AddressedAttributedMessage(address, payload, attrs)

    def send(self, address, payload=b"", content_type="lmcp",
             descriptor=None) -> bool:
        """Publish an envelope on the topic derived from its address."""
        if not self.rate_limiter.check_publish():
            log.warning(f"🚫 [{self.name}] publish dropped (rate limited)")
            return False

        topic = address_to_topic(address, self.topic_prefix)
        envelope = self.build(address, payload, content_type, descriptor)
        frame = envelope.encode()
        self.client.publish(topic, frame)
        self.sent_count += 1
        log.info(f"📤 [{self.name}] {envelope} ({len(frame)} bytes)")
        return True

    def run(self):
        """Connect and run the client forever."""
        self.client.connect(self.mqtt_host, self.mqtt_port)
        log.info(f"🛰️ Starting client [{self.name}] on {self.mqtt_host}:{self.mqtt_port}")
        self.client.loop_forever()

    def stats(self) -> dict:
        uptime = time.time() - self.start_time
        return {
            "name": self.name,
            "sender": sender_key(AddressedAttributedMessage(attributes=self.identity)),
            "uptime_minutes": uptime / 60,
            "messages_sent": self.sent_count,
            "messages_received": self.received_count,
            "messages_dropped": self.dropped_count,
            "messages_skipped": self.skipped_count,
        }


class MonitorClient(EnvelopeClient):
    """Listens and logs but never publishes."""

    def on_envelope(self, envelope: AddressedAttributedMessage, topic: str):
        log.info(f"📥 {topic} [{sender_key(envelope)}] {envelope} "
                 f"payload={len(envelope.payload)}B")

    def _is_own(self, envelope: AddressedAttributedMessage) -> bool:
        return False
