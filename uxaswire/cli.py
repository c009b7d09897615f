"""
uxaswire CLI — Command-line interface for addressed, attributed messages.
"""

import argparse
import logging
import os
import sys

from .protocol import (
    ATTRIBUTE_DELIMITER, ATTRIBUTE_FIELDS, CONTENT_TYPES, ENVELOPE_DELIMITER,
    AddressedAttributedMessage, FrameError, ValidationError,
)

EXAMPLE_FRAME = (b"afrl.cmasi.AirVehicleState$lmcp|afrl.cmasi.AirVehicleState||1|2"
                 b"$LMCPthisisthepayloadhereblabla$sads$")


def load_env():
    """Load .env file if present."""
    for path in ['.env', os.path.expanduser('~/.uxaswire/.env')]:
        if os.path.exists(path):
            with open(path) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        k, v = line.split('=', 1)
                        os.environ.setdefault(k.strip(), v.strip())
            break


def print_envelope(envelope: AddressedAttributedMessage):
    d = envelope.to_dict()
    print(f"  Address:    {d['address']}")
    print(f"  Type:       {d['content_type']}")
    print(f"  Descriptor: {d['descriptor']}")
    print(f"  Group:      {d['sender_group']}")
    print(f"  Entity:     {d['sender_entity_id']}")
    print(f"  Service:    {d['sender_service_id']}")
    print(f"  Payload:    {d['payload_len']} bytes")
    if d['payload_text']:
        print(f"  Text:       {d['payload_text'][:200]}")
    print(f"  Total:      {d['raw_len']} bytes")


def build_envelope(args) -> AddressedAttributedMessage:
    envelope = AddressedAttributedMessage()
    envelope.address = args.address
    envelope.content_type = args.content_type
    envelope.descriptor = args.descriptor if args.descriptor is not None else args.address
    envelope.sender_group = args.group
    envelope.sender_entity_id = args.entity
    envelope.sender_service_id = args.service
    envelope.payload = args.message or ""
    return envelope


def cmd_encode(args):
    """Encode a frame and print it."""
    try:
        envelope = build_envelope(args)
    except ValidationError as e:
        print(f"❌ {e}")
        sys.exit(1)

    frame = envelope.encode()
    print(f"Frame: {frame.decode('utf-8', errors='replace')}")
    print(f"Hex:   {frame.hex()}")
    print(f"Len:   {len(frame)} bytes")

    decoded = AddressedAttributedMessage.try_decode(frame)
    if decoded != envelope:
        print("  ❌ Roundtrip mismatch")
        sys.exit(1)
    print(f"  ✅ Roundtrip OK: {decoded}")


def cmd_decode(args):
    """Decode a frame given as hex, text or a file."""
    if args.file:
        with open(args.file, "rb") as f:
            data = f.read()
    elif args.text is not None:
        data = args.text.encode("utf-8")
    elif args.hex:
        try:
            data = bytes.fromhex(args.hex.replace(" ", "").replace("0x", ""))
        except ValueError:
            print("❌ Invalid hex string")
            sys.exit(1)
    else:
        print("❌ Nothing to decode (give hex, --text or --file)")
        sys.exit(1)

    try:
        envelope = AddressedAttributedMessage.decode(data)
    except FrameError as e:
        print(f"❌ Could not decode frame: {e}")
        sys.exit(1)
    print_envelope(envelope)


def cmd_publish(args):
    """Publish one envelope over MQTT."""
    from .client import EnvelopeClient

    try:
        client = EnvelopeClient(
            name=args.name, sender_group=args.group,
            entity_id=args.entity, service_id=args.service,
            mqtt_host=args.mqtt_host, mqtt_port=args.mqtt_port,
            mqtt_user=args.mqtt_user, mqtt_pass=args.mqtt_pass,
            topic_prefix=args.prefix,
        )
    except ValidationError as e:
        print(f"❌ {e}")
        sys.exit(1)

    try:
        client.client.connect(client.mqtt_host, client.mqtt_port)
    except OSError as e:
        print(f"❌ Could not reach broker {client.mqtt_host}:{client.mqtt_port}: {e}")
        sys.exit(1)

    try:
        sent = client.send(args.address, (args.message or "").encode("utf-8"),
                           args.content_type, args.descriptor)
    except ValidationError as e:
        print(f"❌ {e}")
        sys.exit(1)
    finally:
        client.client.disconnect()

    if not sent:
        print("🚫 Not published: rate limited")
        sys.exit(1)
    print(f"📤 Published {args.address} under {client.topic_prefix}/")


def cmd_subscribe(args):
    """Subscribe to MQTT and print decoded envelopes."""
    from .client import MonitorClient

    class PrintingClient(MonitorClient):
        def on_envelope(self, envelope, topic):
            d = envelope.to_dict()
            print(f"📥 {topic} [{d['sender_group']}/{d['sender_entity_id']}/"
                  f"{d['sender_service_id']}] ({d['content_type']}/{d['descriptor']}) "
                  f"{d['payload_len']}B")

    client = PrintingClient(
        name=args.name,
        mqtt_host=args.mqtt_host, mqtt_port=args.mqtt_port,
        mqtt_user=args.mqtt_user, mqtt_pass=args.mqtt_pass,
        addresses=args.address or None, topic_prefix=args.prefix,
    )
    print(f"👂 Listening on {client.subscriptions()} at {args.mqtt_host}:{args.mqtt_port}")
    print(f"   Press Ctrl+C to stop\n")

    try:
        client.run()
    except KeyboardInterrupt:
        s = client.stats()
        print(f"\n👋 Disconnected after {s['messages_received']} envelopes "
              f"({s['messages_dropped']} dropped)")
        client.client.disconnect()


def cmd_stats(args):
    """Show protocol constants."""
    print("📊 Addressed Attributed Message")
    print(f"   Envelope delimiter:  {ENVELOPE_DELIMITER.decode()!r}")
    print(f"   Attribute delimiter: {ATTRIBUTE_DELIMITER.decode()!r}")
    print(f"   Attributes:          {', '.join(ATTRIBUTE_FIELDS)}")
    print(f"   Content types:       {', '.join(CONTENT_TYPES)}")
    print(f"   MQTT Broker:         {args.mqtt_host}:{args.mqtt_port}")
    print(f"\n   Example frame:\n   {EXAMPLE_FRAME.decode()}")


def main(argv=None):
    """uxaswire CLI entry point."""
    load_env()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    parser = argparse.ArgumentParser(
        prog="uxaswire",
        description="uxaswire — Addressed, attributed message framing for UxAS bridges"
    )
    sub = parser.add_subparsers(dest="command", help="Command")

    def add_mqtt_args(p):
        p.add_argument("--mqtt-host", default=os.environ.get("MQTT_HOST", "127.0.0.1"))
        p.add_argument("--mqtt-port", type=int, default=int(os.environ.get("MQTT_PORT", "1883")))
        p.add_argument("--mqtt-user", default=os.environ.get("MQTT_USER"))
        p.add_argument("--mqtt-pass", default=os.environ.get("MQTT_PASS"))
        p.add_argument("--prefix", default=os.environ.get("UXASWIRE_TOPIC_PREFIX"),
                       help="MQTT topic prefix (default: uxas)")
        p.add_argument("--name", default="cli", help="MQTT client name")

    def add_envelope_args(p):
        p.add_argument("address", help="Routing address, e.g. afrl.cmasi.AirVehicleState")
        p.add_argument("-m", "--message", default="", help="Payload text")
        p.add_argument("-t", "--content-type", default="lmcp")
        p.add_argument("-d", "--descriptor", default=None,
                       help="Payload descriptor (default: the address)")
        p.add_argument("-g", "--group", default="")
        p.add_argument("-e", "--entity", default="0")
        p.add_argument("-s", "--service", default="0")

    # encode
    p = sub.add_parser("encode", help="Encode a frame")
    add_envelope_args(p)

    # decode
    p = sub.add_parser("decode", help="Decode a frame")
    p.add_argument("hex", nargs="?", default=None, help="Hex-encoded frame")
    p.add_argument("--text", default=None, help="Frame given as literal text")
    p.add_argument("--file", default=None, help="File holding one raw frame")

    # publish
    p = sub.add_parser("publish", help="Publish an envelope over MQTT")
    add_mqtt_args(p)
    add_envelope_args(p)

    # subscribe
    p = sub.add_parser("subscribe", help="Listen for envelopes over MQTT")
    add_mqtt_args(p)
    p.add_argument("address", nargs="*", help="Addresses to follow (default: all)")

    # stats
    p = sub.add_parser("stats", help="Protocol constants")
    add_mqtt_args(p)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    commands = {
        "encode": cmd_encode, "decode": cmd_decode,
        "publish": cmd_publish, "subscribe": cmd_subscribe,
        "stats": cmd_stats,
    }

    commands[args.command](args)
