"""
uxaswire Protocol — Addressed, attributed message framing.

A frame carries an opaque payload (usually a serialized LMCP message)
together with a routing address and five provenance attributes:

    <address>$<content_type>|<descriptor>|<sender_group>|<sender_entity_id>|<sender_service_id>$<payload>

Example:
    afrl.cmasi.AirVehicleState$lmcp|afrl.cmasi.AirVehicleState||1|2$LMCP...

Values are stored internally as bytes and only rendered as text for
diagnostics. Only the first two '$' bytes are structural, so the payload
may contain any byte value.
"""

# ── Wire Constants ────────────────────────────────────────────────

ENVELOPE_DELIMITER = b"$"
ATTRIBUTE_DELIMITER = b"|"

ATTRIBUTE_FIELDS = (
    "content_type", "descriptor", "sender_group",
    "sender_entity_id", "sender_service_id",
)
ATTRIBUTE_CHUNKS = len(ATTRIBUTE_FIELDS)

# Conventional content types; not enforced on the wire
CONTENT_TYPES = ("lmcp", "json", "xml")


# ── Errors ────────────────────────────────────────────────────────

class ValidationError(ValueError):
    """A field value would corrupt the framing."""
    pass


class FrameError(ValueError):
    """Base class for frames that cannot be decoded."""
    pass


class MalformedAttributes(FrameError):
    """Attribute section did not split into exactly five fields."""

    def __init__(self, chunks: int):
        self.chunks = chunks
        super().__init__(f"Expected {ATTRIBUTE_CHUNKS} attribute fields, got {chunks}")


class MalformedEnvelope(FrameError):
    """Frame is missing a delimiter or carries malformed attributes."""
    pass


# ── Field Helpers ─────────────────────────────────────────────────

def _to_bytes(value) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def validate_field(name: str, value, delimiters) -> bytes:
    """Return value as bytes, rejecting it if it contains any of the delimiters.

    `delimiters` is a single delimiter or a tuple of them.
    """
    data = _to_bytes(value)
    if isinstance(delimiters, (bytes, bytearray)):
        delimiters = (delimiters,)
    for delimiter in delimiters:
        if delimiter in data:
            raise ValidationError(f"{name} must not contain {delimiter.decode()!r}: {data!r}")
    return data


def _attribute(name):
    slot = "_" + name

    def getter(self) -> bytes:
        return getattr(self, slot)

    def setter(self, value):
        # Both delimiters are reserved inside the attribute block
        setattr(self, slot, validate_field(
            name, value, (ATTRIBUTE_DELIMITER, ENVELOPE_DELIMITER)))

    return property(getter, setter, doc=f"Raw bytes of the {name} attribute.")


def _attribute_text(name):
    slot = "_" + name
    return property(lambda self: _text(getattr(self, slot)),
                    doc=f"The {name} attribute rendered as text (lossy).")


# ── Attributes ────────────────────────────────────────────────────

class MessageAttributes:
    """The five provenance fields carried in the middle of a frame."""

    DELIMITER = ATTRIBUTE_DELIMITER

    content_type = _attribute("content_type")
    descriptor = _attribute("descriptor")
    sender_group = _attribute("sender_group")
    sender_entity_id = _attribute("sender_entity_id")
    sender_service_id = _attribute("sender_service_id")

    content_type_text = _attribute_text("content_type")
    descriptor_text = _attribute_text("descriptor")
    sender_group_text = _attribute_text("sender_group")
    sender_entity_id_text = _attribute_text("sender_entity_id")
    sender_service_id_text = _attribute_text("sender_service_id")

    def __init__(self, content_type=b"", descriptor=b"", sender_group=b"",
                 sender_entity_id=b"", sender_service_id=b""):
        self.content_type = content_type
        self.descriptor = descriptor
        self.sender_group = sender_group
        self.sender_entity_id = sender_entity_id
        self.sender_service_id = sender_service_id

    def fields(self) -> tuple:
        """Raw field values in wire order."""
        return tuple(getattr(self, "_" + name) for name in ATTRIBUTE_FIELDS)

    def encode(self) -> bytes:
        return self.DELIMITER.join(self.fields())

    @classmethod
    def decode(cls, data: bytes) -> "MessageAttributes":
        """Decode an attribute section.

        Raises MalformedAttributes unless splitting on '|' yields exactly
        five chunks. Chunk contents are not inspected.
        """
        chunks = bytes(data).split(cls.DELIMITER)
        if len(chunks) != ATTRIBUTE_CHUNKS:
            raise MalformedAttributes(len(chunks))

        attrs = cls()
        for name, chunk in zip(ATTRIBUTE_FIELDS, chunks):
            setattr(attrs, "_" + name, chunk)
        return attrs

    @classmethod
    def try_decode(cls, data: bytes) -> "MessageAttributes | None":
        try:
            return cls.decode(data)
        except MalformedAttributes:
            return None

    def __eq__(self, other):
        if not isinstance(other, MessageAttributes):
            return NotImplemented
        return self.fields() == other.fields()

    def __str__(self):
        return self.DELIMITER.decode().join(_text(f) for f in self.fields())

    def __repr__(self):
        return f"MessageAttributes({str(self)!r})"


# ── Envelope ──────────────────────────────────────────────────────

class AddressedAttributedMessage:
    """An addressed, attributed message: address, attributes and payload."""

    DELIMITER = ENVELOPE_DELIMITER

    def __init__(self, address=b"", payload=b"", attributes: MessageAttributes = None):
        self.address = address
        self.payload = payload
        self.attributes = attributes if attributes is not None else MessageAttributes()

    # Address and payload

    @property
    def address(self) -> bytes:
        return self._address

    @address.setter
    def address(self, value):
        self._address = validate_field("address", value, self.DELIMITER)

    @property
    def address_text(self) -> str:
        return _text(self._address)

    @property
    def payload(self) -> bytes:
        """Payload bytes, verbatim."""
        return self._payload

    @payload.setter
    def payload(self, value):
        self._payload = _to_bytes(value)

    # Attribute passthroughs

    @property
    def content_type(self) -> bytes:
        return self.attributes.content_type

    @content_type.setter
    def content_type(self, value):
        self.attributes.content_type = value

    @property
    def descriptor(self) -> bytes:
        return self.attributes.descriptor

    @descriptor.setter
    def descriptor(self, value):
        self.attributes.descriptor = value

    @property
    def sender_group(self) -> bytes:
        return self.attributes.sender_group

    @sender_group.setter
    def sender_group(self, value):
        self.attributes.sender_group = value

    @property
    def sender_entity_id(self) -> bytes:
        return self.attributes.sender_entity_id

    @sender_entity_id.setter
    def sender_entity_id(self, value):
        self.attributes.sender_entity_id = value

    @property
    def sender_service_id(self) -> bytes:
        return self.attributes.sender_service_id

    @sender_service_id.setter
    def sender_service_id(self, value):
        self.attributes.sender_service_id = value

    # Wire format

    def encode(self) -> bytes:
        """Encode to a frame. The message itself is left untouched."""
        return b"".join((
            self._address, self.DELIMITER,
            self.attributes.encode(), self.DELIMITER,
            self._payload,
        ))

    @classmethod
    def decode(cls, data: bytes) -> "AddressedAttributedMessage":
        """Decode a complete frame.

        The address ends at the first '$' and the attribute section at the
        next one. Everything after that is payload, including any further
        '$' bytes. Raises MalformedEnvelope if either delimiter is missing
        or the attribute section is malformed.
        """
        data = bytes(data)

        address, sep, rest = data.partition(cls.DELIMITER)
        if not sep:
            raise MalformedEnvelope("Missing address delimiter '$'")

        section, sep, payload = rest.partition(cls.DELIMITER)
        if not sep:
            raise MalformedEnvelope("Missing attributes delimiter '$'")

        try:
            attributes = MessageAttributes.decode(section)
        except MalformedAttributes as e:
            raise MalformedEnvelope(f"Malformed attributes: {e}") from e

        msg = cls(attributes=attributes)
        msg._address = address
        msg._payload = payload
        return msg

    @classmethod
    def try_decode(cls, data: bytes) -> "AddressedAttributedMessage | None":
        try:
            return cls.decode(data)
        except FrameError:
            return None

    def to_dict(self) -> dict:
        """Diagnostic view with all fields rendered as text."""
        attrs = self.attributes
        return {
            "address": self.address_text,
            "content_type": attrs.content_type_text,
            "descriptor": attrs.descriptor_text,
            "sender_group": attrs.sender_group_text,
            "sender_entity_id": attrs.sender_entity_id_text,
            "sender_service_id": attrs.sender_service_id_text,
            "payload": self._payload,
            "payload_text": _text(self._payload) if self._payload else "",
            "payload_len": len(self._payload),
            "raw_len": len(self._address) + len(attrs.encode()) + len(self._payload) + 2,
        }

    def __eq__(self, other):
        if not isinstance(other, AddressedAttributedMessage):
            return NotImplemented
        return (self._address == other._address
                and self.attributes == other.attributes
                and self._payload == other._payload)

    def __str__(self):
        return f"{self.address_text}{self.DELIMITER.decode()}{self.attributes}"

    def __repr__(self):
        return f"AddressedAttributedMessage({str(self)!r}, payload_len={len(self._payload)})"


Envelope = AddressedAttributedMessage


# ── Convenience ───────────────────────────────────────────────────

def encode(address, payload=b"", content_type="lmcp", descriptor=b"",
           sender_group=b"", sender_entity_id=b"", sender_service_id=b"") -> bytes:
    """Build and encode a frame in one call.

    Raises ValidationError if address or any attribute contains its
    delimiter.
    """
    attrs = MessageAttributes(content_type, descriptor, sender_group,
                              sender_entity_id, sender_service_id)
    return AddressedAttributedMessage(address, payload, attrs).encode()


def decode(data: bytes) -> AddressedAttributedMessage | None:
    """Decode a frame. Returns None if the frame is malformed."""
    if not data:
        return None
    return AddressedAttributedMessage.try_decode(data)
