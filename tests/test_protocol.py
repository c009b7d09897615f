"""Tests for envelope and attribute framing."""
import pytest

from uxaswire.protocol import (
    AddressedAttributedMessage, MessageAttributes, ATTRIBUTE_FIELDS,
    FrameError, MalformedAttributes, MalformedEnvelope, ValidationError,
    encode, decode, validate_field,
)

FRAME = (b"afrl.cmasi.AirVehicleState$lmcp|afrl.cmasi.AirVehicleState||1|2"
         b"$LMCPthisisthepayloadhereblabla$sads$")
PAYLOAD = b"LMCPthisisthepayloadhereblabla$sads$"


def make_envelope():
    msg = AddressedAttributedMessage()
    msg.address = "afrl.cmasi.AirVehicleState"
    msg.content_type = "lmcp"
    msg.descriptor = "afrl.cmasi.AirVehicleState"
    msg.sender_entity_id = "1"
    msg.sender_service_id = "2"
    msg.payload = PAYLOAD
    return msg


class TestAttributes:
    def test_empty_by_default(self):
        attrs = MessageAttributes()
        assert attrs.fields() == (b"",) * 5
        assert attrs.encode() == b"||||"

    def test_encode_order(self):
        attrs = MessageAttributes("lmcp", "afrl.cmasi.AirVehicleState", "", "1", "2")
        assert attrs.encode() == b"lmcp|afrl.cmasi.AirVehicleState||1|2"

    def test_decode_assigns_positionally(self):
        attrs = MessageAttributes.decode(b"json|desc|fusion|12|14")
        assert attrs.content_type == b"json"
        assert attrs.descriptor == b"desc"
        assert attrs.sender_group == b"fusion"
        assert attrs.sender_entity_id == b"12"
        assert attrs.sender_service_id == b"14"

    def test_decode_all_empty(self):
        attrs = MessageAttributes.decode(b"||||")
        assert attrs == MessageAttributes()

    @pytest.mark.parametrize("data", [
        b"", b"lmcp", b"a|b", b"a|b|c", b"a|b|c|d",
        b"a|b|c|d|e|f", b"|||||", b"a|b|c|d|e|f|g|h",
    ])
    def test_decode_wrong_count(self, data):
        with pytest.raises(MalformedAttributes) as exc:
            MessageAttributes.decode(data)
        assert exc.value.chunks == data.count(b"|") + 1
        assert MessageAttributes.try_decode(data) is None

    def test_malformed_is_frame_error(self):
        with pytest.raises(FrameError):
            MessageAttributes.decode(b"a|b")

    def test_setter_rejects_envelope_delimiter(self):
        attrs = MessageAttributes()
        with pytest.raises(ValidationError):
            attrs.descriptor = "x$y"
        msg = AddressedAttributedMessage("a.b")
        with pytest.raises(ValidationError):
            msg.sender_group = b"$"
        assert msg.encode() == b"a.b$||||$"

    def test_validated_envelope_always_decodes(self):
        msg = AddressedAttributedMessage("a.b", b"p$|")
        for name in ATTRIBUTE_FIELDS:
            with pytest.raises(ValidationError):
                setattr(msg, name, "x$y")
        assert AddressedAttributedMessage.try_decode(msg.encode()) == msg

    def test_setter_rejects_delimiter(self):
        attrs = MessageAttributes()
        with pytest.raises(ValidationError):
            attrs.descriptor = "afrl|cmasi"
        assert attrs.descriptor == b""

    def test_constructor_rejects_delimiter(self):
        with pytest.raises(ValidationError):
            MessageAttributes(sender_group="a|b")

    def test_setter_accepts_bytes(self):
        attrs = MessageAttributes()
        attrs.sender_group = bytearray(b"uxas")
        attrs.sender_entity_id = b"\xff\xfe"
        assert attrs.sender_group == b"uxas"
        assert attrs.sender_entity_id == b"\xff\xfe"

    def test_lossy_text(self):
        attrs = MessageAttributes.decode(b"lmcp|\xff\xfe|g|1|2")
        assert attrs.descriptor == b"\xff\xfe"
        assert "�" in attrs.descriptor_text
        assert str(attrs).startswith("lmcp|")
        assert str(attrs).endswith("|g|1|2")

    def test_field_names(self):
        assert ATTRIBUTE_FIELDS == ("content_type", "descriptor", "sender_group",
                                    "sender_entity_id", "sender_service_id")


class TestEnvelopeEncode:
    def test_known_frame(self):
        assert make_envelope().encode() == FRAME

    def test_length(self):
        msg = make_envelope()
        frame = msg.encode()
        expected = (len(msg.address) + 1 + len(msg.attributes.encode())
                    + 1 + len(msg.payload))
        assert len(frame) == expected

    def test_empty_envelope(self):
        assert AddressedAttributedMessage().encode() == b"$||||$"

    def test_encode_is_not_destructive(self):
        msg = make_envelope()
        first = msg.encode()
        second = msg.encode()
        assert first == second == FRAME
        assert msg.address == b"afrl.cmasi.AirVehicleState"
        assert msg.payload == PAYLOAD

    def test_address_rejects_delimiter(self):
        msg = AddressedAttributedMessage()
        with pytest.raises(ValidationError):
            msg.address = "afrl$cmasi"

    def test_payload_accepts_anything(self):
        msg = AddressedAttributedMessage()
        msg.payload = bytes(range(256))
        assert msg.payload == bytes(range(256))

    def test_module_encode(self):
        frame = encode("afrl.cmasi.AirVehicleState", PAYLOAD,
                       content_type="lmcp",
                       descriptor="afrl.cmasi.AirVehicleState",
                       sender_entity_id="1", sender_service_id="2")
        assert frame == FRAME

    def test_module_encode_validates(self):
        with pytest.raises(ValidationError):
            encode("a.b", b"", sender_group="x|y")


class TestEnvelopeDecode:
    def test_known_frame(self):
        msg = AddressedAttributedMessage.decode(FRAME)
        assert msg.address == b"afrl.cmasi.AirVehicleState"
        assert msg.content_type == b"lmcp"
        assert msg.descriptor == b"afrl.cmasi.AirVehicleState"
        assert msg.sender_group == b""
        assert msg.sender_entity_id == b"1"
        assert msg.sender_service_id == b"2"
        assert msg.payload == PAYLOAD

    def test_reencode_matches(self):
        assert AddressedAttributedMessage.decode(FRAME).encode() == FRAME

    def test_equals_built_envelope(self):
        assert AddressedAttributedMessage.decode(FRAME) == make_envelope()

    def test_payload_keeps_delimiters(self):
        msg = AddressedAttributedMessage.decode(b"a.b$lmcp|d|g|1|2$$|$x|$")
        assert msg.payload == b"$|$x|$"

    def test_empty_payload(self):
        msg = AddressedAttributedMessage.decode(b"a.b$lmcp|d|g|1|2$")
        assert msg.payload == b""

    def test_empty_address(self):
        msg = AddressedAttributedMessage.decode(b"$lmcp|d|g|1|2$p")
        assert msg.address == b""
        assert msg.payload == b"p"

    @pytest.mark.parametrize("data", [
        b"",
        b"afrl.cmasi.AirVehicleState",
        b"afrl.cmasi.AirVehicleState$lmcp|d||1|2",
        b"$",
    ])
    def test_fewer_than_two_delimiters(self, data):
        with pytest.raises(MalformedEnvelope):
            AddressedAttributedMessage.decode(data)
        assert decode(data) is None

    def test_bad_attributes_are_wrapped(self):
        with pytest.raises(MalformedEnvelope) as exc:
            AddressedAttributedMessage.decode(b"a.b$lmcp|d|1|2$payload")
        assert isinstance(exc.value.__cause__, MalformedAttributes)
        assert exc.value.__cause__.chunks == 4

    def test_first_delimiter_wins(self):
        # A stray '$' in the address shifts every later section
        assert decode(b"a$b$lmcp|d|g|1|2$p") is None
        msg = decode(b"a$lmcp|d|g|1|2$b$lmcp|d|g|1|2$p")
        assert msg.address == b"a"
        assert msg.payload == b"b$lmcp|d|g|1|2$p"

    def test_accepts_bytearray(self):
        msg = AddressedAttributedMessage.decode(bytearray(FRAME))
        assert msg.payload == PAYLOAD

    def test_try_decode(self):
        assert AddressedAttributedMessage.try_decode(b"nope") is None
        assert AddressedAttributedMessage.try_decode(FRAME) == make_envelope()


class TestRoundtrip:
    @pytest.mark.parametrize("address,attrs,payload", [
        ("afrl.cmasi.AirVehicleState",
         ("lmcp", "afrl.cmasi.AirVehicleState", "", "1", "2"), b"LMCP\x00\x01$"),
        ("uxas.project.isolate.IntruderAlert",
         ("json", "alert", "fusion.operator.sensor", "400", "12"), b'{"a": "$|"}'),
        ("eId12sId14", ("xml", "", "", "", ""), b""),
        ("", ("", "", "", "", ""), b"$$$$"),
    ])
    def test_roundtrip(self, address, attrs, payload):
        msg = AddressedAttributedMessage(address, payload, MessageAttributes(*attrs))
        assert AddressedAttributedMessage.decode(msg.encode()) == msg


class TestRendering:
    def test_str_omits_payload(self):
        assert str(make_envelope()) == \
            "afrl.cmasi.AirVehicleState$lmcp|afrl.cmasi.AirVehicleState||1|2"

    def test_repr_has_payload_len(self):
        assert f"payload_len={len(PAYLOAD)}" in repr(make_envelope())

    def test_lossy_address(self):
        msg = AddressedAttributedMessage.decode(b"\xffaddr$lmcp|d|g|1|2$")
        assert msg.address_text.startswith("�")
        assert str(msg).startswith("�")

    def test_to_dict(self):
        d = make_envelope().to_dict()
        assert d["address"] == "afrl.cmasi.AirVehicleState"
        assert d["content_type"] == "lmcp"
        assert d["sender_group"] == ""
        assert d["payload"] == PAYLOAD
        assert d["payload_text"] == PAYLOAD.decode()
        assert d["payload_len"] == len(PAYLOAD)
        assert d["raw_len"] == len(FRAME)

    def test_to_dict_empty_payload(self):
        assert AddressedAttributedMessage().to_dict()["payload_text"] == ""


class TestValidateField:
    def test_returns_bytes(self):
        assert validate_field("address", "a.b", b"$") == b"a.b"
        assert validate_field("address", None, b"$") == b""

    def test_rejects(self):
        with pytest.raises(ValidationError, match="address"):
            validate_field("address", b"a$b", b"$")

    def test_several_delimiters(self):
        assert validate_field("descriptor", "a.b", (b"|", b"$")) == b"a.b"
        with pytest.raises(ValidationError):
            validate_field("descriptor", "a$b", (b"|", b"$"))
