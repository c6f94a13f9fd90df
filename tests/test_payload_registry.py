"""
Olocus - Payload Registry Tests
=================================
Unit tests for payload type dispatch.
"""

import json

import pytest

from olocus.domain.blocks import create_genesis_block
from olocus.domain.payloads import (
    CorePayloadType,
    EmptyPayload,
    PayloadCategory,
    PayloadRegistry,
    RawPayload,
    classify_payload_type,
)
from olocus.errors import PayloadRegistryError

from tests.conftest import NOW


class LocationHandler:
    """Handler extension di esempio (lat/lon in JSON)"""

    payload_type = 0x0100

    def encode(self, value):
        return json.dumps({"lat": value[0], "lon": value[1]}).encode()

    def decode(self, data):
        obj = json.loads(data)
        return (obj["lat"], obj["lon"])


class UserHandler(LocationHandler):
    payload_type = 0x8001


class TestClassification:
    """Test range di allocazione"""

    def test_ranges(self):
        """Test confini dei range"""
        assert classify_payload_type(0x0000) == PayloadCategory.CORE
        assert classify_payload_type(0x00FF) == PayloadCategory.CORE
        assert classify_payload_type(0x0100) == PayloadCategory.REGISTERED
        assert classify_payload_type(0x7FFF) == PayloadCategory.REGISTERED
        assert classify_payload_type(0x8000) == PayloadCategory.USER_DEFINED
        assert classify_payload_type(0xFFFF) == PayloadCategory.USER_DEFINED
        assert classify_payload_type(0x10000) == PayloadCategory.UNASSIGNED


class TestBuiltins:
    """Test payload core"""

    def test_builtin_handlers(self):
        """Test EMPTY, RAW, UTF8_TEXT, JSON"""
        registry = PayloadRegistry()

        assert registry.decode(CorePayloadType.EMPTY, b"") == EmptyPayload()
        assert registry.decode(CorePayloadType.RAW, b"\x00\x01") == b"\x00\x01"
        assert registry.decode(CorePayloadType.UTF8_TEXT, "città".encode()) == "città"
        assert registry.encode(CorePayloadType.JSON, {"b": 1, "a": 2}) == b'{"a":2,"b":1}'

    def test_empty_with_data_rejected(self):
        """Test payload EMPTY non vuoto"""
        with pytest.raises(PayloadRegistryError):
            PayloadRegistry().decode(CorePayloadType.EMPTY, b"x")

    def test_invalid_json(self):
        """Test JSON malformato"""
        with pytest.raises(PayloadRegistryError) as exc_info:
            PayloadRegistry().decode(CorePayloadType.JSON, b"{")

        assert exc_info.value.code == "PAYLOAD_DECODE_FAILED"


class TestRegistration:
    """Test handler custom"""

    def test_register_and_dispatch(self, keypair):
        """Test decode di blocco con payload extension"""
        registry = PayloadRegistry()
        registry.register(LocationHandler())

        payload = registry.encode(0x0100, (45.5, 9.2))
        block = create_genesis_block(payload, keypair, NOW, payload_type=0x0100)

        assert registry.decode_payload(block) == (45.5, 9.2)
        assert registry.is_registered(0x0100)
        assert 0x0100 in registry.registered_types()

    def test_user_defined_range(self):
        """Test registrazione nel range user-defined"""
        registry = PayloadRegistry()
        registry.register(UserHandler())
        assert registry.get(0x8001) is not None

    def test_core_range_not_registrable(self):
        """Test tipo core riservato ai built-in"""
        handler = LocationHandler()
        handler.payload_type = 0x0004

        with pytest.raises(PayloadRegistryError) as exc_info:
            PayloadRegistry().register(handler)

        assert exc_info.value.code == "PAYLOAD_TYPE_NOT_REGISTRABLE"

    def test_duplicate_rejected(self):
        """Test doppia registrazione senza replace"""
        registry = PayloadRegistry()
        registry.register(LocationHandler())

        with pytest.raises(PayloadRegistryError) as exc_info:
            registry.register(LocationHandler())
        assert exc_info.value.code == "PAYLOAD_TYPE_DUPLICATE"

        registry.register(LocationHandler(), replace=True)

    def test_not_a_handler(self):
        """Test oggetto senza encode/decode"""
        with pytest.raises(PayloadRegistryError):
            PayloadRegistry().register(object())

    def test_unknown_type_passthrough(self):
        """Test tipo senza handler: bytes raw"""
        registry = PayloadRegistry()

        assert registry.decode(0x0200, b"opaque") == RawPayload(payload_type=0x0200, data=b"opaque")

        with pytest.raises(PayloadRegistryError):
            registry.encode(0x0200, b"opaque")

    def test_unregister(self):
        """Test rimozione handler"""
        registry = PayloadRegistry()
        registry.register(LocationHandler())
        registry.unregister(0x0100)

        assert not registry.is_registered(0x0100)
