"""
Olocus - Domain Models
========================
Modelli core: versione protocollo, header e blocco.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Models:
- ProtocolVersion: versione major.minor (u16 sul wire)
- BlockHeader: metadata blocco (index, timestamp, link, payload hash/type)
- Block: header + payload opaco + firma Ed25519 + public key

Tutti i modelli sono immutabili (frozen dataclass). Il payload è un buffer
opaco etichettato da payload_type: il core non ne interpreta il contenuto.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from olocus.constants import (
    HASH_SIZE,
    MAX_I64,
    MAX_U16,
    MAX_U32,
    MAX_U64,
    MIN_I64,
    PROTOCOL_VERSION_MAJOR,
    PROTOCOL_VERSION_MINOR,
    PUBLIC_KEY_SIZE,
    SIGNATURE_SIZE,
    ZERO_HASH,
)
from olocus.errors import MalformedBlockError, format_validation_error


# ============================================================================
# PROTOCOL VERSION
# ============================================================================

@dataclass(frozen=True, order=True)
class ProtocolVersion:
    """
    Versione protocollo major.minor.

    Sul wire è un u16: byte alto = major, byte basso = minor.

    Examples:
        >>> ProtocolVersion(1, 1).to_u16()
        257
        >>> ProtocolVersion.parse("1.0")
        ProtocolVersion(major=1, minor=0)
    """

    major: int
    minor: int

    def __post_init__(self):
        if not (0 <= self.major <= 0xFF and 0 <= self.minor <= 0xFF):
            raise ValueError(f"Invalid protocol version {self.major}.{self.minor}")

    def to_u16(self) -> int:
        return (self.major << 8) | self.minor

    @classmethod
    def from_u16(cls, value: int) -> ProtocolVersion:
        if not (0 <= value <= MAX_U16):
            raise ValueError(f"Version out of u16 range: {value}")
        return cls(value >> 8, value & 0xFF)

    @classmethod
    def parse(cls, text: str) -> ProtocolVersion:
        major, minor = text.strip().split('.')
        return cls(int(major), int(minor))

    def is_compatible_with(self, other: ProtocolVersion) -> bool:
        """Compatibilità = stesso major"""
        return self.major == other.major

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


CURRENT_PROTOCOL_VERSION = ProtocolVersion(PROTOCOL_VERSION_MAJOR, PROTOCOL_VERSION_MINOR)


# ============================================================================
# BLOCK HEADER
# ============================================================================

@dataclass(frozen=True)
class BlockHeader:
    """
    Header blocco.

    Attributes:
        version (int): Versione protocollo (u16 major.minor)
        index (int): Posizione nella chain (u64, 0 = genesis)
        timestamp (int): Unix seconds (i64)
        previous_hash (bytes): Hash del blocco precedente (32 bytes, zeri per genesis)
        payload_hash (bytes): SHA256(payload) (32 bytes)
        payload_type (int): Tipo payload (u32)

    Note:
        payload_size esiste solo sul wire: in memoria deriva da len(payload).

    Raises:
        MalformedBlockError: Se un campo eccede la sua larghezza wire
    """

    version: int
    index: int
    timestamp: int
    previous_hash: bytes
    payload_hash: bytes
    payload_type: int

    def __post_init__(self):
        """Validazione larghezze campi wire"""
        if not isinstance(self.version, int) or not (0 <= self.version <= MAX_U16):
            raise format_validation_error("version", self.version, "u16")

        if not isinstance(self.index, int) or not (0 <= self.index <= MAX_U64):
            raise format_validation_error("index", self.index, "u64")

        if not isinstance(self.timestamp, int) or not (MIN_I64 <= self.timestamp <= MAX_I64):
            raise format_validation_error("timestamp", self.timestamp, "i64")

        if not isinstance(self.previous_hash, bytes) or len(self.previous_hash) != HASH_SIZE:
            raise format_validation_error("previous_hash", self.previous_hash, "32 bytes")

        if not isinstance(self.payload_hash, bytes) or len(self.payload_hash) != HASH_SIZE:
            raise format_validation_error("payload_hash", self.payload_hash, "32 bytes")

        if not isinstance(self.payload_type, int) or not (0 <= self.payload_type <= MAX_U32):
            raise format_validation_error("payload_type", self.payload_type, "u32")

    @property
    def protocol_version(self) -> ProtocolVersion:
        return ProtocolVersion.from_u16(self.version)

    def is_genesis(self) -> bool:
        """Check struttura genesis (index 0 + previous zeri)"""
        return self.index == 0 and self.previous_hash == ZERO_HASH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": str(self.protocol_version),
            "index": self.index,
            "timestamp": self.timestamp,
            "previous_hash": self.previous_hash.hex(),
            "payload_hash": self.payload_hash.hex(),
            "payload_type": self.payload_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BlockHeader:
        return cls(
            version=ProtocolVersion.parse(data["version"]).to_u16(),
            index=data["index"],
            timestamp=data["timestamp"],
            previous_hash=bytes.fromhex(data["previous_hash"]),
            payload_hash=bytes.fromhex(data["payload_hash"]),
            payload_type=data["payload_type"],
        )

    def __repr__(self) -> str:
        return (
            f"BlockHeader(index={self.index}, "
            f"timestamp={self.timestamp}, "
            f"prev={self.previous_hash.hex()[:16]}..., "
            f"payload_type={self.payload_type:#06x})"
        )


# ============================================================================
# BLOCK
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    Blocco completo.

    Attributes:
        header (BlockHeader): Header blocco
        payload (bytes): Payload opaco (interpretato per payload_type)
        signature (bytes): Firma Ed25519 (64 bytes) su
            header_bytes || payload_size || payload
        public_key (bytes): Public key Ed25519 del firmatario (32 bytes)

    Examples:
        >>> from olocus.domain.blocks import create_genesis_block
        >>> block = create_genesis_block(b"hello", keypair, 1_700_000_000)
        >>> block.header.index
        0
    """

    header: BlockHeader
    payload: bytes
    signature: bytes
    public_key: bytes

    def __post_init__(self):
        if not isinstance(self.payload, bytes):
            raise format_validation_error("payload", type(self.payload).__name__, "bytes")

        if len(self.payload) > MAX_U32:
            raise MalformedBlockError(
                f"Payload of {len(self.payload)} bytes does not fit the u32 size field",
                code="PAYLOAD_SIZE_OVERFLOW"
            )

        if not isinstance(self.signature, bytes) or len(self.signature) != SIGNATURE_SIZE:
            raise format_validation_error("signature", self.signature, "64 bytes")

        if not isinstance(self.public_key, bytes) or len(self.public_key) != PUBLIC_KEY_SIZE:
            raise format_validation_error("public_key", self.public_key, "32 bytes")

    @property
    def payload_size(self) -> int:
        return len(self.payload)

    @property
    def index(self) -> int:
        return self.header.index

    @property
    def timestamp(self) -> int:
        return self.header.timestamp

    def compute_hash(self) -> bytes:
        """SHA256(wire encoding) - link value e block id"""
        from olocus.domain.blocks import compute_block_hash
        return compute_block_hash(self)

    def compute_hash_hex(self) -> str:
        return self.compute_hash().hex()

    def verify_signature(self) -> bool:
        from olocus.domain.blocks import verify_block_signature
        return verify_block_signature(self)

    def to_bytes(self) -> bytes:
        from olocus.domain.codec import encode_block
        return encode_block(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> Block:
        from olocus.domain.codec import decode_block
        return decode_block(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header": self.header.to_dict(),
            "payload": self.payload.hex(),
            "payload_size": self.payload_size,
            "signature": self.signature.hex(),
            "public_key": self.public_key.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Block:
        return cls(
            header=BlockHeader.from_dict(data["header"]),
            payload=bytes.fromhex(data["payload"]),
            signature=bytes.fromhex(data["signature"]),
            public_key=bytes.fromhex(data["public_key"]),
        )

    def __repr__(self) -> str:
        return (
            f"Block(index={self.header.index}, "
            f"payload_type={self.header.payload_type:#06x}, "
            f"payload_size={self.payload_size})"
        )


__all__ = [
    "ProtocolVersion",
    "CURRENT_PROTOCOL_VERSION",
    "BlockHeader",
    "Block",
]
