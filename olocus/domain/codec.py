"""
Olocus - Wire Codec
=====================
Serializzazione byte-exact dei blocchi.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Formato wire (envelope 186 bytes + payload), interi big-endian:

    offset  size  field
    0       2     version (u16 major.minor)
    2       8     index (u64)
    10      8     timestamp (i64)
    18      32    previous_hash
    50      32    payload_hash
    82      4     payload_type (u32)
    86      4     payload_size (u32)
    90      32    public_key
    122     64    signature
    186     var   payload

Funzioni pure: nessuno stato condiviso, usabili in concorrenza.
Il decode NON verifica payload_hash né firma (compito del ChainValidator).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from olocus.constants import ENVELOPE_SIZE
from olocus.domain.models import Block, BlockHeader
from olocus.errors import MalformedBlockError


# ============================================================================
# STRUCT LAYOUTS
# ============================================================================

# version, index, timestamp, previous, payload_hash, payload_type
_HEADER_STRUCT = struct.Struct('>HQq32s32sI')

# header + payload_size, public_key, signature
_ENVELOPE_STRUCT = struct.Struct('>HQq32s32sII32s64s')

_SIZE_STRUCT = struct.Struct('>I')


# ============================================================================
# ENCODE
# ============================================================================

def encode_header(header: BlockHeader) -> bytes:
    """
    Serializza porzione firmata dell'header (86 bytes, offsets 0-86).

    Args:
        header: BlockHeader

    Returns:
        bytes: version || index || timestamp || previous || payload_hash || payload_type
    """
    return _HEADER_STRUCT.pack(
        header.version,
        header.index,
        header.timestamp,
        header.previous_hash,
        header.payload_hash,
        header.payload_type,
    )


def signing_message(header: BlockHeader, payload: bytes) -> bytes:
    """
    Messaggio firmato: header_bytes || payload_size || payload.

    Coincide con i primi 90 bytes dell'envelope seguiti dal payload.
    """
    return encode_header(header) + _SIZE_STRUCT.pack(len(payload)) + payload


def encode_block(block: Block) -> bytes:
    """
    Serializza blocco in formato wire.

    Output deterministico e canonico (nessun padding, nessun campo opzionale).

    Args:
        block: Block da serializzare

    Returns:
        bytes: Envelope (186 bytes) + payload

    Examples:
        >>> data = encode_block(block)
        >>> len(data) == 186 + len(block.payload)
        True
    """
    header = block.header
    envelope = _ENVELOPE_STRUCT.pack(
        header.version,
        header.index,
        header.timestamp,
        header.previous_hash,
        header.payload_hash,
        header.payload_type,
        len(block.payload),
        block.public_key,
        block.signature,
    )
    return envelope + block.payload


# ============================================================================
# DECODE
# ============================================================================

@dataclass(frozen=True)
class EnvelopeInfo:
    """Envelope parsato senza copiare il payload"""

    header: BlockHeader
    payload_size: int
    public_key: bytes
    signature: bytes


def peek_header(data: bytes) -> EnvelopeInfo:
    """
    Parsa solo l'envelope (routing/dispatch su payload_type).

    Raises:
        MalformedBlockError: Se data è più corto dell'envelope
    """
    if len(data) < ENVELOPE_SIZE:
        raise MalformedBlockError(
            f"Block too short: {len(data)} bytes, envelope is {ENVELOPE_SIZE}",
            code="BLOCK_TOO_SHORT",
            details={"length": len(data)}
        )

    try:
        (
            version,
            index,
            timestamp,
            previous_hash,
            payload_hash,
            payload_type,
            payload_size,
            public_key,
            signature,
        ) = _ENVELOPE_STRUCT.unpack_from(data, 0)
    except struct.error as e:
        raise MalformedBlockError(f"Envelope cannot be parsed: {e}", code="ENVELOPE_UNPARSABLE")

    header = BlockHeader(
        version=version,
        index=index,
        timestamp=timestamp,
        previous_hash=previous_hash,
        payload_hash=payload_hash,
        payload_type=payload_type,
    )

    return EnvelopeInfo(
        header=header,
        payload_size=payload_size,
        public_key=public_key,
        signature=signature,
    )


def decode_block(data: bytes) -> Block:
    """
    Deserializza blocco da formato wire.

    Args:
        data: Bytes wire (envelope + payload)

    Returns:
        Block: Blocco decodificato (hash/firma NON verificati)

    Raises:
        MalformedBlockError: Se input < 186 bytes, se payload_size non
            corrisponde al buffer residuo, o se un campo non è parsabile

    Examples:
        >>> decode_block(encode_block(block)) == block
        True
    """
    data = bytes(data)
    info = peek_header(data)

    remaining = len(data) - ENVELOPE_SIZE
    if info.payload_size != remaining:
        raise MalformedBlockError(
            f"Payload size mismatch: header declares {info.payload_size}, buffer has {remaining}",
            code="PAYLOAD_SIZE_MISMATCH",
            details={"declared": info.payload_size, "actual": remaining}
        )

    return Block(
        header=info.header,
        payload=data[ENVELOPE_SIZE:],
        signature=info.signature,
        public_key=info.public_key,
    )


__all__ = [
    "encode_header",
    "signing_message",
    "encode_block",
    "decode_block",
    "peek_header",
    "EnvelopeInfo",
]
