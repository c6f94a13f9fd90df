"""
Olocus - Block Creation & Signing
===================================
Costruzione genesis/next block, hash e verifica firma.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Genesis Block:
- Index: 0
- Previous hash: 32 bytes zero
- payload_hash = SHA256(payload)
- Firma Ed25519 su header_bytes || payload_size || payload

Next Block:
- Index: previous.index + 1
- Previous hash: SHA256(wire encoding del predecessore)
- Timestamp strettamente maggiore del predecessore
"""

from __future__ import annotations

import time
from typing import Iterable, Optional

from olocus.constants import ZERO_HASH
from olocus.domain.codec import encode_block, signing_message
from olocus.domain.crypto_core import compute_sha256, verify_signature
from olocus.domain.keypairs import KeyPair
from olocus.domain.models import Block, BlockHeader, CURRENT_PROTOCOL_VERSION, ProtocolVersion
from olocus.domain.payloads import CorePayloadType
from olocus.errors import BrokenChainError, ChainConstructionError
from olocus.logging_setup import get_logger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("blocks")


def current_timestamp() -> int:
    """Unix timestamp corrente (secondi interi)"""
    return int(time.time())


# ============================================================================
# HASH & SIGNATURE
# ============================================================================

def compute_block_hash(block: Block) -> bytes:
    """
    Hash blocco: SHA256(encode_block(block)).

    Usato sia come link (previous_hash del successore) sia come block id.
    Referenzialmente stabile: stessi bytes, stesso hash.
    """
    return compute_sha256(encode_block(block))


def verify_block_signature(block: Block) -> bool:
    """
    Verifica firma del blocco.

    Ricalcola header_bytes || payload_size || payload e verifica con
    block.public_key. Mai eccezioni (chiave malformata = False).
    """
    message = signing_message(block.header, block.payload)
    return verify_signature(message, block.signature, block.public_key)


def _sign_block(header: BlockHeader, payload: bytes, signing_key: KeyPair) -> Block:
    signature = signing_key.sign(signing_message(header, payload))
    return Block(
        header=header,
        payload=payload,
        signature=signature,
        public_key=signing_key.public_key,
    )


# ============================================================================
# BLOCK CREATION
# ============================================================================

def create_genesis_block(
    payload: bytes,
    signing_key: KeyPair,
    timestamp: int,
    payload_type: int = CorePayloadType.RAW,
    version: ProtocolVersion = CURRENT_PROTOCOL_VERSION
) -> Block:
    """
    Crea genesis block (index 0).

    Args:
        payload: Payload opaco
        signing_key: KeyPair firmataria (gestita dal caller)
        timestamp: Unix seconds
        payload_type: Tipo payload (u32)
        version: Versione protocollo

    Returns:
        Block: Genesis firmato

    Examples:
        >>> genesis = create_genesis_block(b"", keypair, 1_700_000_000, CorePayloadType.EMPTY)
        >>> genesis.header.previous_hash == bytes(32)
        True
    """
    payload = bytes(payload)

    header = BlockHeader(
        version=version.to_u16(),
        index=0,
        timestamp=timestamp,
        previous_hash=ZERO_HASH,
        payload_hash=compute_sha256(payload),
        payload_type=int(payload_type),
    )

    block = _sign_block(header, payload, signing_key)

    logger.debug(
        "Genesis block created",
        extra_data={"payload_type": int(payload_type), "payload_size": len(payload)}
    )

    return block


def create_next_block(
    previous_block: Block,
    payload: bytes,
    signing_key: KeyPair,
    timestamp: int,
    payload_type: int = CorePayloadType.RAW,
    version: Optional[ProtocolVersion] = None
) -> Block:
    """
    Crea blocco successivo a previous_block.

    Args:
        previous_block: Predecessore (tip corrente)
        payload: Payload opaco
        signing_key: KeyPair firmataria
        timestamp: Unix seconds, DEVE essere > previous_block.timestamp
        payload_type: Tipo payload
        version: Versione (default: quella del predecessore)

    Returns:
        Block: Blocco firmato con index = previous.index + 1

    Raises:
        ChainConstructionError: Se clock non monotono rispetto al predecessore
    """
    if timestamp <= previous_block.header.timestamp:
        raise ChainConstructionError(
            f"Non-monotonic timestamp: {timestamp} <= predecessor {previous_block.header.timestamp}",
            code="NON_MONOTONIC_CLOCK",
            details={"timestamp": timestamp, "previous": previous_block.header.timestamp}
        )

    payload = bytes(payload)
    version_u16 = version.to_u16() if version is not None else previous_block.header.version

    header = BlockHeader(
        version=version_u16,
        index=previous_block.header.index + 1,
        timestamp=timestamp,
        previous_hash=compute_block_hash(previous_block),
        payload_hash=compute_sha256(payload),
        payload_type=int(payload_type),
    )

    return _sign_block(header, payload, signing_key)


# ============================================================================
# CHAIN HELPERS
# ============================================================================

def verify_chain_links(blocks: Iterable[Block]) -> None:
    """
    Verifica invariante di linkage: block[i].previous == hash(block[i-1]).

    Controlla solo i link (e la sequenza di index), non firme né timestamp.

    Raises:
        BrokenChainError: Al primo link rotto
    """
    previous: Optional[Block] = None

    for position, block in enumerate(blocks):
        if previous is None:
            if not block.header.is_genesis():
                raise BrokenChainError(
                    "First block is not a genesis block",
                    code="NOT_GENESIS",
                    details={"position": position}
                )
        else:
            if block.header.index != previous.header.index + 1:
                raise BrokenChainError(
                    f"Index gap at position {position}",
                    code="INDEX_GAP",
                    details={"position": position}
                )
            if block.header.previous_hash != compute_block_hash(previous):
                raise BrokenChainError(
                    f"Broken link at position {position}",
                    code="BROKEN_LINK",
                    details={"position": position}
                )
        previous = block


__all__ = [
    "current_timestamp",
    "compute_block_hash",
    "verify_block_signature",
    "create_genesis_block",
    "create_next_block",
    "verify_chain_links",
]
