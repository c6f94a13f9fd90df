"""
Olocus - Cryptographic Core Layer
===================================
Primitive crittografiche: hash e firme.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

SECURITY NOTICE:
Questo modulo implementa primitive crittografiche critiche.
Ogni modifica deve essere sottoposta a security audit.

Algorithms:
- Hash: SHA-256 (32 bytes)
- Signature: Ed25519 (firma 64 bytes, chiavi raw 32 bytes, deterministica)

Tutte le funzioni sono pure (nessuno stato condiviso) e thread-safe.

Dependencies:
- cryptography (>=41.0.0)
- hashlib (stdlib)
"""

from __future__ import annotations

import hashlib
import secrets
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.exceptions import InvalidSignature as CryptoInvalidSignature

from olocus.constants import HASH_SIZE, NONCE_SIZE, PUBLIC_KEY_SIZE, SIGNATURE_SIZE
from olocus.errors import CryptoError, InvalidKeyError
from olocus.logging_setup import get_logger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("crypto")


# ============================================================================
# HASH FUNCTIONS
# ============================================================================

def compute_sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    SHA-256 è l'hash primario per:
    - Block hashes (chain link + block id)
    - Payload hashes
    - Negotiation commitment e transcript

    Args:
        data: Input data da hashare

    Returns:
        bytes: 32-byte digest

    Examples:
        >>> compute_sha256(b"").hex()
        'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise CryptoError(
            f"compute_sha256 requires bytes, got {type(data).__name__}",
            code="INVALID_INPUT_TYPE"
        )

    return hashlib.sha256(data).digest()


# ============================================================================
# ED25519 SIGNATURES
# ============================================================================

def generate_private_key_bytes() -> bytes:
    """Genera seed Ed25519 (32 bytes raw) con CSPRNG"""
    private_key_obj = Ed25519PrivateKey.generate()
    return private_key_obj.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption()
    )


def derive_public_key(private_key: bytes) -> bytes:
    """
    Deriva public key raw (32 bytes) da private key raw.

    Raises:
        InvalidKeyError: Se private key malformata
    """
    try:
        private_key_obj = Ed25519PrivateKey.from_private_bytes(private_key)
    except (ValueError, TypeError) as e:
        raise InvalidKeyError(f"Invalid Ed25519 private key: {e}", code="INVALID_PRIVATE_KEY")

    return private_key_obj.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )


def sign_message(message: bytes, private_key: bytes) -> bytes:
    """
    Firma messaggio con Ed25519.

    Ed25519 è deterministica: stesso (message, key) produce sempre
    la stessa firma.

    Args:
        message: Messaggio da firmare
        private_key: Private key raw (32 bytes)

    Returns:
        bytes: Firma 64 bytes

    Raises:
        InvalidKeyError: Se private key malformata
    """
    try:
        private_key_obj = Ed25519PrivateKey.from_private_bytes(private_key)
    except (ValueError, TypeError) as e:
        raise InvalidKeyError(f"Ed25519 signing failed: {e}", code="SIGN_ERROR")

    return private_key_obj.sign(bytes(message))


def verify_signature(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verifica firma Ed25519.

    Non solleva mai eccezioni: chiavi o firme malformate producono False.

    Args:
        message: Messaggio originale
        signature: Firma (64 bytes)
        public_key: Public key raw (32 bytes)

    Returns:
        bool: True se firma valida

    Examples:
        >>> priv = generate_private_key_bytes()
        >>> pub = derive_public_key(priv)
        >>> verify_signature(b"m", sign_message(b"m", priv), pub)
        True
        >>> verify_signature(b"m", b"\\x00" * 64, b"\\x01")
        False
    """
    if len(signature) != SIGNATURE_SIZE or len(public_key) != PUBLIC_KEY_SIZE:
        return False

    try:
        public_key_obj = Ed25519PublicKey.from_public_bytes(bytes(public_key))
        public_key_obj.verify(bytes(signature), bytes(message))
        return True

    except CryptoInvalidSignature:
        return False

    except (ValueError, TypeError) as e:
        logger.debug("Ed25519 verification error", extra_data={"error": str(e)})
        return False


# ============================================================================
# BATCH VERIFICATION
# ============================================================================

@dataclass(frozen=True)
class BatchVerifyResult:
    """
    Esito batch verification.

    Attributes:
        all_valid (bool): True se tutte le firme sono valide
        first_invalid_index (Optional[int]): Prima posizione invalida
            (ordine crescente, indipendente dall'ordine di completamento)
        checked (int): Numero triple verificate
    """

    all_valid: bool
    first_invalid_index: Optional[int]
    checked: int

    def __bool__(self) -> bool:
        return self.all_valid


SignatureTriple = Tuple[bytes, bytes, bytes]


def _verify_chunk(chunk: Sequence[SignatureTriple]) -> list:
    return [verify_signature(msg, sig, pub) for msg, sig, pub in chunk]


def batch_verify(
    items: Sequence[SignatureTriple],
    max_workers: Optional[int] = None,
    chunk_size: int = 64
) -> BatchVerifyResult:
    """
    Verifica N triple (message, signature, public_key) in parallelo.

    Le triple sono indipendenti: vengono divise in chunk e verificate su un
    thread pool. Il merge è per posizione, quindi il primo indice invalido
    riportato è deterministico.

    Args:
        items: Triple (message, signature, public_key)
        max_workers: Thread pool size (None/1 = sequenziale)
        chunk_size: Triple per task

    Returns:
        BatchVerifyResult: all_valid oppure first_invalid_index
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    items = list(items)
    if not items:
        return BatchVerifyResult(all_valid=True, first_invalid_index=None, checked=0)

    chunks = [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]

    if max_workers is None or max_workers <= 1 or len(chunks) == 1:
        results = [_verify_chunk(chunk) for chunk in chunks]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # map preserva l'ordine dei chunk
            results = list(executor.map(_verify_chunk, chunks))

    flat = [ok for chunk_result in results for ok in chunk_result]

    for position, ok in enumerate(flat):
        if not ok:
            logger.debug(
                "Batch verification failed",
                extra_data={"first_invalid_index": position, "checked": len(flat)}
            )
            return BatchVerifyResult(
                all_valid=False,
                first_invalid_index=position,
                checked=len(flat)
            )

    return BatchVerifyResult(all_valid=True, first_invalid_index=None, checked=len(flat))


# ============================================================================
# RANDOM
# ============================================================================

def generate_nonce(length: int = NONCE_SIZE) -> bytes:
    """
    Genera nonce crittograficamente sicuro (secrets, CSPRNG).

    Args:
        length: Numero bytes (default 32)
    """
    if length <= 0:
        raise CryptoError(f"Invalid nonce length: {length}", code="INVALID_LENGTH")

    return secrets.token_bytes(length)


def is_valid_hash(value: bytes) -> bool:
    """Check formato digest SHA-256"""
    return isinstance(value, (bytes, bytearray)) and len(value) == HASH_SIZE


__all__ = [
    "compute_sha256",
    "generate_private_key_bytes",
    "derive_public_key",
    "sign_message",
    "verify_signature",
    "BatchVerifyResult",
    "batch_verify",
    "generate_nonce",
    "is_valid_hash",
]
