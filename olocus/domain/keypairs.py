"""
Olocus - KeyPair Wrapper
==========================
Wrapper immutabile per coppie chiavi Ed25519.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Il core NON gestisce chiavi (storage, rotazione, HSM sono responsabilità
del caller): KeyPair è solo il contenitore passato a firma blocchi e
firma preferenze di negoziazione.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from olocus.constants import PUBLIC_KEY_SIZE
from olocus.domain.crypto_core import (
    derive_public_key,
    generate_private_key_bytes,
    sign_message,
    verify_signature,
)
from olocus.errors import CryptoError, InvalidKeyError


PRIVATE_KEY_SIZE = 32


@dataclass(frozen=True)
class KeyPair:
    """
    Coppia chiavi Ed25519 immutabile.

    Attributes:
        private_key (bytes): Seed privato raw (32 bytes)
        public_key (bytes): Public key raw (32 bytes)

    Security:
        - Immutabile (frozen dataclass)
        - private_key escluso da repr

    Examples:
        >>> keypair = generate_keypair()
        >>> sig = keypair.sign(b"data")
        >>> keypair.verify(b"data", sig)
        True
    """

    private_key: bytes = field(repr=False)
    public_key: bytes

    def __post_init__(self):
        if not isinstance(self.private_key, bytes) or len(self.private_key) != PRIVATE_KEY_SIZE:
            raise InvalidKeyError(
                "Invalid private_key: must be 32 raw bytes",
                code="INVALID_PRIVATE_KEY"
            )

        if not isinstance(self.public_key, bytes) or len(self.public_key) != PUBLIC_KEY_SIZE:
            raise InvalidKeyError(
                "Invalid public_key: must be 32 raw bytes",
                code="INVALID_PUBLIC_KEY"
            )

        if derive_public_key(self.private_key) != self.public_key:
            raise InvalidKeyError(
                "public_key does not match private_key",
                code="KEYPAIR_MISMATCH"
            )

    def sign(self, message: bytes) -> bytes:
        """Firma messaggio (64 bytes, deterministica)"""
        if not isinstance(message, (bytes, bytearray)):
            raise CryptoError(
                f"Message must be bytes, got {type(message).__name__}",
                code="INVALID_MESSAGE_TYPE"
            )
        return sign_message(message, self.private_key)

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verifica firma con la public key (mai eccezioni)"""
        return verify_signature(message, signature, self.public_key)

    def get_public_key_hex(self) -> str:
        return self.public_key.hex()

    def to_dict(self, include_private: bool = False) -> Dict[str, Any]:
        """
        Serializza keypair in dict.

        Args:
            include_private: Se True, include chiave privata (DANGEROUS!)
        """
        data = {"algorithm": "ed25519", "public_key": self.public_key.hex()}
        if include_private:
            data["private_key"] = self.private_key.hex()
        return data

    @classmethod
    def from_private_bytes(cls, private_key: bytes) -> KeyPair:
        """Ricostruisce keypair da seed privato"""
        return cls(private_key=private_key, public_key=derive_public_key(private_key))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KeyPair:
        if "private_key" not in data:
            raise InvalidKeyError("private_key missing", code="MISSING_PRIVATE_KEY")
        return cls.from_private_bytes(bytes.fromhex(data["private_key"]))

    def __repr__(self) -> str:
        return f"KeyPair(ed25519, public_key={self.public_key.hex()[:16]}...)"


def generate_keypair() -> KeyPair:
    """
    Genera nuova keypair Ed25519.

    Examples:
        >>> kp = generate_keypair()
        >>> len(kp.public_key)
        32
    """
    return KeyPair.from_private_bytes(generate_private_key_bytes())


# Alias breve
generate_key = generate_keypair


__all__ = [
    "KeyPair",
    "generate_keypair",
    "generate_key",
]
