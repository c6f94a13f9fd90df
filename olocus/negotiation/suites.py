"""
Olocus - Algorithm Suites
===========================
Tabella delle suite crittografiche negoziabili.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Ogni suite è identificata da un byte. La suite 0x00 (Ed25519/SHA-256) è la
baseline obbligatoria: ogni implementazione la supporta.
Una suite è legale per una versione di handshake solo se la versione ha lo
stesso major e minor >= al minor minimo della suite.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from olocus.domain.models import ProtocolVersion


class SignatureAlgorithm(str, Enum):
    ED25519 = "ed25519"
    ECDSA_P256 = "ecdsa-p256"
    DILITHIUM3 = "dilithium3"
    HYBRID_ED25519_DILITHIUM3 = "ed25519+dilithium3"
    DILITHIUM5 = "dilithium5"


class HashAlgorithm(str, Enum):
    SHA256 = "sha256"
    SHA512 = "sha512"


@dataclass(frozen=True)
class AlgorithmSuite:
    """
    Suite negoziabile.

    Attributes:
        suite_id (int): Identificativo wire (u8)
        name (str): Nome leggibile
        signature (SignatureAlgorithm): Algoritmo di firma
        hash (HashAlgorithm): Algoritmo di hash
        security_level (int): Livello di sicurezza (bit)
        min_version (ProtocolVersion): Prima versione che la ammette
    """

    suite_id: int
    name: str
    signature: SignatureAlgorithm
    hash: HashAlgorithm
    security_level: int
    min_version: ProtocolVersion

    def is_legal_for(self, version: ProtocolVersion) -> bool:
        return version.major == self.min_version.major and version >= self.min_version

    def to_dict(self) -> dict:
        return {
            "suite_id": self.suite_id,
            "name": self.name,
            "signature": self.signature.value,
            "hash": self.hash.value,
            "security_level": self.security_level,
            "min_version": str(self.min_version),
        }


# ============================================================================
# SUITE TABLE
# ============================================================================

BASELINE_SUITE_ID = 0x00

_V1_0 = ProtocolVersion(1, 0)
_V1_1 = ProtocolVersion(1, 1)

SUITE_TABLE: Dict[int, AlgorithmSuite] = {
    suite.suite_id: suite
    for suite in (
        AlgorithmSuite(0x00, "Ed25519/SHA-256", SignatureAlgorithm.ED25519,
                       HashAlgorithm.SHA256, 128, _V1_0),
        AlgorithmSuite(0x01, "ECDSA-P256/SHA-256", SignatureAlgorithm.ECDSA_P256,
                       HashAlgorithm.SHA256, 128, _V1_0),
        AlgorithmSuite(0x02, "Dilithium3/SHA-256", SignatureAlgorithm.DILITHIUM3,
                       HashAlgorithm.SHA256, 192, _V1_1),
        AlgorithmSuite(0x03, "Ed25519+Dilithium3/SHA-512", SignatureAlgorithm.HYBRID_ED25519_DILITHIUM3,
                       HashAlgorithm.SHA512, 192, _V1_1),
        AlgorithmSuite(0x04, "Dilithium5/SHA-512", SignatureAlgorithm.DILITHIUM5,
                       HashAlgorithm.SHA512, 256, _V1_1),
    )
}

# Preferenza di default: suite più forte per prima, baseline per ultima
DEFAULT_PREFERENCE: tuple = (0x04, 0x03, 0x02, 0x01, 0x00)


def get_suite(suite_id: int) -> Optional[AlgorithmSuite]:
    return SUITE_TABLE.get(suite_id)


def is_legal_for_version(suite_id: int, version: ProtocolVersion) -> bool:
    """Suite nota e ammessa dalla versione di handshake"""
    suite = SUITE_TABLE.get(suite_id)
    return suite is not None and suite.is_legal_for(version)


def suites_for_version(version: ProtocolVersion, suite_ids: Optional[Iterable[int]] = None) -> List[int]:
    """
    Filtra suite_ids (default: preferenza di default) mantenendo l'ordine.

    Examples:
        >>> suites_for_version(ProtocolVersion(1, 0))
        [1, 0]
    """
    ids = DEFAULT_PREFERENCE if suite_ids is None else suite_ids
    return [suite_id for suite_id in ids if is_legal_for_version(suite_id, version)]


def encode_suite_list(suite_ids: Sequence[int]) -> bytes:
    """count (u8) || suite_ids"""
    if len(suite_ids) > 0xFF:
        raise ValueError(f"Too many suites: {len(suite_ids)}")
    return bytes([len(suite_ids)]) + bytes(suite_ids)


__all__ = [
    "SignatureAlgorithm",
    "HashAlgorithm",
    "AlgorithmSuite",
    "BASELINE_SUITE_ID",
    "SUITE_TABLE",
    "DEFAULT_PREFERENCE",
    "get_suite",
    "is_legal_for_version",
    "suites_for_version",
    "encode_suite_list",
]
