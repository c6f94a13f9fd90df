"""
Olocus - Core Constants
=========================
Costanti immutabili del protocollo Olocus (wire format, validazione, codici errore).

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

IMPORTANTE: Offsets e dimensioni del wire format sono il contratto byte-exact
con tutte le implementazioni compatibili. Non modificare.
"""

from enum import IntEnum
from typing import Final


# ============================================================================
# IDENTIFICAZIONE PROTOCOLLO
# ============================================================================

PROTOCOL_NAME: Final[str] = "Olocus"
SOFTWARE_VERSION: Final[str] = "1.0.0"

# Versione protocollo (major, minor) - encoded come u16 (major << 8 | minor)
PROTOCOL_VERSION_MAJOR: Final[int] = 1
PROTOCOL_VERSION_MINOR: Final[int] = 1


# ============================================================================
# DIMENSIONI PRIMITIVE
# ============================================================================

HASH_SIZE: Final[int] = 32          # SHA-256 digest
SIGNATURE_SIZE: Final[int] = 64     # Ed25519 signature
PUBLIC_KEY_SIZE: Final[int] = 32    # Ed25519 public key
NONCE_SIZE: Final[int] = 32         # Negotiation freshness nonce

ZERO_HASH: Final[bytes] = b'\x00' * HASH_SIZE


# ============================================================================
# WIRE FORMAT (envelope 186 bytes + payload)
# ============================================================================

# (offset, size) - tutti gli interi big-endian
VERSION_FIELD: Final[tuple] = (0, 2)
INDEX_FIELD: Final[tuple] = (2, 8)
TIMESTAMP_FIELD: Final[tuple] = (10, 8)
PREVIOUS_FIELD: Final[tuple] = (18, 32)
PAYLOAD_HASH_FIELD: Final[tuple] = (50, 32)
PAYLOAD_TYPE_FIELD: Final[tuple] = (82, 4)
PAYLOAD_SIZE_FIELD: Final[tuple] = (86, 4)
PUBLIC_KEY_FIELD: Final[tuple] = (90, 32)
SIGNATURE_FIELD: Final[tuple] = (122, 64)

# Header firmato (version..payload_type, offsets 0-86)
SIGNED_HEADER_SIZE: Final[int] = 86
ENVELOPE_SIZE: Final[int] = 186

MAX_U16: Final[int] = 0xFFFF
MAX_U32: Final[int] = 0xFFFF_FFFF
MAX_U64: Final[int] = 0xFFFF_FFFF_FFFF_FFFF
MIN_I64: Final[int] = -(2 ** 63)
MAX_I64: Final[int] = 2 ** 63 - 1


# ============================================================================
# VALIDATION CONSTANTS (default - override documentati in config)
# ============================================================================

MAX_FUTURE_DRIFT: Final[int] = 300              # secondi
MAX_BLOCK_AGE: Final[int] = 86_400              # secondi (24h)
MAX_PAYLOAD_SIZE: Final[int] = 16 * 1024 * 1024  # 16 MiB
MAX_REORG_DEPTH: Final[int] = 100               # blocchi


# ============================================================================
# NEGOTIATION DEFAULTS
# ============================================================================

NONCE_WINDOW_SECONDS: Final[int] = 300
NONCE_CACHE_SIZE: Final[int] = 10_000
NEGOTIATION_TIMEOUT_SECONDS: Final[int] = 30
DEFAULT_MIN_SECURITY_LEVEL: Final[int] = 128


# ============================================================================
# ERROR CODES
# ============================================================================

class ErrorCode(IntEnum):
    """
    Codici errore core (range 0-63).

    0-7 sono fissati dal protocollo; 8-11 sono estensioni core
    della stessa famiglia (validazione chain).
    """
    OK = 0
    VERSION_MISMATCH = 1
    BROKEN_CHAIN = 2
    INVALID_INDEX = 3
    TIMESTAMP_REGRESSION = 4
    PAYLOAD_MISMATCH = 5
    INVALID_SIGNATURE = 6
    MALFORMED_BLOCK = 7
    TIMESTAMP_OUT_OF_BOUNDS = 8
    PAYLOAD_TOO_LARGE = 9
    REORG_TOO_DEEP = 10
    CHAIN_CONSTRUCTION = 11


class ErrorCodeRange(IntEnum):
    """Famiglie di codici errore"""
    CORE = 0
    RESERVED = 64
    STANDARD_EXTENSION = 128
    EXTENSION_SPECIFIC = 256


def classify_error_code(code: int) -> ErrorCodeRange:
    """
    Classifica codice errore nel suo range.

    Args:
        code: Codice errore numerico (>= 0)

    Returns:
        ErrorCodeRange: Range di appartenenza

    Examples:
        >>> classify_error_code(6)
        <ErrorCodeRange.CORE: 0>
        >>> classify_error_code(300)
        <ErrorCodeRange.EXTENSION_SPECIFIC: 256>
    """
    if code < 0:
        raise ValueError(f"Error code must be non-negative, got {code}")

    if code < ErrorCodeRange.RESERVED:
        return ErrorCodeRange.CORE
    if code < ErrorCodeRange.STANDARD_EXTENSION:
        return ErrorCodeRange.RESERVED
    if code < ErrorCodeRange.EXTENSION_SPECIFIC:
        return ErrorCodeRange.STANDARD_EXTENSION
    return ErrorCodeRange.EXTENSION_SPECIFIC


class NegotiationErrorCode(IntEnum):
    """Codici errore negoziazione (namespace separato dai codici chain)"""
    VERSION_BINDING = 1
    PREFERENCE_SIGNATURE = 2
    ORDERING_VIOLATION = 3
    COMMITMENT_MISMATCH = 4
    TRANSCRIPT_MISMATCH = 5
    INSUFFICIENT_SECURITY = 6
    FORBIDDEN_ALGORITHM = 7
    NONCE_REPLAY = 8
    STALE_OFFER = 9
    TIMEOUT = 10
    NO_COMMON_SUITE = 11
    INVALID_STATE = 12
    NONCE_CACHE_FULL = 13
    MALFORMED_OFFER = 14


# ============================================================================
# PAYLOAD TYPE ALLOCATION
# ============================================================================

CORE_PAYLOAD_TYPE_MAX: Final[int] = 0x00FF
REGISTERED_PAYLOAD_TYPE_MIN: Final[int] = 0x0100
REGISTERED_PAYLOAD_TYPE_MAX: Final[int] = 0x7FFF
USER_PAYLOAD_TYPE_MIN: Final[int] = 0x8000
USER_PAYLOAD_TYPE_MAX: Final[int] = 0xFFFF


__all__ = [
    "PROTOCOL_NAME",
    "SOFTWARE_VERSION",
    "PROTOCOL_VERSION_MAJOR",
    "PROTOCOL_VERSION_MINOR",
    "HASH_SIZE",
    "SIGNATURE_SIZE",
    "PUBLIC_KEY_SIZE",
    "NONCE_SIZE",
    "ZERO_HASH",
    "SIGNED_HEADER_SIZE",
    "ENVELOPE_SIZE",
    "MAX_FUTURE_DRIFT",
    "MAX_BLOCK_AGE",
    "MAX_PAYLOAD_SIZE",
    "MAX_REORG_DEPTH",
    "ErrorCode",
    "ErrorCodeRange",
    "NegotiationErrorCode",
    "classify_error_code",
]
