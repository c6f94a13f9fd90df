"""
Olocus - Custom Exceptions
============================
Gerarchia di eccezioni per gestione errori granulare.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Due namespace separati:
- ChainValidationError: errori wire/blocchi/chain (ErrorCode 0-63)
- NegotiationError: errori handshake algoritmi (NegotiationErrorCode)

Ogni eccezione dichiara se è recuperabile (input correggibile dal caller)
o permanente (il candidato va scartato, mai ritentato invariato).
"""

from typing import Optional, Any

from olocus.constants import ErrorCode, NegotiationErrorCode


# ============================================================================
# BASE EXCEPTION
# ============================================================================

class OlocusException(Exception):
    """
    Eccezione base per tutte le eccezioni Olocus.

    Attributes:
        message (str): Messaggio errore
        code (str): Codice errore testuale (es. "PAYLOAD_MISMATCH")
        details (dict): Dettagli aggiuntivi
    """

    recoverable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serializza eccezione per API/logging"""
        return {
            "error": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            return f"[{self.code}] {self.message} | Details: {self.details}"
        return f"[{self.code}] {self.message}"


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigError(OlocusException):
    """Errore configurazione"""
    pass


# ============================================================================
# CRYPTOGRAPHY ERRORS
# ============================================================================

class CryptoError(OlocusException):
    """Errore crittografia"""
    pass


class InvalidKeyError(CryptoError):
    """Chiave crittografica invalida"""
    pass


# ============================================================================
# CHAIN VALIDATION ERRORS (core, ErrorCode 0-63)
# ============================================================================

class ChainValidationError(OlocusException):
    """
    Errore validazione core.

    Attributes:
        error_code (ErrorCode): Codice numerico wire-level
        recoverable (bool): True se il caller può ritentare con input corretto
    """

    error_code: ErrorCode = ErrorCode.MALFORMED_BLOCK

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["error_code"] = int(self.error_code)
        return data


class VersionMismatchError(ChainValidationError):
    """Versione protocollo del blocco non supportata"""
    error_code = ErrorCode.VERSION_MISMATCH


class BrokenChainError(ChainValidationError):
    """previous_hash non corrisponde all'hash del tip"""
    error_code = ErrorCode.BROKEN_CHAIN


class InvalidIndexError(ChainValidationError):
    """Index non sequenziale"""
    error_code = ErrorCode.INVALID_INDEX
    recoverable = True


class TimestampRegressionError(ChainValidationError):
    """Timestamp non strettamente crescente rispetto al tip"""
    error_code = ErrorCode.TIMESTAMP_REGRESSION


class PayloadMismatchError(ChainValidationError):
    """payload_hash non corrisponde a SHA256(payload)"""
    error_code = ErrorCode.PAYLOAD_MISMATCH


class InvalidSignatureError(ChainValidationError):
    """Firma Ed25519 invalida"""
    error_code = ErrorCode.INVALID_SIGNATURE


class MalformedBlockError(ChainValidationError):
    """Blocco malformato (wire o struttura genesis)"""
    error_code = ErrorCode.MALFORMED_BLOCK
    recoverable = True


class TimestampBoundsError(ChainValidationError):
    """Timestamp fuori dalla finestra wall-clock (clock skew)"""
    error_code = ErrorCode.TIMESTAMP_OUT_OF_BOUNDS
    recoverable = True


class TimestampTooFarInFutureError(TimestampBoundsError):
    """Timestamp oltre now + MAX_FUTURE_DRIFT"""
    pass


class TimestampTooOldError(TimestampBoundsError):
    """Timestamp prima di now - MAX_BLOCK_AGE"""
    pass


class PayloadTooLargeError(ChainValidationError):
    """Payload oltre MAX_PAYLOAD_SIZE"""
    error_code = ErrorCode.PAYLOAD_TOO_LARGE
    recoverable = True


class ReorgDepthExceededError(ChainValidationError):
    """Branch alternativo diverge oltre MAX_REORG_DEPTH"""
    error_code = ErrorCode.REORG_TOO_DEEP


class ChainConstructionError(ChainValidationError):
    """Costruzione blocco non valida (es. clock non monotono)"""
    error_code = ErrorCode.CHAIN_CONSTRUCTION
    recoverable = True


# ============================================================================
# PAYLOAD REGISTRY ERRORS
# ============================================================================

class PayloadRegistryError(OlocusException):
    """Errore registrazione/dispatch payload handler"""
    pass


# ============================================================================
# NEGOTIATION ERRORS (namespace separato)
# ============================================================================

class NegotiationError(OlocusException):
    """
    Errore negoziazione algoritmi.

    Attributes:
        error_code (NegotiationErrorCode): Codice namespace negoziazione
        recoverable (bool): True se l'handshake può essere rifatto
    """

    error_code: NegotiationErrorCode = NegotiationErrorCode.INVALID_STATE

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["negotiation_error_code"] = int(self.error_code)
        return data


class VersionBindingError(NegotiationError):
    """Suite non legale per la versione protocollo dell'handshake"""
    error_code = NegotiationErrorCode.VERSION_BINDING


class PreferenceSignatureError(NegotiationError):
    """Firma preferenze initiator invalida"""
    error_code = NegotiationErrorCode.PREFERENCE_SIGNATURE


class OrderingViolationError(NegotiationError):
    """Responder non ha rispettato l'ordine di priorità dell'initiator"""
    error_code = NegotiationErrorCode.ORDERING_VIOLATION


class CommitmentMismatchError(NegotiationError):
    """Commitment dei due peer non coincidono"""
    error_code = NegotiationErrorCode.COMMITMENT_MISMATCH


class TranscriptMismatchError(NegotiationError):
    """Transcript sostituito dopo la negoziazione"""
    error_code = NegotiationErrorCode.TRANSCRIPT_MISMATCH


class InsufficientSecurityError(NegotiationError):
    """Suite sotto il livello minimo configurato"""
    error_code = NegotiationErrorCode.INSUFFICIENT_SECURITY


class ForbiddenAlgorithmError(NegotiationError):
    """Suite in deny-list"""
    error_code = NegotiationErrorCode.FORBIDDEN_ALGORITHM


class NoCommonSuiteError(NegotiationError):
    """Nessuna suite accettabile in comune"""
    error_code = NegotiationErrorCode.NO_COMMON_SUITE


class NonceReplayError(NegotiationError):
    """Nonce già consumato nella finestra di validità"""
    error_code = NegotiationErrorCode.NONCE_REPLAY
    recoverable = True


class StaleOfferError(NegotiationError):
    """Offerta fuori dalla finestra di freschezza"""
    error_code = NegotiationErrorCode.STALE_OFFER
    recoverable = True


class NegotiationTimeoutError(NegotiationError):
    """Sessione scaduta"""
    error_code = NegotiationErrorCode.TIMEOUT
    recoverable = True


class NonceCacheFullError(NegotiationError):
    """Nonce tracker pieno di entry ancora valide"""
    error_code = NegotiationErrorCode.NONCE_CACHE_FULL
    recoverable = True


class MalformedOfferError(NegotiationError):
    """Offerta/selezione non decodificabile"""
    error_code = NegotiationErrorCode.MALFORMED_OFFER
    recoverable = True


class InvalidSessionStateError(NegotiationError):
    """Transizione di stato non ammessa"""
    error_code = NegotiationErrorCode.INVALID_STATE


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def format_validation_error(
    field: str,
    value: Any,
    expected: str,
    code: Optional[str] = None
) -> MalformedBlockError:
    """
    Helper per creare MalformedBlockError formattati.

    Args:
        field: Nome campo invalido
        value: Valore ricevuto
        expected: Valore/tipo atteso
        code: Codice errore custom

    Returns:
        MalformedBlockError: Eccezione formattata

    Example:
        >>> raise format_validation_error("index", -1, "u64")
    """
    return MalformedBlockError(
        message=f"Invalid field '{field}': expected {expected}, got {value!r}",
        code=code or "INVALID_FIELD",
        details={"field": field, "expected": expected}
    )


# ============================================================================
# EXPORT ALL
# ============================================================================

__all__ = [
    # Base
    "OlocusException",
    "ConfigError",

    # Crypto
    "CryptoError",
    "InvalidKeyError",

    # Chain
    "ChainValidationError",
    "VersionMismatchError",
    "BrokenChainError",
    "InvalidIndexError",
    "TimestampRegressionError",
    "PayloadMismatchError",
    "InvalidSignatureError",
    "MalformedBlockError",
    "TimestampBoundsError",
    "TimestampTooFarInFutureError",
    "TimestampTooOldError",
    "PayloadTooLargeError",
    "ReorgDepthExceededError",
    "ChainConstructionError",

    # Payload
    "PayloadRegistryError",

    # Negotiation
    "NegotiationError",
    "VersionBindingError",
    "PreferenceSignatureError",
    "OrderingViolationError",
    "CommitmentMismatchError",
    "TranscriptMismatchError",
    "InsufficientSecurityError",
    "ForbiddenAlgorithmError",
    "NoCommonSuiteError",
    "NonceReplayError",
    "StaleOfferError",
    "NegotiationTimeoutError",
    "NonceCacheFullError",
    "MalformedOfferError",
    "InvalidSessionStateError",

    # Helpers
    "format_validation_error",
]
