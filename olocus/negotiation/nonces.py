"""
Olocus - Nonce Tracker
========================
Tracking nonce per replay protection, limitato in tempo e in memoria.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Un nonce resta registrato finché l'offerta che lo porta può ancora essere
considerata fresca: fino a max(ricezione, timestamp offerta) + window_seconds,
estremo incluso. A cache piena di entry ancora valide le nuove offerte vengono
rifiutate (mai evizione di entry vive: evizione = finestra di replay).
"""

import threading
from typing import Dict, Optional

from olocus.constants import NONCE_CACHE_SIZE, NONCE_WINDOW_SECONDS
from olocus.errors import NonceCacheFullError, NonceReplayError
from olocus.logging_setup import get_logger


logger = get_logger("negotiation.nonces")


class NonceTracker:
    """
    Mappa nonce -> scadenza.

    Thread-safe.

    Examples:
        >>> tracker = NonceTracker(window_seconds=300, max_entries=2)
        >>> tracker.check_and_record(b"a" * 32, now=1000)
        >>> tracker.check_and_record(b"a" * 32, now=1001)
        Traceback (most recent call last):
        NonceReplayError: ...
    """

    def __init__(
        self,
        window_seconds: int = NONCE_WINDOW_SECONDS,
        max_entries: int = NONCE_CACHE_SIZE
    ):
        if window_seconds < 1:
            raise ValueError(f"window_seconds must be >= 1, got {window_seconds}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._entries: Dict[bytes, int] = {}
        self._lock = threading.Lock()

    def _purge_locked(self, now: int) -> int:
        # Scadenze non monotone (dipendono dal timestamp dell'offerta)
        expired = [nonce for nonce, expires_at in self._entries.items() if expires_at < now]
        for nonce in expired:
            del self._entries[nonce]
        return len(expired)

    def purge(self, now: int) -> int:
        """Rimuove entry scadute, restituisce quante"""
        with self._lock:
            return self._purge_locked(now)

    def check_and_record(self, nonce: bytes, now: int, issued_at: Optional[int] = None) -> None:
        """
        Registra nonce se mai visto nella finestra.

        Args:
            nonce: Nonce dell'offerta
            now: Istante di ricezione
            issued_at: Timestamp firmato dell'offerta (può essere nel futuro)

        Raises:
            NonceReplayError: Nonce ancora valido già registrato
            NonceCacheFullError: Cache piena di entry vive
        """
        with self._lock:
            self._purge_locked(now)

            if nonce in self._entries:
                logger.warning("Nonce replay detected", extra_data={"nonce": nonce.hex()[:16]})
                raise NonceReplayError(
                    "Nonce already seen within its validity window",
                    code="NONCE_REPLAY",
                    details={"nonce": nonce.hex()}
                )

            if len(self._entries) >= self.max_entries:
                raise NonceCacheFullError(
                    f"Nonce cache full ({self.max_entries} live entries)",
                    code="NONCE_CACHE_FULL",
                    details={"max_entries": self.max_entries}
                )

            start = now if issued_at is None else max(now, issued_at)
            self._entries[nonce] = start + self.window_seconds

    def release(self, nonce: bytes, issued_at: Optional[int] = None) -> bool:
        """
        Rilascia un nonce (sessione scaduta). True se era presente.

        Con issued_at l'entry resta come tombstone fino a
        issued_at + window_seconds: l'offerta catturata non può essere
        accettata di nuovo finché è fresca. Senza, l'entry è rimossa.
        """
        with self._lock:
            expires_at = self._entries.get(nonce)
            if expires_at is None:
                return False
            if issued_at is None:
                del self._entries[nonce]
            else:
                self._entries[nonce] = min(expires_at, issued_at + self.window_seconds)
            return True

    def expires_at(self, nonce: bytes) -> Optional[int]:
        with self._lock:
            return self._entries.get(nonce)

    def __contains__(self, nonce: bytes) -> bool:
        with self._lock:
            return nonce in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["NonceTracker"]
