"""
Olocus - Algorithm Negotiation
================================
Handshake per la scelta della suite crittografica tra due peer.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Flow:
    Initiator                                Responder
    initiate()         -- offer -->          accept_offer()
                       <-- selection --
    process_selection()
                       -- transcript digest -->
                                             confirm()

Session states:
    OFFERED -> COMMITTED -> VERIFIED -> NEGOTIATED
    FAILED (terminale, da qualsiasi stato)

Downgrade resistance (7 layer):
1. Version binding: ogni suite offerta legale per la versione di handshake
2. Signed preferences: Ed25519 su version||count||suite_ids||timestamp||nonce
3. Strict ordering: prima suite dell'initiator accettabile da entrambi
4. Commitment: SHA256(offer || responder_prefs || chosen_id)
5. Transcript binding: digest di tutto lo scambio, verificato dai due lati
6. Minimum requirements: security_level >= floor configurato
7. Forbidden list: suite in deny-list mai selezionabili

IMPORTANTE: Ogni fallimento porta la sessione in FAILED. Nessun fallback
silenzioso a una suite più debole.
"""

from __future__ import annotations

import hmac
import struct
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from olocus.config import OlocusSettings, get_settings
from olocus.constants import HASH_SIZE, NONCE_SIZE, PUBLIC_KEY_SIZE, SIGNATURE_SIZE
from olocus.domain.blocks import current_timestamp
from olocus.domain.crypto_core import compute_sha256, generate_nonce, verify_signature
from olocus.domain.keypairs import KeyPair
from olocus.domain.models import ProtocolVersion
from olocus.errors import (
    CommitmentMismatchError,
    ConfigError,
    ForbiddenAlgorithmError,
    InsufficientSecurityError,
    InvalidSessionStateError,
    MalformedOfferError,
    NegotiationError,
    NegotiationTimeoutError,
    NoCommonSuiteError,
    OrderingViolationError,
    PreferenceSignatureError,
    StaleOfferError,
    TranscriptMismatchError,
    VersionBindingError,
)
from olocus.logging_setup import AuditLogger, get_logger
from olocus.negotiation.nonces import NonceTracker
from olocus.negotiation.suites import (
    BASELINE_SUITE_ID,
    DEFAULT_PREFERENCE,
    SUITE_TABLE,
    AlgorithmSuite,
    encode_suite_list,
    is_legal_for_version,
)


logger = get_logger("negotiation")


# ============================================================================
# SESSION STATE
# ============================================================================

class SessionState(str, Enum):
    OFFERED = "offered"
    COMMITTED = "committed"
    VERIFIED = "verified"
    NEGOTIATED = "negotiated"
    FAILED = "failed"


class NegotiationRole(str, Enum):
    INITIATOR = "initiator"
    RESPONDER = "responder"


# ============================================================================
# WIRE MESSAGES
# ============================================================================

_PREFS_HEAD = struct.Struct('>HB')
_VERSION = struct.Struct('>H')
_TIMESTAMP = struct.Struct('>q')


@dataclass(frozen=True)
class SignedPreferences:
    """
    Preferenze di un peer firmate con la sua identity key.

    Attributes:
        version (ProtocolVersion): Versione di handshake
        suite_ids (tuple): Suite in ordine di preferenza
        timestamp (int): Unix seconds di emissione
        nonce (bytes): 32 bytes random
        public_key (bytes): Identity key Ed25519 del firmatario
        signature (bytes): Firma su signing_bytes()
    """

    version: ProtocolVersion
    suite_ids: Tuple[int, ...]
    timestamp: int
    nonce: bytes
    public_key: bytes
    signature: bytes

    @staticmethod
    def _signing_bytes(version: ProtocolVersion, suite_ids: Sequence[int], timestamp: int, nonce: bytes) -> bytes:
        return (
            _VERSION.pack(version.to_u16())
            + encode_suite_list(suite_ids)
            + _TIMESTAMP.pack(timestamp)
            + nonce
        )

    def signing_bytes(self) -> bytes:
        """version || count || suite_ids || timestamp || nonce"""
        return self._signing_bytes(self.version, self.suite_ids, self.timestamp, self.nonce)

    def encode(self) -> bytes:
        """signing_bytes || public_key || signature"""
        return self.signing_bytes() + self.public_key + self.signature

    def verify_signature(self) -> bool:
        return verify_signature(self.signing_bytes(), self.signature, self.public_key)

    @classmethod
    def create(
        cls,
        version: ProtocolVersion,
        suite_ids: Sequence[int],
        identity: KeyPair,
        timestamp: int,
        nonce: Optional[bytes] = None
    ) -> SignedPreferences:
        suite_ids = tuple(int(s) for s in suite_ids)
        if len(suite_ids) > 0xFF:
            raise ValueError(f"Too many suites: {len(suite_ids)}")

        nonce = nonce if nonce is not None else generate_nonce()
        signature = identity.sign(cls._signing_bytes(version, suite_ids, timestamp, nonce))

        return cls(
            version=version,
            suite_ids=suite_ids,
            timestamp=timestamp,
            nonce=nonce,
            public_key=identity.public_key,
            signature=signature,
        )

    @classmethod
    def decode(cls, data: bytes) -> SignedPreferences:
        """
        Raises:
            MalformedOfferError: Lunghezza non coerente con count
        """
        data = bytes(data)
        if len(data) < _PREFS_HEAD.size:
            raise MalformedOfferError("Preferences too short", code="PREFS_TOO_SHORT")

        version_u16, count = _PREFS_HEAD.unpack_from(data, 0)
        expected = _PREFS_HEAD.size + count + _TIMESTAMP.size + NONCE_SIZE + PUBLIC_KEY_SIZE + SIGNATURE_SIZE
        if len(data) != expected:
            raise MalformedOfferError(
                f"Preferences length {len(data)}, expected {expected}",
                code="PREFS_LENGTH",
                details={"length": len(data), "expected": expected}
            )

        offset = _PREFS_HEAD.size
        suite_ids = tuple(data[offset:offset + count])
        offset += count
        (timestamp,) = _TIMESTAMP.unpack_from(data, offset)
        offset += _TIMESTAMP.size
        nonce = data[offset:offset + NONCE_SIZE]
        offset += NONCE_SIZE
        public_key = data[offset:offset + PUBLIC_KEY_SIZE]
        offset += PUBLIC_KEY_SIZE

        return cls(
            version=ProtocolVersion.from_u16(version_u16),
            suite_ids=suite_ids,
            timestamp=timestamp,
            nonce=nonce,
            public_key=public_key,
            signature=data[offset:],
        )


def compute_commitment(offer: SignedPreferences, response: SignedPreferences, chosen_suite_id: int) -> bytes:
    """SHA256(encode(initiator_prefs) || encode(responder_prefs) || chosen_id)"""
    return compute_sha256(offer.encode() + response.encode() + bytes([chosen_suite_id]))


@dataclass(frozen=True)
class ResponderSelection:
    """Risposta del responder: sue preferenze firmate, scelta, commitment"""

    preferences: SignedPreferences
    chosen_suite_id: int
    commitment: bytes

    def encode(self) -> bytes:
        return self.preferences.encode() + bytes([self.chosen_suite_id]) + self.commitment


@dataclass(frozen=True)
class NegotiationTranscript:
    """Scambio completo: offer, selection, commitment, suite scelta"""

    offer: SignedPreferences
    selection: ResponderSelection

    @property
    def chosen_suite_id(self) -> int:
        return self.selection.chosen_suite_id

    @property
    def commitment(self) -> bytes:
        return self.selection.commitment

    def digest(self) -> bytes:
        return compute_sha256(self.offer.encode() + self.selection.encode())


# ============================================================================
# SESSION
# ============================================================================

@dataclass
class NegotiationSession:
    """
    Stato di una negoziazione (lato locale).

    Attributes:
        session_id (str): Identificativo locale
        role (NegotiationRole): Initiator o responder
        deadline (int): Oltre questo istante la sessione va in timeout
        recorded_nonces (list): (nonce, timestamp firmato) registrati nel tracker
    """

    session_id: str
    role: NegotiationRole
    version: ProtocolVersion
    created_at: int
    deadline: int
    state: SessionState = SessionState.OFFERED
    offer: Optional[SignedPreferences] = None
    selection: Optional[ResponderSelection] = None
    transcript: Optional[NegotiationTranscript] = None
    chosen_suite: Optional[AlgorithmSuite] = None
    failure: Optional[NegotiationError] = None
    recorded_nonces: List[Tuple[bytes, int]] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in (SessionState.NEGOTIATED, SessionState.FAILED)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "role": self.role.value,
            "version": str(self.version),
            "state": self.state.value,
            "chosen_suite": self.chosen_suite.suite_id if self.chosen_suite else None,
            "deadline": self.deadline,
            "failure": self.failure.to_dict() if self.failure else None,
        }


# ============================================================================
# NEGOTIATOR
# ============================================================================

class AlgorithmNegotiator:
    """
    Negoziatore di suite per un'identità locale.

    Args:
        identity: KeyPair Ed25519 che firma le preferenze
        supported_suites: Suite supportate in ordine di preferenza
            (default: DEFAULT_PREFERENCE). La baseline 0x00 è sempre inclusa.
        settings: Floor, deny-list, finestra nonce, timeout
        clock: Sorgente tempo (default: current_timestamp)
        nonce_tracker: Tracker condiviso (default: uno per negoziatore)

    Thread Safety:
        Tabella sessioni e nonce tracker protetti da lock.

    Examples:
        >>> alice = AlgorithmNegotiator(alice_keys)
        >>> bob = AlgorithmNegotiator(bob_keys)
        >>> session, offer = alice.initiate()
        >>> bob_session, selection = bob.accept_offer(offer)
        >>> transcript = alice.process_selection(session.session_id, selection)
        >>> bob.confirm(bob_session.session_id, transcript.digest()).state
        <SessionState.NEGOTIATED: 'negotiated'>
    """

    def __init__(
        self,
        identity: KeyPair,
        supported_suites: Optional[Sequence[int]] = None,
        settings: Optional[OlocusSettings] = None,
        clock: Optional[Callable[[], int]] = None,
        audit_logger: Optional[AuditLogger] = None,
        version: Optional[ProtocolVersion] = None,
        nonce_tracker: Optional[NonceTracker] = None
    ):
        self.identity = identity
        self.settings = settings or get_settings()
        self.version = version or ProtocolVersion(*self.settings.get_protocol_version())

        suites = list(DEFAULT_PREFERENCE if supported_suites is None else supported_suites)
        unknown = [s for s in suites if s not in SUITE_TABLE]
        if unknown:
            raise ConfigError(
                f"Unknown suite ids: {unknown}",
                code="UNKNOWN_SUITE",
                details={"suites": unknown}
            )
        if BASELINE_SUITE_ID not in suites:
            suites.append(BASELINE_SUITE_ID)
        self.supported_suites: Tuple[int, ...] = tuple(dict.fromkeys(suites))

        self.nonce_tracker = nonce_tracker or NonceTracker(
            window_seconds=self.settings.nonce_window_seconds,
            max_entries=self.settings.nonce_cache_size,
        )

        self._clock = clock or current_timestamp
        self._audit = audit_logger
        self._sessions: Dict[str, NegotiationSession] = {}
        self._lock = threading.RLock()

    # ========================================================================
    # POLICY (layer 6, 7)
    # ========================================================================

    def _now(self, now: Optional[int]) -> int:
        return self._clock() if now is None else now

    def is_acceptable(self, suite_id: int) -> bool:
        """Suite supportata, non in deny-list, sopra il floor"""
        suite = SUITE_TABLE.get(suite_id)
        return (
            suite is not None
            and suite_id in self.supported_suites
            and suite_id not in self.settings.forbidden_suites
            and suite.security_level >= self.settings.min_security_level
        )

    def _check_policy(self, suite_id: int) -> AlgorithmSuite:
        if suite_id in self.settings.forbidden_suites:
            raise ForbiddenAlgorithmError(
                f"Suite {suite_id:#04x} is forbidden",
                code="FORBIDDEN_ALGORITHM",
                details={"suite_id": suite_id}
            )

        suite = SUITE_TABLE.get(suite_id)
        if suite is None:
            raise VersionBindingError(
                f"Unknown suite {suite_id:#04x}",
                code="UNKNOWN_SUITE",
                details={"suite_id": suite_id}
            )

        if suite.security_level < self.settings.min_security_level:
            raise InsufficientSecurityError(
                f"Suite {suite.name} ({suite.security_level} bit) below floor {self.settings.min_security_level}",
                code="INSUFFICIENT_SECURITY",
                details={"suite_id": suite_id, "level": suite.security_level}
            )

        return suite

    def _first_acceptable(self, offered: Sequence[int], peer_supported: Sequence[int]) -> Optional[int]:
        for suite_id in offered:
            if suite_id in peer_supported and self.is_acceptable(suite_id):
                return suite_id
        return None

    # ========================================================================
    # SESSION HELPERS
    # ========================================================================

    def _new_session(
        self,
        role: NegotiationRole,
        version: ProtocolVersion,
        now: int,
        register: bool = True
    ) -> NegotiationSession:
        session = NegotiationSession(
            session_id=uuid.uuid4().hex,
            role=role,
            version=version,
            created_at=now,
            deadline=now + self.settings.negotiation_timeout_seconds,
        )
        if register:
            self._sessions[session.session_id] = session
        return session

    def _fail(self, session: NegotiationSession, error: NegotiationError) -> NegotiationError:
        session.state = SessionState.FAILED
        session.failure = error
        logger.warning(
            "Negotiation failed",
            extra_data={
                "session_id": session.session_id,
                "role": session.role.value,
                "error": error.code,
                "recoverable": error.recoverable,
            }
        )
        return error

    def _expire(self, session: NegotiationSession, now: int) -> Optional[NegotiationTimeoutError]:
        if session.is_terminal or now <= session.deadline:
            return None

        # Tombstone fino alla fine della finestra di freschezza dell'offerta
        for nonce, issued_at in session.recorded_nonces:
            self.nonce_tracker.release(nonce, issued_at)

        error = NegotiationTimeoutError(
            f"Session {session.session_id} timed out",
            code="NEGOTIATION_TIMEOUT",
            details={"deadline": session.deadline, "now": now}
        )
        self._fail(session, error)
        return error

    def _get_session(self, session_id: str, expected: SessionState, role: NegotiationRole, now: int) -> NegotiationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise InvalidSessionStateError(
                f"Unknown session {session_id}",
                code="UNKNOWN_SESSION"
            )

        timeout = self._expire(session, now)
        if timeout is not None:
            raise timeout

        if session.role != role or session.state != expected:
            raise InvalidSessionStateError(
                f"Session {session_id} is {session.role.value}/{session.state.value}, "
                f"expected {role.value}/{expected.value}",
                code="INVALID_STATE",
                details={"state": session.state.value}
            )
        return session

    def get_session(self, session_id: str) -> Optional[NegotiationSession]:
        return self._sessions.get(session_id)

    def discard_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def expire_sessions(self, now: Optional[int] = None) -> List[str]:
        """
        Porta in FAILED le sessioni oltre deadline, rimuove le sessioni
        terminali (NEGOTIATED o FAILED) scadute e purga il nonce tracker.

        Returns:
            list: session_id andati in timeout in questo sweep
        """
        now = self._now(now)
        with self._lock:
            expired = [
                session.session_id
                for session in list(self._sessions.values())
                if self._expire(session, now) is not None
            ]
            for session in list(self._sessions.values()):
                if session.is_terminal and now > session.deadline:
                    del self._sessions[session.session_id]
            self.nonce_tracker.purge(now)
        return expired

    # ========================================================================
    # INBOUND CHECKS (layer 1, 2 + freshness)
    # ========================================================================

    def _check_preferences(self, prefs: SignedPreferences, now: int) -> None:
        if prefs.version.major != self.version.major:
            raise VersionBindingError(
                f"Handshake version {prefs.version} incompatible with {self.version}",
                code="VERSION_BINDING",
                details={"version": str(prefs.version)}
            )

        for suite_id in prefs.suite_ids:
            if not is_legal_for_version(suite_id, prefs.version):
                raise VersionBindingError(
                    f"Suite {suite_id:#04x} not legal for version {prefs.version}",
                    code="VERSION_BINDING",
                    details={"suite_id": suite_id, "version": str(prefs.version)}
                )

        if len(set(prefs.suite_ids)) != len(prefs.suite_ids) or not prefs.suite_ids:
            raise MalformedOfferError(
                "Suite list empty or with duplicates",
                code="INVALID_SUITE_LIST"
            )

        if not prefs.verify_signature():
            raise PreferenceSignatureError(
                "Preference signature invalid",
                code="PREFERENCE_SIGNATURE",
                details={"public_key": prefs.public_key.hex()}
            )

        if prefs.timestamp < now - self.settings.nonce_window_seconds:
            raise StaleOfferError(
                f"Preferences too old: {prefs.timestamp} < {now} - {self.settings.nonce_window_seconds}",
                code="STALE_OFFER",
                details={"timestamp": prefs.timestamp, "now": now}
            )

        if prefs.timestamp > now + self.settings.max_future_drift:
            raise StaleOfferError(
                f"Preferences from the future: {prefs.timestamp} > {now} + {self.settings.max_future_drift}",
                code="FUTURE_OFFER",
                details={"timestamp": prefs.timestamp, "now": now}
            )

    # ========================================================================
    # INITIATOR
    # ========================================================================

    def initiate(
        self,
        suite_ids: Optional[Sequence[int]] = None,
        now: Optional[int] = None
    ) -> Tuple[NegotiationSession, SignedPreferences]:
        """
        Apre sessione initiator e produce l'offerta firmata.

        Args:
            suite_ids: Suite da offrire in ordine di priorità
                (default: supportate, legali per la versione, ammesse da deny-list e floor)
            now: Unix seconds

        Returns:
            tuple: (session OFFERED, offerta da inviare)

        Raises:
            VersionBindingError: Suite esplicita non legale per la versione
            NoCommonSuiteError: Nessuna suite offribile
        """
        now = self._now(now)

        if suite_ids is None:
            offered = [
                s for s in self.supported_suites
                if is_legal_for_version(s, self.version) and self.is_acceptable(s)
            ]
        else:
            offered = [int(s) for s in suite_ids]
            illegal = [s for s in offered if not is_legal_for_version(s, self.version)]
            if illegal:
                raise VersionBindingError(
                    f"Suites {illegal} not legal for version {self.version}",
                    code="VERSION_BINDING",
                    details={"suites": illegal}
                )

        if not offered:
            raise NoCommonSuiteError("No suite to offer", code="NO_SUITE_TO_OFFER")

        offer = SignedPreferences.create(self.version, offered, self.identity, now)

        with self._lock:
            session = self._new_session(NegotiationRole.INITIATOR, self.version, now)
            session.offer = offer

        logger.info(
            "Negotiation offer created",
            extra_data={"session_id": session.session_id, "suites": list(offered)}
        )
        return session, offer

    def process_selection(
        self,
        session_id: str,
        selection: ResponderSelection,
        now: Optional[int] = None
    ) -> NegotiationTranscript:
        """
        Verifica la scelta del responder e completa la sessione initiator.

        Steps:
            1. Preferenze responder: version binding, firma, freschezza, nonce
            2. Commitment ricalcolato (COMMITTED)
            3. Suite scelta: deny-list, floor, ordine stretto (VERIFIED)
            4. Transcript (NEGOTIATED)

        Returns:
            NegotiationTranscript: Il cui digest va inviato al responder

        Raises:
            NegotiationError: Sottoclasse del layer violato (sessione FAILED)
        """
        now = self._now(now)

        with self._lock:
            session = self._get_session(session_id, SessionState.OFFERED, NegotiationRole.INITIATOR, now)
            offer = session.offer
            response = selection.preferences
            chosen = selection.chosen_suite_id

            try:
                if not isinstance(chosen, int) or not 0 <= chosen <= 0xFF:
                    raise MalformedOfferError(
                        f"Chosen suite {chosen!r} is not a u8",
                        code="INVALID_CHOSEN_SUITE",
                        details={"chosen": repr(chosen)}
                    )
                if len(selection.commitment) != HASH_SIZE:
                    raise MalformedOfferError(
                        f"Commitment length {len(selection.commitment)}, expected {HASH_SIZE}",
                        code="INVALID_COMMITMENT",
                        details={"length": len(selection.commitment)}
                    )

                self._check_preferences(response, now)
                if response.version != offer.version:
                    raise VersionBindingError(
                        f"Responder bound version {response.version}, offer was {offer.version}",
                        code="VERSION_BINDING"
                    )

                self.nonce_tracker.check_and_record(response.nonce, now, issued_at=response.timestamp)
                session.recorded_nonces.append((response.nonce, response.timestamp))

                expected_commitment = compute_commitment(offer, response, chosen)
                if not hmac.compare_digest(expected_commitment, selection.commitment):
                    raise CommitmentMismatchError(
                        "Commitment does not match offer and selection",
                        code="COMMITMENT_MISMATCH"
                    )
                session.selection = selection
                session.state = SessionState.COMMITTED

                if chosen not in offer.suite_ids or chosen not in response.suite_ids:
                    raise OrderingViolationError(
                        f"Suite {chosen:#04x} not in both preference lists",
                        code="ORDERING_VIOLATION",
                        details={"chosen": chosen}
                    )

                suite = self._check_policy(chosen)

                expected = self._first_acceptable(offer.suite_ids, response.suite_ids)
                if expected is None:
                    raise NoCommonSuiteError("No acceptable common suite", code="NO_COMMON_SUITE")
                if chosen != expected:
                    raise OrderingViolationError(
                        f"Responder chose {chosen:#04x}, initiator priority requires {expected:#04x}",
                        code="ORDERING_VIOLATION",
                        details={"chosen": chosen, "expected": expected}
                    )
                session.state = SessionState.VERIFIED

            except NegotiationError as e:
                raise self._fail(session, e)

            session.chosen_suite = suite
            session.transcript = NegotiationTranscript(offer=offer, selection=selection)
            session.state = SessionState.NEGOTIATED

        self._log_negotiated(session)
        return session.transcript

    # ========================================================================
    # RESPONDER
    # ========================================================================

    def accept_offer(
        self,
        offer: SignedPreferences,
        now: Optional[int] = None
    ) -> Tuple[NegotiationSession, ResponderSelection]:
        """
        Valida un'offerta e seleziona la suite.

        La suite scelta è la prima dell'initiator (nel suo ordine) supportata
        localmente, non vietata e sopra il floor.

        Returns:
            tuple: (session COMMITTED, selection da inviare)

        Raises:
            NegotiationError: Offerta rifiutata (sessione FAILED registrata)
        """
        now = self._now(now)

        with self._lock:
            # Registrata solo dopo che il nonce è stato accettato
            session = self._new_session(NegotiationRole.RESPONDER, offer.version, now, register=False)
            session.offer = offer

            try:
                self._check_preferences(offer, now)

                self.nonce_tracker.check_and_record(offer.nonce, now, issued_at=offer.timestamp)
                session.recorded_nonces.append((offer.nonce, offer.timestamp))
                self._sessions[session.session_id] = session

                chosen = self._first_acceptable(offer.suite_ids, self.supported_suites)
                if chosen is None:
                    raise NoCommonSuiteError(
                        "No offered suite satisfies local policy",
                        code="NO_COMMON_SUITE",
                        details={"offered": list(offer.suite_ids)}
                    )

                # Solo suite che la policy locale ammette: l'initiator ricalcola la scelta su questa lista
                own_suites = [
                    s for s in self.supported_suites
                    if is_legal_for_version(s, offer.version) and self.is_acceptable(s)
                ]
                response = SignedPreferences.create(offer.version, own_suites, self.identity, now)
                selection = ResponderSelection(
                    preferences=response,
                    chosen_suite_id=chosen,
                    commitment=compute_commitment(offer, response, chosen),
                )

            except NegotiationError as e:
                raise self._fail(session, e)

            session.selection = selection
            session.chosen_suite = SUITE_TABLE[chosen]
            session.transcript = NegotiationTranscript(offer=offer, selection=selection)
            session.state = SessionState.COMMITTED

        logger.info(
            "Negotiation offer accepted",
            extra_data={"session_id": session.session_id, "chosen_suite": chosen}
        )
        return session, selection

    def confirm(
        self,
        session_id: str,
        transcript_digest: bytes,
        now: Optional[int] = None
    ) -> NegotiationSession:
        """
        Chiude la sessione responder verificando il digest dell'initiator.

        Raises:
            TranscriptMismatchError: Digest diverso (sessione FAILED)
        """
        now = self._now(now)

        with self._lock:
            session = self._get_session(session_id, SessionState.COMMITTED, NegotiationRole.RESPONDER, now)
            self._verify_digest(session, transcript_digest)
            session.state = SessionState.VERIFIED
            session.state = SessionState.NEGOTIATED

        self._log_negotiated(session)
        return session

    # ========================================================================
    # TRANSCRIPT BINDING (layer 5)
    # ========================================================================

    def _verify_digest(self, session: NegotiationSession, digest: bytes) -> None:
        expected = session.transcript.digest() if session.transcript else b""
        if not expected or not hmac.compare_digest(expected, bytes(digest)):
            raise self._fail(
                session,
                TranscriptMismatchError(
                    "Transcript digest mismatch",
                    code="TRANSCRIPT_MISMATCH",
                    details={"session_id": session.session_id}
                )
            )

    def verify_transcript(self, session_id: str, digest: bytes) -> None:
        """
        Verifica che un digest corrisponda al transcript negoziato.

        Raises:
            InvalidSessionStateError: Sessione sconosciuta o non NEGOTIATED
            TranscriptMismatchError: Transcript sostituito (sessione FAILED)
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.state != SessionState.NEGOTIATED:
                raise InvalidSessionStateError(
                    f"Session {session_id} not negotiated",
                    code="INVALID_STATE"
                )
            self._verify_digest(session, digest)

    def _log_negotiated(self, session: NegotiationSession) -> None:
        digest = session.transcript.digest().hex()
        logger.info(
            "Negotiation completed",
            extra_data={
                "session_id": session.session_id,
                "role": session.role.value,
                "suite": session.chosen_suite.name,
            }
        )
        if self._audit is not None:
            self._audit.log_negotiation(session.session_id, session.chosen_suite.suite_id, digest)


__all__ = [
    "SessionState",
    "NegotiationRole",
    "SignedPreferences",
    "ResponderSelection",
    "NegotiationTranscript",
    "NegotiationSession",
    "AlgorithmNegotiator",
    "compute_commitment",
]
