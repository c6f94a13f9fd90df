"""
Olocus - Chain Validation
===========================
State machine di validazione chain: un candidato alla volta contro il tip.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

States:
- EMPTY: nessun genesis accettato
- ACTIVE: almeno un blocco valido (tip presente)
Un tentativo di validazione fallito è "Rejected" solo per quel candidato:
la chain non diventa mai terminale e non viene mai mutata da un rifiuto.

Validation Rules (ordine fisso, primo errore vince):
- Genesis (da EMPTY): index 0, previous zero, payload hash, size, firma
- Sequenziale (da ACTIVE): index, previous, timestamp > tip, finestra
  wall-clock, payload hash, size, firma

Fork handling: branch che divergono entro MAX_REORG_DEPTH dal tip possono
sostituire la chain se la ForkChoicePolicy lo decide; oltre, rifiuto permanente.

IMPORTANTE: Ogni modifica alle rules richiede security audit.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Sequence

from olocus.config import OlocusSettings, get_settings
from olocus.constants import ErrorCode, ZERO_HASH
from olocus.domain.blocks import (
    compute_block_hash,
    current_timestamp,
    verify_block_signature,
    verify_chain_links,
)
from olocus.domain.codec import signing_message
from olocus.domain.crypto_core import batch_verify, compute_sha256
from olocus.domain.models import Block, ProtocolVersion
from olocus.errors import (
    BrokenChainError,
    ChainValidationError,
    InvalidIndexError,
    InvalidSignatureError,
    MalformedBlockError,
    PayloadMismatchError,
    PayloadTooLargeError,
    ReorgDepthExceededError,
    TimestampRegressionError,
    TimestampTooFarInFutureError,
    TimestampTooOldError,
    VersionMismatchError,
)
from olocus.logging_setup import AuditLogger, PerformanceLogger, get_logger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("validation")


# ============================================================================
# STATE & RESULTS
# ============================================================================

class ChainState(str, Enum):
    """Stato della chain corrente"""
    EMPTY = "empty"
    ACTIVE = "active"


@dataclass(frozen=True)
class ValidationResult:
    """
    Esito di un tentativo di validazione (errore come valore).

    Attributes:
        accepted (bool): True se il candidato è diventato il nuovo tip
        block_hash (Optional[bytes]): Hash del blocco accettato
        error (Optional[ChainValidationError]): Errore tipizzato se rifiutato
    """

    accepted: bool
    block_hash: Optional[bytes] = None
    error: Optional[ChainValidationError] = None

    @property
    def error_code(self) -> ErrorCode:
        return ErrorCode.OK if self.error is None else self.error.error_code

    @property
    def recoverable(self) -> bool:
        return self.error is not None and self.error.recoverable

    def __bool__(self) -> bool:
        return self.accepted


# ============================================================================
# FORK CHOICE
# ============================================================================

class ForkChoicePolicy(Protocol):
    """
    Politica esterna di scelta fork.

    Riceve i suffissi divergenti (dal fork point escluso) della chain
    corrente e del branch candidato, già validati.
    """

    def should_switch(self, current: Sequence[Block], candidate: Sequence[Block]) -> bool:
        ...


class LongestChainPolicy:
    """
    Switch solo se il branch è strettamente più lungo.

    Tie-break a parità di lunghezza: first-seen (la chain corrente resta).
    """

    def should_switch(self, current: Sequence[Block], candidate: Sequence[Block]) -> bool:
        return len(candidate) > len(current)


# ============================================================================
# CHAIN VIEW
# ============================================================================

@dataclass
class _ChainView:
    """Arena dei blocchi accettati (main chain) + indice hash"""

    blocks: List[Block] = field(default_factory=list)
    hashes: List[bytes] = field(default_factory=list)
    by_hash: Dict[bytes, int] = field(default_factory=dict)

    def push(self, block: Block, block_hash: bytes) -> None:
        self.by_hash[block_hash] = len(self.blocks)
        self.hashes.append(block_hash)
        self.blocks.append(block)


# ============================================================================
# CHAIN VALIDATOR
# ============================================================================

class ChainValidator:
    """
    Validatore chain con singolo tip corrente.

    Ogni istanza possiede una chain indipendente: chi ha bisogno di più
    chain istanzia più validator.

    Attributes:
        settings: Costanti di validazione (override = deviazioni documentate)
        version: Versione protocollo locale (major deve coincidere)

    Thread Safety:
        - Validazione + accept serializzati da RLock (single writer)
        - Query di ancestry lock-free (la view viene sostituita atomicamente
          in caso di reorg)

    Examples:
        >>> validator = ChainValidator()
        >>> validator.append(genesis)
        >>> validator.state
        <ChainState.ACTIVE: 'active'>
        >>> validator.submit(next_block).accepted
        True
    """

    def __init__(
        self,
        settings: Optional[OlocusSettings] = None,
        clock: Optional[Callable[[], int]] = None,
        fork_choice: Optional[ForkChoicePolicy] = None,
        audit_logger: Optional[AuditLogger] = None,
        version: Optional[ProtocolVersion] = None
    ):
        self.settings = settings or get_settings()
        self.version = version or ProtocolVersion(*self.settings.get_protocol_version())
        self.fork_choice = fork_choice or LongestChainPolicy()

        self._clock = clock or current_timestamp
        self._audit = audit_logger
        self._view = _ChainView()
        self._orphaned: List[Block] = []
        self._lock = threading.RLock()

        deviations = self.settings.deviations()
        if deviations:
            logger.warning(
                "Validator running with non-default protocol constants",
                extra_data={name: {"default": d, "value": v} for name, (d, v) in deviations.items()}
            )

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    @property
    def state(self) -> ChainState:
        return ChainState.ACTIVE if self._view.blocks else ChainState.EMPTY

    @property
    def tip(self) -> Optional[Block]:
        view = self._view
        return view.blocks[-1] if view.blocks else None

    @property
    def tip_hash(self) -> Optional[bytes]:
        view = self._view
        return view.hashes[-1] if view.hashes else None

    @property
    def height(self) -> int:
        """Index del tip (-1 se EMPTY)"""
        return len(self._view.blocks) - 1

    @property
    def orphaned_blocks(self) -> List[Block]:
        """Blocchi sostituiti da reorg (mantenuti, mai cancellati)"""
        return list(self._orphaned)

    def __len__(self) -> int:
        return len(self._view.blocks)

    def get_block(self, index: int) -> Optional[Block]:
        view = self._view
        if 0 <= index < len(view.blocks):
            return view.blocks[index]
        return None

    def get_block_by_hash(self, block_hash: bytes) -> Optional[Block]:
        view = self._view
        position = view.by_hash.get(block_hash)
        return view.blocks[position] if position is not None else None

    def get_block_hash(self, index: int) -> Optional[bytes]:
        view = self._view
        if 0 <= index < len(view.hashes):
            return view.hashes[index]
        return None

    def contains(self, block_hash: bytes) -> bool:
        return block_hash in self._view.by_hash

    def iter_blocks(self) -> Iterator[Block]:
        return iter(list(self._view.blocks))

    # ========================================================================
    # RULES
    # ========================================================================

    def _now(self, now: Optional[int]) -> int:
        return self._clock() if now is None else now

    def _check_version(self, block: Block) -> None:
        block_version = block.header.protocol_version
        if not block_version.is_compatible_with(self.version):
            raise VersionMismatchError(
                f"Block version {block_version} incompatible with {self.version}",
                code="VERSION_MISMATCH",
                details={"block_version": str(block_version), "local_version": str(self.version)}
            )

    def _check_payload(self, block: Block) -> None:
        if compute_sha256(block.payload) != block.header.payload_hash:
            raise PayloadMismatchError(
                f"Payload hash mismatch at index {block.header.index}",
                code="PAYLOAD_MISMATCH",
                details={"index": block.header.index}
            )

    def _check_size(self, block: Block) -> None:
        if block.payload_size > self.settings.max_payload_size:
            raise PayloadTooLargeError(
                f"Payload {block.payload_size} bytes exceeds max {self.settings.max_payload_size}",
                code="PAYLOAD_TOO_LARGE",
                details={"size": block.payload_size, "max": self.settings.max_payload_size}
            )

    def _check_signature(self, block: Block) -> None:
        if not verify_block_signature(block):
            raise InvalidSignatureError(
                f"Invalid signature at index {block.header.index}",
                code="INVALID_SIGNATURE",
                details={"index": block.header.index, "public_key": block.public_key.hex()}
            )

    def _validate_genesis(self, block: Block, check_signature: bool = True) -> None:
        """Genesis path (solo da EMPTY)"""
        self._check_version(block)

        if block.header.index != 0:
            raise MalformedBlockError(
                f"Genesis must have index 0, got {block.header.index}",
                code="GENESIS_INDEX",
                details={"index": block.header.index}
            )

        if block.header.previous_hash != ZERO_HASH:
            raise MalformedBlockError(
                "Genesis previous_hash must be 32 zero bytes",
                code="GENESIS_PREVIOUS"
            )

        self._check_payload(block)
        self._check_size(block)

        if check_signature:
            self._check_signature(block)

    def _validate_successor(
        self,
        block: Block,
        parent: Block,
        parent_hash: bytes,
        now: Optional[int],
        check_signature: bool = True
    ) -> None:
        """
        Sequential path.

        Args:
            now: Wall-clock (None = finestra temporale non applicata, replay)
        """
        header = block.header
        self._check_version(block)

        expected_index = parent.header.index + 1
        if header.index != expected_index:
            raise InvalidIndexError(
                f"Invalid index: expected {expected_index}, got {header.index}",
                code="INVALID_INDEX",
                details={"expected": expected_index, "actual": header.index}
            )

        if header.previous_hash != parent_hash:
            raise BrokenChainError(
                f"Invalid previous_hash: expected {parent_hash.hex()[:16]}, got {header.previous_hash.hex()[:16]}",
                code="BROKEN_CHAIN",
                details={"index": header.index}
            )

        if header.timestamp <= parent.header.timestamp:
            raise TimestampRegressionError(
                f"Timestamp {header.timestamp} not after tip {parent.header.timestamp}",
                code="TIMESTAMP_REGRESSION",
                details={"timestamp": header.timestamp, "tip_timestamp": parent.header.timestamp}
            )

        if now is not None:
            if header.timestamp > now + self.settings.max_future_drift:
                raise TimestampTooFarInFutureError(
                    f"Block timestamp too far in future: {header.timestamp} > {now} + {self.settings.max_future_drift}",
                    code="TIMESTAMP_FUTURE",
                    details={"timestamp": header.timestamp, "now": now}
                )

            if header.timestamp < now - self.settings.max_block_age:
                raise TimestampTooOldError(
                    f"Block timestamp too old: {header.timestamp} < {now} - {self.settings.max_block_age}",
                    code="TIMESTAMP_TOO_OLD",
                    details={"timestamp": header.timestamp, "now": now}
                )

        self._check_payload(block)
        self._check_size(block)

        if check_signature:
            self._check_signature(block)

    def validate_candidate(self, block: Block, now: Optional[int] = None) -> None:
        """
        Valida candidato contro il tip corrente senza accettarlo.

        Args:
            block: Candidato
            now: Wall-clock (default: clock del validator)

        Raises:
            ChainValidationError: Sottoclasse specifica della prima regola violata
        """
        view = self._view
        if not view.blocks:
            self._validate_genesis(block)
        else:
            self._validate_successor(block, view.blocks[-1], view.hashes[-1], self._now(now))

    # ========================================================================
    # ACCEPT
    # ========================================================================

    def append(self, block: Block, now: Optional[int] = None) -> bytes:
        """
        Valida e accetta candidato come nuovo tip.

        Args:
            block: Candidato
            now: Wall-clock (default: clock del validator)

        Returns:
            bytes: Hash del blocco accettato

        Raises:
            ChainValidationError: Se rifiutato (nessuna mutazione)

        Thread Safety:
            Atomic operation (single writer)
        """
        with self._lock:
            with PerformanceLogger(logger, f"append(index={block.header.index})"):
                self.validate_candidate(block, now)

                block_hash = compute_block_hash(block)
                self._view.push(block, block_hash)

            logger.info(
                "Block accepted",
                extra_data={
                    "index": block.header.index,
                    "hash": block_hash.hex()[:16] + "...",
                    "payload_type": block.header.payload_type,
                    "payload_size": block.payload_size,
                }
            )

            if self._audit is not None:
                self._audit.log_block_accepted(
                    block.header.index,
                    block_hash.hex(),
                    block.header.payload_type
                )

            return block_hash

    def submit(self, block: Block, now: Optional[int] = None) -> ValidationResult:
        """
        Come append(), ma restituisce l'esito come valore.

        Returns:
            ValidationResult: accepted=True oppure errore tipizzato
        """
        try:
            block_hash = self.append(block, now)
        except ChainValidationError as e:
            logger.warning(
                "Block rejected",
                extra_data={
                    "index": block.header.index,
                    "error_code": int(e.error_code),
                    "error": e.code,
                    "recoverable": e.recoverable,
                }
            )
            return ValidationResult(accepted=False, error=e)

        return ValidationResult(accepted=True, block_hash=block_hash)

    # ========================================================================
    # FORK HANDLING
    # ========================================================================

    def propose_branch(self, branch: Sequence[Block], now: Optional[int] = None) -> bool:
        """
        Considera un branch alternativo per reorganization.

        Steps:
            1. Fork point = branch[0].index - 1, link all'antenato accettato
            2. Blocchi già in main chain scartati: il fork point avanza
            3. depth = tip.index - fork_point; oltre max_reorg_depth rifiuto
               permanente (prima di validare o applicare il branch)
            4. Validazione sequenziale di ogni blocco del branch
            5. ForkChoicePolicy decide lo swap

        Args:
            branch: Blocchi consecutivi a partire dal primo divergente
            now: Wall-clock

        Returns:
            bool: True se il branch è diventato la main chain

        Raises:
            ReorgDepthExceededError: Fork oltre max_reorg_depth
            ChainValidationError: Branch invalido (nessuna mutazione)
        """
        if not branch:
            raise MalformedBlockError("Empty branch", code="EMPTY_BRANCH")

        now = self._now(now)

        with self._lock:
            view = self._view
            if not view.blocks:
                raise BrokenChainError("No accepted chain to reorganize", code="NO_CHAIN")

            tip_index = view.blocks[-1].header.index
            fork_index = branch[0].header.index - 1

            if fork_index < 0:
                raise BrokenChainError(
                    "Branch cannot replace the genesis block",
                    code="GENESIS_REPLACEMENT"
                )

            if fork_index > tip_index:
                raise InvalidIndexError(
                    f"Branch starts at {branch[0].header.index}, beyond tip {tip_index}",
                    code="BRANCH_BEYOND_TIP"
                )

            if branch[0].header.previous_hash != view.hashes[fork_index]:
                raise BrokenChainError(
                    f"Branch does not link to accepted block {fork_index}",
                    code="BRANCH_UNLINKED",
                    details={"fork_index": fork_index}
                )

            # Prefisso comune con la main chain: non è divergenza
            branch = list(branch)
            shared = 0
            while (
                shared < len(branch)
                and fork_index + 1 + shared <= tip_index
                and compute_block_hash(branch[shared]) == view.hashes[fork_index + 1 + shared]
            ):
                shared += 1

            fork_index += shared
            branch = branch[shared:]

            if not branch:
                return False

            # Profondità misurata dal vero punto di divergenza, prima di validare o applicare
            depth = tip_index - fork_index
            if depth > self.settings.max_reorg_depth:
                logger.warning(
                    "Reorg rejected: fork too deep",
                    extra_data={"depth": depth, "max": self.settings.max_reorg_depth}
                )
                raise ReorgDepthExceededError(
                    f"Fork at depth {depth} exceeds max reorg depth {self.settings.max_reorg_depth}",
                    code="REORG_TOO_DEEP",
                    details={"depth": depth, "fork_index": fork_index, "tip_index": tip_index}
                )

            branch_hashes = [compute_block_hash(b) for b in branch]

            parent = view.blocks[fork_index]
            parent_hash = view.hashes[fork_index]
            for block, block_hash in zip(branch, branch_hashes):
                self._validate_successor(block, parent, parent_hash, now)
                parent, parent_hash = block, block_hash

            current_suffix = view.blocks[fork_index + 1:]
            if not self.fork_choice.should_switch(current_suffix, branch):
                logger.info(
                    "Branch valid but not preferred",
                    extra_data={"fork_index": fork_index, "branch_length": len(branch)}
                )
                return False

            new_view = _ChainView()
            for block, block_hash in zip(view.blocks[:fork_index + 1], view.hashes[:fork_index + 1]):
                new_view.push(block, block_hash)
            for block, block_hash in zip(branch, branch_hashes):
                new_view.push(block, block_hash)

            old_tip_hash = view.hashes[-1]
            self._orphaned.extend(current_suffix)
            self._view = new_view

            logger.info(
                "Chain reorganized",
                extra_data={
                    "fork_index": fork_index,
                    "depth": tip_index - fork_index,
                    "orphaned": len(current_suffix),
                    "new_height": len(new_view.blocks) - 1,
                }
            )

            if self._audit is not None:
                self._audit.log_reorg(
                    fork_index,
                    tip_index - fork_index,
                    old_tip_hash.hex(),
                    new_view.hashes[-1].hex()
                )

            return True

    # ========================================================================
    # HISTORICAL REPLAY
    # ========================================================================

    def replay(self, blocks: Sequence[Block], max_workers: Optional[int] = None) -> int:
        """
        Replay storico di blocchi a partire dal tip corrente.

        Regole strutturali applicate blocco per blocco; la finestra
        wall-clock NON è applicata (blocchi storici). Le firme sono
        verificate in batch parallelo a fine pass.

        Operazione atomica: o tutti i blocchi vengono accettati o nessuno.

        Args:
            blocks: Blocchi consecutivi
            max_workers: Thread per batch verify (default da settings)

        Returns:
            int: Numero blocchi accettati

        Raises:
            ChainValidationError: Primo blocco invalido (per firme: prima
                posizione invalida in ordine crescente)
        """
        blocks = list(blocks)
        if not blocks:
            return 0

        workers = max_workers or self.settings.batch_verify_workers

        with self._lock:
            with PerformanceLogger(logger, f"replay(blocks={len(blocks)})"):
                view = self._view
                staged: List[tuple] = []

                parent = view.blocks[-1] if view.blocks else None
                parent_hash = view.hashes[-1] if view.hashes else None

                for block in blocks:
                    if parent is None:
                        self._validate_genesis(block, check_signature=False)
                    else:
                        self._validate_successor(
                            block, parent, parent_hash, now=None, check_signature=False
                        )
                    block_hash = compute_block_hash(block)
                    staged.append((block, block_hash))
                    parent, parent_hash = block, block_hash

                result = batch_verify(
                    [
                        (signing_message(b.header, b.payload), b.signature, b.public_key)
                        for b in blocks
                    ],
                    max_workers=workers
                )

                if not result.all_valid:
                    failed = blocks[result.first_invalid_index]
                    raise InvalidSignatureError(
                        f"Invalid signature at replay position {result.first_invalid_index}",
                        code="INVALID_SIGNATURE",
                        details={
                            "position": result.first_invalid_index,
                            "index": failed.header.index,
                        }
                    )

                for block, block_hash in staged:
                    view.push(block, block_hash)

            logger.info(
                "Replay completed",
                extra_data={"accepted": len(staged), "height": len(view.blocks) - 1}
            )

            return len(staged)

    def __repr__(self) -> str:
        return f"ChainValidator(state={self.state.value}, height={self.height})"


# ============================================================================
# CHAIN HELPERS
# ============================================================================

def verify_chain(blocks: Sequence[Block]) -> bool:
    """
    Verifica invariante di linkage su una sequenza completa (dal genesis).

    Returns:
        bool: True se block[i].previous == hash(block[i-1]) per ogni i
    """
    try:
        verify_chain_links(blocks)
    except BrokenChainError as e:
        logger.debug("Chain linkage broken", extra_data={"error": e.code, **e.details})
        return False
    return True


__all__ = [
    "ChainState",
    "ValidationResult",
    "ForkChoicePolicy",
    "LongestChainPolicy",
    "ChainValidator",
    "verify_chain",
]
