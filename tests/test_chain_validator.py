"""
Olocus - Chain Validator Tests
================================
Unit tests for the validation state machine.
"""

import dataclasses
import json

import pytest

from olocus.config import OlocusSettings
from olocus.constants import ErrorCode, ZERO_HASH
from olocus.domain.blocks import compute_block_hash, create_genesis_block, create_next_block
from olocus.domain.codec import signing_message
from olocus.domain.crypto_core import compute_sha256
from olocus.domain.models import Block, BlockHeader, ProtocolVersion
from olocus.domain.validation import ChainState, ChainValidator
from olocus.errors import (
    BrokenChainError,
    InvalidIndexError,
    InvalidSignatureError,
    MalformedBlockError,
    PayloadMismatchError,
    PayloadTooLargeError,
    TimestampBoundsError,
    TimestampRegressionError,
    TimestampTooFarInFutureError,
    TimestampTooOldError,
    VersionMismatchError,
)
from olocus.logging_setup import AuditLogger

from tests.conftest import NOW


# ============================================================================
# HELPERS
# ============================================================================

def make_block(keypair, parent=None, payload=b"data", **overrides):
    """Blocco firmato con campi header arbitrari"""
    if parent is None:
        fields = dict(
            version=ProtocolVersion(1, 1).to_u16(),
            index=0,
            timestamp=NOW - 10_000,
            previous_hash=ZERO_HASH,
            payload_hash=compute_sha256(payload),
            payload_type=1,
        )
    else:
        fields = dict(
            version=parent.header.version,
            index=parent.header.index + 1,
            timestamp=parent.header.timestamp + 1,
            previous_hash=compute_block_hash(parent),
            payload_hash=compute_sha256(payload),
            payload_type=1,
        )
    fields.update(overrides)

    header = BlockHeader(**fields)
    return Block(
        header=header,
        payload=payload,
        signature=keypair.sign(signing_message(header, payload)),
        public_key=keypair.public_key,
    )


def with_bad_signature(block):
    return dataclasses.replace(block, signature=bytes(64))


# ============================================================================
# GENESIS PATH
# ============================================================================

class TestGenesis:
    """Test accettazione genesis da EMPTY"""

    def test_empty_state(self, validator):
        """Test validator nuovo"""
        assert validator.state == ChainState.EMPTY
        assert validator.tip is None
        assert validator.height == -1
        assert len(validator) == 0

    def test_accept_genesis(self, validator, genesis):
        """Test genesis valido diventa tip"""
        block_hash = validator.append(genesis)

        assert validator.state == ChainState.ACTIVE
        assert validator.tip == genesis
        assert validator.tip_hash == block_hash == compute_block_hash(genesis)
        assert validator.height == 0

    def test_genesis_nonzero_index(self, validator, keypair):
        """Test genesis con index != 0"""
        with pytest.raises(MalformedBlockError) as exc_info:
            validator.append(make_block(keypair, index=1))

        assert exc_info.value.error_code == ErrorCode.MALFORMED_BLOCK
        assert validator.state == ChainState.EMPTY

    def test_genesis_nonzero_previous(self, validator, keypair):
        """Test genesis con previous_hash non zero"""
        with pytest.raises(MalformedBlockError):
            validator.append(make_block(keypair, previous_hash=b"\x01" * 32))

    def test_genesis_payload_mismatch(self, validator, keypair):
        """Test payload_hash errato"""
        with pytest.raises(PayloadMismatchError) as exc_info:
            validator.append(make_block(keypair, payload_hash=compute_sha256(b"other")))

        assert exc_info.value.error_code == ErrorCode.PAYLOAD_MISMATCH
        assert not exc_info.value.recoverable

    def test_genesis_bad_signature(self, validator, genesis):
        """Test firma invalida"""
        with pytest.raises(InvalidSignatureError) as exc_info:
            validator.append(with_bad_signature(genesis))

        assert exc_info.value.error_code == ErrorCode.INVALID_SIGNATURE

    def test_genesis_payload_too_large(self, clock, keypair):
        """Test payload oltre max_payload_size"""
        validator = ChainValidator(
            settings=OlocusSettings(_env_file=None, max_payload_size=8),
            clock=clock
        )

        with pytest.raises(PayloadTooLargeError) as exc_info:
            validator.append(create_genesis_block(b"123456789", keypair, NOW))

        assert exc_info.value.recoverable

    def test_genesis_has_no_clock_bounds(self, validator, keypair):
        """Test genesis molto vecchio accettato"""
        validator.append(create_genesis_block(b"old", keypair, NOW - 10 * 86_400))
        assert validator.height == 0

    def test_version_major_mismatch(self, validator, keypair):
        """Test major diverso rifiutato prima di ogni altra regola"""
        block = make_block(keypair, version=ProtocolVersion(2, 0).to_u16(), index=5)

        with pytest.raises(VersionMismatchError) as exc_info:
            validator.append(block)

        assert exc_info.value.error_code == ErrorCode.VERSION_MISMATCH

    def test_version_minor_difference_accepted(self, validator, keypair):
        """Test stesso major, minor diverso"""
        validator.append(create_genesis_block(b"g", keypair, NOW, version=ProtocolVersion(1, 0)))
        assert validator.state == ChainState.ACTIVE


# ============================================================================
# SEQUENTIAL PATH
# ============================================================================

class TestSequential:
    """Test regole sequenziali da ACTIVE"""

    def test_accept_chain(self, validator, build_chain):
        """Test chain valida accettata blocco per blocco"""
        blocks = build_chain(10)
        for block in blocks:
            validator.append(block)

        assert validator.height == 9
        assert list(validator.iter_blocks()) == blocks
        assert validator.get_block(3) == blocks[3]
        assert validator.get_block(10) is None
        assert validator.get_block_by_hash(compute_block_hash(blocks[5])) == blocks[5]
        assert validator.contains(compute_block_hash(blocks[9]))

    def test_wrong_index(self, active_validator, keypair):
        """Test index != tip.index + 1"""
        block = make_block(keypair, active_validator.tip, index=active_validator.tip.index + 2)

        with pytest.raises(InvalidIndexError) as exc_info:
            active_validator.append(block)

        assert exc_info.value.recoverable
        assert exc_info.value.error_code == ErrorCode.INVALID_INDEX

    def test_wrong_previous(self, active_validator, keypair):
        """Test previous_hash non collegato al tip"""
        block = make_block(keypair, active_validator.tip, previous_hash=b"\x42" * 32)

        with pytest.raises(BrokenChainError) as exc_info:
            active_validator.append(block)

        assert not exc_info.value.recoverable

    def test_timestamp_regression(self, active_validator, keypair):
        """Test timestamp uguale al tip"""
        tip = active_validator.tip
        block = make_block(keypair, tip, timestamp=tip.header.timestamp)

        with pytest.raises(TimestampRegressionError):
            active_validator.append(block)

    def test_timestamp_future_boundary(self, active_validator, keypair):
        """Test now + 300 accettato, now + 301 rifiutato"""
        tip = active_validator.tip

        with pytest.raises(TimestampTooFarInFutureError) as exc_info:
            active_validator.append(make_block(keypair, tip, timestamp=NOW + 301))
        assert isinstance(exc_info.value, TimestampBoundsError)
        assert exc_info.value.error_code == ErrorCode.TIMESTAMP_OUT_OF_BOUNDS
        assert exc_info.value.recoverable

        active_validator.append(make_block(keypair, tip, timestamp=NOW + 300))
        assert active_validator.tip.header.timestamp == NOW + 300

    def test_timestamp_too_old(self, validator, keypair):
        """Test timestamp prima di now - 86400"""
        genesis = create_genesis_block(b"g", keypair, NOW - 200_000)
        validator.append(genesis)

        with pytest.raises(TimestampTooOldError):
            validator.append(make_block(keypair, genesis, timestamp=NOW - 86_401))

        validator.append(make_block(keypair, genesis, timestamp=NOW - 86_400))
        assert validator.height == 1

    def test_explicit_now_overrides_clock(self, active_validator, keypair):
        """Test now esplicito"""
        block = make_block(keypair, active_validator.tip, timestamp=NOW + 1000)

        active_validator.append(block, now=NOW + 900)
        assert active_validator.tip == block

    def test_payload_mismatch(self, active_validator, keypair):
        """Test payload_hash errato"""
        block = make_block(keypair, active_validator.tip, payload_hash=bytes(32))

        with pytest.raises(PayloadMismatchError):
            active_validator.append(block)

    def test_bad_signature(self, active_validator, keypair):
        """Test firma invalida"""
        block = with_bad_signature(make_block(keypair, active_validator.tip))

        with pytest.raises(InvalidSignatureError):
            active_validator.append(block)

    def test_signature_by_other_key_accepted(self, active_validator, other_keypair):
        """Test firmatario diverso: conta solo la firma del blocco"""
        block = make_block(other_keypair, active_validator.tip)

        active_validator.append(block)
        assert active_validator.tip.public_key == other_keypair.public_key

    def test_first_failure_wins(self, active_validator, keypair):
        """Test index errato + firma invalida -> InvalidIndexError"""
        tip = active_validator.tip
        block = with_bad_signature(make_block(keypair, tip, index=tip.index + 5, payload_hash=bytes(32)))

        with pytest.raises(InvalidIndexError):
            active_validator.append(block)

    def test_rejection_does_not_mutate(self, active_validator, keypair):
        """Test chain invariata dopo rifiuto"""
        tip_before = active_validator.tip
        height_before = active_validator.height

        with pytest.raises(BrokenChainError):
            active_validator.append(make_block(keypair, tip_before, previous_hash=bytes(32)))

        assert active_validator.tip == tip_before
        assert active_validator.height == height_before

    def test_idempotence(self, active_validator):
        """Test ri-sottomissione del tip rifiutata, chain invariata"""
        tip = active_validator.tip
        height = active_validator.height

        with pytest.raises(InvalidIndexError):
            active_validator.append(tip)

        assert active_validator.height == height
        assert active_validator.tip == tip

    def test_linkage_invariant_holds(self, active_validator):
        """Test previous == hash(predecessore) su tutta la chain"""
        blocks = list(active_validator.iter_blocks())
        for i in range(1, len(blocks)):
            assert blocks[i].header.previous_hash == compute_block_hash(blocks[i - 1])


# ============================================================================
# RESULT VALUES
# ============================================================================

class TestSubmit:
    """Test errori come valori"""

    def test_submit_accepted(self, validator, genesis):
        """Test esito positivo"""
        result = validator.submit(genesis)

        assert result
        assert result.accepted
        assert result.error_code == ErrorCode.OK
        assert result.block_hash == compute_block_hash(genesis)

    def test_submit_rejected(self, active_validator, keypair):
        """Test esito negativo con codice tipizzato"""
        tip = active_validator.tip
        result = active_validator.submit(make_block(keypair, tip, timestamp=NOW + 10_000))

        assert not result
        assert result.error_code == ErrorCode.TIMESTAMP_OUT_OF_BOUNDS
        assert result.recoverable
        assert isinstance(result.error, TimestampTooFarInFutureError)
        assert result.error.to_dict()["error_code"] == ErrorCode.TIMESTAMP_OUT_OF_BOUNDS


# ============================================================================
# REPLAY
# ============================================================================

class TestReplay:
    """Test replay storico con batch verification"""

    def test_replay_ignores_wall_clock(self, validator, build_chain):
        """Test blocchi vecchi accettati in replay"""
        blocks = build_chain(50, start_timestamp=NOW - 1_000_000)

        assert validator.replay(blocks, max_workers=4) == 50
        assert validator.height == 49
        assert validator.tip == blocks[-1]

    def test_replay_reports_first_invalid_signature(self, validator, build_chain, keypair):
        """Test posizione della prima firma invalida, nessuna mutazione"""
        blocks = build_chain(1)
        for i in range(1, 30):
            block = make_block(keypair, blocks[-1], payload=b"replay-%d" % i)
            if i in (12, 25):
                block = with_bad_signature(block)
            blocks.append(block)

        with pytest.raises(InvalidSignatureError) as exc_info:
            validator.replay(blocks, max_workers=4)

        assert exc_info.value.details["position"] == 12
        assert validator.state == ChainState.EMPTY

    def test_replay_structural_error(self, validator, build_chain):
        """Test errore strutturale a metà replay"""
        blocks = build_chain(10)
        del blocks[4]

        with pytest.raises(InvalidIndexError):
            validator.replay(blocks)

        assert len(validator) == 0

    def test_replay_continues_from_tip(self, validator, build_chain):
        """Test replay dopo blocchi già accettati"""
        blocks = build_chain(8)
        validator.append(blocks[0])

        assert validator.replay(blocks[1:]) == 7
        assert validator.tip == blocks[-1]


# ============================================================================
# AUDIT
# ============================================================================

class TestAudit:
    """Test audit trail"""

    def test_accepted_block_audited(self, settings, clock, genesis, tmp_path):
        """Test record block_accepted in audit.log"""
        audit = AuditLogger(log_dir=tmp_path)
        validator = ChainValidator(settings=settings, clock=clock, audit_logger=audit)

        validator.append(genesis)

        lines = (tmp_path / "audit.log").read_text(encoding="utf-8").strip().splitlines()
        record = json.loads(lines[-1])
        assert record["extra_data"]["action"] == "block_accepted"
        assert record["extra_data"]["hash"] == compute_block_hash(genesis).hex()
