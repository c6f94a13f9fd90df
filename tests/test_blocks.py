"""
Olocus - Block Creation Tests
===============================
Unit tests for genesis/next block construction and linkage.
"""

import pytest

from olocus.constants import ZERO_HASH
from olocus.domain.blocks import (
    compute_block_hash,
    create_genesis_block,
    create_next_block,
    verify_block_signature,
    verify_chain_links,
)
from olocus.domain.codec import encode_block
from olocus.domain.crypto_core import compute_sha256
from olocus.domain.models import ProtocolVersion
from olocus.domain.payloads import CorePayloadType
from olocus.domain.validation import verify_chain
from olocus.errors import BrokenChainError, ChainConstructionError

from tests.conftest import NOW


class TestGenesis:
    """Test genesis block"""

    def test_genesis_structure(self, keypair):
        """Test index 0, previous zeri, payload hash"""
        genesis = create_genesis_block(b"hello", keypair, NOW)

        assert genesis.header.index == 0
        assert genesis.header.previous_hash == ZERO_HASH
        assert genesis.header.payload_hash == compute_sha256(b"hello")
        assert genesis.header.payload_type == CorePayloadType.RAW
        assert genesis.header.protocol_version == ProtocolVersion(1, 1)
        assert genesis.public_key == keypair.public_key
        assert verify_block_signature(genesis)

    def test_genesis_with_empty_payload(self, keypair):
        """Test genesis con payload EMPTY"""
        genesis = create_genesis_block(b"", keypair, NOW, CorePayloadType.EMPTY)

        assert genesis.payload_size == 0
        assert genesis.header.payload_type == 0
        assert genesis.verify_signature()

    def test_block_hash_is_hash_of_wire_bytes(self, genesis):
        """Test hash = SHA256(encode_block)"""
        assert compute_block_hash(genesis) == compute_sha256(encode_block(genesis))
        assert genesis.compute_hash_hex() == compute_block_hash(genesis).hex()


class TestNextBlock:
    """Test blocchi successivi"""

    def test_next_block_links_to_previous(self, genesis, keypair):
        """Test index+1 e previous = hash(predecessore)"""
        block = create_next_block(genesis, b"data", keypair, genesis.header.timestamp + 1)

        assert block.header.index == 1
        assert block.header.previous_hash == compute_block_hash(genesis)
        assert block.header.version == genesis.header.version
        assert verify_block_signature(block)

    def test_non_monotonic_timestamp_rejected(self, genesis, keypair):
        """Test clock non monotono"""
        with pytest.raises(ChainConstructionError) as exc_info:
            create_next_block(genesis, b"data", keypair, genesis.header.timestamp)

        assert exc_info.value.code == "NON_MONOTONIC_CLOCK"
        assert exc_info.value.recoverable

    def test_tampered_signature_detected(self, genesis, keypair):
        """Test firma su payload diverso"""
        block = create_next_block(genesis, b"data", keypair, genesis.header.timestamp + 1)
        forged = type(block)(
            header=block.header,
            payload=b"evil",
            signature=block.signature,
            public_key=block.public_key,
        )

        assert not verify_block_signature(forged)


class TestLinkage:
    """Test invariante di linkage"""

    def test_valid_chain(self, build_chain):
        """Test chain costruita correttamente"""
        blocks = build_chain(10)

        verify_chain_links(blocks)
        assert verify_chain(blocks)
        for i in range(1, len(blocks)):
            assert blocks[i].header.previous_hash == compute_block_hash(blocks[i - 1])

    def test_broken_link(self, build_chain):
        """Test blocco sostituito rompe il link successivo"""
        blocks = build_chain(5)
        alternative = build_chain(2, parent=blocks[1], tag=b"alt")
        spliced = blocks[:2] + [alternative[0]] + blocks[3:]

        with pytest.raises(BrokenChainError) as exc_info:
            verify_chain_links(spliced)

        assert exc_info.value.code == "BROKEN_LINK"
        assert exc_info.value.details["position"] == 3
        assert not verify_chain(spliced)

    def test_first_block_must_be_genesis(self, build_chain):
        """Test sequenza che non parte dal genesis"""
        with pytest.raises(BrokenChainError) as exc_info:
            verify_chain_links(build_chain(3)[1:])

        assert exc_info.value.code == "NOT_GENESIS"

    def test_index_gap(self, build_chain):
        """Test blocco mancante"""
        blocks = build_chain(4)

        with pytest.raises(BrokenChainError) as exc_info:
            verify_chain_links([blocks[0], blocks[2]])

        assert exc_info.value.code == "INDEX_GAP"
