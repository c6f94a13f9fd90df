"""
Olocus - Pytest Configuration
===============================
Fixtures e configurazione per testing.

Last Updated: 2026-10-19
Version: 1.0.0
"""

import pytest

# Internal imports
from olocus.config import OlocusSettings
from olocus.domain.blocks import create_genesis_block, create_next_block
from olocus.domain.keypairs import generate_keypair
from olocus.domain.validation import ChainValidator


# Istante fisso per test deterministici
NOW = 1_760_000_000


class FixedClock:
    """Clock controllabile (callable che restituisce Unix seconds)"""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================

@pytest.fixture
def settings():
    """Settings con default di protocollo (nessun .env)"""
    return OlocusSettings(_env_file=None)


@pytest.fixture
def clock():
    """Clock fisso a NOW"""
    return FixedClock()


# ============================================================================
# KEY FIXTURES
# ============================================================================

@pytest.fixture
def keypair():
    """Keypair Ed25519 principale"""
    return generate_keypair()


@pytest.fixture
def other_keypair():
    """Seconda keypair (peer, branch alternativi)"""
    return generate_keypair()


# ============================================================================
# CHAIN FIXTURES
# ============================================================================

@pytest.fixture
def validator(settings, clock):
    """ChainValidator vuoto con clock fisso"""
    return ChainValidator(settings=settings, clock=clock)


@pytest.fixture
def genesis(keypair):
    """Genesis block firmato"""
    return create_genesis_block(b"genesis", keypair, NOW - 10_000)


@pytest.fixture
def build_chain(keypair):
    """
    Factory per chain valide.

    Example:
        blocks = build_chain(5)
        branch = build_chain(3, parent=blocks[1], tag=b"alt")
    """

    def _build(length, parent=None, start_timestamp=NOW - 10_000, signer=None, tag=b"block"):
        signer = signer or keypair
        blocks = []

        if parent is None:
            parent = create_genesis_block(b"genesis", signer, start_timestamp)
            blocks.append(parent)
            length -= 1

        for i in range(length):
            parent = create_next_block(
                parent,
                tag + b"-" + str(i).encode(),
                signer,
                parent.header.timestamp + 1
            )
            blocks.append(parent)

        return blocks

    return _build


@pytest.fixture
def active_validator(validator, build_chain):
    """Validator con chain di 5 blocchi accettata"""
    for block in build_chain(5):
        validator.append(block)
    return validator
