"""
Olocus - Crypto Tests
=======================
Unit tests for hashing, Ed25519 and batch verification.
"""

import pytest

from olocus.domain.crypto_core import (
    batch_verify,
    compute_sha256,
    generate_nonce,
    sign_message,
    verify_signature,
)
from olocus.domain.keypairs import KeyPair, generate_keypair
from olocus.errors import InvalidKeyError


class TestPrimitives:
    """Test SHA-256 e Ed25519"""

    def test_sha256_known_vector(self):
        """Test hash di stringa vuota"""
        assert compute_sha256(b"").hex() == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_sign_and_verify(self, keypair):
        """Test firma 64 bytes verificabile"""
        signature = sign_message(b"message", keypair.private_key)

        assert len(signature) == 64
        assert verify_signature(b"message", signature, keypair.public_key)
        assert not verify_signature(b"other", signature, keypair.public_key)

    def test_verify_never_raises(self, keypair):
        """Test input malformati = False"""
        signature = keypair.sign(b"m")

        assert not verify_signature(b"m", signature[:10], keypair.public_key)
        assert not verify_signature(b"m", signature, b"\x00" * 5)
        assert not verify_signature(b"m", b"\x00" * 64, b"\xff" * 32)

    def test_nonce(self):
        """Test nonce 32 bytes random"""
        assert len(generate_nonce()) == 32
        assert generate_nonce() != generate_nonce()


class TestKeyPair:
    """Test KeyPair"""

    def test_from_private_bytes(self, keypair):
        """Test ricostruzione da seed"""
        restored = KeyPair.from_private_bytes(keypair.private_key)
        assert restored == keypair

    def test_mismatched_public_key(self, keypair, other_keypair):
        """Test public key non corrispondente"""
        with pytest.raises(InvalidKeyError):
            KeyPair(private_key=keypair.private_key, public_key=other_keypair.public_key)

    def test_private_key_not_in_repr(self, keypair):
        """Test private key esclusa da repr"""
        assert keypair.private_key.hex() not in repr(keypair)
        assert "private_key" not in keypair.to_dict()


class TestBatchVerify:
    """Test batch verification"""

    def _items(self, count):
        keys = [generate_keypair() for _ in range(4)]
        items = []
        for i in range(count):
            kp = keys[i % len(keys)]
            message = f"message-{i}".encode()
            items.append((message, kp.sign(message), kp.public_key))
        return items

    def test_all_valid(self):
        """Test batch tutto valido"""
        result = batch_verify(self._items(200), max_workers=4, chunk_size=16)

        assert result.all_valid
        assert result.first_invalid_index is None
        assert result.checked == 200

    def test_first_invalid_index_by_position(self):
        """Test primo invalido in ordine crescente, non di completamento"""
        items = self._items(200)
        for position in (150, 37, 199):
            message, signature, public_key = items[position]
            items[position] = (message + b"!", signature, public_key)

        result = batch_verify(items, max_workers=8, chunk_size=8)

        assert not result
        assert result.first_invalid_index == 37

    def test_sequential_matches_parallel(self):
        """Test stesso esito con e senza thread pool"""
        items = self._items(50)
        items[10] = (items[10][0], b"\x00" * 64, items[10][2])

        assert batch_verify(items).first_invalid_index == 10
        assert batch_verify(items, max_workers=4, chunk_size=4).first_invalid_index == 10

    def test_empty_batch(self):
        """Test batch vuoto"""
        assert batch_verify([]).all_valid
