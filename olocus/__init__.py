"""
Olocus - Protocol Core
========================
Chain di blocchi firmati Ed25519, validazione e negoziazione algoritmi.

Version: 1.0.0
Author: Olocus Team
License: MIT
"""

from olocus.version import __version__

__author__ = "Olocus Team"
__license__ = "MIT"

# Core imports
from olocus.config import OlocusSettings, get_settings
from olocus.domain.models import Block, BlockHeader, ProtocolVersion
from olocus.domain.keypairs import KeyPair, generate_keypair
from olocus.domain.blocks import create_genesis_block, create_next_block
from olocus.domain.codec import encode_block, decode_block
from olocus.domain.validation import ChainValidator, ValidationResult
from olocus.domain.payloads import CorePayloadType, PayloadRegistry

# Negotiation
from olocus.negotiation.negotiator import AlgorithmNegotiator

# Constants
from olocus.constants import ErrorCode

__all__ = [
    # Version
    "__version__",

    # Core
    "OlocusSettings",
    "get_settings",
    "Block",
    "BlockHeader",
    "ProtocolVersion",
    "KeyPair",
    "generate_keypair",
    "create_genesis_block",
    "create_next_block",
    "encode_block",
    "decode_block",
    "ChainValidator",
    "ValidationResult",
    "CorePayloadType",
    "PayloadRegistry",

    # Negotiation
    "AlgorithmNegotiator",

    # Constants
    "ErrorCode",
]
