"""
Olocus - Domain Package
=========================
Blocchi, codec wire, primitive crittografiche e validazione chain.
"""

# Models
from olocus.domain.models import (
    Block,
    BlockHeader,
    ProtocolVersion,
    CURRENT_PROTOCOL_VERSION,
)

# Keys
from olocus.domain.keypairs import KeyPair, generate_keypair, generate_key

# Codec
from olocus.domain.codec import encode_block, decode_block, peek_header

# Blocks
from olocus.domain.blocks import (
    create_genesis_block,
    create_next_block,
    compute_block_hash,
    verify_block_signature,
    current_timestamp,
)

# Payloads
from olocus.domain.payloads import CorePayloadType, PayloadRegistry, PayloadHandler

# Validation
from olocus.domain.validation import (
    ChainState,
    ChainValidator,
    LongestChainPolicy,
    ValidationResult,
    verify_chain,
)

__all__ = [
    "Block",
    "BlockHeader",
    "ProtocolVersion",
    "CURRENT_PROTOCOL_VERSION",
    "KeyPair",
    "generate_keypair",
    "generate_key",
    "encode_block",
    "decode_block",
    "peek_header",
    "create_genesis_block",
    "create_next_block",
    "compute_block_hash",
    "verify_block_signature",
    "current_timestamp",
    "CorePayloadType",
    "PayloadRegistry",
    "PayloadHandler",
    "ChainState",
    "ChainValidator",
    "LongestChainPolicy",
    "ValidationResult",
    "verify_chain",
]
