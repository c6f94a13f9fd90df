"""
Olocus - Negotiation Package
==============================
Negoziazione della suite crittografica con downgrade resistance.
"""

from olocus.negotiation.suites import (
    AlgorithmSuite,
    SUITE_TABLE,
    BASELINE_SUITE_ID,
    get_suite,
)
from olocus.negotiation.nonces import NonceTracker
from olocus.negotiation.negotiator import (
    AlgorithmNegotiator,
    NegotiationSession,
    NegotiationTranscript,
    ResponderSelection,
    SessionState,
    SignedPreferences,
)

__all__ = [
    "AlgorithmSuite",
    "SUITE_TABLE",
    "BASELINE_SUITE_ID",
    "get_suite",
    "NonceTracker",
    "AlgorithmNegotiator",
    "NegotiationSession",
    "NegotiationTranscript",
    "ResponderSelection",
    "SessionState",
    "SignedPreferences",
]
