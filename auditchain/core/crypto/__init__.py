"""
Cryptographic audit trail primitives.

Pure library modules for tamper-evident integrity:
- **canonicalization**: deterministic canonical text for structured values
- **hash_chain**: SHA-256 payload digests and per-partition chain linking
- **verification**: chain and event verification utilities
"""

from auditchain.core.crypto.canonicalization import (
    CanonicalValue,
    InvalidInputError,
    canonicalize,
    canonicalize_bytes,
)
from auditchain.core.crypto.hash_chain import (
    GENESIS_HASH,
    HASHED_FIELDS,
    compute_chain_hash,
    compute_payload_hash,
    digest,
    hash_payload,
)
from auditchain.core.crypto.verification import (
    ChainFailure,
    ChainVerificationResult,
    verify_event,
    verify_hash_chain,
)

__all__ = [
    "CanonicalValue",
    "InvalidInputError",
    "canonicalize",
    "canonicalize_bytes",
    "GENESIS_HASH",
    "HASHED_FIELDS",
    "digest",
    "hash_payload",
    "compute_payload_hash",
    "compute_chain_hash",
    "ChainFailure",
    "ChainVerificationResult",
    "verify_event",
    "verify_hash_chain",
]
