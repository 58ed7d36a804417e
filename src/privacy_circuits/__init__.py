"""
privacy-circuits: client-side proofs for the credit-note privacy scheme.

Computes commitments, nullifiers and intent hashes, rebuilds the credit-note
anonymity set from on-chain events and drives a Groth16 prover to produce
ownership and credit-note proofs ready to submit as contract call data.
"""

from .constants import (
    FIELD_SIZE,
    MERKLE_TREE_LEVELS,
    MERKLE_TREE_ZERO_ELEMENT,
    ZK_CREDIT_TYPES,
    ProofLayout,
    OWNERSHIP_LAYOUT,
    CREDIT_NOTE_LAYOUT,
    CREDIT_REGISTER_LAYOUT,
)

from .encoding import (
    FieldElement,
    le_int_to_bytes,
    le_bytes_to_int,
    to_hex,
    random_int,
)

from .errors import (
    PrivacyCircuitsError,
    ProverStateError,
    ProverNotInitializedError,
    FeatureNotEnabledError,
    ConfigurationError,
    SignerCapabilityError,
    PrivacyNotSupportedError,
    ValidationError,
    CommitmentNotFoundError,
    UnknownRootError,
    NullifierSpentError,
    MerkleConsistencyError,
    ProofLayoutError,
    AbiError,
    ProofFormatError,
    ProvingSystemError,
    PrimitiveBackendError,
)

from .config import (
    CircuitArtifacts,
    ArtifactLocations,
)

from .primitives import (
    PrimitiveRegistry,
    CircomlibBackend,
    required_primitives,
)

from .groth16 import (
    Circuit,
    ProofCallData,
    ProofResult,
    SnarkjsBackend,
    export_solidity_call_data,
    parse_call_data,
)

from .merkle import (
    FixedMerkleTree,
    MerklePath,
    PurchasedEvent,
    parse_purchased_event,
)

from .chain import (
    Signature,
    LocalAccountSigner,
    PrivacyProtocol,
    Web3CreditNotePool,
    CREDIT_NOTE_POOL_ABI,
)

from .issuer_proxy import IssuerProxyProver
from .credit_note_pool import CommitmentResult, CreditNotePoolProver
from .prover import Prover

__version__ = "0.1.0"

__all__ = [
    # Constants
    "FIELD_SIZE",
    "MERKLE_TREE_LEVELS",
    "MERKLE_TREE_ZERO_ELEMENT",
    "ZK_CREDIT_TYPES",
    "ProofLayout",
    "OWNERSHIP_LAYOUT",
    "CREDIT_NOTE_LAYOUT",
    "CREDIT_REGISTER_LAYOUT",
    # Encoding
    "FieldElement",
    "le_int_to_bytes",
    "le_bytes_to_int",
    "to_hex",
    "random_int",
    # Errors
    "PrivacyCircuitsError",
    "ProverStateError",
    "ProverNotInitializedError",
    "FeatureNotEnabledError",
    "ConfigurationError",
    "SignerCapabilityError",
    "PrivacyNotSupportedError",
    "ValidationError",
    "CommitmentNotFoundError",
    "UnknownRootError",
    "NullifierSpentError",
    "MerkleConsistencyError",
    "ProofLayoutError",
    "AbiError",
    "ProofFormatError",
    "ProvingSystemError",
    "PrimitiveBackendError",
    # Config
    "CircuitArtifacts",
    "ArtifactLocations",
    # Primitives
    "PrimitiveRegistry",
    "CircomlibBackend",
    "required_primitives",
    # Proving system
    "Circuit",
    "ProofCallData",
    "ProofResult",
    "SnarkjsBackend",
    "export_solidity_call_data",
    "parse_call_data",
    # Merkle
    "FixedMerkleTree",
    "MerklePath",
    "PurchasedEvent",
    "parse_purchased_event",
    # Chain
    "Signature",
    "LocalAccountSigner",
    "PrivacyProtocol",
    "Web3CreditNotePool",
    "CREDIT_NOTE_POOL_ABI",
    # Provers
    "IssuerProxyProver",
    "CommitmentResult",
    "CreditNotePoolProver",
    "Prover",
    # Meta
    "__version__",
]
