"""
privacy_circuits/errors.py
Exception taxonomy.

Plain argument-range problems raise ``ValueError``; everything specific to
the privacy scheme derives from ``PrivacyCircuitsError``.
"""


class PrivacyCircuitsError(Exception):
    """Base class for all library errors."""


# Configuration / state

class ProverStateError(PrivacyCircuitsError):
    """A prover component was accessed in a state that does not allow it."""


class ProverNotInitializedError(ProverStateError):
    """`Prover.init` has not completed yet."""


class FeatureNotEnabledError(ProverStateError):
    """The component was not enabled when the prover was constructed."""


class ConfigurationError(PrivacyCircuitsError):
    """Missing or inconsistent configuration (artifact paths, backends)."""


class SignerCapabilityError(PrivacyCircuitsError):
    """The signer cannot produce a recoverable digest signature."""


# Protocol compatibility

class PrivacyNotSupportedError(PrivacyCircuitsError):
    """The target protocol does not support the privacy scheme."""


# Consistency / validation

class ValidationError(PrivacyCircuitsError):
    """Off-chain state disagrees with what a spend requires."""


class CommitmentNotFoundError(ValidationError):
    """The commitment hash is not a leaf of the reconstructed tree."""


class UnknownRootError(ValidationError):
    """The reconstructed root is not recognised by the pool contract."""


class NullifierSpentError(ValidationError):
    """The nullifier hash is already marked spent on-chain."""


class MerkleConsistencyError(ValidationError):
    """Purchased events do not form a gap-free leaf sequence."""


# Encoding / layout

class ProofLayoutError(PrivacyCircuitsError):
    """Proof sizes disagree with the circuit layout or the contract ABI."""


class AbiError(PrivacyCircuitsError):
    """A contract function could not be resolved or encoded."""


class ProofFormatError(PrivacyCircuitsError):
    """A proof object is structurally malformed."""


# External collaborators

class ProvingSystemError(PrivacyCircuitsError):
    """The external proving system failed."""


class PrimitiveBackendError(PrivacyCircuitsError):
    """The hash primitive backend failed to start or answer."""
