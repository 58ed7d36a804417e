"""
privacy_circuits/prover.py
Prover entry point: builds primitives and wires up the sub-provers.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .chain import DigestSigner
from .config import ArtifactLocations, CircuitArtifacts
from .constants import CREDIT_NOTE_LAYOUT, CREDIT_REGISTER_LAYOUT, OWNERSHIP_LAYOUT
from .credit_note_pool import CreditNotePoolProver
from .errors import ConfigurationError, FeatureNotEnabledError, ProverNotInitializedError
from .groth16 import Circuit, Groth16Backend, SnarkjsBackend
from .issuer_proxy import IssuerProxyProver
from .primitives import CircomlibBackend, PrimitiveBackend, PrimitiveRegistry, build_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Uninitialized:
    pass


@dataclass(frozen=True)
class PoolDisabled:
    pass


@dataclass(frozen=True)
class PoolEnabled:
    credit_note_pool: CreditNotePoolProver


@dataclass(frozen=True)
class Ready:
    registry: PrimitiveRegistry
    issuer_proxy: IssuerProxyProver
    pool: Union[PoolDisabled, PoolEnabled]


ProverState = Union[Uninitialized, Ready]


class Prover:
    """Builds the hash primitives once and exposes the two sub-provers.

    The credit-note pool is opt-in: it needs two more primitives and its
    own circuit artifacts. Accessing it when it was not requested raises
    `FeatureNotEnabledError`; accessing anything before `init` raises
    `ProverNotInitializedError`.

    Example:
        artifacts = ArtifactLocations.from_env()
        async with Prover(signer, artifacts, use_credit_note_pool=True) as prover:
            commitment = await prover.credit_note_pool.compute_commitment_hash(
                protocol, credit_type=1, issuer_proxy=issuer_proxy_address
            )

    Args:
        signer: Signs the ownership message digest
        artifacts: Circuit artifact locations
        use_credit_note_pool: Enable the credit-note-pool prover
        primitive_backend: Hash primitive backend; circomlibjs over Node.js
            by default
        groth16: Proving system; the snarkjs CLI by default

    Raises:
        ConfigurationError: If required artifacts are not configured
    """

    def __init__(
        self,
        signer: DigestSigner,
        artifacts: ArtifactLocations,
        use_credit_note_pool: bool = False,
        primitive_backend: Optional[PrimitiveBackend] = None,
        groth16: Optional[Groth16Backend] = None,
    ):
        if artifacts is None or artifacts.ownership is None:
            raise ConfigurationError("Ownership circuit artifacts are required")
        if use_credit_note_pool and artifacts.credit_note is None:
            raise ConfigurationError(
                "Credit note circuit artifacts are required when the pool is enabled"
            )

        self.signer = signer
        self.artifacts = artifacts
        self.use_credit_note_pool = use_credit_note_pool
        self.primitive_backend = primitive_backend or CircomlibBackend()
        self.groth16 = groth16 or SnarkjsBackend()
        self._state: ProverState = Uninitialized()

    @property
    def state(self) -> ProverState:
        return self._state

    @property
    def initialized(self) -> bool:
        return isinstance(self._state, Ready)

    async def init(self) -> None:
        """Build the primitives and the sub-provers. Safe to call twice."""
        if isinstance(self._state, Ready):
            return

        registry = await build_registry(self.primitive_backend, self.use_credit_note_pool)
        issuer_proxy = IssuerProxyProver(
            registry, self.signer, self._circuit(OWNERSHIP_LAYOUT, self.artifacts.ownership)
        )

        pool: Union[PoolDisabled, PoolEnabled] = PoolDisabled()
        if self.use_credit_note_pool:
            register_circuit = None
            if self.artifacts.credit_register is not None:
                register_circuit = self._circuit(
                    CREDIT_REGISTER_LAYOUT, self.artifacts.credit_register
                )
            pool = PoolEnabled(CreditNotePoolProver(
                registry,
                self._circuit(CREDIT_NOTE_LAYOUT, self.artifacts.credit_note),
                register_circuit=register_circuit,
            ))

        self._state = Ready(registry=registry, issuer_proxy=issuer_proxy, pool=pool)
        logger.info(
            "Prover ready (credit note pool %s)",
            'enabled' if self.use_credit_note_pool else 'disabled',
        )

    def close(self) -> None:
        """Release the primitive backend and return to the uninitialized state."""
        self.primitive_backend.close()
        self._state = Uninitialized()

    async def __aenter__(self) -> 'Prover':
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _circuit(self, layout, artifacts: CircuitArtifacts) -> Circuit:
        return Circuit(layout, artifacts, self.groth16)

    def _ready(self) -> Ready:
        if not isinstance(self._state, Ready):
            raise ProverNotInitializedError("Prover is not initialized, call init() first")
        return self._state

    @property
    def registry(self) -> PrimitiveRegistry:
        return self._ready().registry

    @property
    def issuer_proxy(self) -> IssuerProxyProver:
        return self._ready().issuer_proxy

    @property
    def credit_note_pool(self) -> CreditNotePoolProver:
        if not self.use_credit_note_pool:
            raise FeatureNotEnabledError(
                "Credit note pool prover is not enabled, "
                "construct the Prover with use_credit_note_pool=True"
            )
        pool = self._ready().pool
        if not isinstance(pool, PoolEnabled):
            raise FeatureNotEnabledError("Credit note pool prover was not built")
        return pool.credit_note_pool
