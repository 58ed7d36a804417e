"""
privacy_circuits/credit_note_pool.py
Credit-note-pool prover: note commitments, nullifiers and spend proofs.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from .chain import CreditNotePoolContract, PrivacyProtocol
from .constants import (
    CREDIT_TYPE_SIZE,
    DERIVATION_INDEX_SIZE,
    MERKLE_TREE_LEVELS,
    MERKLE_TREE_ZERO_ELEMENT,
    NULLIFIER_SIZE,
    SECRET_SIZE,
    ZK_CREDIT_TYPES,
)
from .encoding import (
    FieldElement,
    HexLike,
    address_to_int,
    address_to_le_bytes,
    le_int_to_bytes,
    random_int,
)
from .errors import (
    CommitmentNotFoundError,
    ConfigurationError,
    NullifierSpentError,
    UnknownRootError,
)
from .groth16 import Circuit, Groth16Proof, ProofResult
from .merkle import FixedMerkleTree, MerklePath, parse_purchased_event
from .primitives import PrimitiveRegistry

logger = logging.getLogger(__name__)


@dataclass
class CommitmentResult:
    """A freshly computed note commitment and the secrets behind it.

    ``nullifier`` and ``secret`` must be kept private; they are needed
    again to spend the note.
    """
    nullifier: int
    secret: int
    commitment_hash: FieldElement
    registration_proof: Optional[ProofResult] = None


def _check_credit_type(credit_type: int) -> int:
    if credit_type not in ZK_CREDIT_TYPES:
        raise ValueError(
            f"zk credit type must be one of {ZK_CREDIT_TYPES} (1-indexed), got {credit_type}"
        )
    return credit_type


class CreditNotePoolProver:
    """Spends credit notes from the pool without revealing which note.

    A note is the Pedersen commitment
    ``H(nullifier || secret || creditType || issuerProxy)`` published as a
    leaf when purchased. Spending reveals only
    ``H(nullifier || derivationIndex)`` and a proof that the commitment is
    a leaf of the pool's tree.

    Args:
        registry: Primitives; Pedersen and MiMC sponge must be built
        circuit: Credit-note spend circuit
        register_circuit: Optional credit-register circuit for
            registration proofs at purchase time
        levels: Tree depth
        zero_element: Value of an empty leaf
    """

    def __init__(
        self,
        registry: PrimitiveRegistry,
        circuit: Circuit,
        register_circuit: Optional[Circuit] = None,
        levels: int = MERKLE_TREE_LEVELS,
        zero_element: int = MERKLE_TREE_ZERO_ELEMENT,
    ):
        self.registry = registry
        self.circuit = circuit
        self.register_circuit = register_circuit
        self.levels = levels
        self.zero_element = zero_element

    async def compute_commitment_hash(
        self,
        protocol: PrivacyProtocol,
        credit_type: int,
        issuer_proxy: str,
        nullifier: Optional[int] = None,
        secret: Optional[int] = None,
        with_registration_proof: bool = False,
    ) -> CommitmentResult:
        """Compute a note commitment, drawing fresh secrets when omitted.

        Args:
            protocol: Target protocol
            credit_type: 1-indexed zk credit type
            issuer_proxy: Issuer-proxy address the note is bound to
            nullifier: 31-byte nullifier; random if omitted
            secret: 31-byte secret; random if omitted
            with_registration_proof: Also prove the commitment is well formed

        Raises:
            PrivacyNotSupportedError: If the protocol has no privacy support
            ConfigurationError: If a registration proof is requested
                without credit-register artifacts
        """
        protocol.require_privacy()
        _check_credit_type(credit_type)
        nullifier = random_int(NULLIFIER_SIZE) if nullifier is None else nullifier
        secret = random_int(SECRET_SIZE) if secret is None else secret

        commitment = await asyncio.to_thread(
            self._commitment_hash, nullifier, secret, credit_type, issuer_proxy
        )

        registration_proof = None
        if with_registration_proof:
            if self.register_circuit is None:
                raise ConfigurationError("No credit-register artifacts configured")
            registration_proof = await self.register_circuit.prove({
                # Private inputs
                'nullifier': nullifier,
                'secret': secret,
                # Public inputs
                'pubCommitmentHash': commitment.value,
                'pubCreditType': credit_type,
                'pubIssuerProxy': address_to_int(issuer_proxy),
            })

        return CommitmentResult(
            nullifier=nullifier,
            secret=secret,
            commitment_hash=commitment,
            registration_proof=registration_proof,
        )

    async def compute_nullifier_hash(
        self, protocol: PrivacyProtocol, nullifier: int, derivation_index: int
    ) -> FieldElement:
        """Compute the nullifier hash revealed when spending.

        Distinct derivation indices give independent nullifier hashes for
        the same nullifier.
        """
        protocol.require_privacy()
        return await asyncio.to_thread(self._nullifier_hash, nullifier, derivation_index)

    async def generate_proof(
        self,
        protocol: PrivacyProtocol,
        nullifier: int,
        derivation_index: int,
        secret: int,
        credit_type: int,
        issuer_proxy: str,
        intent_hash: Union[FieldElement, HexLike],
        perform_validation: bool = True,
    ) -> ProofResult:
        """Generate a spend proof for a purchased note.

        The pool tree is rebuilt from the full `Purchased` history on every
        call. With ``perform_validation`` the root and nullifier are also
        checked on-chain before proving, so doomed spends fail early.
        ``perform_validation=False`` exists for harnesses that fabricate
        event logs without a live chain.

        Raises:
            CommitmentNotFoundError: If the note is not in the tree
            UnknownRootError: If the pool does not know the rebuilt root
            NullifierSpentError: If the nullifier hash is already spent
        """
        pool = protocol.require_credit_note_pool()
        _check_credit_type(credit_type)
        intent = FieldElement.parse(intent_hash)

        commitment = await asyncio.to_thread(
            self._commitment_hash, nullifier, secret, credit_type, issuer_proxy
        )
        nullifier_hash = await asyncio.to_thread(self._nullifier_hash, nullifier, derivation_index)

        tree = await self.rebuild_tree(pool)
        leaf_index = tree.index_of(commitment.value)
        if leaf_index < 0:
            raise CommitmentNotFoundError("The commitment hash is not found in the tree")

        if perform_validation:
            await self._validate_on_chain(pool, FieldElement(tree.root), nullifier_hash)

        path = tree.path(leaf_index)
        return await self.circuit.prove(self._spend_inputs(
            nullifier, derivation_index, secret, credit_type, issuer_proxy,
            path, nullifier_hash, intent,
        ))

    async def verify_proof(self, proof: Groth16Proof, public_signals: Sequence[str]) -> bool:
        return await self.circuit.verify(proof, public_signals)

    async def rebuild_tree(self, pool: CreditNotePoolContract) -> FixedMerkleTree:
        """Rebuild the anonymity set from every `Purchased` event of the pool."""
        events = await pool.get_purchased_events(from_block=0, to_block='latest')
        parsed = [parse_purchased_event(event) for event in events]
        logger.info("Rebuilding credit note tree from %d purchases", len(parsed))
        return await asyncio.to_thread(
            FixedMerkleTree.from_events,
            parsed,
            self.registry.mimc_sponge,
            levels=self.levels,
            zero_element=self.zero_element,
        )

    async def _validate_on_chain(
        self,
        pool: CreditNotePoolContract,
        root: FieldElement,
        nullifier_hash: FieldElement,
    ) -> None:
        if not await pool.is_known_root(root.as_hex):
            raise UnknownRootError("Merkle tree is corrupted: root unknown to the pool")
        if await pool.is_spent(nullifier_hash.as_hex):
            raise NullifierSpentError("The note is already spent")

    @staticmethod
    def _spend_inputs(
        nullifier: int,
        derivation_index: int,
        secret: int,
        credit_type: int,
        issuer_proxy: str,
        path: MerklePath,
        nullifier_hash: FieldElement,
        intent: FieldElement,
    ) -> dict:
        return {
            # Private inputs
            'nullifier': nullifier,
            'nullifierDerivationIndex': derivation_index,
            'secret': secret,
            'pathElements': path.path_elements,
            'pathIndices': path.path_indices,
            # Public inputs
            'pubRoot': path.root,
            'pubCreditType': credit_type,
            'pubIssuerProxy': address_to_int(issuer_proxy),
            'pubNullifierHash': nullifier_hash.value,
            'pubIntentHash': intent.value,
        }

    def _commitment_hash(
        self, nullifier: int, secret: int, credit_type: int, issuer_proxy: str
    ) -> FieldElement:
        preimage = (
            le_int_to_bytes(nullifier, NULLIFIER_SIZE)
            + le_int_to_bytes(secret, SECRET_SIZE)
            + le_int_to_bytes(_check_credit_type(credit_type), CREDIT_TYPE_SIZE)
            + address_to_le_bytes(issuer_proxy)
        )
        return FieldElement(self.registry.pedersen(preimage))

    def _nullifier_hash(self, nullifier: int, derivation_index: int) -> FieldElement:
        preimage = (
            le_int_to_bytes(nullifier, NULLIFIER_SIZE)
            + le_int_to_bytes(derivation_index, DERIVATION_INDEX_SIZE)
        )
        return FieldElement(self.registry.pedersen(preimage))
