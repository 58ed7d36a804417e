"""
privacy_circuits/issuer_proxy.py
Issuer-proxy prover: ownership commitments, intent hashes, ownership proofs.
"""
import asyncio
import logging
import secrets
from typing import Any, List, Sequence, Union

from eth_account.messages import defunct_hash_message
from eth_utils import keccak

from .abi import encode_function_call, find_function, static_byte_size
from .chain import DigestSigner, PrivacyProtocol, Signature
from .constants import (
    CREDIT_NOTE_LAYOUT,
    FIELD_SIZE,
    OWNERSHIP_LAYOUT,
    OWNERSHIP_NONCE_BOUND,
    SELECTOR_SIZE,
    ProofLayout,
)
from .encoding import FieldElement, HexLike
from .errors import ProofLayoutError, SignerCapabilityError
from .groth16 import Circuit, Groth16Proof, ProofResult
from .primitives import PrimitiveRegistry

logger = logging.getLogger(__name__)


def intent_layouts(needs_credit_note_proof: bool) -> List[ProofLayout]:
    """Proof structs a call carries, in argument order."""
    if needs_credit_note_proof:
        return [OWNERSHIP_LAYOUT, CREDIT_NOTE_LAYOUT]
    return [OWNERSHIP_LAYOUT]


def intent_calldata(
    abi: Sequence[dict],
    function_name: str,
    values: Sequence[Any],
    needs_credit_note_proof: bool,
) -> bytes:
    """Encode a call and cut the proof structs out of it.

    Zero-valued proofs are prepended to ``values`` and the call is
    ABI-encoded. Proof structs are static, so they sit inline right after
    the selector; removing those bytes leaves ``selector || rest`` exactly
    as the contract reconstructs it from ``msg.data``. Offsets of dynamic
    arguments still count the removed bytes, which the contract does too.

    Raises:
        AbiError: If the function cannot be resolved or encoded
        ProofLayoutError: If the function's leading parameters do not have
            the size of the circuit proof structs
    """
    entry = find_function(abi, function_name)
    layouts = intent_layouts(needs_credit_note_proof)
    inputs = entry.get('inputs', [])
    if len(inputs) < len(layouts):
        raise ProofLayoutError(
            f"{entry['name']} takes {len(inputs)} arguments, fewer than its "
            f"{len(layouts)} proof structs"
        )
    for param, layout in zip(inputs, layouts):
        size = static_byte_size(param)
        if size != layout.byte_size:
            raise ProofLayoutError(
                f"{entry['name']} parameter {param.get('name', '?')} is {size} bytes, "
                f"{layout.name} proofs are {layout.byte_size} bytes"
            )

    args = [layout.placeholder() for layout in layouts] + list(values)
    calldata = encode_function_call(entry, args)
    proofs_end = SELECTOR_SIZE + sum(layout.byte_size for layout in layouts)
    return calldata[:SELECTOR_SIZE] + calldata[proofs_end:]


class IssuerProxyProver:
    """Proves the caller owns a token without revealing the issuer identity.

    The ownership commitment is a Poseidon hash of a deterministic
    signature, so only the key holder can recompute it; the intent hash
    ties each proof to one specific issuer-proxy call.
    """

    def __init__(
        self,
        registry: PrimitiveRegistry,
        signer: DigestSigner,
        circuit: Circuit,
    ):
        self.registry = registry
        self.signer = signer
        self.circuit = circuit

    async def compute_commitment_hash(
        self, protocol: PrivacyProtocol, token_id: Union[int, str]
    ) -> FieldElement:
        """Compute the signature-derived commitment for a token.

        Raises:
            PrivacyNotSupportedError: If the protocol has no privacy support
            SignerCapabilityError: If the signer cannot sign digests
        """
        protocol.require_privacy()
        signature = self._sign_ownership(protocol, token_id)
        return await asyncio.to_thread(self._commitment_from_signature, signature)

    async def compute_intent_hash(
        self,
        protocol: PrivacyProtocol,
        function_name: str,
        values: Sequence[Any],
        needs_credit_note_proof: bool = False,
    ) -> FieldElement:
        """Hash the non-proof part of an issuer-proxy call.

        Args:
            protocol: Target protocol; supplies the issuer-proxy ABI
            function_name: Function name or full signature
            values: Real call arguments, without proof structs
            needs_credit_note_proof: Whether the call also takes a
                credit-note proof after the ownership proof

        Returns:
            ``poseidon([keccak256(calldata_without_proofs) mod p])``
        """
        protocol.require_privacy()
        data = intent_calldata(
            protocol.issuer_proxy_abi, function_name, values, needs_credit_note_proof
        )
        digest = int.from_bytes(keccak(data), 'big') % FIELD_SIZE
        return FieldElement(await asyncio.to_thread(self.registry.poseidon, [digest]))

    async def generate_proof(
        self,
        protocol: PrivacyProtocol,
        token_id: Union[int, str],
        intent_hash: Union[FieldElement, HexLike],
    ) -> ProofResult:
        """Generate an ownership proof bound to ``intent_hash``."""
        protocol.require_privacy()
        intent = FieldElement.parse(intent_hash)

        signature = self._sign_ownership(protocol, token_id)
        commitment = await asyncio.to_thread(self._commitment_from_signature, signature)
        nonce = secrets.randbelow(OWNERSHIP_NONCE_BOUND)

        return await self.circuit.prove({
            # Private inputs
            'sig': [signature.r, signature.s, signature.v],
            # Public inputs
            'pubCommitmentHash': commitment.value,
            'pubIntentHash': intent.value,
            'pubNonce': nonce,
        })

    async def verify_proof(self, proof: Groth16Proof, public_signals: Sequence[str]) -> bool:
        return await self.circuit.verify(proof, public_signals)

    def _commitment_from_signature(self, signature: Signature) -> FieldElement:
        return FieldElement(self.registry.poseidon([signature.r, signature.s, signature.v]))

    def _sign_ownership(self, protocol: PrivacyProtocol, token_id: Union[int, str]) -> Signature:
        sign_digest = getattr(self.signer, 'sign_digest', None)
        if not callable(sign_digest):
            raise SignerCapabilityError("The signer does not support digest signing")

        message = f"{protocol.chain_id}.{protocol.smart_asset_address}.{token_id}"
        digest = bytes(defunct_hash_message(text=message))
        return sign_digest(digest)
