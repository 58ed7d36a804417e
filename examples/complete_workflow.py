"""
examples/complete_workflow.py
End-to-end example: Buy note → Rebuild tree → Prove ownership and credit → Verify

Needs node with circomlibjs, snarkjs, and a circuits build directory:

    PRIVACY_CIRCUITS_BUILD_PATH=/path/to/circuits/build python examples/complete_workflow.py
"""
import asyncio
import logging
import sys
import os

# Add src to path for development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from privacy_circuits import (
    ArtifactLocations,
    LocalAccountSigner,
    PrivacyProtocol,
    Prover,
)

ZERO_ADDRESS = '0x' + '00' * 20
ISSUER_PROXY_ADDRESS = '0xAbc11cB9d19DF123e41717FC7c8eBa18a4fFA75B'

OWNERSHIP_PROOF = {
    'name': '_ownershipProof',
    'type': 'tuple',
    'components': [
        {'name': 'pA', 'type': 'uint256[2]'},
        {'name': 'pB', 'type': 'uint256[2][2]'},
        {'name': 'pC', 'type': 'uint256[2]'},
        {'name': 'pubSignals', 'type': 'uint256[3]'},
    ],
}
CREDIT_NOTE_PROOF = dict(OWNERSHIP_PROOF, name='_creditNoteProof', components=[
    *OWNERSHIP_PROOF['components'][:3],
    {'name': 'pubSignals', 'type': 'uint256[5]'},
])

ISSUER_PROXY_ABI = [{
    'type': 'function',
    'name': 'createEvent',
    'stateMutability': 'nonpayable',
    'inputs': [
        OWNERSHIP_PROOF,
        CREDIT_NOTE_PROOF,
        {'name': '_creditNotePool', 'type': 'address'},
        {'name': '_tokenId', 'type': 'uint256'},
        {'name': '_eventId', 'type': 'uint256'},
        {'name': '_imprint', 'type': 'bytes32'},
        {'name': '_uri', 'type': 'string'},
        {'name': '_interfaceProvider', 'type': 'address'},
    ],
    'outputs': [],
}]


class InMemoryPool:
    """Stands in for the pool contract: one Purchased log, every root known."""

    address = '0xDef0dA91835f068f86a5782583Bc5fBF5FB71D07'

    def __init__(self):
        self.events = []

    async def get_purchased_events(self, from_block=0, to_block='latest'):
        return self.events

    async def is_known_root(self, root_hex):
        return True

    async def is_spent(self, nullifier_hash_hex):
        return False


async def main():
    logging.basicConfig(level=logging.INFO)

    signer = LocalAccountSigner('0x56cbf37399c2b170e098f12f6720ecf66e87a25feb20ccb9891f3145e7b5f0e0')
    pool = InMemoryPool()
    protocol = PrivacyProtocol(
        chain_id=77,
        smart_asset_address='0x512C1FCF401133680f373a386F3f752b98070BC5',
        issuer_proxy_abi=ISSUER_PROXY_ABI,
        credit_note_pool=pool,
    )

    print("=" * 60)
    print("PRIVACY CIRCUITS: Credit note spend with ownership proof")
    print("=" * 60)
    print()

    async with Prover(signer, ArtifactLocations.from_env(), use_credit_note_pool=True) as prover:
        # ============================================================
        # STEP 1: BUYER - Compute a note commitment and "purchase" it
        # ============================================================
        note = await prover.credit_note_pool.compute_commitment_hash(
            protocol, credit_type=1, issuer_proxy=ISSUER_PROXY_ADDRESS
        )
        pool.events.append({'args': {
            '_zkCreditType': 1,
            '_commitmentHash': note.commitment_hash.as_hex,
            '_leafIndex': 0,
            '_issuerProxy': ISSUER_PROXY_ADDRESS,
            '_timestamp': 0,
        }})
        print(f"✓ Note commitment: {note.commitment_hash.as_hex}")

        # ============================================================
        # STEP 2: ISSUER - Bind both proofs to one createEvent call
        # ============================================================
        values = [pool.address, 123, 456, '0x' + '00' * 32, 'https://example.com', ZERO_ADDRESS]
        intent = await prover.issuer_proxy.compute_intent_hash(
            protocol, 'createEvent', values, needs_credit_note_proof=True
        )
        print(f"✓ Intent hash: {intent}")

        ownership = await prover.issuer_proxy.generate_proof(protocol, '123', intent)
        credit = await prover.credit_note_pool.generate_proof(
            protocol,
            nullifier=note.nullifier,
            derivation_index=0,
            secret=note.secret,
            credit_type=1,
            issuer_proxy=ISSUER_PROXY_ADDRESS,
            intent_hash=intent,
        )
        print(f"✓ Ownership public signals: {ownership.public_signals}")
        print(f"✓ Credit note public signals: {credit.public_signals}")

        # ============================================================
        # STEP 3: VERIFIER - Check both proofs off-chain
        # ============================================================
        ownership_ok = await prover.issuer_proxy.verify_proof(
            ownership.proof, ownership.public_signals
        )
        credit_ok = await prover.credit_note_pool.verify_proof(
            credit.proof, credit.public_signals
        )
        print(f"✓ Ownership proof valid: {ownership_ok}")
        print(f"✓ Credit note proof valid: {credit_ok}")

        # Arguments for createEvent(ownershipProof, creditNoteProof, ...values)
        call_args = [ownership.call_data.as_struct(), credit.call_data.as_struct(), *values]
        print(f"✓ createEvent takes {len(call_args)} arguments")


if __name__ == '__main__':
    asyncio.run(main())
