"""
tests/conftest.py
Shared fixtures: deterministic in-process primitives, proving system and chain.
"""
import hashlib
import json
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest
from eth_utils import keccak

from privacy_circuits.chain import LocalAccountSigner, PrivacyProtocol
from privacy_circuits.config import ArtifactLocations
from privacy_circuits.constants import FIELD_SIZE
from privacy_circuits.encoding import parse_int
from privacy_circuits.primitives import (
    PRIMITIVE_MIMC_SPONGE,
    PRIMITIVE_PEDERSEN,
    PRIMITIVE_POSEIDON,
    PrimitiveRegistry,
)

PRIVATE_KEY = '0x56cbf37399c2b170e098f12f6720ecf66e87a25feb20ccb9891f3145e7b5f0e0'
CHAIN_ID = 77
SMART_ASSET_ADDRESS = '0x512C1FCF401133680f373a386F3f752b98070BC5'
ISSUER_PROXY_ADDRESS = '0xAbc11cB9d19DF123e41717FC7c8eBa18a4fFA75B'
POOL_ADDRESS = '0xDef0dA91835f068f86a5782583Bc5fBF5FB71D07'
ZERO_ADDRESS = '0x' + '00' * 20


def _proof_struct(public_signal_count: int, name: str) -> Dict[str, Any]:
    return {
        'name': name,
        'type': 'tuple',
        'components': [
            {'name': 'pA', 'type': 'uint256[2]'},
            {'name': 'pB', 'type': 'uint256[2][2]'},
            {'name': 'pC', 'type': 'uint256[2]'},
            {'name': 'pubSignals', 'type': f'uint256[{public_signal_count}]'},
        ],
    }


OWNERSHIP_PROOF_PARAM = _proof_struct(3, '_ownershipProof')
CREDIT_NOTE_PROOF_PARAM = _proof_struct(5, '_creditNoteProof')

ISSUER_PROXY_ABI = [
    {
        'type': 'function',
        'name': 'acceptEvent',
        'stateMutability': 'nonpayable',
        'inputs': [
            OWNERSHIP_PROOF_PARAM,
            {'name': '_eventId', 'type': 'uint256'},
            {'name': '_interfaceProvider', 'type': 'address'},
        ],
        'outputs': [],
    },
    {
        'type': 'function',
        'name': 'createMessage',
        'stateMutability': 'nonpayable',
        'inputs': [
            OWNERSHIP_PROOF_PARAM,
            CREDIT_NOTE_PROOF_PARAM,
            {'name': '_creditNotePool', 'type': 'address'},
            {'name': '_messageId', 'type': 'uint256'},
            {'name': '_tokenId', 'type': 'uint256'},
            {'name': '_imprint', 'type': 'bytes32'},
        ],
        'outputs': [],
    },
    {
        'type': 'function',
        'name': 'createEvent',
        'stateMutability': 'nonpayable',
        'inputs': [
            OWNERSHIP_PROOF_PARAM,
            CREDIT_NOTE_PROOF_PARAM,
            {'name': '_creditNotePool', 'type': 'address'},
            {'name': '_tokenId', 'type': 'uint256'},
            {'name': '_eventId', 'type': 'uint256'},
            {'name': '_imprint', 'type': 'bytes32'},
            {'name': '_uri', 'type': 'string'},
            {'name': '_interfaceProvider', 'type': 'address'},
        ],
        'outputs': [],
    },
    {
        'type': 'function',
        'name': 'updateTokenURI',
        'stateMutability': 'nonpayable',
        'inputs': [
            {'name': '_tokenId', 'type': 'uint256'},
            {'name': '_uri', 'type': 'string'},
        ],
        'outputs': [],
    },
]


def _field_hash(*parts: int) -> int:
    data = b''.join(int(part).to_bytes(32, 'big') for part in parts)
    return int.from_bytes(keccak(data), 'big') % FIELD_SIZE


def fake_poseidon(inputs: Sequence[int]) -> int:
    return _field_hash(len(inputs), *inputs)


def fake_pedersen(preimage: bytes) -> int:
    """Reads the preimage as a little-endian integer, so its layout is visible."""
    return int.from_bytes(preimage, 'little') % FIELD_SIZE


def fake_mimc_sponge(pairs: Sequence) -> List[int]:
    return [_field_hash(left, right) for left, right in pairs]


def fake_registry(use_credit_note_pool: bool = True) -> PrimitiveRegistry:
    return PrimitiveRegistry(
        poseidon_fn=fake_poseidon,
        pedersen_fn=fake_pedersen if use_credit_note_pool else None,
        mimc_sponge_fn=fake_mimc_sponge if use_credit_note_pool else None,
    )



def recording_registry(threads: List[int]) -> PrimitiveRegistry:
    """Fake registry that notes the thread of every primitive call."""
    def record(fn):
        def call(value):
            threads.append(threading.get_ident())
            return fn(value)
        return call

    return PrimitiveRegistry(
        poseidon_fn=record(fake_poseidon),
        pedersen_fn=record(fake_pedersen),
        mimc_sponge_fn=record(fake_mimc_sponge),
    )

class FakePrimitiveBackend:
    """Builds the fake primitives and records lifecycle calls."""

    def __init__(self):
        self.built: List[frozenset] = []
        self.closed = 0

    async def build(self, names):
        names = frozenset(names)
        self.built.append(names)
        return PrimitiveRegistry(
            poseidon_fn=fake_poseidon if PRIMITIVE_POSEIDON in names else None,
            pedersen_fn=fake_pedersen if PRIMITIVE_PEDERSEN in names else None,
            mimc_sponge_fn=fake_mimc_sponge if PRIMITIVE_MIMC_SPONGE in names else None,
        )

    def close(self):
        self.closed += 1


def _fake_proof(public_signals: Sequence[str]) -> Dict[str, Any]:
    seed = hashlib.sha256(json.dumps([str(s) for s in public_signals]).encode()).digest()
    words = [
        str(int.from_bytes(hashlib.sha256(seed + bytes([i])).digest(), 'big') % FIELD_SIZE)
        for i in range(8)
    ]
    return {
        'pi_a': [words[0], words[1], '1'],
        'pi_b': [[words[2], words[3]], [words[4], words[5]], ['1', '0']],
        'pi_c': [words[6], words[7], '1'],
        'protocol': 'groth16',
        'curve': 'bn128',
    }


def tampered_proof(proof: Dict[str, Any], component: str) -> Dict[str, Any]:
    """Copy of ``proof`` with the first coordinate of ``component`` shifted by one."""
    proof = json.loads(json.dumps(proof))
    point = proof[component][0] if component == 'pi_b' else proof[component]
    point[0] = str((int(point[0]) + 1) % FIELD_SIZE)
    return proof


class FakeGroth16:
    """Proving system stand-in.

    Public signals are the ``pub*`` inputs in insertion order. The proof is
    a digest of the public signals, so any tampering fails verification.
    """

    def __init__(self):
        self.prove_calls: List[Dict[str, Any]] = []
        self.verify_calls = 0

    async def full_prove(self, inputs: Mapping[str, Any], wasm, proving_key):
        self.prove_calls.append({'inputs': dict(inputs), 'wasm': wasm, 'proving_key': proving_key})
        public_signals = [
            str(value) for key, value in inputs.items() if key.startswith('pub')
        ]
        return _fake_proof(public_signals), public_signals

    async def verify(self, verification_key, public_signals, proof) -> bool:
        self.verify_calls += 1
        expected = _fake_proof(public_signals)
        return all(proof.get(key) == expected[key] for key in ('pi_a', 'pi_b', 'pi_c'))


class FakePool:
    """In-memory credit note pool contract."""

    def __init__(
        self,
        events: Optional[List[Mapping[str, Any]]] = None,
        known_roots: Optional[Sequence[int]] = None,
        spent: Sequence[int] = (),
    ):
        self.events = list(events or [])
        self.known_roots = None if known_roots is None else {int(r) for r in known_roots}
        self.spent = {int(n) for n in spent}
        self.event_queries = 0

    @property
    def address(self) -> str:
        return POOL_ADDRESS

    async def get_purchased_events(self, from_block=0, to_block='latest'):
        self.event_queries += 1
        return list(self.events)

    async def is_known_root(self, root_hex: str) -> bool:
        if self.known_roots is None:
            return True
        return parse_int(root_hex) in self.known_roots

    async def is_spent(self, nullifier_hash_hex: str) -> bool:
        return parse_int(nullifier_hash_hex) in self.spent


def purchased(leaf_index: int, commitment: int, credit_type: int = 1,
              issuer_proxy: str = ZERO_ADDRESS) -> Dict[str, Any]:
    """A web3-style decoded `Purchased` log."""
    return {
        'event': 'Purchased',
        'args': {
            '_zkCreditType': credit_type,
            '_commitmentHash': commitment.to_bytes(32, 'big'),
            '_leafIndex': leaf_index,
            '_issuerProxy': issuer_proxy,
            '_timestamp': 1700000000 + leaf_index,
        },
    }


@pytest.fixture
def build_dir(tmp_path):
    """Build directory with placeholder artifacts for every circuit."""
    for name in ('ownershipVerifier', 'creditVerifier', 'creditRegister'):
        wasm = tmp_path / name / 'wasm' / f'{name}_js' / f'{name}.wasm'
        keys = tmp_path / name / 'keys'
        wasm.parent.mkdir(parents=True)
        keys.mkdir(parents=True)
        wasm.write_bytes(b'\0asm')
        (keys / 'proving_key.zkey').write_bytes(b'zkey')
        (keys / 'verification_key.json').write_text(
            json.dumps({'protocol': 'groth16', 'curve': 'bn128', 'nPublic': 0})
        )
    return tmp_path


@pytest.fixture
def artifacts(build_dir):
    return ArtifactLocations.from_build_path(build_dir)


@pytest.fixture
def signer():
    return LocalAccountSigner(PRIVATE_KEY)


@pytest.fixture
def groth16():
    return FakeGroth16()


@pytest.fixture
def registry():
    return fake_registry()


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def protocol(pool):
    return PrivacyProtocol(
        chain_id=CHAIN_ID,
        smart_asset_address=SMART_ASSET_ADDRESS,
        issuer_proxy_abi=ISSUER_PROXY_ABI,
        credit_note_pool=pool,
    )
