"""
privacy_circuits/constants.py
Field, tree and proof-layout constants shared with the circuits and contracts.
"""
from dataclasses import dataclass

from eth_utils import keccak

# BN254 scalar field (snarkjs / circomlib "bn128")
FIELD_SIZE = 21888242871839275222246405745257275088548364400416034343698204186575808495617

MERKLE_TREE_LEVELS = 30
MERKLE_TREE_ZERO_SEED = b'arianee'
MERKLE_TREE_ZERO_ELEMENT = int.from_bytes(keccak(MERKLE_TREE_ZERO_SEED), 'big') % FIELD_SIZE

# Preimage widths in bytes
NULLIFIER_SIZE = 31
SECRET_SIZE = 31
CREDIT_TYPE_SIZE = 1
ADDRESS_SIZE = 20
DERIVATION_INDEX_SIZE = 2
FIELD_ELEMENT_SIZE = 32

# zk credit types are 1-indexed: on-chain credit type 0 is zk credit type 1
ZK_CREDIT_TYPES = (1, 2, 3, 4)

SELECTOR_SIZE = 4
WORD_SIZE = 32

# Ownership proof nonce is drawn uniformly below this bound
OWNERSHIP_NONCE_BOUND = 1_000_000


@dataclass(frozen=True)
class ProofLayout:
    """ABI layout of a Groth16 proof struct for one circuit.

    The struct is ``(uint256[2] pA, uint256[2][2] pB, uint256[2] pC,
    uint256[n] pubSignals)``. Every member is static, so the whole struct
    is encoded inline and occupies ``32 * (8 + n)`` bytes of calldata.
    """
    name: str
    public_signal_count: int

    @property
    def word_count(self) -> int:
        return 2 + 4 + 2 + self.public_signal_count

    @property
    def byte_size(self) -> int:
        return self.word_count * WORD_SIZE

    def placeholder(self) -> tuple:
        """Zero-valued proof struct used when encoding intent calldata."""
        return (
            [0, 0],
            [[0, 0], [0, 0]],
            [0, 0],
            [0] * self.public_signal_count,
        )


OWNERSHIP_LAYOUT = ProofLayout('ownershipVerifier', 3)
CREDIT_NOTE_LAYOUT = ProofLayout('creditVerifier', 5)
CREDIT_REGISTER_LAYOUT = ProofLayout('creditRegister', 3)

# Standard build layout: <build>/<circuit>/wasm/<circuit>_js/<circuit>.wasm
WASM_RELATIVE_PATH = '{name}/wasm/{name}_js/{name}.wasm'
PROVING_KEY_RELATIVE_PATH = '{name}/keys/proving_key.zkey'
VERIFICATION_KEY_RELATIVE_PATH = '{name}/keys/verification_key.json'

BUILD_PATH_ENV_VAR = 'PRIVACY_CIRCUITS_BUILD_PATH'
