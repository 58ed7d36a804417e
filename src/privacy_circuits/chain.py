"""
privacy_circuits/chain.py
Chain-interaction collaborators: signer, pool contract and protocol handle.

Only the interface boundary lives here. Transactions are never sent from
this package; proofs are handed back to the caller's chain layer.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from eth_account import Account
from eth_utils import to_bytes, to_checksum_address

from .errors import PrivacyNotSupportedError

BlockIdentifier = Union[int, str]


@dataclass(frozen=True)
class Signature:
    """Recoverable ECDSA signature components."""
    r: int
    s: int
    v: int


class DigestSigner(Protocol):
    """Signs a 32-byte digest without further hashing."""

    def sign_digest(self, digest: bytes) -> Signature:
        ...


class LocalAccountSigner:
    """`DigestSigner` backed by an eth-account private key."""

    def __init__(self, private_key: Union[str, bytes]):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_digest(self, digest: bytes) -> Signature:
        signed = self._account.unsafe_sign_hash(digest)
        return Signature(r=signed.r, s=signed.s, v=signed.v)


class CreditNotePoolContract(Protocol):
    """Read access to the credit-note pool contract."""

    @property
    def address(self) -> str:
        ...

    async def get_purchased_events(
        self, from_block: BlockIdentifier = 0, to_block: BlockIdentifier = 'latest'
    ) -> Sequence[Mapping[str, Any]]:
        ...

    async def is_known_root(self, root_hex: str) -> bool:
        ...

    async def is_spent(self, nullifier_hash_hex: str) -> bool:
        ...


@dataclass
class PrivacyProtocol:
    """The slice of a deployed protocol the provers need.

    Args:
        chain_id: Chain the contracts live on
        smart_asset_address: Smart-asset contract; scopes ownership signatures
        issuer_proxy_abi: ABI of the issuer-proxy contract, used for intents
        credit_note_pool: Pool contract reader, required for credit notes
        privacy_enabled: Whether this deployment supports the privacy scheme
    """
    chain_id: int
    smart_asset_address: str
    issuer_proxy_abi: List[Dict[str, Any]] = field(default_factory=list)
    credit_note_pool: Optional[CreditNotePoolContract] = None
    privacy_enabled: bool = True

    def require_privacy(self) -> None:
        if not self.privacy_enabled:
            raise PrivacyNotSupportedError("This protocol does not support privacy")

    def require_credit_note_pool(self) -> CreditNotePoolContract:
        self.require_privacy()
        if self.credit_note_pool is None:
            raise PrivacyNotSupportedError("This protocol has no credit note pool")
        return self.credit_note_pool


# Subset of the pool ABI read by `Web3CreditNotePool`
CREDIT_NOTE_POOL_ABI: List[Dict[str, Any]] = [
    {
        'type': 'event',
        'name': 'Purchased',
        'anonymous': False,
        'inputs': [
            {'name': '_zkCreditType', 'type': 'uint8', 'indexed': False},
            {'name': '_commitmentHash', 'type': 'bytes32', 'indexed': False},
            {'name': '_leafIndex', 'type': 'uint32', 'indexed': False},
            {'name': '_issuerProxy', 'type': 'address', 'indexed': False},
            {'name': '_timestamp', 'type': 'uint256', 'indexed': False},
        ],
    },
    {
        'type': 'function',
        'name': 'isKnownRoot',
        'stateMutability': 'view',
        'inputs': [{'name': '_root', 'type': 'bytes32'}],
        'outputs': [{'name': '', 'type': 'bool'}],
    },
    {
        'type': 'function',
        'name': 'isSpent',
        'stateMutability': 'view',
        'inputs': [{'name': '_nullifierHash', 'type': 'bytes32'}],
        'outputs': [{'name': '', 'type': 'bool'}],
    },
]


class Web3CreditNotePool:
    """`CreditNotePoolContract` over a web3.py ``AsyncWeb3`` instance.

    Requires the optional web3 dependency.

    Args:
        w3: Connected ``AsyncWeb3`` instance
        address: Pool contract address
        abi: Pool ABI; must contain the `Purchased` event, `isKnownRoot`
            and `isSpent`
    """

    def __init__(self, w3: Any, address: str, abi: Optional[List[Dict[str, Any]]] = None):
        try:
            import web3  # noqa: F401
        except ImportError as exc:
            raise ImportError(
                "Install web3 for on-chain reads: pip install \"privacy-circuits[web3]\""
            ) from exc

        self._address = to_checksum_address(address)
        self._contract = w3.eth.contract(
            address=self._address, abi=abi or CREDIT_NOTE_POOL_ABI
        )

    @property
    def address(self) -> str:
        return self._address

    async def get_purchased_events(
        self, from_block: BlockIdentifier = 0, to_block: BlockIdentifier = 'latest'
    ) -> Sequence[Mapping[str, Any]]:
        return await self._contract.events.Purchased.get_logs(
            from_block=from_block, to_block=to_block
        )

    async def is_known_root(self, root_hex: str) -> bool:
        return bool(await self._contract.functions.isKnownRoot(to_bytes(hexstr=root_hex)).call())

    async def is_spent(self, nullifier_hash_hex: str) -> bool:
        return bool(
            await self._contract.functions.isSpent(to_bytes(hexstr=nullifier_hash_hex)).call()
        )
