"""
privacy_circuits/merkle.py
Fixed-depth Merkle tree for the credit-note anonymity set.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping, Sequence, Tuple

from .constants import MERKLE_TREE_LEVELS, MERKLE_TREE_ZERO_ELEMENT
from .encoding import parse_int
from .errors import MerkleConsistencyError

logger = logging.getLogger(__name__)

HashPairs = Callable[[Sequence[Tuple[int, int]]], List[int]]


@dataclass(frozen=True)
class PurchasedEvent:
    """A `Purchased` log emitted by the credit-note pool.

    Only the leaf position and commitment are kept; the tree needs nothing else.
    """
    leaf_index: int
    commitment_hash: int


def parse_purchased_event(event: Mapping[str, Any]) -> PurchasedEvent:
    """Parse a decoded `Purchased` log.

    Accepts web3-style events (arguments under ``event["args"]``) or a
    plain mapping of arguments. Argument names follow the contract
    (``_leafIndex``, ``_commitmentHash`` ...); the leading underscore is
    optional.

    Raises:
        ValueError: If the leaf index or commitment hash is missing
    """
    args = event.get('args', event)

    def arg(name: str) -> Any:
        for key in (f"_{name}", name):
            if key in args:
                return args[key]
        return None

    leaf_index = arg('leafIndex')
    commitment_hash = arg('commitmentHash')
    if leaf_index is None or commitment_hash is None:
        raise ValueError("Purchased event lacks leafIndex or commitmentHash")

    return PurchasedEvent(leaf_index=int(leaf_index), commitment_hash=parse_int(commitment_hash))


def pairwise(hash2: Callable[[int, int], int]) -> HashPairs:
    """Lift a two-input hash into the batched ``HashPairs`` form."""
    def hash_pairs(pairs: Sequence[Tuple[int, int]]) -> List[int]:
        return [hash2(left, right) for left, right in pairs]
    return hash_pairs


@dataclass(frozen=True)
class MerklePath:
    """Inclusion path in the shape the credit-note circuit consumes."""
    path_elements: List[int]
    path_indices: List[int]
    leaf_index: int
    root: int


class FixedMerkleTree:
    """Append-only Merkle tree of fixed depth with a zero-element padding.

    Unfilled positions are never materialised: level ``i`` stores only the
    nodes covering real leaves, and a missing right sibling is the
    precomputed empty-subtree hash ``zeros[i]``, where ``zeros[0]`` is the
    zero element and ``zeros[i] = H(zeros[i-1], zeros[i-1])``.

    Example:
        tree = FixedMerkleTree(30, hash_pairs, zero_element, leaves=[c0, c1])
        path = tree.path(tree.index_of(c1))
        assert FixedMerkleTree.verify_path(c1, path, tree.root, hash_pairs)
    """

    def __init__(
        self,
        levels: int,
        hash_pairs: HashPairs,
        zero_element: int = MERKLE_TREE_ZERO_ELEMENT,
        leaves: Iterable[int] = (),
    ):
        if levels < 1:
            raise ValueError("A tree needs at least one level")
        self.levels = levels
        self._hash_pairs = hash_pairs
        self._leaves: List[int] = [int(leaf) for leaf in leaves]
        if len(self._leaves) > self.capacity:
            raise ValueError(
                f"Tree of {levels} levels holds at most {self.capacity} leaves"
            )
        self._zeros = self._build_zeros(zero_element)
        self._layers = self._build_layers()

    @property
    def capacity(self) -> int:
        return 1 << self.levels

    @property
    def leaves(self) -> List[int]:
        return list(self._leaves)

    @property
    def zeros(self) -> List[int]:
        return list(self._zeros)

    @property
    def root(self) -> int:
        top = self._layers[self.levels]
        return top[0] if top else self._zeros[self.levels]

    def _build_zeros(self, zero_element: int) -> List[int]:
        zeros = [int(zero_element)]
        for _ in range(self.levels):
            zeros.append(self._hash_pairs([(zeros[-1], zeros[-1])])[0])
        return zeros

    def _build_layers(self) -> List[List[int]]:
        layers = [list(self._leaves)]
        for level in range(1, self.levels + 1):
            below = layers[level - 1]
            pairs = []
            for i in range(0, len(below), 2):
                right = below[i + 1] if i + 1 < len(below) else self._zeros[level - 1]
                pairs.append((below[i], right))
            layers.append(self._hash_pairs(pairs) if pairs else [])
        return layers

    def index_of(self, leaf: int) -> int:
        """Return the position of ``leaf``, or -1 if it is not in the tree."""
        try:
            return self._leaves.index(int(leaf))
        except ValueError:
            return -1

    def path(self, index: int) -> MerklePath:
        """Build the inclusion path for the leaf at ``index``.

        Raises:
            IndexError: If no leaf exists at ``index``
        """
        if not 0 <= index < len(self._leaves):
            raise IndexError(f"No leaf at index {index}")

        elements = []
        indices = []
        position = index
        for level in range(self.levels):
            indices.append(position % 2)
            sibling = position ^ 1
            layer = self._layers[level]
            elements.append(layer[sibling] if sibling < len(layer) else self._zeros[level])
            position >>= 1

        return MerklePath(
            path_elements=elements,
            path_indices=indices,
            leaf_index=index,
            root=self.root,
        )

    @staticmethod
    def verify_path(leaf: int, path: MerklePath, root: int, hash_pairs: HashPairs) -> bool:
        """Recompute the root from a leaf and its path."""
        current = int(leaf)
        for sibling, is_right in zip(path.path_elements, path.path_indices):
            pair = (sibling, current) if is_right else (current, sibling)
            current = hash_pairs([pair])[0]
        return current == int(root)

    @classmethod
    def from_events(
        cls,
        events: Iterable[PurchasedEvent],
        hash_pairs: HashPairs,
        levels: int = MERKLE_TREE_LEVELS,
        zero_element: int = MERKLE_TREE_ZERO_ELEMENT,
    ) -> 'FixedMerkleTree':
        """Rebuild the tree from the pool's `Purchased` history.

        The contract assigns leaf indices ``0, 1, 2 ...`` in emission
        order, so after sorting they must match list positions exactly.

        Raises:
            MerkleConsistencyError: On gaps or duplicate leaf indices
        """
        ordered = sorted(events, key=lambda event: event.leaf_index)
        for position, event in enumerate(ordered):
            if event.leaf_index != position:
                raise MerkleConsistencyError(
                    f"Expected leaf index {position}, got {event.leaf_index}"
                )

        tree = cls(
            levels,
            hash_pairs,
            zero_element,
            leaves=[event.commitment_hash for event in ordered],
        )
        logger.debug("Rebuilt Merkle tree with %d leaves", len(ordered))
        return tree
