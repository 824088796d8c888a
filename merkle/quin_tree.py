"""
Incremental Fixed-Arity Merkle Tree
===================================
Position-addressed accumulator used for both the state tree and the message
tree. Each level is kept as a flat list of filled node hashes; positions past
the end of a level are implicitly the cached zero-subtree hash for that level.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from primitives.snark_crypto import is_field_element, poseidon, validate_field_element

logger = logging.getLogger(__name__)

HashFn = Callable[[Sequence[int]], int]


class MerkleTreeError(Exception):
    """Base exception for accumulator operations"""
    pass


class CapacityExceededError(MerkleTreeError):
    """All leaf positions are already used"""
    pass


class InvalidIndexError(MerkleTreeError):
    """Position was never inserted or lies outside the tree"""
    pass


class MalformedPathError(MerkleTreeError):
    """Merkle path is structurally invalid"""
    pass


@dataclass
class MerklePath:
    """Sibling groups from leaf level to root, with the path's position in each group"""
    path_elements: List[List[int]]
    indices: List[int]
    depth: int
    leaves_per_node: int
    root: int
    leaf: int


class IncrementalQuinTree:
    """k-ary incremental Merkle tree with cached zero subtrees"""

    def __init__(
        self,
        depth: int,
        zero_value: int = 0,
        leaves_per_node: int = 5,
        hash_fn: Optional[HashFn] = None,
    ):
        if depth < 1:
            raise ValueError(f"Tree depth must be at least 1, got {depth}")
        if leaves_per_node < 2:
            raise ValueError(f"Tree arity must be at least 2, got {leaves_per_node}")
        validate_field_element(zero_value)

        self.depth = depth
        self.leaves_per_node = leaves_per_node
        self.hash_fn = hash_fn or poseidon
        self.capacity = leaves_per_node ** depth
        self.next_index = 0

        # zeros[i] is the root of an empty subtree of height i
        self.zeros: List[int] = [zero_value]
        for _ in range(1, depth):
            self.zeros.append(self.hash_fn([self.zeros[-1]] * leaves_per_node))

        # levels[0] holds leaves, levels[depth] holds the root once filled
        self.levels: List[List[int]] = [[] for _ in range(depth + 1)]
        self.root = self.hash_fn([self.zeros[depth - 1]] * leaves_per_node)

        logger.debug(f"Created tree depth={depth} arity={leaves_per_node} capacity={self.capacity}")

    @property
    def zero_value(self) -> int:
        return self.zeros[0]

    def __len__(self) -> int:
        return self.next_index

    def _node(self, level: int, index: int) -> int:
        nodes = self.levels[level]
        return nodes[index] if index < len(nodes) else self.zeros[level]

    def _set_node(self, level: int, index: int, value: int):
        nodes = self.levels[level]
        if index == len(nodes):
            nodes.append(value)
        else:
            nodes[index] = value

    def _group(self, level: int, index: int) -> List[int]:
        start = index - index % self.leaves_per_node
        return [self._node(level, start + i) for i in range(self.leaves_per_node)]

    def _recompute_path(self, index: int):
        current = index
        for level in range(self.depth):
            children = self._group(level, current)
            current //= self.leaves_per_node
            self._set_node(level + 1, current, self.hash_fn(children))
        self.root = self.levels[self.depth][0]

    def insert(self, leaf: int) -> int:
        """Append a leaf at the next free position and return that position"""
        validate_field_element(leaf)
        if self.next_index >= self.capacity:
            raise CapacityExceededError(
                f"Tree of depth {self.depth} and arity {self.leaves_per_node} is full")

        index = self.next_index
        self.levels[0].append(leaf)
        self.next_index += 1
        self._recompute_path(index)
        return index

    def update(self, index: int, leaf: int):
        """Overwrite an already inserted leaf"""
        validate_field_element(leaf)
        if not 0 <= index < self.next_index:
            raise InvalidIndexError(f"Leaf {index} has not been inserted")

        self.levels[0][index] = leaf
        self._recompute_path(index)

    def get_leaf(self, index: int) -> int:
        if not 0 <= index < self.next_index:
            raise InvalidIndexError(f"Leaf {index} has not been inserted")
        return self.levels[0][index]

    def gen_merkle_path(self, index: int) -> MerklePath:
        if not 0 <= index < self.next_index:
            raise InvalidIndexError(f"Leaf {index} has not been inserted")

        path_elements = []
        indices = []
        current = index
        for level in range(self.depth):
            position = current % self.leaves_per_node
            group = self._group(level, current)
            path_elements.append(group[:position] + group[position + 1:])
            indices.append(position)
            current //= self.leaves_per_node

        return MerklePath(
            path_elements=path_elements,
            indices=indices,
            depth=self.depth,
            leaves_per_node=self.leaves_per_node,
            root=self.root,
            leaf=self.levels[0][index],
        )

    @staticmethod
    def verify_merkle_path(path: MerklePath, hash_fn: Optional[HashFn] = None) -> bool:
        """Recompute the root from a path; raises MalformedPathError on garbage input"""
        hash_fn = hash_fn or poseidon

        if path.path_elements is None or path.indices is None:
            raise MalformedPathError("Path is missing its sibling groups or indices")
        if len(path.path_elements) != path.depth or len(path.indices) != path.depth:
            raise MalformedPathError(
                f"Expected {path.depth} levels, got {len(path.path_elements)} groups "
                f"and {len(path.indices)} indices")

        if not is_field_element(path.leaf):
            raise MalformedPathError(f"Leaf {path.leaf!r} is not a field element")

        siblings_per_group = path.leaves_per_node - 1
        current = path.leaf
        for level, (siblings, position) in enumerate(zip(path.path_elements, path.indices)):
            if not isinstance(siblings, (list, tuple)) or len(siblings) != siblings_per_group:
                raise MalformedPathError(f"Level {level} must hold {siblings_per_group} siblings")
            if not all(is_field_element(s) for s in siblings):
                raise MalformedPathError(f"Level {level} holds a non-field sibling")
            if not isinstance(position, int) or not 0 <= position < path.leaves_per_node:
                raise MalformedPathError(f"Level {level} has invalid position {position!r}")

            children = list(siblings)
            children.insert(position, current)
            current = hash_fn(children)

        return current == path.root

    def copy(self) -> 'IncrementalQuinTree':
        """Independent deep copy"""
        tree = IncrementalQuinTree.__new__(IncrementalQuinTree)
        tree.depth = self.depth
        tree.leaves_per_node = self.leaves_per_node
        tree.hash_fn = self.hash_fn
        tree.capacity = self.capacity
        tree.next_index = self.next_index
        tree.zeros = list(self.zeros)
        tree.levels = [list(nodes) for nodes in self.levels]
        tree.root = self.root
        return tree


def fold_leaves(
    leaves: Sequence[int],
    leaves_per_node: int = 5,
    hash_fn: Optional[HashFn] = None,
    depth: Optional[int] = None,
    zero_value: int = 0,
) -> int:
    """Root of a full tree built bottom-up from a leaf array

    With depth given, the leaves are padded with zero_value up to capacity.
    """
    hash_fn = hash_fn or poseidon
    level = list(leaves)

    if depth is not None:
        capacity = leaves_per_node ** depth
        if len(level) > capacity:
            raise ValueError(f"{len(level)} leaves exceed capacity {capacity}")
        level.extend([zero_value] * (capacity - len(level)))

    if not level:
        raise ValueError("Cannot fold an empty leaf array")

    while len(level) > 1:
        if len(level) % leaves_per_node != 0:
            raise ValueError(f"Level of {len(level)} nodes is not a multiple of {leaves_per_node}")
        rows = np.array(level, dtype=object).reshape(-1, leaves_per_node)
        level = [hash_fn(list(row)) for row in rows]

    return level[0]
