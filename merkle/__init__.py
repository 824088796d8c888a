"""Incremental k-ary Merkle accumulator."""

from .quin_tree import (
    IncrementalQuinTree,
    MerklePath,
    fold_leaves,

    # Exceptions
    MerkleTreeError,
    CapacityExceededError,
    InvalidIndexError,
    MalformedPathError,
)

__all__ = [
    'IncrementalQuinTree',
    'MerklePath',
    'fold_leaves',

    'MerkleTreeError',
    'CapacityExceededError',
    'InvalidIndexError',
    'MalformedPathError',
]
