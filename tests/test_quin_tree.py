import pytest

from merkle.quin_tree import (
    CapacityExceededError,
    IncrementalQuinTree,
    InvalidIndexError,
    MalformedPathError,
    MerklePath,
    fold_leaves,
)
from primitives.snark_crypto import SNARK_FIELD_SIZE, poseidon


def additive_hash(values):
    """Cheap stand-in hash for structural tests"""
    return (sum(values) * 31 + len(values)) % SNARK_FIELD_SIZE


def test_empty_root_is_hash_of_zero_subtrees():
    tree = IncrementalQuinTree(depth=2, zero_value=0, leaves_per_node=5)
    level_one_zero = poseidon([0] * 5)
    assert tree.zeros == [0, level_one_zero]
    assert tree.root == poseidon([level_one_zero] * 5)
    assert len(tree) == 0


def test_root_matches_fold_of_padded_leaves():
    tree = IncrementalQuinTree(depth=2, zero_value=0, leaves_per_node=5)
    leaves = [11, 22, 33, 44, 55, 66, 77]
    for expected_index, leaf in enumerate(leaves):
        assert tree.insert(leaf) == expected_index

    assert tree.next_index == len(leaves)
    assert tree.root == fold_leaves(leaves, leaves_per_node=5, depth=2)


def test_update_changes_root_and_leaf():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=5)
    for leaf in (1, 2, 3):
        tree.insert(leaf)

    root_before = tree.root
    tree.update(1, 99)

    assert tree.get_leaf(1) == 99
    assert tree.root != root_before
    assert tree.root == fold_leaves([1, 99, 3], leaves_per_node=5, depth=2)


def test_capacity_exceeded():
    tree = IncrementalQuinTree(depth=1, leaves_per_node=2, hash_fn=additive_hash)
    tree.insert(1)
    tree.insert(2)
    with pytest.raises(CapacityExceededError):
        tree.insert(3)


def test_invalid_indices():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=3, hash_fn=additive_hash)
    tree.insert(5)
    with pytest.raises(InvalidIndexError):
        tree.update(1, 7)
    with pytest.raises(InvalidIndexError):
        tree.get_leaf(-1)
    with pytest.raises(InvalidIndexError):
        tree.gen_merkle_path(3)


def test_rejects_non_field_leaves():
    tree = IncrementalQuinTree(depth=1, leaves_per_node=2, hash_fn=additive_hash)
    with pytest.raises(ValueError):
        tree.insert(SNARK_FIELD_SIZE)
    with pytest.raises(ValueError):
        IncrementalQuinTree(depth=1, zero_value=-1)


def test_merkle_path_verifies_for_every_leaf():
    tree = IncrementalQuinTree(depth=3, leaves_per_node=3, hash_fn=additive_hash)
    for leaf in range(10, 21):
        tree.insert(leaf)

    for index in range(tree.next_index):
        path = tree.gen_merkle_path(index)
        assert path.leaf == tree.get_leaf(index)
        assert len(path.path_elements) == 3
        assert all(len(group) == 2 for group in path.path_elements)
        assert IncrementalQuinTree.verify_merkle_path(path, additive_hash)


def test_poseidon_path_verifies():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=5)
    for leaf in (3, 1, 4, 1, 5, 9):
        tree.insert(leaf)

    path = tree.gen_merkle_path(5)
    assert path.indices == [0, 1]
    assert IncrementalQuinTree.verify_merkle_path(path)


def test_tampered_path_does_not_verify():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=3, hash_fn=additive_hash)
    for leaf in (1, 2, 3, 4):
        tree.insert(leaf)

    path = tree.gen_merkle_path(2)
    path.leaf = 1000
    assert not IncrementalQuinTree.verify_merkle_path(path, additive_hash)


def test_malformed_paths_raise():
    good = MerklePath(
        path_elements=[[0, 0], [0, 0]],
        indices=[0, 0],
        depth=2,
        leaves_per_node=3,
        root=0,
        leaf=0,
    )

    short = MerklePath(**{**good.__dict__, 'indices': [0]})
    with pytest.raises(MalformedPathError):
        IncrementalQuinTree.verify_merkle_path(short, additive_hash)

    wrong_width = MerklePath(**{**good.__dict__, 'path_elements': [[0], [0, 0]]})
    with pytest.raises(MalformedPathError):
        IncrementalQuinTree.verify_merkle_path(wrong_width, additive_hash)

    bad_position = MerklePath(**{**good.__dict__, 'indices': [0, 3]})
    with pytest.raises(MalformedPathError):
        IncrementalQuinTree.verify_merkle_path(bad_position, additive_hash)

    missing = MerklePath(**{**good.__dict__, 'path_elements': None})
    with pytest.raises(MalformedPathError):
        IncrementalQuinTree.verify_merkle_path(missing, additive_hash)


def test_copy_is_independent():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=3, hash_fn=additive_hash)
    tree.insert(1)
    clone = tree.copy()

    clone.insert(2)
    clone.update(0, 9)

    assert tree.next_index == 1
    assert tree.get_leaf(0) == 1
    assert tree.root != clone.root


def test_fold_leaves_rejects_ragged_input():
    with pytest.raises(ValueError):
        fold_leaves([1, 2, 3], leaves_per_node=2, hash_fn=additive_hash)
    with pytest.raises(ValueError):
        fold_leaves([1] * 5, leaves_per_node=2, hash_fn=additive_hash, depth=2)


def test_corrupted_sibling_does_not_verify():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=5)
    for leaf in (2, 7, 1, 8, 2, 8):
        tree.insert(leaf)

    path = tree.gen_merkle_path(1)
    assert IncrementalQuinTree.verify_merkle_path(path)

    path.path_elements[1][2] = (path.path_elements[1][2] + 1) % SNARK_FIELD_SIZE
    assert not IncrementalQuinTree.verify_merkle_path(path)


def test_update_with_same_value_keeps_root():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=5)
    for leaf in (4, 5, 6):
        tree.insert(leaf)

    root_before = tree.root
    tree.update(1, 5)
    assert tree.root == root_before


def test_copy_preserves_root_through_identical_operations():
    original = IncrementalQuinTree(depth=2, leaves_per_node=5)
    rebuilt = IncrementalQuinTree(depth=2, leaves_per_node=5)
    for tree in (original, rebuilt):
        tree.insert(10)
        tree.insert(20)

    clone = original.copy()
    assert clone.root == original.root

    for tree in (clone, rebuilt):
        tree.insert(30)
        tree.update(0, 40)

    assert clone.root == rebuilt.root
    assert clone.root != original.root


def test_non_field_leaf_is_malformed():
    tree = IncrementalQuinTree(depth=2, leaves_per_node=3, hash_fn=additive_hash)
    tree.insert(1)

    path = tree.gen_merkle_path(0)
    path.leaf = SNARK_FIELD_SIZE
    with pytest.raises(MalformedPathError):
        IncrementalQuinTree.verify_merkle_path(path, additive_hash)
