import random
from collections import Counter

import numpy as np
import pytest

from MultisetTree import (
    MultisetTree, CorruptTreeError, warmup, build_multiset, fill_multiset, remove_multiset
)
from MultisetTree.NodeArena import COUNT, NEXT, NIL


def test_example_scenario():
    tree = MultisetTree([5, 3, 8, 3, 1])

    assert len(tree) == 5
    assert tree.distinct == 4
    assert list(tree.items()) == [(1, 1), (3, 2), (5, 1), (8, 1)]
    assert list(tree) == [1, 3, 3, 5, 8]
    tree.validate()

    tree.delete(5)

    assert list(tree.items()) == [(1, 1), (3, 2), (8, 1)]
    assert tree.find(3).successor.value == 8
    tree.validate()


def test_add_returns_node():
    tree = MultisetTree()
    node = tree.add("x")

    assert node.value == "x"
    assert node.count == 1
    assert tree.add("x") == node
    assert node.count == 2


def test_count_and_contains():
    tree = MultisetTree("mississippi")

    assert tree.count("s") == 4
    assert tree.count("i") == 4
    assert tree.count("p") == 2
    assert tree.count("z") == 0
    assert "m" in tree
    assert "z" not in tree
    assert tree.inorder() == ["i", "m", "p", "s"]
    np.testing.assert_array_equal(tree.counts(), [4, 1, 2, 4])


def test_remove_decrements_then_deletes():
    tree = MultisetTree([4, 4, 2])

    tree.remove(4)
    assert tree.count(4) == 1
    assert tree.distinct == 2

    tree.remove(4)
    assert 4 not in tree
    assert tree.distinct == 1
    assert len(tree) == 1
    tree.validate()


def test_remove_missing_raises():
    tree = MultisetTree([1])

    with pytest.raises(KeyError):
        tree.remove(2)

    assert tree.discard(2) is False
    assert tree.discard(1) is True
    assert len(tree) == 0


def test_delete_removes_all_occurrences():
    tree = MultisetTree([7, 7, 7, 1])

    assert tree.delete(7) == 3
    assert len(tree) == 1
    assert list(tree) == [1]

    with pytest.raises(KeyError):
        tree.delete(7)


def test_delete_minimum_of_three():
    tree = MultisetTree(["b", "a", "c"])
    tree.delete("a")

    assert tree.inorder() == ["b", "c"]
    assert tree.first.value == "b"
    assert tree.first.successor.value == "c"
    assert tree.last.successor is None


def test_empty_tree():
    tree = MultisetTree()

    assert len(tree) == 0
    assert tree.height == 0
    assert tree.root is None
    assert tree.first is None
    assert tree.last is None
    assert list(tree) == []
    assert tree.inorder() == []
    tree.validate()

    with pytest.raises(ValueError):
        tree.min()
    with pytest.raises(ValueError):
        tree.max()


def test_delete_sole_value_then_reuse():
    tree = MultisetTree([9])
    tree.delete(9)
    tree.validate()

    tree.add(4)
    assert list(tree) == [4]
    assert tree.root.parent is None
    tree.validate()


def test_min_max_first_last():
    tree = MultisetTree([10, -2, 33, 5])

    assert tree.min() == -2
    assert tree.max() == 33
    assert tree.first.value == -2
    assert tree.last.value == 33
    assert tree.first.in_order_predecessor is None


def test_node_handle_links():
    tree = MultisetTree([2, 1, 3])
    root = tree.root

    assert root.value == 2
    assert root.parent is None
    assert root.left.direction == "left"
    assert root.right.direction == "right"
    assert root.left.parent == root
    assert root.min_node.value == 1
    assert root.max_node.value == 3
    assert root.right.in_order_predecessor == root
    assert {root, tree.find(2)} == {root}


def test_node_delete_with_two_children_keeps_slot():
    tree  = MultisetTree([2, 1, 3], balancing="none")
    root  = tree.root
    slots = tree.distinct

    root.delete()

    assert tree.distinct == slots - 1
    assert root.value == 3
    assert tree.inorder() == [1, 3]
    tree.validate()


def test_node_insert_and_replace():
    tree = MultisetTree([5], balancing="none")

    node, fresh = tree.root.insert(6)
    assert fresh
    assert node.parent == tree.root

    again, fresh = tree.root.insert(6)
    assert again == node
    assert not fresh
    assert len(tree) == 3
    tree.validate()

    node.replace(None)
    assert tree.root.right is None


def test_clear():
    tree = MultisetTree(range(10))
    tree.clear()

    assert len(tree) == 0
    assert tree.distinct == 0
    tree.validate()

    tree.add(1)
    assert list(tree) == [1]


def test_equality_and_repr():
    tree = MultisetTree(["b", "a", "b"])

    assert tree == Counter({"a": 1, "b": 2})
    assert tree == MultisetTree(["a", "b", "b"], balancing="none")
    assert tree != MultisetTree(["a", "b"])
    assert repr(tree) == "MultisetTree({'a': 1, 'b': 2})"
    assert str(tree).startswith("MultisetTree(size=3, distinct=2")


def test_invalid_capacity():
    with pytest.raises(ValueError):
        MultisetTree(capacity=0)


def test_mismatched_types_raise():
    tree = MultisetTree([1, 2])

    with pytest.raises(TypeError):
        tree.add("a")


@pytest.mark.parametrize("balancing", ["avl", "none"])
@pytest.mark.parametrize("seed", [0, 1, 2])
def test_random_operations_match_counter(balancing, seed):
    rng      = random.Random(seed)
    tree     = MultisetTree(capacity=4, balancing=balancing)
    expected = Counter()

    for step in range(1500):
        value = rng.randrange(60)
        roll  = rng.random()

        if roll < 0.55:
            tree.add(value)
            expected[value] += 1
        elif roll < 0.85:
            assert tree.discard(value) == (expected[value] > 0)
            if expected[value] > 0:
                expected[value] -= 1
        elif value in tree:
            assert tree.delete(value) == expected[value]
            expected[value] = 0

        if step % 100 == 0:
            tree.validate()

    tree.validate()
    assert list(tree) == sorted(expected.elements())
    assert tree.distinct == sum(1 for count in expected.values() if count > 0)
    assert tree == expected


def test_each_deletion_removes_one_node():
    tree = MultisetTree(range(40))

    for value in [20, 0, 39, 17, 5]:
        before = tree.distinct
        tree.delete(value)
        assert tree.distinct == before - 1
        assert value not in tree
        tree.validate()


def test_reinsertion_keeps_shape():
    tree   = MultisetTree([8, 4, 12, 2, 6])
    before = tree._arena.nodes.copy()

    tree.add(6)

    np.testing.assert_array_equal(
        np.delete(before, COUNT, axis=1), np.delete(tree._arena.nodes, COUNT, axis=1)
    )
    assert tree.count(6) == 2


def test_validate_detects_zero_count():
    tree = MultisetTree([1, 2, 3])
    tree._arena.nodes[tree.find(2).index, COUNT] = 0

    with pytest.raises(CorruptTreeError):
        tree.validate()


def test_validate_detects_broken_chain():
    tree = MultisetTree([1, 2, 3])
    tree._arena.nodes[tree.find(1).index, NEXT] = NIL

    with pytest.raises(CorruptTreeError):
        tree.validate()


def test_utilities():
    assert warmup(16)

    tree = build_multiset([3, 1, 2], balancing="none")
    fill_multiset(tree, [2, 4])
    assert list(tree) == [1, 2, 2, 3, 4]

    remove_multiset(tree, [2, 9, 4])
    assert list(tree) == [1, 2, 3]
    tree.validate()
