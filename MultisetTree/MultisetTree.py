import logging
import numpy as np
from collections import Counter
from typing import Any, Iterable, Iterator, Optional, Tuple

from MultisetTree.NodeArena import (
    NodeArena, LEFT, RIGHT, PARENT, NEXT, HEIGHT, COUNT, SIDE, NIL,
    LEFT_SIDE, RIGHT_SIDE, DEFAULT_CAPACITY,
    in_order_predecessor, min_node, max_node, replace
)
from MultisetTree.NodeModify import plant, insert, delete_node
from MultisetTree.Rebalance import Rebalancer, get_rebalancer



logger = logging.getLogger(__name__)

BALANCING = "avl"



class CorruptTreeError(AssertionError):
    """Raised by MultisetTree.validate when a structural invariant is broken."""



# --------- Node handle ---------
class Node:
    """
    View of one arena slot: a distinct value and its occurrence count.

    Handles are cheap and hold no structure of their own; two handles are equal
    when they point at the same slot of the same tree. A handle is only
    meaningful while its slot is live.
    """

    __slots__ = ("tree", "index")

    def __init__(self, tree: "MultisetTree", index: int) -> None:
        self.tree  = tree
        self.index = int(index)

    def _wrap(self, index) -> Optional["Node"]:
        return self.tree._node(index)

    @property
    def _nodes(self) -> np.ndarray:
        return self.tree._arena.nodes

    @property
    def value(self) -> Any:
        return self.tree._arena.values[self.index]

    @property
    def count(self) -> int:
        return int(self._nodes[self.index, COUNT])

    @property
    def height(self) -> int:
        return int(self._nodes[self.index, HEIGHT])

    @property
    def left(self) -> Optional["Node"]:
        return self._wrap(self._nodes[self.index, LEFT])

    @property
    def right(self) -> Optional["Node"]:
        return self._wrap(self._nodes[self.index, RIGHT])

    @property
    def parent(self) -> Optional["Node"]:
        """None for the root."""
        return self._wrap(self._nodes[self.index, PARENT])

    @property
    def is_left(self) -> bool:
        return int(self._nodes[self.index, SIDE]) == LEFT_SIDE

    @property
    def direction(self) -> str:
        return "left" if self.is_left else "right"

    @property
    def successor(self) -> Optional["Node"]:
        """Next node in sorted order, read from the chain."""
        return self._wrap(self._nodes[self.index, NEXT])

    @property
    def in_order_predecessor(self) -> Optional["Node"]:
        return self._wrap(in_order_predecessor(self._nodes, self.index))

    @property
    def min_node(self) -> "Node":
        return self._wrap(min_node(self._nodes, self.index))

    @property
    def max_node(self) -> "Node":
        return self._wrap(max_node(self._nodes, self.index))

    def insert(self, value: Any) -> Tuple["Node", bool]:
        """
        Count `value` once in the subtree rooted here.

        Returns the node holding `value` and whether it was created.
        """

        tree         = self.tree
        index, fresh = insert(tree._arena, self.index, value, tree._rebalance)
        tree._size  += 1
        return Node(tree, index), fresh

    def delete(self) -> None:
        """
        Remove this node outright, whatever its count.

        With two children the slot survives holding a neighbour's value, so
        the handle then refers to that value.
        """

        self.tree._size -= self.count
        delete_node(self.tree._arena, self.index, self.tree._rebalance)

    def replace(self, with_node: Optional["Node"]) -> None:
        """Rewire this node's parent to `with_node` (or to nothing). The chain is not touched."""
        replace(self._nodes, self.index, NIL if with_node is None else with_node.index)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.tree is other.tree and self.index == other.index

    def __hash__(self) -> int:
        return hash((id(self.tree), self.index))

    def __repr__(self) -> str:
        return f"Node(value={self.value!r}, count={self.count})"



# --------- MultisetTree API ---------
class MultisetTree:
    """
    Sorted multiset backed by a binary search tree in a NodeArena.

    Each distinct value lives in one node together with its occurrence count.
    Nodes are threaded on a NEXT chain in ascending order, so ordered iteration
    costs O(1) per step whatever the tree shape. Balancing is delegated to a
    Rebalancer hook (AVL by default, or "none" for a plain BST).

    Attributes:
        balancing (Rebalancer): Hook run after every structural change.
    """

    def __init__(
        self,
        data:      Optional[Iterable[Any]] = None,
        capacity:  int = DEFAULT_CAPACITY,
        balancing: Any = BALANCING

    ) -> None:

        self._arena     = NodeArena(capacity)
        self._rebalance = get_rebalancer(balancing)
        self._size      = 0

        if data is not None:
            self.update(data)

    @property
    def balancing(self) -> Rebalancer:
        return self._rebalance

    @property
    def distinct(self) -> int:
        """Number of distinct values, i.e. of nodes."""
        return len(self._arena)

    @property
    def height(self) -> int:
        return int(self._arena.nodes[self._arena.root, HEIGHT])

    @property
    def root(self) -> Optional[Node]:
        return self._node(self._arena.root)

    @property
    def first(self) -> Optional[Node]:
        return self._node(self._arena.head)

    @property
    def last(self) -> Optional[Node]:
        root = self._arena.root
        if root == NIL:
            return None
        return self._node(max_node(self._arena.nodes, root))

    def _node(self, index) -> Optional[Node]:
        index = int(index)
        if index == NIL:
            return None
        return Node(self, index)

    def _chain(self) -> Iterator[int]:
        arena   = self._arena
        current = arena.head

        while current != NIL:
            yield current
            current = int(arena.nodes[current, NEXT])

    # ---------- Mutation ----------
    def add(
        self,
        value: Any

    ) -> Node:

        """Count one more occurrence of `value` and return its node."""

        root = self._arena.root
        if root == NIL:
            index = plant(self._arena, value, self._rebalance)
        else:
            index, _ = insert(self._arena, root, value, self._rebalance)

        self._size += 1
        return Node(self, index)

    def update(
        self,
        data: Iterable[Any]

    ) -> None:

        for value in data:
            self.add(value)

    def remove(
        self,
        value: Any

    ) -> None:

        """
        Remove one occurrence of `value`.

        The node goes away when its last occurrence does. Raises KeyError if
        `value` is not present.
        """

        index = self._find(value)
        if index == NIL:
            raise KeyError(value)

        nodes = self._arena.nodes
        if nodes[index, COUNT] > 1:
            nodes[index, COUNT] -= 1
        else:
            delete_node(self._arena, index, self._rebalance)

        self._size -= 1

    def discard(
        self,
        value: Any

    ) -> bool:

        """Like remove, but returns False instead of raising when `value` is absent."""

        try:
            self.remove(value)
        except KeyError:
            return False

        return True

    def delete(
        self,
        value: Any

    ) -> int:

        """
        Remove every occurrence of `value` and return how many there were.

        Raises KeyError if `value` is not present.
        """

        index = self._find(value)
        if index == NIL:
            raise KeyError(value)

        removed = int(self._arena.nodes[index, COUNT])
        delete_node(self._arena, index, self._rebalance)

        self._size -= removed
        return removed

    def clear(self) -> None:
        self._arena.clear()
        self._size = 0

    # ---------- Lookup ----------
    def _find(self, value: Any) -> int:
        arena   = self._arena
        current = arena.root

        while current != NIL:
            current_value = arena.values[current]

            if value == current_value:
                return current
            elif value < current_value:
                current = int(arena.nodes[current, LEFT])
            else:
                current = int(arena.nodes[current, RIGHT])

        return NIL

    def find(self, value: Any) -> Optional[Node]:
        return self._node(self._find(value))

    def count(self, value: Any) -> int:
        index = self._find(value)
        if index == NIL:
            return 0
        return int(self._arena.nodes[index, COUNT])

    def min(self) -> Any:
        if self._arena.head == NIL:
            raise ValueError("min() of an empty multiset")
        return self._arena.values[self._arena.head]

    def max(self) -> Any:
        last = self.last
        if last is None:
            raise ValueError("max() of an empty multiset")
        return last.value

    # ---------- Ordered traversal ----------
    def items(self) -> Iterator[Tuple[Any, int]]:
        """(value, count) pairs in ascending order."""

        arena = self._arena
        for index in self._chain():
            yield arena.values[index], int(arena.nodes[index, COUNT])

    def nodes(self) -> Iterator[Node]:
        for index in self._chain():
            yield Node(self, index)

    def inorder(self) -> list:
        """
        Distinct values in ascending order, collected in one pass of the chain.
        Intended for checks and debugging; iterate the tree for large data.
        """

        values = self._arena.values
        return [values[index] for index in self._arena.order()]

    def counts(self) -> np.ndarray:
        """Occurrence counts aligned with inorder()."""
        return self._arena.nodes[self._arena.order(), COUNT]

    # ---------- Integrity ----------
    def validate(self) -> None:
        """
        Walk the tree and the chain and check every structural invariant:
        ordering, chain order and completeness, positive counts, parent and
        direction links, heights, and the cached sizes.

        Raises:
            CorruptTreeError: describing the first violation found.
        """

        arena = self._arena
        nodes = arena.nodes
        root  = arena.root

        if root == NIL:
            if arena.head != NIL or arena.count != 0 or self._size != 0:
                raise CorruptTreeError("empty tree with a non-empty chain or size")
            return

        if nodes[root, PARENT] != NIL or nodes[root, SIDE] != LEFT_SIDE:
            raise CorruptTreeError(f"root {root} is not attached to the header")

        # Iterative in-order walk over the tree links
        walk  = []
        stack = []
        total = 0
        current = root

        while stack or current != NIL:
            while current != NIL:
                if len(stack) > arena.count:
                    raise CorruptTreeError("cycle in child links")
                stack.append(current)
                current = int(nodes[current, LEFT])

            current = stack.pop()
            walk.append(current)
            if len(walk) > arena.count:
                raise CorruptTreeError(f"tree holds more nodes than the arena counts ({arena.count})")

            for side, column in ((LEFT_SIDE, LEFT), (RIGHT_SIDE, RIGHT)):
                child = int(nodes[current, column])
                if child == NIL:
                    continue
                if nodes[child, PARENT] != current or nodes[child, SIDE] != side:
                    raise CorruptTreeError(f"child {child} does not point back to parent {current}")

            if nodes[current, COUNT] < 1:
                raise CorruptTreeError(f"node {current} has count {nodes[current, COUNT]}")

            expected = max(nodes[nodes[current, LEFT], HEIGHT], nodes[nodes[current, RIGHT], HEIGHT]) + 1
            if nodes[current, HEIGHT] != expected:
                raise CorruptTreeError(
                    f"node {current} has height {nodes[current, HEIGHT]}, expected {expected}"
                )

            total  += int(nodes[current, COUNT])
            current = int(nodes[current, RIGHT])

        for previous, following in zip(walk, walk[1:]):
            if not arena.values[previous] < arena.values[following]:
                raise CorruptTreeError(
                    f"values {arena.values[previous]!r} and {arena.values[following]!r} are out of order"
                )

        if len(walk) != arena.count:
            raise CorruptTreeError(f"tree holds {len(walk)} nodes, arena counts {arena.count}")

        chain = [int(index) for index in arena.order()]
        if chain != walk:
            raise CorruptTreeError("chain order differs from the tree's in-order sequence")

        if nodes[walk[-1], NEXT] != NIL:
            raise CorruptTreeError("chain does not end at the maximum node")

        if total != self._size:
            raise CorruptTreeError(f"occurrences sum to {total}, size is {self._size}")

    # ---------- Dunder ----------
    def __len__(self) -> int:
        """Total number of occurrences."""
        return self._size

    def __contains__(self, value: Any) -> bool:
        return self._find(value) != NIL

    def __iter__(self) -> Iterator[Any]:
        for value, count in self.items():
            for _ in range(count):
                yield value

    def __eq__(self, other) -> bool:
        if isinstance(other, MultisetTree):
            return list(self.items()) == list(other.items())
        if isinstance(other, Counter):
            return dict(self.items()) == {k: v for k, v in other.items() if v > 0}
        return NotImplemented

    def __repr__(self) -> str:
        body = ", ".join(f"{value!r}: {count}" for value, count in self.items())
        return f"MultisetTree({{{body}}})"

    def __str__(self) -> str:
        return (
            "MultisetTree(size=" + str(self._size) + ", distinct=" + str(self.distinct)
            + ", root=" + str(self._arena.root) + ", height=" + str(self.height) + ")"
        )



# --------- Utils ---------
def warmup(tree_size: int = 100) -> bool:
    """
    Minimally triggers JIT compilation for the arena kernels and both hooks.
    """

    logger.debug("Compiling multiset tree kernels")

    for balancing in ("avl", "none"):
        tree = MultisetTree(capacity=tree_size, balancing=balancing)
        for value in (30, 20, 10, 40, 50, 25, 20):
            tree.add(value)

        _ = tree.inorder()
        _ = tree.first.in_order_predecessor

        tree.delete(30)
        tree.remove(20)

    return True


def build_multiset(
    data: Iterable[Any],
    **kwargs

) -> MultisetTree:

    """
    Builds and populates a MultisetTree from any iterable.

    Args:
        data (Iterable): Values to insert, duplicates included.
        **kwargs: Passed through to MultisetTree (capacity, balancing).

    Returns:
        MultisetTree: The populated tree.
    """

    return MultisetTree(data, **kwargs)


def fill_multiset(
    tree: MultisetTree,
    data: Iterable[Any]

) -> None:

    """Populates an existing MultisetTree with multiple values."""

    tree.update(data)


def remove_multiset(
    tree:   MultisetTree,
    values: Iterable[Any]

) -> None:

    """
    Remove one occurrence of each value in `values`.

    Note:
        Values that are not present are silently ignored.
    """

    for value in values:
        tree.discard(value)
