import logging
import numpy as np
from numba import njit
from typing import Any, List



logger = logging.getLogger(__name__)



# Row layout of the node arena (one int64 row per slot):
#     ROW[7]: [left | right | parent | next | height | count | side]
#     Row 0 is the header:
#         header.left   -> root of the tree
#         header.next   -> head of the in-order chain (minimum node)
#         header.height == 0, so absent children read height 0
LEFT   = 0
RIGHT  = 1
PARENT = 2
NEXT   = 3
HEIGHT = 4
COUNT  = 5
SIDE   = 6
WIDTH  = 7

NIL        = 0 # absent node / header
LEFT_SIDE  = 1
RIGHT_SIDE = 2

DEFAULT_CAPACITY = 64
GROWTH_FACTOR    = 2



# ---------- JIT-Compiled Structural Accessors ----------
@njit(inline="always")
def set_child(
    nodes:  np.ndarray,
    parent: np.int64,
    side:   np.int64,
    child:  np.int64

) -> None:

    """
    Attach `child` as the `side` child of `parent`, keeping the child's
    parent and direction fields in step. `child` may be NIL.
    """

    if side == LEFT_SIDE:
        nodes[parent, LEFT] = child
    else:
        nodes[parent, RIGHT] = child

    if child != NIL:
        nodes[child, PARENT] = parent
        nodes[child, SIDE]   = side

@njit(inline="always")
def refresh_height(
    nodes: np.ndarray,
    index: np.int64

) -> None:

    """
    Recompute the height of `index` from its children.
    """

    nodes[index, HEIGHT] = max(
        nodes[nodes[index, LEFT], HEIGHT],
        nodes[nodes[index, RIGHT], HEIGHT]
    ) + 1

@njit
def replace(
    nodes:      np.ndarray,
    index:      np.int64,
    with_index: np.int64

) -> None:

    """
    Replace `index` in its parent's eyes with `with_index` (which can be NIL).

    The replacement inherits the parent and the direction tag of `index`.
    The node order is assumed unchanged apart from `index` leaving it; the
    chain is not touched.

    :param nodes: The node arena
    :type nodes: np.ndarray
    :param index: The node being replaced
    :type index: np.int64
    :param with_index: The node taking its place, or NIL
    :type with_index: np.int64
    """

    set_child(nodes, nodes[index, PARENT], nodes[index, SIDE], with_index)

@njit
def min_node(
    nodes: np.ndarray,
    index: np.int64

) -> np.int64:

    """Leftmost node of the subtree rooted at `index`."""

    current = index
    while nodes[current, LEFT] != NIL:
        current = nodes[current, LEFT]

    return current

@njit
def max_node(
    nodes: np.ndarray,
    index: np.int64

) -> np.int64:

    """Rightmost node of the subtree rooted at `index`."""

    current = index
    while nodes[current, RIGHT] != NIL:
        current = nodes[current, RIGHT]

    return current

@njit
def in_order_predecessor(
    nodes: np.ndarray,
    index: np.int64

) -> np.int64:

    """
    Locate the node holding the next smaller value by walking the tree.

    If `index` has a left subtree, the predecessor is its maximum. Otherwise
    climb while we are a left child; the first ancestor reached from its right
    side is the predecessor. Reaching the header means `index` is the minimum.

    Args:
        nodes (np.ndarray): The node arena.
        index (np.int64): A live node.

    Returns:
        np.int64: The predecessor index, or NIL for the minimum node.
    """

    if nodes[index, LEFT] != NIL:
        return max_node(nodes, nodes[index, LEFT])

    current = index
    while current != NIL and nodes[current, SIDE] == LEFT_SIDE:
        current = nodes[current, PARENT]

    if current == NIL:
        return NIL

    return nodes[current, PARENT]

@njit
def in_order_successor(
    nodes: np.ndarray,
    index: np.int64

) -> np.int64:

    """
    Tree-walk counterpart of the NEXT link, used to cross-check the chain.
    """

    if nodes[index, RIGHT] != NIL:
        return min_node(nodes, nodes[index, RIGHT])

    current = index
    while current != NIL and nodes[current, SIDE] == RIGHT_SIDE:
        current = nodes[current, PARENT]

    if current == NIL:
        return NIL

    # the root hangs left of the header, so the maximum climbs to it and gets NIL
    return nodes[current, PARENT]



# ---------- JIT-Compiled Chain Splicing ----------
@njit
def insert_left_child(
    nodes:  np.ndarray,
    parent: np.int64,
    child:  np.int64

) -> None:

    """
    Hang a fresh leaf as the left child of `parent` and splice it into the
    chain between the predecessor of `parent` and `parent` itself.
    """

    predecessor = in_order_predecessor(nodes, parent)
    set_child(nodes, parent, LEFT_SIDE, child)

    nodes[predecessor, NEXT] = child # NIL predecessor moves the chain head
    nodes[child, NEXT]       = parent

@njit
def insert_right_child(
    nodes:  np.ndarray,
    parent: np.int64,
    child:  np.int64

) -> None:

    """
    Hang a fresh leaf as the right child of `parent` and splice it into the
    chain between `parent` and its prior successor.
    """

    set_child(nodes, parent, RIGHT_SIDE, child)

    nodes[child, NEXT]  = nodes[parent, NEXT]
    nodes[parent, NEXT] = child

@njit
def chain_order(
    nodes: np.ndarray,
    limit: np.int64

) -> np.ndarray:

    """
    Collect node indices by following NEXT from the chain head.

    At most `limit` hops are taken, so a corrupted (cyclic) chain still
    terminates; callers compare the result length against the node count.
    """

    order   = np.zeros(limit, dtype=np.int64)
    current = nodes[NIL, NEXT]
    taken   = 0

    while current != NIL and taken < limit:
        order[taken] = current
        taken += 1
        current = nodes[current, NEXT]

    return order[:taken]



# --------- Arena ---------
class NodeArena:
    """
    Slab of tree nodes addressed by index.

    Structural fields live in a 2D int64 array so the JIT kernels can walk and
    splice them; the values themselves are arbitrary Python objects and sit in
    a parallel list. Freed slots are recycled through a free-list stack and the
    arena grows geometrically when it runs out of slots.

    Attributes:
        nodes (int64[:, :]): Array [capacity + 1, WIDTH] of node rows.
        values (list): Value stored at each slot (None for free slots).
        count (int): Number of live nodes.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY

    ) -> None:

        if capacity < 1:
            raise ValueError(
                f"The capacity must be a positive integer, not {capacity}"
            )

        self.capacity       = int(capacity)
        self.count          = 0
        self.nodes          = np.zeros((self.capacity + 1, WIDTH), dtype=np.int64)
        self.values: List[Any] = [None] * (self.capacity + 1)
        self._free          = 1
        self._free_list     = np.zeros(self.capacity + 1, dtype=np.int64)
        self._free_list_top = 0

    @property
    def root(self) -> int:
        return int(self.nodes[NIL, LEFT])

    @property
    def head(self) -> int:
        return int(self.nodes[NIL, NEXT])

    def _grow(self) -> None:
        new_capacity = self.capacity * GROWTH_FACTOR
        extra        = new_capacity - self.capacity

        logger.debug("Growing node arena from %d to %d slots", self.capacity, new_capacity)

        self.nodes      = np.vstack((self.nodes, np.zeros((extra, WIDTH), dtype=np.int64)))
        self._free_list = np.concatenate((self._free_list, np.zeros(extra, dtype=np.int64)))
        self.values.extend([None] * extra)
        self.capacity = new_capacity

    def allocate(
        self,
        value: Any

    ) -> int:

        """
        Take a slot for a new leaf holding `value` with count 1.

        The returned row is detached: the caller links it into the tree and
        the chain. `self.nodes` may be reallocated, so callers must not keep
        a reference to the old array across this call.
        """

        if self._free_list_top > 0:
            self._free_list_top -= 1
            index = int(self._free_list[self._free_list_top])
        else:
            if self._free > self.capacity:
                self._grow()
            index = self._free
            self._free += 1

        row         = self.nodes[index]
        row[:]      = 0
        row[HEIGHT] = 1
        row[COUNT]  = 1

        self.values[index] = value
        self.count += 1
        return index

    def release(
        self,
        index: int

    ) -> None:

        """Zero a detached slot, drop its value and push it on the free list."""

        self.nodes[index, :] = 0
        self.values[index]   = None

        self._free_list[self._free_list_top] = index
        self._free_list_top += 1
        self.count -= 1

    def copy_payload(
        self,
        source: int,
        target: int

    ) -> None:

        self.values[target]       = self.values[source]
        self.nodes[target, COUNT] = self.nodes[source, COUNT]

    def clear(self) -> None:
        self.nodes[:, :]    = 0
        self.values         = [None] * (self.capacity + 1)
        self.count          = 0
        self._free          = 1
        self._free_list_top = 0

    def order(self) -> np.ndarray:
        """Live node indices in ascending value order, read off the chain."""
        return chain_order(self.nodes, np.int64(self.count + 1))

    def __len__(self) -> int:
        return self.count
