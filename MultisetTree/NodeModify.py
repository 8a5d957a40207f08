"""
Node-level mutation engine.

Insertion with duplicate counting, deletion with a height-aware donor choice,
and upkeep of the NEXT chain threaded through the arena. Every function
expects the caller to hand it live nodes of `arena`; nothing here is checked
at runtime.

The rebalance hook is passed in by the caller and is invoked once per
structural change, at the lowest node whose subtree changed shape.
"""

import logging
from typing import Any, Callable, Tuple

import numpy as np

from MultisetTree.NodeArena import (
    NodeArena, LEFT, RIGHT, PARENT, NEXT, HEIGHT, COUNT, NIL, LEFT_SIDE,
    insert_left_child, insert_right_child, in_order_predecessor,
    min_node, max_node, replace, set_child
)



logger = logging.getLogger(__name__)

RebalanceHook = Callable[[np.ndarray, int], None]



def plant(
    arena:     NodeArena,
    value:     Any,
    rebalance: RebalanceHook

) -> int:

    """
    Create the root of an empty tree. It is also the whole chain.
    """

    index = arena.allocate(value)
    nodes = arena.nodes

    set_child(nodes, NIL, LEFT_SIDE, index) # the root hangs left of the header
    nodes[NIL, NEXT] = index

    rebalance(nodes, index)
    return index


def _insert_child(
    arena:     NodeArena,
    parent:    int,
    value:     Any,
    left:      bool,
    rebalance: RebalanceHook

) -> int:

    child = arena.allocate(value)
    nodes = arena.nodes # allocate may have grown the array

    if left:
        insert_left_child(nodes, parent, child)
    else:
        insert_right_child(nodes, parent, child)

    rebalance(nodes, parent)
    return child


def insert(
    arena:     NodeArena,
    root:      int,
    value:     Any,
    rebalance: RebalanceHook

) -> Tuple[int, bool]:

    """
    Increase by one the count of `value` in the subtree rooted at `root`.

    If a node already holds `value` its count goes up and the tree is left
    as it is. Otherwise a leaf is created under the last node visited, spliced
    into the chain next to its parent, and `rebalance` runs once at that
    parent.

    Parameters
    ----------
    arena : NodeArena
        Storage holding the tree.
    root : int
        Index of a live subtree root.
    value : Any
        Value comparable with the values already stored.
    rebalance : callable
        Hook invoked as ``rebalance(nodes, parent)`` after a structural change.

    Returns
    -------
    Tuple[int, bool]
        Index of the node holding `value`, and whether it was just created.
    """

    current = root
    while True:
        current_value = arena.values[current]

        if value == current_value:
            arena.nodes[current, COUNT] += 1
            return current, False

        elif value < current_value: # Left
            left_index = int(arena.nodes[current, LEFT])
            if left_index == NIL:
                return _insert_child(arena, current, value, True, rebalance), True

            current = left_index

        else: # Right
            right_index = int(arena.nodes[current, RIGHT])
            if right_index == NIL:
                return _insert_child(arena, current, value, False, rebalance), True

            current = right_index


def delete_node(
    arena:     NodeArena,
    index:     int,
    rebalance: RebalanceHook

) -> None:

    """
    Remove the node at `index` regardless of its count.

    With two children the node keeps its slot and takes over the payload of a
    donor from the taller subtree (the successor on a tie), and the donor is
    removed instead. Otherwise the node is detached, its predecessor is linked
    to its successor, and the hook runs at the former parent.
    """

    nodes       = arena.nodes
    left_index  = int(nodes[index, LEFT])
    right_index = int(nodes[index, RIGHT])

    if left_index != NIL and right_index != NIL:
        if nodes[left_index, HEIGHT] > nodes[right_index, HEIGHT]:
            donor = int(max_node(nodes, left_index))
            logger.debug("Deleting node %d through predecessor %d", index, donor)

            arena.copy_payload(donor, index)
            delete_node(arena, donor, rebalance)

        else:
            donor = int(min_node(nodes, right_index))
            logger.debug("Deleting node %d through successor %d", index, donor)

            arena.copy_payload(donor, index)
            nodes[index, NEXT] = nodes[donor, NEXT]
            delete_node(arena, donor, rebalance)

        return

    predecessor = int(in_order_predecessor(nodes, index))
    parent      = int(nodes[index, PARENT])

    # Zero or one child
    replace(nodes, index, left_index if left_index != NIL else right_index)
    nodes[predecessor, NEXT] = nodes[index, NEXT]

    arena.release(index)
    rebalance(nodes, parent)
