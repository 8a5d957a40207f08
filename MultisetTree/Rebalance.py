import abc
import numpy as np
from numba import njit

from MultisetTree.NodeArena import (
    LEFT, RIGHT, PARENT, SIDE, HEIGHT, NIL, LEFT_SIDE, RIGHT_SIDE,
    set_child, refresh_height
)



# ---------- JIT-Compiled Rotations ----------
@njit(inline="always")
def right_rotation( # SRR: Single Right Rotation
    nodes: np.ndarray,
    index: np.int64

) -> np.int64:

    """
    Perform a single right rotation (SRR) around `index`.

    The left child of `index` takes its place under the same parent (the
    header when `index` is the root), `index` becomes its right child and the
    pivot's former right subtree moves under `index`. Heights of both nodes are
    recomputed. NEXT links are untouched since the in-order sequence does not
    change.

    :param nodes: Node arena
    :type nodes: np.ndarray
    :param index: Root of the subtree to rotate
    :type index: np.int64
    :return: Index of the new subtree root
    :rtype: np.int64
    """

    pivot  = nodes[index, LEFT]
    parent = nodes[index, PARENT]
    side   = nodes[index, SIDE]

    # Rotate
    set_child(nodes, index, LEFT_SIDE, nodes[pivot, RIGHT])
    set_child(nodes, pivot, RIGHT_SIDE, index)
    set_child(nodes, parent, side, pivot)

    # Update heights, lower node first
    refresh_height(nodes, index)
    refresh_height(nodes, pivot)

    return pivot # new root

@njit(inline="always")
def left_rotation( # SLR: Single Left Rotation
    nodes: np.ndarray,
    index: np.int64

) -> np.int64:

    """
    Perform a single left rotation (SLR) around `index`.

    Applied when a node becomes right-heavy: the right child becomes the new
    subtree root and `index` becomes its left child.
    """

    pivot  = nodes[index, RIGHT]
    parent = nodes[index, PARENT]
    side   = nodes[index, SIDE]

    # Rotate
    set_child(nodes, index, RIGHT_SIDE, nodes[pivot, LEFT])
    set_child(nodes, pivot, LEFT_SIDE, index)
    set_child(nodes, parent, side, pivot)

    # Update heights
    refresh_height(nodes, index)
    refresh_height(nodes, pivot)

    return pivot # new root

@njit(boundscheck=False)
def avl_rebalance(
    nodes: np.ndarray,
    index: np.int64

) -> None:

    """
    Retrace from `index` up to the root, refreshing heights and restoring the
    AVL balance factor with LL, LR, RR or RL rotations.

    Works after both insertion and deletion: the rotation case is chosen from
    the heights of the grandchildren rather than from the inserted value.

    Args:
        nodes (np.ndarray): Node arena.
        index (np.int64): Lowest node whose subtree changed shape; NIL is a no-op.
    """

    current = index
    while current != NIL:
        refresh_height(nodes, current)

        left_index  = nodes[current, LEFT]
        right_index = nodes[current, RIGHT]
        bf          = nodes[left_index, HEIGHT] - nodes[right_index, HEIGHT]

        if bf > 1: # L
            h_ll = nodes[nodes[left_index, LEFT], HEIGHT]
            h_lr = nodes[nodes[left_index, RIGHT], HEIGHT]

            if h_ll < h_lr: # LR
                left_rotation(nodes, left_index)

            current = right_rotation(nodes, current)

        elif bf < -1: # R
            h_rl = nodes[nodes[right_index, LEFT], HEIGHT]
            h_rr = nodes[nodes[right_index, RIGHT], HEIGHT]

            if h_rr < h_rl: # RL
                right_rotation(nodes, right_index)

            current = left_rotation(nodes, current)

        current = nodes[current, PARENT]

@njit
def refresh_heights(
    nodes: np.ndarray,
    index: np.int64

) -> None:

    """Recompute heights from `index` up to the root without rotating."""

    current = index
    while current != NIL:
        refresh_height(nodes, current)
        current = nodes[current, PARENT]



# --------- Hooks ---------
class Rebalancer(abc.ABC):
    """
    Post-mutation hook called by the mutation engine.

    The engine calls the hook with the arena array and the lowest node whose
    subtree changed shape (possibly NIL). Hooks own height bookkeeping: the
    engine reads HEIGHT to pick deletion donors, so every hook has to leave the
    heights on the path to the root up to date.
    """

    name = None

    @abc.abstractmethod
    def __call__(self, nodes: np.ndarray, index: int) -> None:
        pass

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class AVLRebalancer(Rebalancer):
    name = "avl"

    def __call__(self, nodes: np.ndarray, index: int) -> None:
        avl_rebalance(nodes, np.int64(index))


class HeightRebalancer(Rebalancer):
    """Plain binary search tree: heights are kept, shape is never changed."""

    name = "none"

    def __call__(self, nodes: np.ndarray, index: int) -> None:
        refresh_heights(nodes, np.int64(index))


REBALANCERS = {
    AVLRebalancer.name: AVLRebalancer,
    HeightRebalancer.name: HeightRebalancer,
}


def get_rebalancer(balancing) -> Rebalancer:
    """
    Resolve a balancing option into a hook.

    `balancing` is either a Rebalancer instance, returned as is, or one of
    the names in REBALANCERS.
    """

    if isinstance(balancing, Rebalancer):
        return balancing

    try:
        return REBALANCERS[balancing]()
    except (KeyError, TypeError):
        raise ValueError(
            f"Unknown balancing {balancing!r}, expected one of {sorted(REBALANCERS)}"
        ) from None
