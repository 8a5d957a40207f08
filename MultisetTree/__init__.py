from MultisetTree.MultisetTree import (
    MultisetTree, Node, CorruptTreeError,
    warmup, build_multiset, fill_multiset, remove_multiset
)
from MultisetTree.Rebalance import Rebalancer, AVLRebalancer, HeightRebalancer, get_rebalancer
