"""KD-Tree implementation for incremental spatial indexing of 3D point clouds."""

import logging
import math
import numbers

import numpy as np

from .exceptions import InvalidParameter
from .utils import as_point, as_point_cloud, time_function

logger = logging.getLogger(__name__)

DIMENSION = 3
# Sentinel id for an absent child / empty root
NIL = -1


class Node:
    """A single tree node. Children are node ids into the owning tree's arena."""

    __slots__ = ("point", "axis", "left", "right", "index")

    def __init__(self, point, axis, index=NIL):
        self.point = point
        self.axis = axis
        self.left = NIL
        self.right = NIL
        self.index = index

    def __repr__(self):
        return (f"Node(point={self.point}, axis={self.axis}, "
                f"left={self.left}, right={self.right}, index={self.index})")


class KDTree:
    """
    KD-tree over 3D points built by incremental insertion.

    Nodes live in an arena (self.nodes) and link to their children by id, so node ids
    follow insertion order. The tree is never rebalanced: sorted or duplicate
    insertions degrade it toward a linked list, which only slows searches down.
    """

    tracks_index = False

    def __init__(self, dtype=np.float64):
        self.dtype = np.dtype(dtype)
        self.nodes = []
        self.root = NIL

    @classmethod
    @time_function
    def from_points(cls, points, dtype=np.float64):
        """
        Build a tree by inserting the rows of an (N, 3) cloud in order.
        """
        points = as_point_cloud(points, dtype=dtype, allow_empty=True)
        tree = cls(dtype=dtype)
        for i, point in enumerate(points):
            tree._insert_point(point.copy(), i if tree.tracks_index else NIL)
        tree._log_shape()
        return tree

    def insert(self, point):
        """
        Insert a point, descending left when its coordinate on the node's axis is
        strictly less than the node's and right otherwise.

        Returns:
            Node id of the new leaf
        """
        return self._insert_point(as_point(point, dtype=self.dtype), NIL)

    def _insert_point(self, point, index):
        node_id = len(self.nodes)

        if self.root == NIL:
            self.nodes.append(Node(point, 0, index))
            self.root = node_id
            return node_id

        current = self.root
        while True:
            node = self.nodes[current]
            axis = node.axis
            if point[axis] < node.point[axis]:
                if node.left == NIL:
                    node.left = node_id
                    break
                current = node.left
            else:
                if node.right == NIL:
                    node.right = node_id
                    break
                current = node.right

        self.nodes.append(Node(point, (axis + 1) % DIMENSION, index))
        return node_id

    def __len__(self):
        return len(self.nodes)

    @property
    def is_empty(self):
        return self.root == NIL

    @property
    def points(self):
        """Stored points in insertion order, as an (N, 3) array."""
        if not self.nodes:
            return np.empty((0, DIMENSION), dtype=self.dtype)
        return np.array([node.point for node in self.nodes], dtype=self.dtype)

    def walk(self):
        """
        Iterate over the tree in pre-order.

        Yields:
            Tuples of (node_id, node, depth), the root having depth 0
        """
        if self.root == NIL:
            return
        stack = [(self.root, 0)]
        while stack:
            node_id, depth = stack.pop()
            node = self.nodes[node_id]
            yield node_id, node, depth
            if node.right != NIL:
                stack.append((node.right, depth + 1))
            if node.left != NIL:
                stack.append((node.left, depth + 1))

    def depth(self):
        """Height of the tree (0 when empty, 1 for a single node)."""
        return max((depth + 1 for _, _, depth in self.walk()), default=0)

    def free(self):
        """
        Release every node, children before parent.

        Iterative, so degenerate (list-like) trees cannot exhaust the stack.
        Calling it on an empty or already released tree does nothing.

        Returns:
            Number of nodes released
        """
        released = 0
        stack = [(self.root, False)] if self.root != NIL else []
        while stack:
            node_id, children_done = stack.pop()
            node = self.nodes[node_id]
            if children_done:
                node.left = NIL
                node.right = NIL
                node.point = None
                released += 1
                continue
            stack.append((node_id, True))
            if node.right != NIL:
                stack.append((node.right, False))
            if node.left != NIL:
                stack.append((node.left, False))

        self.nodes = []
        self.root = NIL
        if released:
            logger.debug("Released %d nodes", released)
        return released

    def _log_shape(self):
        n_nodes = len(self.nodes)
        depth = self.depth()
        logger.debug("Built %s with %d nodes, depth %d", type(self).__name__, n_nodes, depth)
        if n_nodes > 1 and depth > 4 * math.log2(n_nodes) + 8:
            logger.warning(
                "KD-tree is heavily skewed (%d nodes, depth %d); sorted or duplicate "
                "insertion order makes searches slower", n_nodes, depth
            )


class NormalKDTree(KDTree):
    """
    KD-tree whose nodes also remember the point's index in the original fixed cloud,
    used to look up per-point normals after a search.
    """

    tracks_index = True

    def __init__(self, dtype=np.float64):
        super().__init__(dtype=dtype)
        self.max_index = NIL

    def insert(self, point, index):
        """
        Insert a point tagged with its original index.

        Returns:
            Node id of the new leaf
        """
        if isinstance(index, bool) or not isinstance(index, numbers.Integral):
            raise InvalidParameter(f"index must be an integer, got {index!r}")
        if index < 0:
            raise InvalidParameter(f"index must be non-negative, got {index}")
        return self._insert_point(as_point(point, dtype=self.dtype), int(index))

    def _insert_point(self, point, index):
        node_id = super()._insert_point(point, index)
        self.max_index = max(self.max_index, index)
        return node_id

    def free(self):
        released = super().free()
        self.max_index = NIL
        return released


def insert(point, tree):
    """Insert a point into a tree in place."""
    tree.insert(point)


def insert_normal(point, index, tree):
    """Insert a point tagged with its original index into a normal tree in place."""
    tree.insert(point, index)


def free_tree(tree):
    """Release every node of a tree. No-op on None, empty or already released trees."""
    if tree is None:
        return
    tree.free()


def free_normal_tree(tree):
    """Release every node of a normal tree. No-op on None, empty or already released trees."""
    free_tree(tree)
