"""
kdcorr - KD-tree correspondence search for rigid point cloud registration

Builds a KD-tree over a fixed point cloud and, once per registration iteration:
- transforms the moving cloud by the current pose estimate
- finds the nearest stored point of every moving point
- ranks the pairs and keeps the closest fraction (inlier ratio)
- reports mean residuals, optionally with per-pair surface normals
"""

import logging

from .config import SearchOptions
from .exceptions import DimensionMismatch, EmptyTree, InvalidParameter, KDCorrError
from .kdtree import KDTree, Node, NormalKDTree, free_normal_tree, free_tree, insert, insert_normal
from .search import (NormalSearchResult, SearchResult, kd_search, kd_search_normals,
                     nearest_neighbor_search)
from .transforms import (apply_pose, compute_normals, matrix_to_pose, pose_to_matrix,
                         quat2eul, rotate)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"
__all__ = ["KDTree", "NormalKDTree", "Node", "insert", "insert_normal", "free_tree",
           "free_normal_tree", "kd_search", "kd_search_normals", "nearest_neighbor_search",
           "SearchResult", "NormalSearchResult", "SearchOptions", "apply_pose", "rotate",
           "pose_to_matrix", "matrix_to_pose", "quat2eul", "compute_normals",
           "KDCorrError", "DimensionMismatch", "EmptyTree", "InvalidParameter"]
