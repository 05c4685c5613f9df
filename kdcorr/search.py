"""Nearest-neighbor correspondence search over a KD-tree under a candidate pose."""

import logging
from dataclasses import dataclass

import numpy as np
from joblib import Parallel, delayed

from .config import SearchOptions
from .exceptions import DimensionMismatch, EmptyTree, InvalidParameter
from .kdtree import NIL
from .residuals import get_normal_metric, mean_residual, select_inliers, validate_inlier_ratio
from .transforms import apply_transformation, as_pose, pose_to_matrix
from .utils import as_point_cloud, time_function

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """
    Ranked correspondences of a point-only search.

    pc[i] is the stored point matched to the untransformed query pr[i];
    rows are sorted by non-decreasing distance.
    """

    pc: np.ndarray
    pr: np.ndarray
    res: float
    distances: np.ndarray
    query_indices: np.ndarray
    match_indices: np.ndarray

    def __len__(self):
        return self.pc.shape[0]


@dataclass
class NormalSearchResult:
    """
    Ranked correspondences of a normal-aware search.

    normalc[i] / normalr[i] are the fixed / moving normals of the pair (pc[i], pr[i]).
    """

    res_points: float
    res_normals: float
    pc: np.ndarray
    pr: np.ndarray
    normalc: np.ndarray
    normalr: np.ndarray
    distances: np.ndarray
    query_indices: np.ndarray
    match_indices: np.ndarray
    fixed_indices: np.ndarray

    def __len__(self):
        return self.pc.shape[0]


def nearest_neighbor_search(query_point, tree):
    """
    Iterative nearest neighbor search in a KD-tree.

    The near child is always explored first; a far child is only visited while the
    splitting plane is strictly closer than the best match found so far. On equal
    distances the first node reached wins.

    Args:
        query_point: Point (3,) already expressed in the tree's frame
        tree: Non-empty KDTree

    Returns:
        Tuple of (node_id, distance)
    """
    nodes = tree.nodes
    best_id, best_sq = NIL, np.inf
    # Entries carry the squared distance from the query to the plane that separates them
    stack = [(tree.root, 0.0)]

    while stack:
        node_id, plane_sq = stack.pop()
        if plane_sq >= best_sq:
            continue

        node = nodes[node_id]
        diff = node.point - query_point
        dist_sq = diff @ diff
        if dist_sq < best_sq:
            best_id, best_sq = node_id, dist_sq

        axis = node.axis
        delta = query_point[axis] - node.point[axis]
        if delta < 0:
            near_node, far_node = node.left, node.right
        else:
            near_node, far_node = node.right, node.left

        if far_node != NIL:
            stack.append((far_node, delta * delta))
        if near_node != NIL:
            stack.append((near_node, 0.0))

    if best_id == NIL:
        # squared distances overflowed to inf for every stored point
        raise InvalidParameter(f"No finite distance from query {query_point} to any stored point")
    return best_id, np.sqrt(best_sq)


def _search_batch(queries, tree):
    """Resolve a contiguous batch of queries; each writes only its own output slot."""
    match_ids = np.empty(queries.shape[0], dtype=np.int64)
    distances = np.empty(queries.shape[0], dtype=tree.dtype)
    for i, query in enumerate(queries):
        match_ids[i], distances[i] = nearest_neighbor_search(query, tree)
    return match_ids, distances


def _find_correspondences(queries, tree, options):
    """Nearest neighbor of every query, optionally spread over joblib workers."""
    n_queries = queries.shape[0]
    if options.n_jobs == 1 or options.backend == "sequential" or n_queries <= options.batch_size:
        return _search_batch(queries, tree)

    batches = [queries[start:start + options.batch_size]
               for start in range(0, n_queries, options.batch_size)]
    results = Parallel(n_jobs=options.n_jobs, backend=options.backend)(
        delayed(_search_batch)(batch, tree) for batch in batches
    )
    match_ids, distances = zip(*results)
    return np.concatenate(match_ids), np.concatenate(distances)


def _require_tree(tree):
    if tree is None or tree.is_empty:
        raise EmptyTree("Cannot search an empty KD-tree")


def _ranked_correspondences(targets, tree, inlier_ratio, pose, options):
    """
    Search every transformed query and keep the closest fraction.

    Returns:
        Tuple of (kept query indices, matched node ids, distances), in ranked order
    """
    transformation = pose_to_matrix(pose)
    queries = apply_transformation(targets, transformation).astype(tree.dtype, copy=False)

    match_ids, distances = _find_correspondences(queries, tree, options)
    kept = select_inliers(distances, inlier_ratio)

    logger.debug("Searched %d queries, kept %d correspondences", targets.shape[0], kept.shape[0])
    return kept, match_ids[kept], distances[kept]


def _resolve_options(options, **overrides):
    return SearchOptions.from_params(options).override(**overrides)


@time_function
def kd_search(targets, tree, inlier_ratio, xreg, n_jobs=None, options=None):
    """
    Find the nearest stored point of every query under a candidate pose.

    Args:
        targets: Query (moving) point cloud (N, 3)
        tree: KDTree built from the fixed cloud
        inlier_ratio: Fraction of closest correspondences to keep, in (0, 1]
        xreg: Pose vector (tx, ty, tz, yaw, pitch, roll) applied to queries before searching
        n_jobs: Number of joblib workers, overrides options
        options: SearchOptions or dictionary of option values

    Returns:
        SearchResult with pr holding the untransformed queries
    """
    inlier_ratio = validate_inlier_ratio(inlier_ratio)
    options = _resolve_options(options, n_jobs=n_jobs)
    _require_tree(tree)
    targets = as_point_cloud(targets, dtype=tree.dtype, name="targets")
    pose = as_pose(xreg)

    kept, match_ids, distances = _ranked_correspondences(targets, tree, inlier_ratio, pose, options)
    pc = np.array([tree.nodes[node_id].point for node_id in match_ids], dtype=tree.dtype)
    res = mean_residual(distances)
    logger.debug("Point residual %.6g over %d correspondences", res, kept.shape[0])

    return SearchResult(
        pc=pc,
        pr=targets[kept],
        res=res,
        distances=distances,
        query_indices=kept,
        match_indices=match_ids,
    )


@time_function
def kd_search_normals(targets, tree, inlier_ratio, xreg, normal_moving, normal_fixed,
                      n_jobs=None, normal_metric=None, options=None):
    """
    Normal-aware variant of kd_search.

    Args:
        targets: Query (moving) point cloud (N, 3)
        tree: NormalKDTree built from the fixed cloud
        inlier_ratio: Fraction of closest correspondences to keep, in (0, 1]
        xreg: Pose vector applied to queries before searching
        normal_moving: Normals of the moving cloud (N, 3), row-aligned with targets
        normal_fixed: Normals of the fixed cloud (M, 3), indexed by the tree's stored indices
        n_jobs: Number of joblib workers, overrides options
        normal_metric: Normal misalignment metric name, overrides options
        options: SearchOptions or dictionary of option values

    res_normals is measured in the fixed frame: each moving normal is rotated by the
    pose rotation (no translation) before it is compared with its fixed normal.

    Returns:
        NormalSearchResult; normalr holds the moving normals unrotated, like pr
    """
    inlier_ratio = validate_inlier_ratio(inlier_ratio)
    options = _resolve_options(options, n_jobs=n_jobs, normal_metric=normal_metric)
    metric = get_normal_metric(options.normal_metric)
    _require_tree(tree)
    if not tree.tracks_index:
        raise TypeError("kd_search_normals needs a NormalKDTree")

    targets = as_point_cloud(targets, dtype=tree.dtype, name="targets")
    pose = as_pose(xreg)
    normal_moving = as_point_cloud(normal_moving, name="normal_moving")
    normal_fixed = as_point_cloud(normal_fixed, name="normal_fixed")
    if normal_moving.shape != targets.shape:
        raise DimensionMismatch(
            f"normal_moving has shape {normal_moving.shape}, expected {targets.shape}"
        )
    if tree.max_index >= normal_fixed.shape[0]:
        raise DimensionMismatch(
            f"normal_fixed has {normal_fixed.shape[0]} rows but the tree references index {tree.max_index}"
        )

    kept, match_ids, distances = _ranked_correspondences(targets, tree, inlier_ratio, pose, options)
    matched = [tree.nodes[node_id] for node_id in match_ids]
    pc = np.array([node.point for node in matched], dtype=tree.dtype)
    fixed_indices = np.array([node.index for node in matched], dtype=np.int64)

    normalr = normal_moving[kept]
    normalc = normal_fixed[fixed_indices]
    rotation = pose_to_matrix(pose)[:3, :3]
    res_points = mean_residual(distances)
    res_normals = mean_residual(metric(normalr @ rotation.T, normalc))
    logger.debug("Point residual %.6g, normal residual %.6g over %d correspondences",
                 res_points, res_normals, kept.shape[0])

    return NormalSearchResult(
        res_points=res_points,
        res_normals=res_normals,
        pc=pc,
        pr=targets[kept],
        normalc=normalc,
        normalr=normalr,
        distances=distances,
        query_indices=kept,
        match_indices=match_ids,
        fixed_indices=fixed_indices,
    )
