"""Inlier selection and residual metrics for correspondence search."""

import math

import numpy as np

from .exceptions import InvalidParameter

def validate_inlier_ratio(inlier_ratio):
    """Reject inlier ratios outside (0, 1]."""
    try:
        ratio = float(inlier_ratio)
    except (TypeError, ValueError):
        raise InvalidParameter(f"inlier_ratio must be a number, got {inlier_ratio!r}") from None
    if not (0.0 < ratio <= 1.0):
        raise InvalidParameter(f"inlier_ratio must be in (0, 1], got {inlier_ratio}")
    return ratio


def inlier_count(n_pairs, inlier_ratio):
    """
    Number of correspondences kept: floor(n_pairs * inlier_ratio), at least one.
    """
    if n_pairs < 1:
        return 0
    ratio = validate_inlier_ratio(inlier_ratio)
    product = n_pairs * ratio
    # a few ulps of slack so products like 100 * 0.29 still floor to 29
    return min(n_pairs, max(1, math.floor(product + 4 * np.spacing(product))))


def select_inliers(distances, inlier_ratio):
    """
    Rank correspondences by distance and keep the closest fraction.

    The sort is stable, so equal distances keep their original query order.

    Args:
        distances: Array of per-query distances
        inlier_ratio: Fraction of correspondences to keep, in (0, 1]

    Returns:
        Query indices of the kept correspondences in ranked order
    """
    distances = np.asarray(distances)
    order = np.argsort(distances, kind="stable")
    return order[:inlier_count(distances.shape[0], inlier_ratio)]


def mean_residual(values):
    """Arithmetic mean of the kept residuals, in the residuals' own dtype."""
    return np.asarray(values).mean()


def euclidean_normal_distance(normals_r, normals_c):
    """
    Length of the vector difference between paired normals.

    Args:
        normals_r: Moving normals (K, 3), already rotated into the fixed frame
        normals_c: Fixed normals (K, 3)

    Returns:
        Array of K distances
    """
    return np.linalg.norm(normals_r - normals_c, axis=1)


def angular_normal_distance(normals_r, normals_c):
    """
    Angle in radians between paired normals, in [0, pi].

    Zero-length normals are treated as perpendicular to everything.
    """
    norm_r = np.linalg.norm(normals_r, axis=1)
    norm_c = np.linalg.norm(normals_c, axis=1)
    denom = norm_r * norm_c
    dots = np.einsum("ij,ij->i", normals_r, normals_c)
    cosines = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return np.arccos(np.clip(cosines, -1.0, 1.0))


NORMAL_METRICS = {
    'euclidean': euclidean_normal_distance,
    'angle': angular_normal_distance,
}


def get_normal_metric(name='euclidean'):
    """
    Get a normal misalignment metric by name.

    Args:
        name: One of 'euclidean', 'angle'

    Returns:
        Callable taking (normals_r, normals_c) and returning per-pair values
    """
    try:
        return NORMAL_METRICS[name]
    except KeyError:
        raise InvalidParameter(
            f"Unknown normal metric: {name!r} (expected one of {sorted(NORMAL_METRICS)})"
        ) from None
