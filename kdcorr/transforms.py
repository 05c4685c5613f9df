"""Pose vector and transformation utilities for correspondence search."""

import numpy as np

from .exceptions import DimensionMismatch, InvalidParameter
from .utils import as_point, as_point_cloud

# Pose vector layout: translation (x, y, z) followed by ZYX Euler angles (yaw, pitch, roll)
POSE_SIZE = 6


def as_pose(xreg, dtype=np.float64):
    """
    Validate a pose vector and return it as a flat array of 6 entries.

    Accepts (6,), (6, 1) or (1, 6) inputs.
    """
    arr = np.asarray(xreg, dtype=dtype)
    if arr.size != POSE_SIZE or arr.ndim > 2:
        raise DimensionMismatch(f"Pose vector must have {POSE_SIZE} entries, got shape {arr.shape}")
    arr = arr.reshape(POSE_SIZE)
    if not np.all(np.isfinite(arr)):
        raise InvalidParameter(f"Pose vector must be finite, got {arr}")
    return arr


def euler_to_rotation(yaw, pitch, roll):
    """
    Build the rotation matrix R = Rz(yaw) @ Ry(pitch) @ Rx(roll).
    """
    cz, sz = np.cos(yaw), np.sin(yaw)
    cy, sy = np.cos(pitch), np.sin(pitch)
    cx, sx = np.cos(roll), np.sin(roll)

    return np.array([
        [cz * cy, cz * sy * sx - sz * cx, cz * sy * cx + sz * sx],
        [sz * cy, sz * sy * sx + cz * cx, sz * sy * cx - cz * sx],
        [-sy, cy * sx, cy * cx]
    ])


def pose_to_matrix(xreg):
    """
    Convert a pose vector to a 4x4 homogeneous transformation matrix.

    Args:
        xreg: Pose vector (tx, ty, tz, yaw, pitch, roll)

    Returns:
        4x4 transformation matrix
    """
    pose = as_pose(xreg)
    transformation = np.eye(4)
    transformation[:3, :3] = euler_to_rotation(*pose[3:])
    transformation[:3, 3] = pose[:3]
    return transformation


def matrix_to_pose(transformation):
    """
    Convert a 4x4 rigid transformation matrix to a pose vector.

    The inverse of pose_to_matrix for pitch in [-pi/2, pi/2].
    """
    transformation = np.asarray(transformation, dtype=np.float64)
    if transformation.shape != (4, 4):
        raise DimensionMismatch(f"Transformation must be 4x4, got {transformation.shape}")

    R = transformation[:3, :3]
    yaw = np.arctan2(R[1, 0], R[0, 0])
    pitch = np.arcsin(np.clip(-R[2, 0], -1.0, 1.0))
    roll = np.arctan2(R[2, 1], R[2, 2])
    return np.concatenate([transformation[:3, 3], [yaw, pitch, roll]])


def quat2eul(q):
    """
    Convert a (w, x, y, z) quaternion to ZYX Euler angles (yaw, pitch, roll).

    The quaternion is normalized first.
    """
    q = np.asarray(q, dtype=np.float64).reshape(-1)
    if q.shape != (4,):
        raise DimensionMismatch(f"Quaternion must have 4 entries, got shape {q.shape}")
    norm = np.linalg.norm(q)
    if norm == 0:
        raise InvalidParameter("Cannot convert a zero quaternion")
    qw, qx, qy, qz = q / norm

    yaw = np.arctan2(2 * (qx * qy + qw * qz), qw**2 + qx**2 - qy**2 - qz**2)
    pitch = np.arcsin(np.clip(-2 * (qx * qz - qw * qy), -1.0, 1.0))
    roll = np.arctan2(2 * (qy * qz + qw * qx), qw**2 - qx**2 - qy**2 + qz**2)
    return np.array([yaw, pitch, roll])


def rotate(point, xreg):
    """
    Apply rotation-then-translation of a pose vector to a single point.
    """
    pose = as_pose(xreg)
    R = euler_to_rotation(*pose[3:])
    return R @ as_point(point) + pose[:3]


def apply_transformation(points, transformation):
    """
    Apply a 4x4 homogeneous transformation to every row of an (N, 3) array.
    """
    R = transformation[:3, :3]
    t = transformation[:3, 3]
    return points @ R.T + t


def apply_pose(points, xreg):
    """
    Apply a pose vector to every row of an (N, 3) point cloud.
    """
    points = as_point_cloud(points, allow_empty=True)
    return apply_transformation(points, pose_to_matrix(xreg))


def compute_normals(points, k=30):
    """
    Estimate per-point normals with Open3D.

    Normals are oriented towards the origin so the fixed and moving clouds
    end up with consistent signs.

    Args:
        points: Points array (N, 3)
        k: Number of neighbors used for the local plane fit

    Returns:
        Normals array (N, 3), row-aligned with points
    """
    import open3d as o3d

    points = as_point_cloud(points)
    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(points)
    pcd.estimate_normals(
        search_param=o3d.geometry.KDTreeSearchParamKNN(knn=k)
    )
    pcd.orient_normals_towards_camera_location(camera_location=np.array([0., 0., 0.]))

    return np.asarray(pcd.normals)
