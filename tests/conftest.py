import numpy as np
import pytest

from kdcorr import KDTree, NormalKDTree


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def line_tree():
    """Tree over (0,0,0), (1,0,0), (2,0,0) inserted in that order."""
    tree = KDTree()
    for point in ([0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]):
        tree.insert(point)
    return tree


@pytest.fixture
def fixed_cloud(rng):
    return rng.uniform(0.0, 10.0, size=(200, 3))


@pytest.fixture
def fixed_tree(fixed_cloud):
    return KDTree.from_points(fixed_cloud)


@pytest.fixture
def fixed_normals(rng, fixed_cloud):
    normals = rng.normal(size=fixed_cloud.shape)
    return normals / np.linalg.norm(normals, axis=1, keepdims=True)


@pytest.fixture
def normal_tree(fixed_cloud):
    return NormalKDTree.from_points(fixed_cloud)
