"""General utility functions."""

import logging
import threading
import time
from functools import wraps

import numpy as np

from .exceptions import DimensionMismatch, InvalidParameter

logger = logging.getLogger(__name__)


def time_function(func):
    """
    Decorator to time function execution.
    For recursive or nested calls, only the top-level call is timed.
    Elapsed time is logged at DEBUG level on the decorated function's module logger.
    """
    func_logger = logging.getLogger(func.__module__)
    state = threading.local()

    @wraps(func)
    def wrapper(*args, **kwargs):
        if getattr(state, "in_call", False):
            return func(*args, **kwargs)

        state.in_call = True
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            state.in_call = False
            elapsed = time.perf_counter() - start_time
            func_logger.debug("%s took %.6f seconds", func.__name__, elapsed)

    return wrapper


def as_point(point, dtype=np.float64, name="point"):
    """
    Coerce a single 3D point to a numpy array of shape (3,).

    Accepts either 1D (3,) or 2D (1, 3) / (3, 1) inputs.
    """
    arr = np.array(point, dtype=dtype)
    if arr.size != 3 or arr.ndim > 2:
        raise DimensionMismatch(f"{name} must have exactly 3 components, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidParameter(f"{name} must be finite, got {arr.reshape(-1)}")
    return arr.reshape(3)


def as_point_cloud(points, dtype=np.float64, name="points", allow_empty=False):
    """
    Coerce a point cloud to a numpy array of shape (N, 3), one point per row.

    Args:
        points: Array-like of shape (N, 3)
        dtype: Floating dtype of the returned array
        name: Argument name used in error messages
        allow_empty: Whether N == 0 is accepted

    Returns:
        Numpy array of shape (N, 3)
    """
    arr = np.asarray(points, dtype=dtype)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise DimensionMismatch(f"{name} must have shape (N, 3), got {arr.shape}")
    if arr.shape[0] == 0 and not allow_empty:
        raise DimensionMismatch(f"{name} must contain at least one point")
    if not np.all(np.isfinite(arr)):
        raise InvalidParameter(f"{name} must contain only finite coordinates")
    return arr
