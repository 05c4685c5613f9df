"""Search configuration."""

import numbers
from dataclasses import dataclass, fields

from .exceptions import InvalidParameter

BACKENDS = ("threading", "loky", "sequential")


def _is_integer(value):
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass
class SearchOptions:
    """
    Tunables of a batch nearest-neighbor search.

    Attributes:
        n_jobs: Number of joblib workers for the per-query loop (1 = serial, -1 = all cores)
        backend: joblib backend used when n_jobs != 1
        batch_size: Queries handed to a worker per task
        normal_metric: Per-pair normal misalignment metric ('euclidean' or 'angle')
    """

    n_jobs: int = 1
    backend: str = "threading"
    batch_size: int = 2048
    normal_metric: str = "euclidean"

    def __post_init__(self):
        if not _is_integer(self.n_jobs) or self.n_jobs == 0:
            raise InvalidParameter(f"n_jobs must be a non-zero integer, got {self.n_jobs!r}")
        if self.backend not in BACKENDS:
            raise InvalidParameter(f"Unknown backend: {self.backend!r} (expected one of {BACKENDS})")
        if not _is_integer(self.batch_size) or self.batch_size < 1:
            raise InvalidParameter(f"batch_size must be a positive integer, got {self.batch_size!r}")
        if not isinstance(self.normal_metric, str):
            raise InvalidParameter(f"normal_metric must be a name, got {self.normal_metric!r}")

    @classmethod
    def from_params(cls, params=None):
        """
        Build options from a plain parameter dictionary.

        Missing keys take their defaults; unknown keys are rejected.
        """
        if params is None:
            params = {}
        if isinstance(params, cls):
            return params

        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise InvalidParameter(f"Unknown search options: {', '.join(sorted(unknown))}")
        return cls(**params)

    def override(self, **kwargs):
        """Return a copy with every non-None keyword applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in kwargs.items() if v is not None})
        return SearchOptions(**values)
