"""Errors raised by the correspondence search."""


class KDCorrError(Exception):
    """Base class for all kdcorr errors."""


class DimensionMismatch(KDCorrError, ValueError):
    """A point, query cloud, pose vector or normal cloud has the wrong shape."""


class EmptyTree(KDCorrError):
    """A search was run against a tree holding no nodes."""


class InvalidParameter(KDCorrError, ValueError):
    """A scalar parameter or option is outside its allowed range."""
