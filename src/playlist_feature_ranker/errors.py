from __future__ import annotations


class RankerError(Exception):
    """Base class for every failure that aborts a ranking run."""


class NotFound(RankerError):
    pass


class InvalidRequest(RankerError):
    pass


class TransportError(RankerError):
    """A remote catalog call failed. Never retried."""


class CacheCorrupt(RankerError, ValueError):
    """A cache artifact exists but cannot be parsed."""


class CredentialMissing(RankerError):
    pass


class FeatureDataError(RankerError):
    """A track has no feature record, or a feature value is missing or non-finite."""
