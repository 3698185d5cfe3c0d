from __future__ import annotations


KIND_NOT_FOUND = "not_found"
KIND_POLICY_CONFLICT = "policy_conflict"
KIND_INTERNAL = "internal"
KIND_CACHE = "cache"


class QuotaRenewError(Exception):
    """Base error for quota renewal."""

    kind = KIND_INTERNAL


class NotFoundError(QuotaRenewError):
    """Plan, subscriber or quota template missing for a service instance."""

    kind = KIND_NOT_FOUND


class PolicyConflictError(NotFoundError):
    """Bucket or QoS profile referenced by a template is absent from the batch maps."""

    kind = KIND_POLICY_CONFLICT


class InternalProcessingError(QuotaRenewError):
    """Date arithmetic, persistence or serialization failure inside a unit of work."""

    kind = KIND_INTERNAL


class CacheOperationError(QuotaRenewError):
    """Session cache read/write failure."""

    kind = KIND_CACHE


class CacheTimeoutError(CacheOperationError):
    """Session cache call exceeded its timeout."""


class CacheSerializationError(CacheOperationError):
    """Session cache document could not be encoded or decoded."""


def classify_error(exc: BaseException) -> str:
    # Anything outside the taxonomy is an internal failure.
    if isinstance(exc, QuotaRenewError):
        return exc.kind
    return KIND_INTERNAL
