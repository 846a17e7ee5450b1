from __future__ import annotations

from sheetsync.core.errors import ExternalServiceError, TransientExternalError


class DatastoreError(ExternalServiceError):
    pass


class PolicyDeniedError(DatastoreError):
    """The datastore rejected a write under a row-level policy."""


class ConstraintViolationError(DatastoreError):
    pass


class MalformedInputError(DatastoreError):
    pass


class DatastoreTransientError(DatastoreError, TransientExternalError):
    pass
