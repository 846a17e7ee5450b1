from __future__ import annotations

from sheetsync.core.errors import ExternalServiceError, TransientExternalError


class SourceError(ExternalServiceError):
    pass


class SourceUnavailableError(SourceError):
    """Structural failure of the spreadsheet source; retrying will not help."""


class SourceNotFoundError(SourceUnavailableError):
    pass


class AuthorizationDeniedError(SourceUnavailableError):
    pass


class MalformedRangeError(SourceUnavailableError):
    pass


class SourceCredentialsError(SourceUnavailableError):
    pass


class SourceApiDisabledError(SourceUnavailableError):
    pass


class SourceTransientError(SourceError, TransientExternalError):
    pass


class SourceRateLimitError(SourceTransientError):
    pass
