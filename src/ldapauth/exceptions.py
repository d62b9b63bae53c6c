"""Exception hierarchy for ldapauth."""


class LDAPAuthError(Exception):
    """Base class for all ldapauth errors."""


class DirectoryConnectionError(LDAPAuthError, ConnectionError):
    """Raised when a connection to the directory server cannot be opened."""

    def __init__(self, host: str, port: int, reason: str = ""):
        self.host = host
        self.port = port
        self.reason = reason
        message = f"LDAP connection failed: {host}:{port}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class BindFailedError(LDAPAuthError):
    """Raised when a search is aborted because the simple bind was rejected."""


class DirectorySearchError(LDAPAuthError):
    """Raised when a directory search does not complete."""


class SchedulingError(LDAPAuthError):
    """Raised synchronously when work cannot be handed to the worker pool."""


class ArgumentError(LDAPAuthError, TypeError):
    """Raised synchronously for malformed arguments to authenticate() or search()."""


class RequestStateError(LDAPAuthError):
    """Raised on an illegal request lifecycle transition."""


class ConfigurationError(LDAPAuthError, ValueError):
    """Raised when configuration cannot be loaded or validated."""


class CompletionLostError(LDAPAuthError):
    """Raised when finished requests could not be handed back to their completion context."""
