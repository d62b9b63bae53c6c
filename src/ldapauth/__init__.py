"""
ldapauth - non-blocking LDAP authentication and group-aware directory search.

Credentials are checked with a simple bind, and searches resolve the full
transitive set of group memberships of the matched entry. The blocking LDAP
calls run on a worker pool; results come back through a callback invoked on
the caller's own thread or event loop.
"""

__version__ = "0.2.0"

from .api import (
    authenticate,
    configure,
    get_default_dispatcher,
    process_completions,
    run_until_idle,
    search,
)
from .config import Config, load_config
from .core import (
    AsyncioCompletionContext,
    AttributeResult,
    DirectoryOperationExecutor,
    QueueCompletionContext,
    TaskDispatcher,
    setup_logging,
)
from .exceptions import (
    ArgumentError,
    BindFailedError,
    CompletionLostError,
    ConfigurationError,
    DirectoryConnectionError,
    DirectorySearchError,
    LDAPAuthError,
    SchedulingError,
)
from .requests import AuthenticateRequest, SearchRequest

__all__ = [
    "ArgumentError",
    "AsyncioCompletionContext",
    "AttributeResult",
    "AuthenticateRequest",
    "BindFailedError",
    "CompletionLostError",
    "Config",
    "ConfigurationError",
    "DirectoryConnectionError",
    "DirectoryOperationExecutor",
    "DirectorySearchError",
    "LDAPAuthError",
    "QueueCompletionContext",
    "SchedulingError",
    "SearchRequest",
    "TaskDispatcher",
    "authenticate",
    "configure",
    "get_default_dispatcher",
    "load_config",
    "process_completions",
    "run_until_idle",
    "search",
    "setup_logging",
]
