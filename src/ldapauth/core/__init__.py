"""Core functionality for ldapauth."""

from .directory_client import DirectoryClient, DirectoryEntry
from .dispatcher import (
    AsyncioCompletionContext,
    LivenessGuard,
    QueueCompletionContext,
    RequestState,
    TaskDispatcher,
    default_guard,
)
from .executor import AuthenticateOutcome, DirectoryOperationExecutor, SearchOutcome
from .groups import GroupAncestryResolver, GroupReference
from .logging import setup_logging
from .marshalling import AttributeResult, Scalar, Sequence, marshal_entry

__all__ = [
    "AsyncioCompletionContext",
    "AttributeResult",
    "AuthenticateOutcome",
    "DirectoryClient",
    "DirectoryEntry",
    "DirectoryOperationExecutor",
    "GroupAncestryResolver",
    "GroupReference",
    "LivenessGuard",
    "QueueCompletionContext",
    "RequestState",
    "Scalar",
    "SearchOutcome",
    "Sequence",
    "TaskDispatcher",
    "default_guard",
    "marshal_entry",
    "setup_logging",
]
