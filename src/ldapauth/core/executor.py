"""Blocking directory operations run on worker threads."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from ..config.models import Config
from ..exceptions import BindFailedError, DirectoryConnectionError, DirectorySearchError
from .directory_client import DirectoryClient
from .groups import GroupAncestryResolver, MEMBER_OF_ATTRIBUTE
from .logging import log_ldap_operation
from .marshalling import AttributeResult, marshal_entry

logger = logging.getLogger(__name__)


@dataclass
class AuthenticateOutcome:
    connected: bool
    authenticated: bool = False
    error: Optional[BaseException] = None

    def callback_args(self) -> Tuple[Optional[BaseException], bool]:
        return self.error, self.authenticated


@dataclass
class SearchOutcome:
    connected: bool
    attributes: Optional[AttributeResult] = None
    error: Optional[BaseException] = None

    def callback_args(self) -> Tuple[Optional[BaseException], Optional[AttributeResult]]:
        if self.error is not None:
            return self.error, None
        return None, self.attributes


class DirectoryOperationExecutor:
    """
    Runs authenticate and search against a directory server.
    
    Both operations block on network I/O and are meant to run on a worker
    thread. Each call opens its own connection and closes it before
    returning; nothing is kept between calls. Failures are returned on the
    outcome rather than raised.
    """
    
    def __init__(self, config: Optional[Config] = None,
                 client_factory: Callable[..., Any] = DirectoryClient):
        """
        Initialize executor.
        
        Args:
            config: Package configuration
            client_factory: Callable building a client from (host, port, DirectoryConfig)
        """
        self.config = config or Config()
        self.client_factory = client_factory
    
    def _open(self, host: str, port: int):
        client = self.client_factory(host, port, self.config.directory)
        client.open()
        return client
    
    def authenticate(self, host: str, port: int, username: str, password: str) -> AuthenticateOutcome:
        """
        Check a username and password with a simple bind.
        
        Returns:
            Outcome with connected=False and an error if the server could not
            be reached; otherwise authenticated reflects the bind result.
        """
        address = f"{host}:{port}"
        try:
            client = self._open(host, port)
        except DirectoryConnectionError as e:
            log_ldap_operation("connect", address, False, str(e))
            return AuthenticateOutcome(connected=False, authenticated=False, error=e)
        
        try:
            authenticated = client.bind(username, password)
        finally:
            client.unbind()
        
        log_ldap_operation("bind", address, authenticated, f"user={username}")
        return AuthenticateOutcome(connected=True, authenticated=authenticated)
    
    def search(self, host: str, port: int, username: str, password: str,
               search_base: str, search_filter: str) -> SearchOutcome:
        """
        Bind, search and resolve the matched entry's transitive groups.
        
        The search runs even when the bind fails, unless
        ``search.abort_on_bind_failure`` is set; what an unbound connection
        may read is then up to the server's access control. Search errors
        leave an empty or partial result unless ``search.report_search_errors``
        is set.
        
        Returns:
            Outcome carrying the AttributeResult of the first matching entry,
            with its resolved groups under ``allGroups``.
        """
        address = f"{host}:{port}"
        try:
            client = self._open(host, port)
        except DirectoryConnectionError as e:
            log_ldap_operation("connect", address, False, str(e))
            return SearchOutcome(connected=False, error=e)
        
        try:
            bound = client.bind(username, password)
            log_ldap_operation("bind", address, bound, f"user={username}")
            if not bound and self.config.search.abort_on_bind_failure:
                return SearchOutcome(
                    connected=True,
                    error=BindFailedError(f"Bind failed for {username} on {address}")
                )
            
            return self._search_entry(client, search_base, search_filter)
        finally:
            client.unbind()
    
    def _search_entry(self, client, search_base: str, search_filter: str) -> SearchOutcome:
        groups = []
        entry = None
        try:
            entries = client.search(search_base, search_filter)
            entry = entries[0] if entries else None
            
            if entry is not None:
                resolver = GroupAncestryResolver(client, self.config.search.group_name_attribute)
                groups = resolver.resolve_all(entry.get_values(MEMBER_OF_ATTRIBUTE), search_base)
        except DirectorySearchError as e:
            log_ldap_operation("search", search_base, False, str(e))
            if self.config.search.report_search_errors:
                return SearchOutcome(connected=True, error=e)
        else:
            log_ldap_operation(
                "search", search_base, True,
                f"matched={entry.dn if entry else None} groups={len(groups)}"
            )
        
        attributes = marshal_entry(entry)
        attributes.set_groups(groups)
        return SearchOutcome(connected=True, attributes=attributes)
