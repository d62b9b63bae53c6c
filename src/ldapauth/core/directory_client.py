"""Directory client adapter wrapping synchronous ldap3 primitives."""

import logging
import ssl
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import ldap3
from ldap3 import Server, Connection, NONE, SUBTREE, SIMPLE, ALL_ATTRIBUTES
from ldap3.core.exceptions import LDAPException

from ..config.models import DirectoryConfig
from ..exceptions import DirectoryConnectionError, DirectorySearchError
from .marshalling import decode_value

logger = logging.getLogger(__name__)

# success, timeLimitExceeded, sizeLimitExceeded: entries read so far are usable
_USABLE_RESULT_CODES = (0, 3, 4)


@dataclass
class DirectoryEntry:
    """A single search result entry with raw attribute values in server order."""

    dn: str
    attributes: Dict[str, List[bytes]] = field(default_factory=dict)

    def get_values(self, name: str) -> List[str]:
        """Return decoded values of an attribute, matching its name case-insensitively."""
        wanted = name.lower()
        for attr_name, values in self.attributes.items():
            if attr_name.lower() == wanted:
                return [decode_value(value) for value in values]
        return []


class DirectoryClient:
    """
    One connection to one directory server.
    
    Wraps ldap3's synchronous strategy behind open/bind/search/unbind. A
    client is used by exactly one request on one worker thread and is never
    shared.
    """
    
    def __init__(self, host: str, port: int, config: Optional[DirectoryConfig] = None):
        """
        Initialize directory client.
        
        Args:
            host: Directory server host name or address
            port: Directory server port
            config: Connection settings
        """
        self.host = host
        self.port = port
        self.config = config or DirectoryConfig()
        
        self._connection: Optional[Connection] = None
    
    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"
    
    @property
    def connected(self) -> bool:
        return self._connection is not None and not self._connection.closed
    
    def _create_server(self) -> Server:
        """Create the ldap3 server object, with TLS settings when SSL is on."""
        tls_config = None
        if self.config.use_ssl:
            tls_config = ldap3.Tls(
                validate=ssl.CERT_REQUIRED if self.config.validate_certificate else ssl.CERT_NONE,
                ca_certs_file=self.config.ca_cert_file
            )
        
        return Server(
            self.host,
            port=self.port,
            use_ssl=self.config.use_ssl,
            tls=tls_config,
            get_info=NONE,
            connect_timeout=self.config.connect_timeout
        )
    
    def open(self) -> None:
        """
        Open the network connection without binding.
        
        Raises:
            DirectoryConnectionError: If the server cannot be reached
        """
        try:
            logger.debug(f"Opening connection to {self.address}")
            
            connection = Connection(
                self._create_server(),
                auto_bind=ldap3.AUTO_BIND_NONE,
                receive_timeout=self.config.receive_timeout,
                read_only=True,
                raise_exceptions=False
            )
            connection.open()
            
        except LDAPException as e:
            logger.warning(f"Connection failed to {self.address}: {e}")
            raise DirectoryConnectionError(self.host, self.port, str(e)) from e
        
        self._connection = connection
        logger.debug(f"Connected to {self.address}")
    
    def bind(self, username: str, password: str) -> bool:
        """
        Perform a simple bind with the given credentials.
        
        An empty password is refused locally: many servers treat it as an
        unauthenticated bind and report success.
        
        Args:
            username: Bind DN, UPN or DOMAIN\\user name
            password: Password
            
        Returns:
            True if the server accepted the credentials
        """
        if self._connection is None:
            raise DirectoryConnectionError(self.host, self.port, "not connected")
        
        if not password:
            logger.info(f"Refusing bind with empty password on {self.address}")
            return False
        
        self._connection.user = username
        self._connection.password = password
        self._connection.authentication = SIMPLE
        
        try:
            bound = self._connection.bind()
        except LDAPException as e:
            logger.info(f"Bind rejected on {self.address}: {e}")
            return False
        
        if not bound:
            logger.debug(f"Bind failed on {self.address}: {self._connection.result.get('description')}")
        return bool(bound)
    
    def search(self,
               search_base: str,
               search_filter: str,
               attributes: Union[List[str], str] = ALL_ATTRIBUTES,
               time_limit: Optional[int] = None) -> List[DirectoryEntry]:
        """
        Perform a subtree search.
        
        Args:
            search_base: Base DN for search
            search_filter: LDAP filter string
            attributes: Attributes to retrieve (all by default)
            time_limit: Server-side time limit in seconds (config default if None)
            
        Returns:
            Matching entries in server order
            
        Raises:
            DirectorySearchError: If search fails
        """
        if self._connection is None:
            raise DirectorySearchError(f"Not connected to {self.address}")
        
        if time_limit is None:
            time_limit = self.config.search_time_limit
        
        try:
            logger.debug(f"Searching: base={search_base}, filter={search_filter}")
            
            self._connection.search(
                search_base=search_base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=attributes,
                time_limit=time_limit
            )
        except LDAPException as e:
            raise DirectorySearchError(f"Search error: {e}") from e
        
        result = self._connection.result or {}
        if result.get('result') not in _USABLE_RESULT_CODES:
            raise DirectorySearchError(
                f"Search failed: {result.get('description')} {result.get('message', '')}".strip()
            )
        
        if result.get('result') != 0:
            logger.warning(f"Search returned partial results: {result.get('description')}")
        
        entries = []
        for item in self._connection.response or []:
            if item.get('type') != 'searchResEntry':
                continue
            raw = item.get('raw_attributes') or {}
            entries.append(DirectoryEntry(
                dn=item.get('dn', ''),
                attributes={name: list(values) for name, values in raw.items()}
            ))
        
        logger.debug(f"Search returned {len(entries)} entries")
        return entries
    
    def unbind(self) -> None:
        """Unbind and close the connection. Safe to call more than once."""
        if self._connection is None:
            return
        try:
            self._connection.unbind()
            logger.debug(f"Disconnected from {self.address}")
        except LDAPException as e:
            logger.warning(f"Error during disconnect: {e}")
        finally:
            self._connection = None
    
    def __enter__(self):
        """Context manager entry."""
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.unbind()
