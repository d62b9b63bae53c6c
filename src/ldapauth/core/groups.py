"""Transitive group membership resolution over memberOf links."""

import logging
from typing import Iterable, List, NamedTuple, Optional, Set

from ldap3.utils.conv import escape_filter_chars

from ..exceptions import DirectorySearchError

logger = logging.getLogger(__name__)

MEMBER_OF_ATTRIBUTE = "memberOf"


class GroupReference(NamedTuple):
    dn: str
    name: str


class GroupAncestryResolver:
    """
    Expands direct group memberships into every inherited group.
    
    Groups are walked depth-first in pre-order. A visited set keyed by the
    case-folded DN is shared through the walk, so membership cycles terminate
    and a group reachable by several paths is reported once.
    """
    
    def __init__(self, client, name_attribute: str = "name"):
        """
        Args:
            client: Open DirectoryClient (already bound or not)
            name_attribute: Attribute holding a group's short name
        """
        self.client = client
        self.name_attribute = name_attribute
    
    def resolve(self, group_dn: str, search_base: str, visited: Optional[Set[str]] = None) -> List[str]:
        """
        Resolve a group and all of its ancestors to short names.
        
        Args:
            group_dn: DN of the starting group
            search_base: Base DN to look groups up under
            visited: Set of case-folded DNs already walked, updated in place
            
        Returns:
            Short names in pre-order; DNs that cannot be looked up appear verbatim
        """
        return [ref.name for ref in self.ancestry(group_dn, search_base, visited)]
    
    def resolve_all(self, group_dns: Iterable[str], search_base: str) -> List[str]:
        """Resolve several groups sharing one visited set."""
        visited: Set[str] = set()
        names: List[str] = []
        for group_dn in group_dns:
            names.extend(self.resolve(group_dn, search_base, visited))
        return names
    
    def ancestry(self, group_dn: str, search_base: str, visited: Optional[Set[str]] = None) -> List[GroupReference]:
        """Same walk as resolve(), returning (dn, name) pairs."""
        if visited is None:
            visited = set()
        references: List[GroupReference] = []
        self._walk(group_dn, search_base, visited, references)
        return references
    
    def _walk(self, group_dn: str, search_base: str, visited: Set[str], out: List[GroupReference]) -> None:
        key = group_dn.lower()
        if key in visited:
            logger.debug(f"Group already visited, skipping: {group_dn}")
            return
        visited.add(key)
        
        entry = self._lookup(group_dn, search_base)
        if entry is None:
            out.append(GroupReference(group_dn, group_dn))
            return
        
        names = entry.get_values(self.name_attribute)
        out.append(GroupReference(group_dn, names[0] if names else group_dn))
        
        for parent_dn in entry.get_values(MEMBER_OF_ATTRIBUTE):
            self._walk(parent_dn, search_base, visited, out)
    
    def _lookup(self, group_dn: str, search_base: str):
        search_filter = f"(distinguishedName={escape_filter_chars(group_dn)})"
        try:
            entries = self.client.search(
                search_base,
                search_filter,
                attributes=[self.name_attribute, MEMBER_OF_ATTRIBUTE]
            )
        except DirectorySearchError as e:
            logger.warning(f"Group lookup failed for {group_dn}: {e}")
            return None
        
        if not entries:
            logger.debug(f"Group not found under {search_base}: {group_dn}")
            return None
        return entries[0]
