"""Shared fixtures: an in-memory directory standing in for an LDAP server."""

import threading

import pytest

from ldapauth.config.models import Config
from ldapauth.core.directory_client import DirectoryEntry
from ldapauth.core.executor import DirectoryOperationExecutor
from ldapauth.exceptions import DirectoryConnectionError, DirectorySearchError

BASE_DN = "OU=Users,DC=example,DC=com"
ALICE_DN = "CN=Alice,OU=Users,DC=example,DC=com"
ENG_DN = "CN=Eng,OU=Users,DC=example,DC=com"
ALL_STAFF_DN = "CN=AllStaff,OU=Users,DC=example,DC=com"
ALICE_FILTER = "(&(objectClass=user)(sAMAccountName=alice))"


def make_entry(dn, **attributes):
    """Build a DirectoryEntry; attribute values are given as str or list of str."""
    raw = {}
    for name, values in attributes.items():
        if isinstance(values, str):
            values = [values]
        raw[name] = [v.encode('utf-8') for v in values]
    return DirectoryEntry(dn=dn, attributes=raw)


class FakeDirectory:
    """Credentials, entries and canned search results of one fake server."""

    def __init__(self):
        self.hosts = {"ldap.example.com"}
        self.credentials = {}
        self.entries = {}
        self.results = {}
        self.failing_filters = set()
        self.clients = []
        self._lock = threading.Lock()

    def add_entry(self, entry):
        self.entries[entry.dn.lower()] = entry
        return entry

    def client(self, host, port, config):
        client = FakeDirectoryClient(self, host, port, config)
        with self._lock:
            self.clients.append(client)
        return client


class FakeDirectoryClient:
    """Drop-in for DirectoryClient backed by a FakeDirectory."""

    def __init__(self, directory, host, port, config):
        self.directory = directory
        self.host = host
        self.port = port
        self.config = config
        self.opened = False
        self.closed = False
        self.bound = False
        self.searches = []

    def open(self):
        if self.host not in self.directory.hosts:
            raise DirectoryConnectionError(self.host, self.port, "unreachable")
        self.opened = True

    def bind(self, username, password):
        self.bound = bool(password) and self.directory.credentials.get(username) == password
        return self.bound

    def search(self, search_base, search_filter, attributes=None, time_limit=None):
        self.searches.append((search_base, search_filter))
        if search_filter in self.directory.failing_filters:
            raise DirectorySearchError(f"Search failed: {search_filter}")
        prefix = "(distinguishedName="
        if search_filter.startswith(prefix):
            dn = search_filter[len(prefix):-1]
            entry = self.directory.entries.get(dn.lower())
            return [entry] if entry else []
        return list(self.directory.results.get(search_filter, []))

    def unbind(self):
        self.closed = True


@pytest.fixture
def directory():
    """Directory with alice in Eng, and Eng nested in AllStaff."""
    fake = FakeDirectory()
    fake.credentials["alice"] = "secret"
    alice = make_entry(
        ALICE_DN,
        cn="Alice",
        sAMAccountName="alice",
        objectClass=["top", "person", "user"],
        memberOf=[ENG_DN],
    )
    fake.add_entry(alice)
    fake.add_entry(make_entry(ENG_DN, name="Eng", memberOf=[ALL_STAFF_DN]))
    fake.add_entry(make_entry(ALL_STAFF_DN, name="AllStaff"))
    fake.results[ALICE_FILTER] = [alice]
    return fake


@pytest.fixture
def config():
    """Default configuration."""
    return Config()


@pytest.fixture
def executor(directory, config):
    """Executor whose clients talk to the fake directory."""
    return DirectoryOperationExecutor(config, client_factory=directory.client)
