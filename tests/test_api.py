"""Tests for the module-level authenticate() and search()."""

import logging
import os
import subprocess
import sys
import textwrap
import threading
from pathlib import Path

import pytest
from unittest.mock import Mock

import ldapauth
from ldapauth import api
from ldapauth.config.loader import CONFIG_ENV_VAR
from ldapauth.config.models import Config
from ldapauth.core.executor import DirectoryOperationExecutor
from ldapauth.exceptions import ArgumentError, DirectoryConnectionError, SchedulingError

from conftest import ALICE_FILTER, BASE_DN

TIMEOUT = 5

SRC_DIR = Path(__file__).resolve().parent.parent / "src"

SLOW_HOST_SCRIPT = textwrap.dedent("""
    import time

    import ldapauth
    from ldapauth.config.models import Config
    from ldapauth.core.executor import AuthenticateOutcome

    class SlowExecutor:
        def authenticate(self, host, port, username, password):
            time.sleep(0.2)
            return AuthenticateOutcome(connected=True, authenticated=True)

    dispatcher = ldapauth.configure(Config(logging={"console": False}))
    dispatcher.executor = SlowExecutor()
    ldapauth.authenticate(
        "ldap.example.com", 389, "alice", "secret",
        lambda error, authenticated: print("CALLBACK", error, authenticated, flush=True)
    )
    print("MAIN DONE", dispatcher.outstanding, flush=True)
""")


@pytest.fixture
def default_dispatcher(directory, monkeypatch):
    """Default dispatcher whose executor talks to the fake directory."""
    monkeypatch.setattr(api, "_default_dispatcher", None)
    monkeypatch.setattr(
        api, "DirectoryOperationExecutor",
        lambda config: DirectoryOperationExecutor(config, client_factory=directory.client)
    )
    dispatcher = ldapauth.configure(Config())
    yield dispatcher
    dispatcher.shutdown()


class TestAuthenticate:
    """ldapauth.authenticate() scenarios."""
    
    def test_valid_credentials(self, default_dispatcher):
        callback = Mock()
        
        ldapauth.authenticate("ldap.example.com", 389, "alice", "secret", callback)
        callback.assert_not_called()
        
        assert ldapauth.run_until_idle(timeout=TIMEOUT)
        callback.assert_called_once_with(None, True)
    
    def test_wrong_password(self, default_dispatcher):
        callback = Mock()
        
        ldapauth.authenticate("ldap.example.com", 389, "alice", "wrong", callback)
        ldapauth.run_until_idle(timeout=TIMEOUT)
        
        callback.assert_called_once_with(None, False)
    
    def test_unreachable_host(self, default_dispatcher):
        callback = Mock()
        
        ldapauth.authenticate("unreachable.example.com", 389, "alice", "secret", callback)
        ldapauth.run_until_idle(timeout=TIMEOUT)
        
        error, authenticated = callback.call_args.args
        assert isinstance(error, DirectoryConnectionError)
        assert isinstance(error, ConnectionError)
        assert authenticated is False
    
    def test_process_completions(self, default_dispatcher):
        callback = Mock()
        
        ldapauth.authenticate("ldap.example.com", 389, "alice", "secret", callback)
        
        assert ldapauth.process_completions(block=True, timeout=TIMEOUT) == 1
        callback.assert_called_once_with(None, True)
    
    @pytest.mark.parametrize("args", [
        ("ldap.example.com", "389", "alice", "secret"),
        ("ldap.example.com", 0, "alice", "secret"),
        ("ldap.example.com", 70000, "alice", "secret"),
        ("ldap.example.com", True, "alice", "secret"),
        ("", 389, "alice", "secret"),
        (None, 389, "alice", "secret"),
        ("ldap.example.com", 389, None, "secret"),
        ("ldap.example.com", 389, "alice", 1234),
    ])
    def test_invalid_arguments(self, default_dispatcher, args):
        with pytest.raises(ArgumentError):
            ldapauth.authenticate(*args, Mock())
        assert default_dispatcher.outstanding == 0
    
    def test_callback_must_be_callable(self, default_dispatcher):
        with pytest.raises(TypeError, match="completion"):
            ldapauth.authenticate("ldap.example.com", 389, "alice", "secret", "not a function")
        assert default_dispatcher.outstanding == 0


class TestSearch:
    """ldapauth.search() scenarios."""
    
    def test_nested_groups(self, default_dispatcher):
        callback = Mock()
        
        ldapauth.search("ldap.example.com", 389, "alice", "secret", BASE_DN, ALICE_FILTER, callback)
        ldapauth.run_until_idle(timeout=TIMEOUT)
        
        error, result = callback.call_args.args
        assert error is None
        assert result["allGroups"] == ["Eng", "AllStaff"]
        assert result["cn"] == "Alice"
    
    def test_unreachable_host(self, default_dispatcher):
        callback = Mock()
        
        ldapauth.search("unreachable.example.com", 389, "alice", "secret", BASE_DN, ALICE_FILTER, callback)
        ldapauth.run_until_idle(timeout=TIMEOUT)
        
        error, result = callback.call_args.args
        assert isinstance(error, DirectoryConnectionError)
        assert result is None
    
    def test_invalid_filter_type(self, default_dispatcher):
        with pytest.raises(ArgumentError, match="search_filter"):
            ldapauth.search("ldap.example.com", 389, "alice", "secret", BASE_DN, 42, Mock())
        assert default_dispatcher.outstanding == 0


class TestDefaultDispatcher:
    """Creation and replacement of the default dispatcher."""
    
    def test_created_lazily_from_config(self, monkeypatch):
        monkeypatch.setattr(api, "_default_dispatcher", None)
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        
        dispatcher = ldapauth.get_default_dispatcher()
        try:
            assert ldapauth.get_default_dispatcher() is dispatcher
            assert dispatcher.config.max_workers == Config().dispatcher.max_workers
            assert dispatcher.guard is api.default_guard()
        finally:
            dispatcher.shutdown()
    
    def test_configure_refused_while_busy(self, default_dispatcher):
        callback = Mock()
        ldapauth.authenticate("ldap.example.com", 389, "alice", "secret", callback)
        
        with pytest.raises(SchedulingError, match="outstanding"):
            ldapauth.configure(Config())
        
        ldapauth.run_until_idle(timeout=TIMEOUT)
        callback.assert_called_once()
    
    def test_configure_replaces_dispatcher(self, default_dispatcher):
        replacement = ldapauth.configure(Config(dispatcher={"max_workers": 1}))
        
        assert ldapauth.get_default_dispatcher() is replacement
        assert replacement.config.max_workers == 1
        with pytest.raises(SchedulingError):
            default_dispatcher.submit(
                ldapauth.AuthenticateRequest.create(
                    host="ldap.example.com", port=389, username="alice",
                    password="secret", completion=Mock()
                )
            )
        replacement.shutdown()
    
    def test_configure_applies_logging(self, default_dispatcher):
        root = logging.getLogger("ldapauth")
        
        replacement = ldapauth.configure(Config(logging={"level": "ERROR", "console": False}))
        try:
            assert root.level == logging.ERROR
        finally:
            replacement.shutdown()
            ldapauth.configure(Config())


class TestExitDelivery:
    """Outstanding callbacks when the host reaches the end of its main thread."""
    
    def test_exit_hook_delivers_outstanding(self, default_dispatcher):
        callback = Mock()
        ldapauth.authenticate("ldap.example.com", 389, "alice", "secret", callback)
        
        api._deliver_at_exit()
        
        callback.assert_called_once_with(None, True)
        assert default_dispatcher.outstanding == 0
    
    def test_exit_hook_on_foreign_thread(self, default_dispatcher):
        callback = Mock()
        ldapauth.authenticate("ldap.example.com", 389, "alice", "secret", callback)
        
        thread = threading.Thread(target=api._deliver_at_exit)
        thread.start()
        thread.join(TIMEOUT)
        callback.assert_not_called()
        
        assert ldapauth.run_until_idle(timeout=TIMEOUT)
        callback.assert_called_once()
    
    def test_interpreter_exit_runs_callback(self):
        env = dict(os.environ)
        env.pop(CONFIG_ENV_VAR, None)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
        
        completed = subprocess.run(
            [sys.executable, "-c", SLOW_HOST_SCRIPT],
            capture_output=True, text=True, timeout=30, env=env
        )
        
        assert completed.returncode == 0, completed.stderr
        assert completed.stdout.splitlines() == ["MAIN DONE 1", "CALLBACK None True"]
