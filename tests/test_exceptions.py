"""
Tests for the keel exception hierarchy.
"""

import pytest

from keel.exceptions import (
    ConfigurationError,
    ConnectionError_,
    ConnectionReleasedError,
    KeelConnectionError,
    KeelError,
    MigrationCancelledError,
    MigrationDataError,
    MigrationError,
    SandboxError,
    ScriptExecutionError,
    StateStoreError,
    UnsupportedSourceError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_class, parent",
        [
            (ConfigurationError, KeelError),
            (MigrationDataError, KeelError),
            (UnsupportedSourceError, MigrationDataError),
            (MigrationError, KeelError),
            (ScriptExecutionError, MigrationError),
            (SandboxError, MigrationError),
            (MigrationCancelledError, MigrationError),
            (ConnectionError_, KeelError),
            (ConnectionReleasedError, ConnectionError_),
            (StateStoreError, KeelError),
        ],
    )
    def test_subclass(self, exc_class, parent):
        assert issubclass(exc_class, parent)

    def test_alias(self):
        assert KeelConnectionError is ConnectionError_

    def test_not_builtin_connection_error(self):
        assert not issubclass(ConnectionError_, ConnectionError)


class TestDetails:
    def test_message_and_details(self):
        error = KeelError("boom", details={"key": "value"})
        assert str(error) == "boom"
        assert error.message == "boom"
        assert error.details == {"key": "value"}

    def test_details_default(self):
        assert StateStoreError("x").details == {}

    def test_script_execution_error(self):
        cause = ValueError("bad")
        error = ScriptExecutionError("v1", "10-a.sql", "rollback", "bad", cause=cause)
        assert str(error) == "Rollback script 'v1:10-a.sql' failed: bad"
        assert error.details == {"version": "v1", "script": "10-a.sql", "direction": "rollback"}
        assert error.__cause__ is cause

    def test_unsupported_source_error(self):
        error = UnsupportedSourceError("s3://bucket/db")
        assert error.uri == "s3://bucket/db"
        assert "Not supported source" in str(error)

    def test_catch_all_with_base(self):
        with pytest.raises(KeelError):
            raise SandboxError("nope")
