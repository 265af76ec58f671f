"""Unit tests for the top-level package exports."""

import inspect

import ftpsession
from ftpsession.ftp import exceptions


class TestPackageExports:
    """Tests for ftpsession.__all__."""

    def test_all_names_resolve(self):
        """Test that every exported name exists on the package."""
        for name in ftpsession.__all__:
            assert hasattr(ftpsession, name), name

    def test_every_error_type_exported(self):
        """Test that callers can tell every error kind apart from the package root."""
        error_types = {
            name for name, value in inspect.getmembers(exceptions, inspect.isclass)
            if issubclass(value, exceptions.FTPError)
        }

        assert error_types <= set(ftpsession.__all__)
        assert ftpsession.FTPNegotiationError is exceptions.FTPNegotiationError
        assert ftpsession.FTPReplyError is exceptions.FTPReplyError
