"""Secure credential storage for ftpsession.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) to store FTP passwords, so FTPSession.login() can
authenticate without the caller handling the password.
"""

from typing import Optional

import keyring
from keyring.errors import KeyringError


class CredentialManager:
    """Secure credential storage using system keyring."""

    SERVICE_NAME = "ftpsession"

    def __init__(self, service_name: Optional[str] = None):
        """
        Initialize the credential manager.

        Args:
            service_name: Keyring service name, defaults to SERVICE_NAME
        """
        self._service_name = service_name or self.SERVICE_NAME

    def _make_key(self, host: str, username: str) -> str:
        """Create a unique key for the credential."""
        return f"{host}:{username}"

    def save_password(self, host: str, username: str, password: str) -> bool:
        """
        Save FTP password securely.

        Args:
            host: FTP host
            username: FTP username
            password: Password to save

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self._service_name, self._make_key(host, username), password)
            return True
        except KeyringError:
            return False

    def get_password(self, host: str, username: str) -> Optional[str]:
        """
        Retrieve saved password.

        Returns:
            Password string or None if not found
        """
        try:
            return keyring.get_password(self._service_name, self._make_key(host, username))
        except KeyringError:
            return None

    def delete_password(self, host: str, username: str) -> bool:
        """
        Remove saved password.

        Returns:
            True if deleted successfully, False otherwise
        """
        try:
            keyring.delete_password(self._service_name, self._make_key(host, username))
            return True
        except KeyringError:
            return False

    def has_password(self, host: str, username: str) -> bool:
        """True if a password is saved for host and username."""
        return self.get_password(host, username) is not None
