"""Configuration module for ftpsession.

This module handles session settings and credentials:
- SessionConfig: Connection settings dataclass
- RuntimeOption: Options adjustable on a live session
- CredentialManager: Secure credential storage via keyring
"""
