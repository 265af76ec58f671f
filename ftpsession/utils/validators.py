"""Input validators for ftpsession.

Provides validation functions for connection parameters and runtime
options. Each returns (is_valid, error_message) so callers decide how to
report the problem.
"""

import re
from typing import Any, Optional, Tuple


# IPv4 address pattern
IPV4_PATTERN = re.compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}'
    r'(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$'
)

# Hostname pattern (simplified)
HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$'
)


def validate_ip_address(ip: str) -> Tuple[bool, Optional[str]]:
    """
    Validate an IPv4 address.

    Args:
        ip: IP address string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not ip or not ip.strip():
        return False, "IP address is required"

    ip = ip.strip()

    if IPV4_PATTERN.match(ip):
        return True, None

    return False, f"Invalid IP address format: {ip}"


def validate_host(host: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a host (IPv4 address, IPv6 literal or hostname).

    Args:
        host: Host string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not host or not host.strip():
        return False, "Host is required"

    host = host.strip()

    is_valid_ip, _ = validate_ip_address(host)
    if is_valid_ip:
        return True, None

    # IPv6 literals are left to the resolver
    if ":" in host:
        return True, None

    if HOSTNAME_PATTERN.match(host):
        return True, None

    return False, f"Invalid host: {host}. Must be a valid IP address or hostname."


def validate_port(port: int) -> Tuple[bool, Optional[str]]:
    """
    Validate a port number.

    Args:
        port: Port number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(port, bool) or not isinstance(port, int):
        return False, "Port must be an integer"

    if port < 1 or port > 65535:
        return False, f"Port must be between 1 and 65535, got {port}"

    return True, None


def validate_timeout(timeout: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a timeout value in seconds.

    Args:
        timeout: Timeout in seconds

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        return False, "Timeout must be a number"

    if timeout <= 0:
        return False, "Timeout value must be greater than zero"

    return True, None


def validate_autoseek(autoseek: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate an autoseek flag.

    Args:
        autoseek: Value to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(autoseek, bool):
        return False, "Autoseek value must be boolean"

    return True, None


def validate_offset(offset: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a resume offset.

    Args:
        offset: Byte offset, must be a non-negative integer

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(offset, bool) or not isinstance(offset, int):
        return False, "Offset must be an integer"

    if offset < 0:
        return False, f"Offset must not be negative, got {offset}"

    return True, None
