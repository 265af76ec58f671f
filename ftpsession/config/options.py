"""Session configuration for ftpsession.

Provides the RuntimeOption enum with its client-side validation and the
SessionConfig dataclass used to open a session in one call.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Union

from ftpsession.ftp.exceptions import (
    FTPUnsupportedOptionError,
    FTPValidationError,
)
from ftpsession.utils.validators import (
    validate_autoseek,
    validate_host,
    validate_port,
    validate_timeout,
)


class RuntimeOption(Enum):
    """Runtime behaviours that can be read and changed on a session."""
    TIMEOUT_SEC = "timeout_sec"
    AUTOSEEK = "autoseek"


DEFAULT_OPTIONS = {
    RuntimeOption.TIMEOUT_SEC: 90,
    RuntimeOption.AUTOSEEK: True,
}

_VALIDATORS = {
    RuntimeOption.TIMEOUT_SEC: validate_timeout,
    RuntimeOption.AUTOSEEK: validate_autoseek,
}


def resolve_option(option: Union[RuntimeOption, str]) -> RuntimeOption:
    """
    Map an option key (enum member or its value) to a RuntimeOption.

    Raises:
        FTPUnsupportedOptionError: If the key is not a supported option
    """
    if isinstance(option, RuntimeOption):
        return option
    try:
        return RuntimeOption(option)
    except ValueError:
        raise FTPUnsupportedOptionError(option)


def validate_option(option: Union[RuntimeOption, str], value: Any) -> RuntimeOption:
    """
    Check an option key and value before they are applied.

    Returns:
        The resolved RuntimeOption

    Raises:
        FTPUnsupportedOptionError: If the key is not supported
        FTPValidationError: If the value is invalid for the key
    """
    key = resolve_option(option)
    is_valid, error = _VALIDATORS[key](value)
    if not is_valid:
        raise FTPValidationError(key.value, error)
    return key


@dataclass
class SessionConfig:
    """FTP session configuration."""
    host: str
    port: int = 21
    secure: bool = False
    username: str = "anonymous"
    passive_mode: bool = True
    binary_mode: bool = True
    timeout: float = 90
    autoseek: bool = True
    encoding: str = "utf-8"

    def __post_init__(self):
        """Validate configuration after initialization."""
        for field, (is_valid, error) in (
            ("host", validate_host(self.host)),
            ("port", validate_port(self.port)),
            ("timeout", validate_timeout(self.timeout)),
            ("autoseek", validate_autoseek(self.autoseek)),
        ):
            if not is_valid:
                raise FTPValidationError(field, error)

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionConfig":
        """Create configuration from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)
