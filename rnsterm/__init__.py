"""rnsterm: a slash-command terminal reachable over Reticulum."""

from __future__ import annotations

__version__ = "0.1.0"

from .commands import CommandSpec
from .config import ProfileConfig, TerminalConfig
from .connection import ConnectionState
from .errors import (
    CommandParseError,
    ConfigurationError,
    ConnectFailed,
    NotConnected,
    TerminalError,
)
from .service import Terminal

__all__ = [
    "CommandParseError",
    "CommandSpec",
    "ConfigurationError",
    "ConnectFailed",
    "ConnectionState",
    "NotConnected",
    "ProfileConfig",
    "Terminal",
    "TerminalConfig",
    "TerminalError",
    "__version__",
]
