"""Exception types raised by rnsterm."""

from __future__ import annotations


class TerminalError(Exception):
    """Base class for rnsterm errors."""


class ConfigurationError(TerminalError):
    """Missing or invalid construction-time configuration (e.g. no seed)."""


class ConnectFailed(TerminalError):
    """The transport reported that it could not come up."""


class ConnectionStateError(TerminalError):
    """An operation was attempted in a connection state that does not allow it."""


class NotConnected(ConnectionStateError):
    """A send was attempted without a connected transport handle."""


class SendError(TerminalError):
    """The transport could not accept an outbound payload."""


class CommandParseError(TerminalError):
    """A command line could not be parsed against the command table."""

    def __init__(self, message: str, usage: str = "") -> None:
        super().__init__(message)
        self.usage = usage
