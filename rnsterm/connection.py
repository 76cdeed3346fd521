from __future__ import annotations

import enum
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable

from .constants import DEFAULT_NUM_SUB_CLIENTS
from .errors import ConfigurationError, ConnectFailed, ConnectionStateError, NotConnected

if TYPE_CHECKING:
    from .transport import MessagingClient

ClientFactory = Callable[..., "MessagingClient"]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _default_factory(**kwargs: Any) -> MessagingClient:
    from .transport import ReticulumClient

    return ReticulumClient(**kwargs)


class ConnectionManager:
    """
    Owns the transport handle and its lifecycle.

    Disconnected -> Connecting on `connect`; Connecting -> Connected or
    back to Disconnected on the transport's verdict; Connected ->
    Disconnected on `disconnect`. There is no automatic reconnect.
    """

    def __init__(
        self,
        seed: str | bytes | None,
        *,
        identifier: str = "",
        num_sub_clients: int = DEFAULT_NUM_SUB_CLIENTS,
        original_client: bool = True,
        on_message: Callable[[str, str | bytes], None] | None = None,
        on_connect: Callable[[str, dict[str, Any]], None] | None = None,
        on_disconnect: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        client_factory: ClientFactory | None = None,
        client_options: dict[str, Any] | None = None,
    ) -> None:
        if not seed:
            raise ConfigurationError("Seed is required")

        self.seed = seed
        self.identifier = identifier or ""
        self.num_sub_clients = int(num_sub_clients or DEFAULT_NUM_SUB_CLIENTS)
        self.original_client = bool(original_client)

        self.on_message = on_message
        self.on_connect = on_connect
        self.on_disconnect = on_disconnect
        self.on_error = on_error

        self.client_factory = client_factory or _default_factory
        self.client_options = dict(client_options or {})

        self.log = logging.getLogger("rnsterm.connection")
        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self.client: MessagingClient | None = None
        self.node: dict[str, Any] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def address(self) -> str | None:
        if self.client is None:
            return None
        return self.client.addr

    def connect(self, timeout: float | None = None) -> tuple[str, dict[str, Any]]:
        """Bring the transport up and block until it reports.

        Returns ``(address, node)``. Raises `ConnectFailed` when the
        transport fails or does not answer within ``timeout`` seconds.
        """
        with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                raise ConnectionStateError(f"cannot connect while {self._state.value}")
            self._state = ConnectionState.CONNECTING

        done = threading.Event()
        result: dict[str, Any] = {}

        def _connected(node: dict[str, Any]) -> None:
            result["node"] = node
            done.set()

        def _failed(err: Exception) -> None:
            result["error"] = err
            done.set()

        try:
            client = self.client_factory(
                seed=self.seed,
                identifier=self.identifier,
                num_sub_clients=self.num_sub_clients,
                original_client=self.original_client,
                **self.client_options,
            )
            client.on_connect(_connected)
            client.on_connect_failed(_failed)
            client.on_message(self._deliver)
            self.client = client
            client.start()
        except Exception as e:
            result["error"] = e
            done.set()

        if not done.wait(timeout):
            result["error"] = TimeoutError(f"no answer from transport within {timeout}s")

        if "error" in result:
            self._close_client()
            with self._lock:
                self._state = ConnectionState.DISCONNECTED
            err = ConnectFailed(f"Failed to connect: {result['error']}")
            self.log.error("%s", err)
            if self.on_error is not None:
                self.on_error(err)
            raise err from result["error"]

        with self._lock:
            self._state = ConnectionState.CONNECTED
        self.node = result["node"]
        addr = self.address or ""
        self.log.info("Connected. Terminal address is %s", addr)
        if self.on_connect is not None:
            self.on_connect(addr, self.node)
        return addr, self.node

    def disconnect(self) -> None:
        """Close the handle. Outside the Connected state this only logs an error."""
        with self._lock:
            was = self._state
            self._state = ConnectionState.DISCONNECTED

        self._close_client()

        if was is not ConnectionState.CONNECTED:
            self.log.error("disconnect() called while %s", was.value)
            return

        self.log.info("Disconnected")
        if self.on_disconnect is not None:
            self.on_disconnect()

    def send(self, dest: str, payload: str) -> None:
        client = self.client
        if client is None or self._state is not ConnectionState.CONNECTED:
            raise NotConnected("not connected")
        client.send(dest, payload)

    def _close_client(self) -> None:
        client, self.client = self.client, None
        self.node = None
        if client is None:
            return
        try:
            client.close()
        except Exception:
            self.log.warning("Error closing transport handle", exc_info=True)

    def _deliver(self, src: str, payload: str | bytes) -> None:
        if self.on_message is not None:
            self.on_message(src, payload)
