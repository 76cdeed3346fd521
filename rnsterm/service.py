from __future__ import annotations

import logging
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable

from .commands import CommandDispatcher, CommandTable
from .config import ProfileConfig, TerminalConfig
from .connection import ClientFactory, ConnectionManager, ConnectionState
from .messages import MessageSender
from .paths import default_authorized_path
from .profile import ProfileResponder
from .router import MessageRouter
from .stats import StatsManager
from .trust import AllowList, AuthorizationGate, UnauthorizedHook
from .util import fmt_addr, normalize_address


class Terminal:
    """
    A command terminal reachable over Reticulum.

    Loads the allow-list once at construction, then on `connect` brings up
    the transport. Every inbound message is handled as an independent task
    on a pool of ``num_sub_clients`` worker threads.
    """

    def __init__(
        self,
        config: TerminalConfig,
        *,
        commands: Iterable[Any] = (),
        on_unauthorized: UnauthorizedHook | None = None,
        allow_list: AllowList | None = None,
        client_factory: ClientFactory | None = None,
        stats: StatsManager | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("rnsterm.terminal")
        self._shutdown = threading.Event()

        self.stats = stats if stats is not None else StatsManager()

        self.connection = ConnectionManager(
            config.seed,
            identifier=config.identifier,
            num_sub_clients=config.num_sub_clients,
            original_client=config.original_client,
            on_message=self._on_message,
            on_connect=self._on_connect,
            on_disconnect=self._on_disconnect,
            on_error=self._on_error,
            client_factory=client_factory,
            client_options=self._client_options(config),
        )

        if allow_list is None:
            allow_list = AllowList.load(config.authorize_path or str(default_authorized_path()))
        self.allow_list = allow_list

        self.sender = MessageSender(self.connection.send, stats=self.stats)
        self.gate = AuthorizationGate(allow_list, on_unauthorized=on_unauthorized)
        self.dispatcher = CommandDispatcher(
            CommandTable(commands),
            script_name=config.script_name,
            usage=config.usage,
            prefix=config.command_prefix,
            stats=self.stats,
        )
        self.profile = ProfileResponder(config.profile)
        self.router = MessageRouter(
            gate=self.gate,
            sender=self.sender,
            dispatcher=self.dispatcher,
            profile=self.profile,
            prefix=config.command_prefix,
            is_self=self._is_self,
            stats=self.stats,
        )

        self._executor: ThreadPoolExecutor | None = None

    @staticmethod
    def _client_options(config: TerminalConfig) -> dict[str, Any]:
        profile: ProfileConfig = config.profile
        app_data: dict[str, Any] = {"proto": "rnsterm", "v": 1}
        if profile.name:
            app_data["name"] = profile.name
        return {
            "configdir": config.configdir,
            "dest_name": config.dest_name,
            "announce_on_start": config.announce_on_start,
            "app_data": app_data,
            "msg_holding_s": config.msg_holding_s,
        }

    @property
    def address(self) -> str | None:
        return self.connection.address

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def connect(self, timeout: float | None = None) -> tuple[str, dict[str, Any]]:
        if timeout is None:
            timeout = self.config.connect_timeout_s
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, self.config.num_sub_clients),
                thread_name_prefix="rnsterm-msg",
            )
        self.stats.set_start_time()
        try:
            return self.connection.connect(timeout=timeout)
        except Exception:
            executor, self._executor = self._executor, None
            executor.shutdown(wait=False)
            raise

    def disconnect(self) -> None:
        self.connection.disconnect()
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def run_forever(self) -> None:
        if self.connection.state is not ConnectionState.CONNECTED:
            self.connect()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, lambda *_: self._reload_on_signal())

        while not self._shutdown.is_set():
            self._shutdown.wait(0.25)

        self.disconnect()

    def stop(self) -> None:
        self._shutdown.set()

    def reload_allow_list(self) -> int:
        """Re-read the allow-list file; returns the new number of addresses."""
        self.allow_list = self.allow_list.reload()
        self.gate.allow_list = self.allow_list
        return len(self.allow_list)

    def _reload_on_signal(self) -> None:
        try:
            count = self.reload_allow_list()
        except OSError as e:
            self.log.error("Failed to reload authorized addresses: %s", e)
            return
        self.log.info("Reloaded authorized addresses count=%s", count)

    def _is_self(self, src: str) -> bool:
        own = [self.connection.address]
        if self.connection.node:
            own.append(self.connection.node.get("id"))
        return normalize_address(src) in {normalize_address(a) for a in own if a}

    def _on_message(self, src: str, payload: str | bytes) -> None:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("Received message src=%s bytes=%s", fmt_addr(src), len(payload))
        executor = self._executor
        if executor is None:
            self.router.handle_message(src, payload)
            return
        executor.submit(self.router.handle_message, src, payload)

    def _on_connect(self, addr: str, node: dict[str, Any]) -> None:
        self.log.info(
            "Terminal running addr=%s identity=%s authorized=%s commands=%s",
            addr,
            node.get("id", "-"),
            len(self.allow_list),
            ", ".join(self.dispatcher.table) or "-",
        )

    def _on_disconnect(self) -> None:
        self.log.info("Disconnected from the network")

    def _on_error(self, error: Exception) -> None:
        self.log.error("Transport error: %s", error)
