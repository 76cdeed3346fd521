"""Transport handle: the Reticulum side of the terminal."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import RNS

from .codec import encode_app_data
from .constants import (
    DEFAULT_DEST_NAME,
    DEFAULT_MSG_HOLDING_S,
    DEFAULT_NUM_SUB_CLIENTS,
    MAX_HELD_PER_PEER,
    MAX_HELD_TOTAL,
)
from .errors import ConfigurationError, SendError
from .util import fmt_addr

ConnectCallback = Callable[[dict[str, Any]], None]
ConnectFailedCallback = Callable[[Exception], None]
MessageCallback = Callable[[str, "str | bytes"], None]


class MessagingClient(Protocol):
    """What the connection manager needs from a transport handle."""

    addr: str | None

    def on_connect(self, callback: ConnectCallback) -> None: ...

    def on_connect_failed(self, callback: ConnectFailedCallback) -> None: ...

    def on_message(self, callback: MessageCallback) -> None: ...

    def start(self) -> None: ...

    def send(self, dest: str, payload: str) -> None: ...

    def close(self) -> None: ...


def identity_from_seed(seed: str | bytes) -> RNS.Identity:
    if isinstance(seed, str):
        s = seed.strip().lower()
        if s.startswith("0x"):
            s = s[2:]
        try:
            prv = bytes.fromhex(s)
        except ValueError as e:
            raise ConfigurationError(f"seed is not hex: {e}") from e
    else:
        prv = bytes(seed)

    ident = RNS.Identity.from_bytes(prv)
    if ident is None:
        raise ConfigurationError("seed is not a valid Reticulum private key")
    return ident


def new_seed() -> str:
    return RNS.Identity().get_private_key().hex()


@dataclass
class _Held:
    data: bytes
    expires: float


class ReticulumClient:
    """
    A peer identity on Reticulum.

    Peers reach the terminal by opening a Link to one of its SINGLE
    destinations and identifying themselves; a peer's address is its
    identity hash in hex. Replies go back over the peer's active link.
    When the peer has no active link the payload is held for
    ``msg_holding_s`` seconds and flushed when the peer links in again.
    Each peer keeps at most ``max_held_per_peer`` entries (oldest dropped
    first) and the whole store at most ``max_held_total``.
    """

    def __init__(
        self,
        *,
        seed: str | bytes,
        identifier: str = "",
        num_sub_clients: int = DEFAULT_NUM_SUB_CLIENTS,
        original_client: bool = True,
        configdir: str | None = None,
        dest_name: str = DEFAULT_DEST_NAME,
        announce_on_start: bool = True,
        app_data: dict[str, Any] | None = None,
        msg_holding_s: float = float(DEFAULT_MSG_HOLDING_S),
        max_held_per_peer: int = MAX_HELD_PER_PEER,
        max_held_total: int = MAX_HELD_TOTAL,
    ) -> None:
        self.seed = seed
        self.identifier = identifier
        self.num_sub_clients = num_sub_clients
        self.original_client = original_client
        self.configdir = configdir
        self.dest_name = dest_name
        self.announce_on_start = announce_on_start
        self.app_data = app_data
        self.msg_holding_s = msg_holding_s
        self.max_held_per_peer = max(1, int(max_held_per_peer))
        self.max_held_total = max(1, int(max_held_total))

        self.log = logging.getLogger("rnsterm.transport")
        self._lock = threading.RLock()
        self._closed = False

        self._on_connect: ConnectCallback | None = None
        self._on_connect_failed: ConnectFailedCallback | None = None
        self._on_message: MessageCallback | None = None

        self.identity: RNS.Identity | None = None
        self.destinations: list[RNS.Destination] = []
        self.addr: str | None = None

        self._links: dict[str, RNS.Link] = {}
        self._held: dict[str, list[_Held]] = {}

    def on_connect(self, callback: ConnectCallback) -> None:
        self._on_connect = callback

    def on_connect_failed(self, callback: ConnectFailedCallback) -> None:
        self._on_connect_failed = callback

    def on_message(self, callback: MessageCallback) -> None:
        self._on_message = callback

    def start(self) -> None:
        threading.Thread(target=self._bring_up, name="rnsterm-connect", daemon=True).start()

    def _bring_up(self) -> None:
        try:
            node = self._setup()
        except Exception as e:
            self.log.error("Reticulum setup failed: %s", e)
            if self._on_connect_failed is not None:
                self._on_connect_failed(e)
            return

        if node is None:
            self.log.info("Handle closed during setup; not announcing")
            return

        if self._on_connect is not None:
            self._on_connect(node)

    def _setup(self) -> dict[str, Any] | None:
        """Register destinations and announce. Returns None if closed meanwhile."""
        if self._closed:
            return None

        if RNS.Reticulum.get_instance() is None:
            self.log.info("Starting Reticulum")
            RNS.Reticulum(configdir=self.configdir, require_shared_instance=False)

        self.identity = identity_from_seed(self.seed)

        parts = [p for p in str(self.dest_name).split(".") if p]
        if not parts:
            raise ConfigurationError("dest_name must not be empty")
        app_name, aspects = parts[0], parts[1:]

        aspect_sets: list[list[str]] = []
        if self.identifier:
            aspect_sets.append([*aspects, self.identifier])
        if self.original_client or not self.identifier:
            aspect_sets.append(list(aspects))

        created: list[RNS.Destination] = []
        for aspect_set in aspect_sets:
            dest = RNS.Destination(
                self.identity,
                RNS.Destination.IN,
                RNS.Destination.SINGLE,
                app_name,
                *aspect_set,
            )
            dest.set_link_established_callback(self._on_link)
            created.append(dest)

        with self._lock:
            closed = self._closed
            if not closed:
                self.destinations = created
                self.addr = created[0].hash.hex()
        if closed:
            self._deregister(created)
            return None

        if self.announce_on_start:
            self.announce()

        return {
            "addr": self.addr,
            "id": self.identity.hash.hex(),
            "pubkey": self.identity.get_public_key().hex(),
            "destinations": [d.hash.hex() for d in self.destinations],
            "num_sub_clients": self.num_sub_clients,
        }

    def announce(self) -> None:
        app_data = encode_app_data(self.app_data) if self.app_data else None
        with self._lock:
            if self._closed:
                return
            destinations = list(self.destinations)
        for dest in destinations:
            try:
                dest.announce(app_data=app_data)
            except Exception:
                self.log.exception("Announce failed dest=%s", dest.hash.hex())

    def close(self) -> None:
        with self._lock:
            self._closed = True
            links = list(self._links.values())
            self._links.clear()
            self._held.clear()
            destinations, self.destinations = self.destinations, []

        for link in links:
            try:
                link.teardown()
            except Exception:
                self.log.debug("Link teardown failed", exc_info=True)

        self._deregister(destinations)

    def _deregister(self, destinations: list[RNS.Destination]) -> None:
        for dest in destinations:
            try:
                RNS.Transport.deregister_destination(dest)
            except Exception:
                self.log.debug("Deregister failed dest=%s", dest.hash.hex(), exc_info=True)

    def send(self, dest: str, payload: str) -> None:
        data = payload.encode("utf-8")
        with self._lock:
            if self._closed:
                raise SendError("transport is closed")
            link = self._links.get(dest)
            if link is None or link.status != RNS.Link.ACTIVE:
                self._hold(dest, data)
                return

        self._send_on_link(link, data)

    def _hold(self, dest: str, data: bytes) -> None:
        if self.msg_holding_s <= 0:
            raise SendError(f"no active link to {fmt_addr(dest)}")

        now = time.monotonic()
        total = self._prune_held(now)
        held = self._held.get(dest, [])
        if len(held) >= self.max_held_per_peer:
            held.pop(0)
            self.log.warning("Hold queue full, dropped oldest dest=%s", fmt_addr(dest))
        elif total >= self.max_held_total:
            raise SendError(f"hold store full, cannot queue for {fmt_addr(dest)}")

        held.append(_Held(data=data, expires=now + self.msg_holding_s))
        self._held[dest] = held
        self.log.debug("Holding message dest=%s queued=%s", fmt_addr(dest), len(held))

    def _prune_held(self, now: float) -> int:
        """Drop expired entries and empty peers; returns the number still held."""
        total = 0
        for peer in list(self._held):
            live = [h for h in self._held[peer] if h.expires > now]
            if live:
                self._held[peer] = live
                total += len(live)
            else:
                del self._held[peer]
        return total

    def prune_held(self) -> int:
        with self._lock:
            return self._prune_held(time.monotonic())

    def _send_on_link(self, link: RNS.Link, data: bytes) -> None:
        try:
            if len(data) <= link.MDU:
                if RNS.Packet(link, data).send() is False:
                    raise SendError("packet was not sent")
            else:
                RNS.Resource(data, link, advertise=True, auto_compress=False)
        except SendError:
            raise
        except Exception as e:
            raise SendError(f"send failed: {e}") from e

    def _peer_of(self, link: RNS.Link) -> str | None:
        ri = link.get_remote_identity()
        if ri is None:
            return None
        return ri.hash.hex()

    def _on_link(self, link: RNS.Link) -> None:
        link.set_packet_callback(lambda data, pkt: self._on_packet(link, data))
        link.set_link_closed_callback(self._on_link_closed)
        link.set_remote_identified_callback(self._on_remote_identified)
        link.set_resource_strategy(RNS.Link.ACCEPT_ALL)
        link.set_resource_concluded_callback(self._on_resource_concluded)
        self.log.debug("Link established link_id=%s", link.link_id.hex())

    def _on_remote_identified(self, link: RNS.Link, identity: RNS.Identity) -> None:
        peer = identity.hash.hex()
        now = time.monotonic()
        with self._lock:
            if self._closed:
                return
            self._links[peer] = link
            self._prune_held(now)
            held = self._held.pop(peer, [])

        self.log.info("Remote identified peer=%s link_id=%s", fmt_addr(peer), link.link_id.hex())
        for h in held:
            try:
                self._send_on_link(link, h.data)
            except SendError as e:
                self.log.warning("Held message delivery failed peer=%s: %s", fmt_addr(peer), e)

    def _on_link_closed(self, link: RNS.Link) -> None:
        peer = self._peer_of(link)
        with self._lock:
            if peer is not None and self._links.get(peer) is link:
                self._links.pop(peer, None)
        self.log.debug("Link closed peer=%s", fmt_addr(peer))

    def _on_packet(self, link: RNS.Link, data: bytes) -> None:
        self._deliver(link, data)

    def _on_resource_concluded(self, resource: RNS.Resource) -> None:
        if resource.status != RNS.Resource.COMPLETE:
            self.log.warning("Resource transfer failed status=%s", resource.status)
            return
        data = resource.data.read() if hasattr(resource.data, "read") else resource.data
        self._deliver(resource.link, bytes(data))

    def _deliver(self, link: RNS.Link, data: bytes) -> None:
        if self._closed or self._on_message is None:
            return

        peer = self._peer_of(link)
        if peer is None:
            # Unidentified links are not addressable; ignore their traffic.
            self.log.debug("Ignoring packet from unidentified link bytes=%s", len(data))
            return

        try:
            payload: str | bytes = data.decode("utf-8")
        except UnicodeDecodeError:
            payload = data
        self._on_message(peer, payload)
