"""Allow-list loading and the authorization gate."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from .constants import AUTHORIZED_TEMPLATE, TEXT_PERMISSION_DENIED
from .util import expand_path, fmt_addr, normalize_address

if TYPE_CHECKING:
    from .messages import MessageSender

log = logging.getLogger("rnsterm.trust")

UnauthorizedHook = Callable[[str, "MessageSender"], None]


def parse_authorized(text: str) -> frozenset[str]:
    addresses: set[str] = set()
    for line in text.splitlines():
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        addr = normalize_address(s)
        if addr:
            addresses.add(addr)
    return frozenset(addresses)


@dataclass(frozen=True)
class AllowList:
    """The set of peer addresses allowed to issue commands.

    Immutable once loaded. `load` creates a comment-only template when the
    file does not exist, which yields an empty list.
    """

    path: str | None
    addresses: frozenset[str] = frozenset()

    @classmethod
    def load(cls, path: str) -> AllowList:
        p = Path(expand_path(path))
        if not p.exists():
            if p.parent:
                p.parent.mkdir(parents=True, exist_ok=True)
            with open(p, "w", encoding="utf-8") as f:
                f.write(AUTHORIZED_TEMPLATE)
            try:
                os.chmod(p, 0o600)
            except Exception:
                pass
            log.info("Created authorized addresses file at %s", p)

        with open(p, encoding="utf-8") as f:
            addresses = parse_authorized(f.read())

        log.info("Loaded %d authorized addresses from %s", len(addresses), p)
        return cls(path=str(p), addresses=addresses)

    @classmethod
    def from_addresses(cls, addresses) -> AllowList:
        return cls(path=None, addresses=parse_authorized("\n".join(addresses)))

    def reload(self) -> AllowList:
        if self.path is None:
            return self
        return AllowList.load(self.path)

    def __contains__(self, address: object) -> bool:
        addr = normalize_address(address)
        return addr is not None and addr in self.addresses

    def __len__(self) -> int:
        return len(self.addresses)


class AuthorizationGate:
    """Answers whether a sender may run commands.

    An empty allow-list denies everyone.
    """

    def __init__(
        self,
        allow_list: AllowList,
        *,
        on_unauthorized: UnauthorizedHook | None = None,
    ) -> None:
        self.allow_list = allow_list
        self.on_unauthorized = on_unauthorized

    def is_authorized(self, address: str) -> bool:
        if not self.allow_list:
            return False
        return address in self.allow_list

    def check(self, address: str, sender: MessageSender) -> bool:
        """Authorize ``address``; on denial run the hook or send the standard reply."""
        if self.is_authorized(address):
            return True

        log.info("Unauthorized sender src=%s", fmt_addr(address))
        if self.on_unauthorized is not None:
            self.on_unauthorized(address, sender)
        else:
            sender.send_error(address, TEXT_PERMISSION_DENIED)
        return False
