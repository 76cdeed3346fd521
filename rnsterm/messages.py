"""Outbound envelopes: results, errors, acknowledgments and profiles."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from .codec import encode
from .constants import ERROR_PREFIX
from .envelope import (
    Avatar,
    Envelope,
    make_contact_response,
    make_read,
    make_receipt,
    make_text,
)
from .util import fmt_addr

if TYPE_CHECKING:
    from .stats import StatsManager

SendFn = Callable[[str, str], None]


class MessageSender:
    """
    Builds reply envelopes and hands them to the transport.

    Every envelope gets a fresh id and timestamp. Sends raise whatever the
    transport raises; `acknowledge` is the one place that swallows failures.
    """

    def __init__(self, send: SendFn, *, stats: StatsManager | None = None) -> None:
        self._send = send
        self.stats = stats
        self.log = logging.getLogger("rnsterm.messages")

    def _inc(self, key: str) -> None:
        if self.stats is not None:
            self.stats.inc(key)

    def send_envelope(self, dest: str, env: Envelope) -> None:
        payload = encode(env)
        if not payload:
            self.log.warning(
                "Dropping unencodable envelope dest=%s type=%s", fmt_addr(dest), env.content_type
            )
            return
        self._send(dest, payload)
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "TX dest=%s type=%s id=%s bytes=%s",
                fmt_addr(dest),
                env.content_type,
                env.id,
                len(payload),
            )

    def send_result(self, dest: str, message: str) -> None:
        self.send_envelope(dest, make_text(message))
        self._inc("replies_sent")

    def send_error(self, dest: str, message: str) -> None:
        self.send_envelope(dest, make_text(f"{ERROR_PREFIX}{message}"))
        self._inc("replies_sent")

    def send_receipt(self, dest: str, msg_id: str) -> None:
        self.send_envelope(dest, make_receipt(msg_id))

    def send_read(self, dest: str, msg_id: str) -> None:
        self.send_envelope(dest, make_read(msg_id))

    def send_contact_profile(
        self,
        dest: str,
        response_type: str | None,
        *,
        version: str | None = None,
        name: str | None = None,
        avatar: Avatar | None = None,
    ) -> None:
        env = make_contact_response(response_type, version=version, name=name, avatar=avatar)
        self.send_envelope(dest, env)
        self._inc("profiles_sent")

    def acknowledge(self, dest: str, env: Envelope) -> None:
        """Send a receipt and then a read acknowledgment for ``env``.

        Each send is best-effort: a failure is logged and the other is still
        attempted.
        """
        for kind, send in (("receipt", self.send_receipt), ("read", self.send_read)):
            try:
                send(dest, env.id)
                self._inc("acks_sent")
            except Exception as e:
                self._inc("acks_failed")
                self.log.warning(
                    "Error sending %s src=%s id=%s: %s", kind, fmt_addr(dest), env.id, e
                )
