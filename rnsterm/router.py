from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from .codec import decode
from .constants import ACK_CONTENT_TYPES, COMMAND_PREFIX, CT_CONTACT, CT_TEXT, TEXT_INTERNAL_ERROR
from .util import fmt_addr

if TYPE_CHECKING:
    from .commands import CommandDispatcher
    from .messages import MessageSender
    from .profile import ProfileResponder
    from .stats import StatsManager
    from .trust import AuthorizationGate


class MessageRouter:
    """
    Classifies inbound envelopes and decides what happens to them.

    This class is responsible for:
    - Decoding payloads and dropping malformed ones without a reply
    - Dropping receipt/read traffic
    - Answering contact-profile requests (no acknowledgment)
    - Acknowledging everything else (receipt, then read)
    - Ignoring non-text and group-addressed envelopes
    - Authorizing the sender and handing commands to the dispatcher

    It holds no per-message state; concurrent calls are independent.
    """

    def __init__(
        self,
        *,
        gate: AuthorizationGate,
        sender: MessageSender,
        dispatcher: CommandDispatcher,
        profile: ProfileResponder,
        prefix: str = COMMAND_PREFIX,
        is_self: Callable[[str], bool] | None = None,
        stats: StatsManager | None = None,
    ) -> None:
        self.gate = gate
        self.sender = sender
        self.dispatcher = dispatcher
        self.profile = profile
        self.prefix = prefix
        self.is_self = is_self
        self.stats = stats
        self.log = logging.getLogger("rnsterm.router")

    def _inc(self, key: str) -> None:
        if self.stats is not None:
            self.stats.inc(key)

    def handle_message(self, src: str, raw: str | bytes) -> None:
        """Route one inbound payload. Never raises."""
        try:
            self.route(src, raw)
        except Exception:
            self._inc("internal_errors")
            self.log.exception("Error handling message src=%s", fmt_addr(src))
            try:
                self.sender.send_error(src, TEXT_INTERNAL_ERROR)
            except Exception as e:
                self.log.error("Error sending error response src=%s: %s", fmt_addr(src), e)

    def route(self, src: str, raw: str | bytes) -> None:
        if self.is_self is not None and self.is_self(src):
            return

        if not isinstance(raw, str):
            self.log.debug("Ignoring binary payload src=%s bytes=%s", fmt_addr(src), len(raw))
            return

        self._inc("msgs_in")
        env = decode(raw)
        if env is None:
            self._inc("msgs_bad")
            self.log.debug("Invalid message format src=%s", fmt_addr(src))
            return

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX src=%s type=%s id=%s bytes=%s",
                fmt_addr(src),
                env.content_type,
                env.id,
                len(raw),
            )

        if env.content_type in ACK_CONTENT_TYPES:
            self._inc("acks_in")
            return

        if env.content_type == CT_CONTACT:
            self.profile.respond(src, env, self.sender)
            return

        self.sender.acknowledge(src, env)

        if env.content_type != CT_TEXT:
            return

        if env.is_group:
            self._inc("group_ignored")
            return

        if not self.gate.check(src, self.sender):
            self._inc("denied")
            return

        text = env.content
        if not text.startswith(self.prefix):
            return

        self.log.info("Received command src=%s: %s", fmt_addr(src), text)
        self.dispatcher.dispatch(text[len(self.prefix):], src, self.sender)
