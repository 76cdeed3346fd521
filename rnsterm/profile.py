from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING

from .config import ProfileConfig
from .constants import AVATAR_BASE64, PROFILE_FULL
from .envelope import Avatar, ContactProfile, Envelope
from .util import expand_path, fmt_addr

if TYPE_CHECKING:
    from .messages import MessageSender


class ProfileResponder:
    """Answers contact-profile requests with this terminal's name and avatar.

    Only a ``full`` request gets the name/avatar body; every other request
    type gets the header fields alone. The avatar file is read per request.
    """

    def __init__(self, profile: ProfileConfig) -> None:
        self.profile = profile
        self.log = logging.getLogger("rnsterm.profile")

    def load_avatar(self) -> Avatar | None:
        if not self.profile.avatar:
            return None
        with open(expand_path(self.profile.avatar), "rb") as f:
            data = f.read()
        return Avatar(
            data=base64.b64encode(data).decode("ascii"),
            ext=self.profile.avatar_ext,
            type=AVATAR_BASE64,
        )

    def respond(self, src: str, env: Envelope, sender: MessageSender) -> None:
        request = env.content if isinstance(env.content, ContactProfile) else ContactProfile()
        request_type = request.request_type
        self.log.info("Contact profile request src=%s type=%s", fmt_addr(src), request_type)

        if request_type == PROFILE_FULL:
            sender.send_contact_profile(
                src,
                request_type,
                version=self.profile.version,
                name=self.profile.name,
                avatar=self.load_avatar(),
            )
            return

        sender.send_contact_profile(src, request_type, version=self.profile.version)
