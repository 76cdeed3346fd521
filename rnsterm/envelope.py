from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from .constants import (
    AVATAR_BASE64,
    CT_CONTACT,
    CT_READ,
    CT_RECEIPT,
    CT_TEXT,
    K_CONTENT,
    K_CONTENT_TYPE,
    K_GROUP_ID,
    K_ID,
    K_OPTIONS,
    K_READ_IDS,
    K_REQUEST_TYPE,
    K_RESPONSE_TYPE,
    K_TARGET_ID,
    K_TOPIC,
    K_TS,
    K_VERSION,
)


def now_ms() -> int:
    return int(time.time() * 1000)


def msg_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Receipt:
    target_id: str


@dataclass(frozen=True)
class Read:
    read_ids: tuple[str, ...]


@dataclass(frozen=True)
class Avatar:
    data: str
    ext: str | None = None
    type: str = AVATAR_BASE64


@dataclass(frozen=True)
class ContactProfile:
    request_type: str | None = None
    response_type: str | None = None
    version: str | None = None
    name: str | None = None
    avatar: Avatar | None = None


@dataclass(frozen=True)
class Envelope:
    """One wire message.

    ``content`` depends on ``content_type``: ``str`` for text, `Receipt`,
    `Read` or `ContactProfile` for the control types, and the raw JSON value
    for anything else. Wire fields this model does not know are kept in
    ``extra``.
    """

    id: str
    content_type: str
    content: Any = None
    timestamp: int | None = None
    topic: str | None = None
    group_id: str | None = None
    options: dict | None = None
    extra: dict = field(default_factory=dict)

    @property
    def is_group(self) -> bool:
        return bool(self.topic) or bool(self.group_id)


def make_text(text: str, *, mid: str | None = None, ts: int | None = None) -> Envelope:
    return Envelope(id=mid or msg_id(), content_type=CT_TEXT, content=text, timestamp=ts or now_ms())


def make_receipt(target_id: str) -> Envelope:
    return Envelope(
        id=msg_id(),
        content_type=CT_RECEIPT,
        content=Receipt(target_id=target_id),
        timestamp=now_ms(),
    )


def make_read(*read_ids: str) -> Envelope:
    return Envelope(
        id=msg_id(),
        content_type=CT_READ,
        content=Read(read_ids=tuple(read_ids)),
        timestamp=now_ms(),
    )


def make_contact_response(
    response_type: str | None,
    *,
    version: str | None = None,
    name: str | None = None,
    avatar: Avatar | None = None,
) -> Envelope:
    return Envelope(
        id=msg_id(),
        content_type=CT_CONTACT,
        content=ContactProfile(
            response_type=response_type,
            version=version,
            name=name,
            avatar=avatar,
        ),
        timestamp=now_ms(),
    )


_BASE_KEYS = frozenset({K_ID, K_CONTENT_TYPE, K_CONTENT, K_TS, K_TOPIC, K_GROUP_ID, K_OPTIONS})

_VARIANT_KEYS: dict[str, frozenset[str]] = {
    CT_RECEIPT: frozenset({K_TARGET_ID}),
    CT_READ: frozenset({K_READ_IDS}),
    CT_CONTACT: frozenset({K_REQUEST_TYPE, K_RESPONSE_TYPE, K_VERSION}),
}


def _opt_str(obj: dict, key: str) -> str | None:
    v = obj.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise TypeError(f"{key} must be a string")
    return v


def _contact_from_wire(obj: dict) -> ContactProfile:
    name = None
    avatar = None
    content = obj.get(K_CONTENT)
    if content is not None:
        if not isinstance(content, dict):
            raise TypeError("contact content must be an object")
        name = _opt_str(content, "name")
        raw_avatar = content.get("avatar")
        if raw_avatar is not None:
            if not isinstance(raw_avatar, dict):
                raise TypeError("avatar must be an object")
            data = raw_avatar.get("data")
            if not isinstance(data, str):
                raise TypeError("avatar data must be a string")
            avatar = Avatar(
                data=data,
                ext=_opt_str(raw_avatar, "ext"),
                type=_opt_str(raw_avatar, "type") or AVATAR_BASE64,
            )

    return ContactProfile(
        request_type=_opt_str(obj, K_REQUEST_TYPE),
        response_type=_opt_str(obj, K_RESPONSE_TYPE),
        version=_opt_str(obj, K_VERSION),
        name=name,
        avatar=avatar,
    )


def from_wire(obj: Any) -> Envelope:
    """Build an `Envelope` from a parsed JSON value.

    Raises TypeError/ValueError when the value is not a well-formed envelope.
    """
    if not isinstance(obj, dict):
        raise TypeError("envelope must be a JSON object")

    mid = obj.get(K_ID)
    if not isinstance(mid, str) or not mid:
        raise ValueError("missing envelope id")

    ct = obj.get(K_CONTENT_TYPE)
    if not isinstance(ct, str) or not ct:
        raise ValueError("missing envelope contentType")

    ts = obj.get(K_TS)
    if ts is not None:
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            raise TypeError("timestamp must be a number")
        ts = int(ts)

    options = obj.get(K_OPTIONS)
    if options is not None and not isinstance(options, dict):
        raise TypeError("options must be an object")

    if ct == CT_TEXT:
        content = obj.get(K_CONTENT)
        if not isinstance(content, str):
            raise TypeError("text content must be a string")
    elif ct == CT_RECEIPT:
        target = obj.get(K_TARGET_ID)
        if not isinstance(target, str) or not target:
            raise ValueError("receipt without targetID")
        content = Receipt(target_id=target)
    elif ct == CT_READ:
        ids = obj.get(K_READ_IDS)
        if not isinstance(ids, list) or not all(isinstance(x, str) for x in ids):
            raise TypeError("readIds must be a list of strings")
        content = Read(read_ids=tuple(ids))
    elif ct == CT_CONTACT:
        content = _contact_from_wire(obj)
    else:
        content = obj.get(K_CONTENT)

    known = _BASE_KEYS | _VARIANT_KEYS.get(ct, frozenset())
    extra = {k: v for k, v in obj.items() if k not in known}

    return Envelope(
        id=mid,
        content_type=ct,
        content=content,
        timestamp=ts,
        topic=_opt_str(obj, K_TOPIC),
        group_id=_opt_str(obj, K_GROUP_ID),
        options=options,
        extra=extra,
    )


def to_wire(env: Envelope) -> dict[str, Any]:
    obj: dict[str, Any] = dict(env.extra)
    obj[K_ID] = env.id
    obj[K_CONTENT_TYPE] = env.content_type
    if env.timestamp is not None:
        obj[K_TS] = env.timestamp
    if env.topic is not None:
        obj[K_TOPIC] = env.topic
    if env.group_id is not None:
        obj[K_GROUP_ID] = env.group_id
    if env.options is not None:
        obj[K_OPTIONS] = env.options

    c = env.content
    if isinstance(c, Receipt):
        obj[K_TARGET_ID] = c.target_id
    elif isinstance(c, Read):
        obj[K_READ_IDS] = list(c.read_ids)
    elif isinstance(c, ContactProfile):
        if c.request_type is not None:
            obj[K_REQUEST_TYPE] = c.request_type
        if c.response_type is not None:
            obj[K_RESPONSE_TYPE] = c.response_type
        if c.version is not None:
            obj[K_VERSION] = c.version
        body: dict[str, Any] = {}
        if c.name is not None:
            body["name"] = c.name
        if c.avatar is not None:
            avatar: dict[str, Any] = {"type": c.avatar.type, "data": c.avatar.data}
            if c.avatar.ext is not None:
                avatar["ext"] = c.avatar.ext
            body["avatar"] = avatar
        if body:
            obj[K_CONTENT] = body
    elif c is not None:
        obj[K_CONTENT] = c

    return obj
