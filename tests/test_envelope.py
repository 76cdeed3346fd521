from rnsterm.constants import CT_CONTACT, CT_READ, CT_RECEIPT, CT_TEXT
from rnsterm.envelope import (
    Avatar,
    Envelope,
    from_wire,
    make_contact_response,
    make_read,
    make_receipt,
    make_text,
    to_wire,
)


def test_make_text_has_fresh_id_and_timestamp() -> None:
    a = make_text("one")
    b = make_text("two")
    assert a.id and b.id and a.id != b.id
    assert a.content_type == CT_TEXT
    assert isinstance(a.timestamp, int) and a.timestamp > 0


def test_receipt_wire_shape() -> None:
    obj = to_wire(make_receipt("m-1"))
    assert obj["contentType"] == CT_RECEIPT
    assert obj["targetID"] == "m-1"
    assert "content" not in obj


def test_read_wire_shape() -> None:
    obj = to_wire(make_read("m-1"))
    assert obj["contentType"] == CT_READ
    assert obj["readIds"] == ["m-1"]


def test_full_contact_response_wire_shape() -> None:
    env = make_contact_response("full", version="2", name="box", avatar=Avatar(data="aGk=", ext="png"))
    obj = to_wire(env)
    assert obj["contentType"] == CT_CONTACT
    assert obj["responseType"] == "full"
    assert obj["version"] == "2"
    assert obj["content"] == {"name": "box", "avatar": {"type": "base64", "data": "aGk=", "ext": "png"}}


def test_header_contact_response_has_no_body() -> None:
    obj = to_wire(make_contact_response("header", version="2"))
    assert obj["responseType"] == "header"
    assert "content" not in obj


def test_group_detection() -> None:
    assert from_wire({"id": "m", "contentType": "text", "content": "x", "groupId": "g"}).is_group
    assert not from_wire({"id": "m", "contentType": "text", "content": "x", "topic": ""}).is_group
    assert not Envelope(id="m", content_type="text", content="x").is_group


def test_float_timestamp_is_truncated() -> None:
    env = from_wire({"id": "m", "contentType": "text", "content": "x", "timestamp": 1730000000000.0})
    assert env.timestamp == 1730000000000
