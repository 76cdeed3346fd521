import base64
import json
import logging
import threading

from conftest import PEER, SELF_ADDR, SELF_ID, STRANGER, sent, sent_types, text_msg

from rnsterm.commands import CommandSpec, builtin_commands
from rnsterm.config import ProfileConfig
from rnsterm.constants import ERROR_PREFIX, TEXT_INTERNAL_ERROR, TEXT_PERMISSION_DENIED


def _route(term, src, payload) -> None:
    term.router.handle_message(src, payload)


def test_echo_command_is_acknowledged_then_answered(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    _route(term, PEER, text_msg("/echo hello", mid="m-1"))

    out = sent(term)
    assert sent_types(term) == ["receipt", "read", "text"]
    assert out[0]["targetID"] == "m-1"
    assert out[1]["readIds"] == ["m-1"]
    assert out[2]["content"] == "hello"
    assert all(dest == PEER for dest, _ in term.connection.client.sent)

    ids = {obj["id"] for obj in out}
    assert len(ids) == 3
    assert "m-1" not in ids
    assert all(isinstance(obj["timestamp"], int) for obj in out)


def test_malformed_payloads_get_no_reply(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    for raw in ["not json", "[]", '{"contentType": "text"}', '{"id": "x", "contentType": "text", "content": 5}']:
        _route(term, PEER, raw)

    assert sent(term) == []
    assert term.stats.get("msgs_bad") == 4


def test_acknowledgments_are_not_acknowledged(make_terminal) -> None:
    term = make_terminal()
    _route(term, PEER, json.dumps({"id": "r1", "contentType": "receipt", "targetID": "t"}))
    _route(term, PEER, json.dumps({"id": "r2", "contentType": "read", "readIds": ["t"]}))

    assert sent(term) == []
    assert term.stats.get("acks_in") == 2


def test_plain_text_is_acknowledged_only(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    _route(term, PEER, text_msg("hello there"))
    assert sent_types(term) == ["receipt", "read"]


def test_unauthorized_sender_is_denied(make_terminal) -> None:
    calls = []
    spec = CommandSpec("reboot", "Reboot", lambda args, src, sender: calls.append(src))
    term = make_terminal(commands=[spec])
    _route(term, STRANGER, text_msg("/reboot"))

    assert calls == []
    assert sent_types(term) == ["receipt", "read", "text"]
    assert sent(term)[2]["content"] == ERROR_PREFIX + TEXT_PERMISSION_DENIED
    assert term.connection.client.sent[2][0] == STRANGER
    assert term.stats.get("denied") == 1


def test_unauthorized_plain_text_is_denied_too(make_terminal) -> None:
    term = make_terminal()
    _route(term, STRANGER, text_msg("hi"))
    assert sent(term)[-1]["content"] == ERROR_PREFIX + TEXT_PERMISSION_DENIED


def test_empty_allow_list_denies_everyone(make_terminal) -> None:
    term = make_terminal(authorized=(), commands=builtin_commands())
    _route(term, PEER, text_msg("/echo hi"))

    assert sent_types(term) == ["receipt", "read", "text"]
    assert sent(term)[2]["content"] == ERROR_PREFIX + TEXT_PERMISSION_DENIED


def test_unauthorized_hook_replaces_standard_reply(make_terminal) -> None:
    seen = []

    def hook(src, sender):
        seen.append(src)
        sender.send_result(src, "ask an operator for access")

    term = make_terminal(commands=builtin_commands(), on_unauthorized=hook)
    _route(term, STRANGER, text_msg("/echo hi"))

    assert seen == [STRANGER]
    assert sent_types(term) == ["receipt", "read", "text"]
    assert sent(term)[2]["content"] == "ask an operator for access"


def test_group_messages_are_acknowledged_but_not_executed(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    _route(term, PEER, text_msg("/echo hi", mid="g1", topic="lobby"))
    _route(term, STRANGER, text_msg("/echo hi", mid="g2", groupId="ops"))

    assert sent_types(term) == ["receipt", "read", "receipt", "read"]
    assert term.stats.get("group_ignored") == 2


def test_other_content_types_are_acknowledged_only(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    _route(term, PEER, json.dumps({"id": "p1", "contentType": "media", "content": "![](abc)"}))
    _route(term, STRANGER, json.dumps({"id": "p2", "contentType": "file", "content": {"name": "x"}}))

    assert sent_types(term) == ["receipt", "read", "receipt", "read"]


def test_full_contact_request_gets_name_and_avatar(make_terminal, tmp_path) -> None:
    avatar = tmp_path / "avatar.png"
    avatar.write_bytes(b"\x89PNG fake")
    profile = ProfileConfig(name="ops-terminal", avatar=str(avatar), avatar_ext="png", version="3")
    term = make_terminal(profile=profile)

    _route(term, STRANGER, json.dumps({"id": "c1", "contentType": "contact", "requestType": "full"}))

    out = sent(term)
    assert len(out) == 1
    reply = out[0]
    assert reply["contentType"] == "contact"
    assert reply["responseType"] == "full"
    assert reply["version"] == "3"
    assert reply["content"]["name"] == "ops-terminal"
    assert reply["content"]["avatar"] == {
        "type": "base64",
        "data": base64.b64encode(b"\x89PNG fake").decode("ascii"),
        "ext": "png",
    }


def test_header_contact_request_gets_version_only(make_terminal) -> None:
    term = make_terminal(profile=ProfileConfig(name="ops-terminal", version="3"))
    _route(term, PEER, json.dumps({"id": "c1", "contentType": "contact", "requestType": "header"}))

    reply = sent(term)[0]
    assert reply["responseType"] == "header"
    assert reply["version"] == "3"
    assert "content" not in reply


def test_full_contact_request_without_avatar(make_terminal) -> None:
    term = make_terminal(profile=ProfileConfig(name="ops-terminal"))
    _route(term, PEER, json.dumps({"id": "c1", "contentType": "contact", "requestType": "full"}))
    assert sent(term)[0]["content"] == {"name": "ops-terminal"}


def test_handler_error_is_reported_to_sender(make_terminal) -> None:
    def handler(args, src, sender):
        raise ValueError("bad arg")

    term = make_terminal(commands=[CommandSpec("fail", "Fails", handler)])
    _route(term, PEER, text_msg("/fail"))

    assert sent_types(term) == ["receipt", "read", "text"]
    content = sent(term)[2]["content"]
    assert content.startswith(ERROR_PREFIX)
    assert "bad arg" in content


def test_unknown_command_gets_usage(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    _route(term, PEER, text_msg("/frobnicate"))

    content = sent(term)[2]["content"]
    assert content.startswith(ERROR_PREFIX + "Error: ")
    assert "usage:" in content
    assert "echo" in content


def test_builder_failure_becomes_internal_error(make_terminal) -> None:
    def builder(parser, src, sender):
        raise RuntimeError("broken builder")

    spec = CommandSpec("x", "Broken", lambda a, s, m: None, builder=builder)
    term = make_terminal(commands=[spec])
    _route(term, PEER, text_msg("/x"))

    assert sent(term)[-1]["content"] == ERROR_PREFIX + TEXT_INTERNAL_ERROR
    assert term.stats.get("internal_errors") == 1


def test_failure_to_send_error_reply_is_contained(make_terminal) -> None:
    term = make_terminal()
    term.connection.client.fail_types = {"text"}

    _route(term, STRANGER, text_msg("/anything"))

    assert sent_types(term) == ["receipt", "read"]
    assert term.stats.get("internal_errors") == 1


def test_receipt_failure_still_sends_read_and_runs_command(make_terminal, caplog) -> None:
    term = make_terminal(commands=builtin_commands())
    term.connection.client.fail_types = {"receipt"}

    with caplog.at_level(logging.WARNING, logger="rnsterm.messages"):
        _route(term, PEER, text_msg("/echo still here"))

    assert sent_types(term) == ["read", "text"]
    assert sent(term)[0]["readIds"] == ["m-1"]
    assert sent(term)[1]["content"] == "still here"
    assert "Error sending receipt" in caplog.text
    assert term.stats.get("acks_failed") == 1


def test_binary_payload_is_ignored(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    _route(term, PEER, b"\x00\x01\x02")
    assert sent(term) == []


def test_messages_from_self_are_ignored(make_terminal) -> None:
    term = make_terminal(commands=builtin_commands())
    _route(term, SELF_ADDR, text_msg("/echo loop"))
    _route(term, SELF_ID.upper(), text_msg("/echo loop"))
    assert sent(term) == []


def test_inbound_messages_run_on_worker_pool(make_terminal) -> None:
    done = threading.Event()
    threads = []

    def handler(args, src, sender):
        threads.append(threading.current_thread().name)
        sender.send_result(src, "pong")
        done.set()

    term = make_terminal(commands=[CommandSpec("ping", "Ping", handler)])
    term.connection.client.deliver(PEER, text_msg("/ping"))

    assert done.wait(2.0)
    assert sent_types(term) == ["receipt", "read", "text"]
    assert threads[0].startswith("rnsterm-msg")


def test_read_failure_is_logged_and_swallowed(make_terminal, caplog) -> None:
    term = make_terminal(commands=builtin_commands())
    term.connection.client.fail_types = {"read"}

    with caplog.at_level(logging.WARNING, logger="rnsterm.messages"):
        _route(term, PEER, text_msg("/echo ok"))

    assert sent_types(term) == ["receipt", "text"]
    assert "Error sending read" in caplog.text
    assert term.stats.get("acks_sent") == 1
    assert term.stats.get("acks_failed") == 1
