import json

import pytest

from rnsterm.config import ProfileConfig, TerminalConfig
from rnsterm.service import Terminal
from rnsterm.trust import AllowList

SEED = "11" * 64
SELF_ADDR = "ab" * 16
SELF_ID = "cd" * 16
PEER = "5f3a9c0e1b2d4f6a8c0e1b2d4f6a8c0e"
STRANGER = "0123456789abcdef0123456789abcdef"


class FakeClient:
    """In-memory stand-in for the Reticulum transport handle."""

    def __init__(
        self,
        *,
        seed,
        identifier="",
        num_sub_clients=4,
        original_client=True,
        fail=False,
        silent=False,
        **options,
    ):
        self.seed = seed
        self.identifier = identifier
        self.num_sub_clients = num_sub_clients
        self.original_client = original_client
        self.options = options
        self.fail = fail
        self.silent = silent
        self.addr = None
        self.closed = False
        self.sent: list[tuple[str, dict]] = []
        self.fail_types: set[str] = set()
        self._connected = None
        self._failed = None
        self._message = None

    def on_connect(self, callback):
        self._connected = callback

    def on_connect_failed(self, callback):
        self._failed = callback

    def on_message(self, callback):
        self._message = callback

    def start(self):
        if self.silent:
            return
        if self.fail:
            self._failed(RuntimeError("no interfaces"))
            return
        self.addr = SELF_ADDR
        self._connected({"addr": SELF_ADDR, "id": SELF_ID})

    def send(self, dest, payload):
        obj = json.loads(payload)
        if obj.get("contentType") in self.fail_types or "*" in self.fail_types:
            raise OSError("link down")
        self.sent.append((dest, obj))

    def close(self):
        self.closed = True

    def deliver(self, src, payload):
        self._message(src, payload)


def text_msg(content, mid="m-1", **extra):
    obj = {"id": mid, "contentType": "text", "content": content, "timestamp": 1730000000000}
    obj.update(extra)
    return json.dumps(obj)


@pytest.fixture
def make_terminal(tmp_path):
    made: list[Terminal] = []

    def _make(
        *,
        authorized=(PEER,),
        commands=(),
        on_unauthorized=None,
        profile=None,
        **client_kwargs,
    ) -> Terminal:
        cfg = TerminalConfig(
            seed=SEED,
            authorize_path=str(tmp_path / "authorized"),
            profile=profile or ProfileConfig(),
        )
        term = Terminal(
            cfg,
            commands=commands,
            on_unauthorized=on_unauthorized,
            allow_list=AllowList.from_addresses(authorized),
            client_factory=lambda **kw: FakeClient(**kw, **client_kwargs),
        )
        term.connect(timeout=1.0)
        made.append(term)
        return term

    yield _make

    for term in made:
        term.disconnect()


def sent(term: Terminal) -> list[dict]:
    return [obj for _, obj in term.connection.client.sent]


def sent_types(term: Terminal) -> list[str]:
    return [obj["contentType"] for obj in sent(term)]


class RecordingSender:
    def __init__(self):
        self.results: list[tuple[str, str]] = []
        self.errors: list[tuple[str, str]] = []

    def send_result(self, dest, message):
        self.results.append((dest, message))

    def send_error(self, dest, message):
        self.errors.append((dest, message))
