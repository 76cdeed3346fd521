from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

from .constants import (
    COMMAND_PREFIX,
    DEFAULT_DEST_NAME,
    DEFAULT_MSG_HOLDING_S,
    DEFAULT_NUM_SUB_CLIENTS,
    DEFAULT_USAGE,
)


@dataclass(frozen=True)
class ProfileConfig:
    name: str | None = None
    avatar: str | None = None
    avatar_ext: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class TerminalConfig:
    config_path: str | None = None
    seed: str | None = None
    identifier: str = ""
    num_sub_clients: int = DEFAULT_NUM_SUB_CLIENTS
    original_client: bool = True
    authorize_path: str | None = None
    configdir: str | None = None
    dest_name: str = DEFAULT_DEST_NAME
    announce_on_start: bool = True
    msg_holding_s: float = float(DEFAULT_MSG_HOLDING_S)
    connect_timeout_s: float = 30.0
    command_prefix: str = COMMAND_PREFIX
    script_name: str = ""
    usage: str = DEFAULT_USAGE
    builtin_commands: bool = True
    commands_module: str | None = None
    profile: ProfileConfig = ProfileConfig()
    log_level: str = "INFO"
    log_rns_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: TerminalConfig, data: dict) -> TerminalConfig:
    """Overlay a parsed TOML document onto ``base``.

    ``[terminal]`` keys map onto fields directly, ``[profile]`` onto the
    profile descriptor, ``[logging]`` onto the ``log_*`` fields.
    """
    term = data.get("terminal") if isinstance(data, dict) else None
    if isinstance(term, dict):
        data = {**data, **term}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for key in ("level", "rns_level", "console", "file", "format", "datefmt"):
            if key in log_table:
                mapped[f"log_{key}"] = log_table.get(key)
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")
    allowed.discard("profile")

    updates: dict[str, Any] = {k: v for k, v in data.items() if k in allowed}

    prof = data.get("profile")
    if isinstance(prof, dict):
        known = {k: prof[k] for k in asdict(base.profile) if k in prof}
        cleaned = {k: (None if v == "" else v) for k, v in known.items()}
        updates["profile"] = replace(base.profile, **cleaned)

    for key in ("seed", "authorize_path", "configdir", "commands_module", "log_file", "log_datefmt"):
        if key in updates and updates[key] == "":
            updates[key] = None
    if "num_sub_clients" in updates:
        updates["num_sub_clients"] = int(updates["num_sub_clients"])
    for key in ("msg_holding_s", "connect_timeout_s"):
        if key in updates:
            updates[key] = float(updates[key])

    return replace(base, **updates) if updates else base
