from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

from .commands import CommandSpec, builtin_commands, load_commands_module
from .config import TerminalConfig, apply_config_data, load_toml
from .constants import AUTHORIZED_TEMPLATE
from .errors import ConfigurationError, ConnectFailed
from .logging_config import configure_logging, configure_rns_logging
from .paths import default_authorized_path, default_config_path, ensure_private_dir
from .service import Terminal
from .stats import StatsManager


def _write_default_config(config_path: str, authorized_path: str, seed: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    content = f"""# rnsterm configuration (TOML)
#
# This file was created on first run.
# Edit it, then start rnsterm again.

[terminal]

# Private key material of this terminal's Reticulum identity (hex).
# Keep it secret: whoever holds it can impersonate the terminal.
seed = {seed!r}

# Optional address label. When set, the terminal listens on an extra
# destination with this aspect; original_client keeps the bare one as well.
identifier = ""
original_client = true

# Number of worker threads handling inbound messages concurrently.
num_sub_clients = 4

# Allow-list of peer identity hashes, one per line.
# An empty allow-list denies every sender.
authorize_path = {authorized_path!r}

# Optional: Reticulum configuration directory.
# If left unset, Reticulum will choose its default (usually ~/.reticulum).
configdir = ""

# Destination name to listen on.
dest_name = "rnsterm"
announce_on_start = true

# How long replies to a peer without an active link are held (seconds).
msg_holding_s = 8640000.0

# Seconds to wait for Reticulum to come up.
connect_timeout_s = 30.0

# Command surface.
command_prefix = "/"
usage = "/<command> [options]"

# Install the echo/whoami/stats commands.
builtin_commands = true

# Optional dotted module path exporting a COMMANDS list of command descriptors.
commands_module = ""

[profile]

# Answered to contact-profile requests.
name = "rnsterm"
avatar = ""
avatar_ext = "png"
version = "1"

[logging]

# Log level for rnsterm itself.
level = "INFO"

# Log level for Reticulum.
rns_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)
    try:
        os.chmod(config_path, 0o600)
    except Exception:
        pass


def _ensure_first_run_files(config_path: str, authorized_path: str) -> bool:
    """Write the config (with a fresh seed) and allow-list template if missing.

    Returns True when the config file was created.
    """
    if os.path.exists(config_path):
        return False

    from .transport import new_seed

    _write_default_config(config_path, authorized_path, new_seed())

    if not os.path.exists(authorized_path):
        storage_dir = os.path.dirname(authorized_path)
        if storage_dir:
            ensure_private_dir(Path(storage_dir))
        with open(authorized_path, "w", encoding="utf-8") as f:
            f.write(AUTHORIZED_TEMPLATE)

    return True


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rnsterm", description="Run a slash-command terminal on Reticulum")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--authorized",
        default=None,
        help="Path to the allow-list file (created on first run)",
    )
    p.add_argument("--configdir", default=None, help="Reticulum config directory")
    p.add_argument("--identifier", default=None, help="Address label for this terminal")
    p.add_argument(
        "--commands",
        default=None,
        help="Dotted module path exporting COMMANDS",
    )
    p.add_argument(
        "--no-builtins",
        action="store_true",
        help="Do not install the built-in echo/whoami/stats commands",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def load_config(args: argparse.Namespace) -> TerminalConfig:
    config_path = str(args.config)
    cfg = TerminalConfig(config_path=config_path)
    cfg = apply_config_data(cfg, load_toml(config_path))

    if args.authorized is not None:
        cfg = replace(cfg, authorize_path=str(args.authorized))
    if args.configdir is not None:
        cfg = replace(cfg, configdir=args.configdir)
    if args.identifier is not None:
        cfg = replace(cfg, identifier=args.identifier)
    if args.commands is not None:
        cfg = replace(cfg, commands_module=args.commands or None)
    if args.no_builtins:
        cfg = replace(cfg, builtin_commands=False)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) or None)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    authorized_path = str(args.authorized or default_authorized_path())

    if _ensure_first_run_files(config_path, authorized_path):
        print(
            "Created default rnsterm files. Edit them before starting:\n"
            f"- Config:     {config_path}\n"
            f"- Authorized: {authorized_path}\n"
            "\nThen re-run rnsterm.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = load_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)
    configure_rns_logging(cfg)

    stats = StatsManager()
    commands: list[CommandSpec] = []
    try:
        if cfg.commands_module:
            commands.extend(load_commands_module(cfg.commands_module))
        if cfg.builtin_commands:
            commands.extend(builtin_commands(stats))
        terminal = Terminal(cfg, commands=commands, stats=stats)
        terminal.connect()
    except (ConfigurationError, ConnectFailed) as e:
        print(f"rnsterm: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    terminal.run_forever()


if __name__ == "__main__":
    main()
