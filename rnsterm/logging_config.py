from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import TerminalConfig

_LEVELS: dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

# stdlib level -> RNS.loglevel (RNS.LOG_CRITICAL=0 ... RNS.LOG_EXTREME=7)
_RNS_LEVELS: list[tuple[int, int]] = [
    (logging.CRITICAL, 0),
    (logging.ERROR, 1),
    (logging.WARNING, 2),
    (logging.INFO, 4),
    (logging.DEBUG, 5),
]


def parse_level(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if not text:
        return default
    if text in _LEVELS:
        return _LEVELS[text]
    try:
        return int(text)
    except ValueError:
        return default


def rns_loglevel(level: int) -> int:
    for threshold, rns_level in _RNS_LEVELS:
        if level >= threshold:
            return rns_level
    return 7


def _file_handler(path: str) -> logging.Handler:
    p = Path(os.path.expanduser(path))
    p.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(p, encoding="utf-8")
    try:
        os.chmod(p, 0o600)
    except Exception:
        pass
    return handler


def configure_logging(
    cfg: TerminalConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Configure Python logging for rnsterm.

    Safe to call more than once; existing root handlers are replaced. An
    empty ``override_file`` disables file logging.
    """
    level = parse_level(override_level or cfg.log_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    log_file = override_file if override_file is not None else cfg.log_file
    if log_file and log_file.strip():
        handlers.append(_file_handler(log_file))

    fmt = (cfg.log_format or "").strip() or "%(asctime)s %(levelname)s %(name)s: %(message)s"
    formatter = logging.Formatter(fmt=fmt, datefmt=cfg.log_datefmt or None)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(level)

    logging.captureWarnings(True)


def configure_rns_logging(cfg: TerminalConfig) -> None:
    """Apply ``log_rns_level`` to Reticulum's own logger."""
    import RNS

    RNS.loglevel = rns_loglevel(parse_level(cfg.log_rns_level, logging.WARNING))
