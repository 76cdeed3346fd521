from __future__ import annotations

import os
from pathlib import Path


def default_rnsterm_dir() -> Path:
    override = os.environ.get("RNSTERM_HOME")
    if override:
        return Path(override)
    return Path.home() / ".rnsterm"


def default_config_path() -> Path:
    return default_rnsterm_dir() / "rnsterm.toml"


def default_authorized_path() -> Path:
    return default_rnsterm_dir() / "authorized"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        # Best-effort tightening; may fail on some filesystems.
        os.chmod(path, 0o700)
    except Exception:
        pass
