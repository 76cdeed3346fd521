from __future__ import annotations

import os


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def normalize_address(value) -> str | None:
    """Normalize a peer address for comparison.

    Reticulum prints hashes as ``<abcd...>``; brackets, an optional ``0x``
    prefix and embedded whitespace are removed and the result is lowercased.
    Returns None for empty or non-string input.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex() or None
    if not isinstance(value, str):
        return None

    s = value.strip().lower()
    if s.startswith("<") and s.endswith(">"):
        s = s[1:-1]
    if s.startswith("0x"):
        s = s[2:]
    s = "".join(ch for ch in s if not ch.isspace())
    return s or None


def fmt_addr(addr: str | None, *, prefix: int = 12) -> str:
    if not addr:
        return "-"
    return addr if prefix <= 0 else addr[: min(prefix, len(addr))]
