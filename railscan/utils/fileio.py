"""Basic file IO helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

BINARY_SNIFF_BYTES = 8192


class SkippedFile(Exception):
    """Raised when a file is deliberately not scanned (binary, too large)."""


def read_yaml_file(path: Path) -> Any:
    """Return the parsed YAML if the file exists, otherwise ``None``."""

    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def read_source_file(path: Path, max_size: int) -> str:
    """Read a source file for matching.

    Raises ``SkippedFile`` for files above ``max_size`` bytes or that look
    binary, and lets ``OSError`` propagate for unreadable files.
    """

    size = path.stat().st_size
    if size > max_size:
        raise SkippedFile(f"file size {size} bytes exceeds limit of {max_size} bytes")
    data = path.read_bytes()
    if b"\x00" in data[:BINARY_SNIFF_BYTES]:
        raise SkippedFile("binary file")
    return data.decode("utf-8", errors="replace")
