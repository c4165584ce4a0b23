"""Source tree traversal helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator, Tuple

from .globs import first_match

DEFAULT_IGNORES = (
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "vendor/bundle",
    "tmp",
    "log",
    "coverage",
)


def iter_code_files(root: Path, ignore: Iterable[str] = ()) -> Iterator[Tuple[Path, str]]:
    """Yield ``(path, relative_posix_path)`` for files beneath ``root``.

    Ignored directories are pruned before descending so large vendored trees are
    never listed. Results are yielded in sorted order for reproducible runs.
    """

    patterns = tuple(ignore)
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        kept = []
        for name in sorted(dirnames):
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if first_match(rel, patterns) is None:
                kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if first_match(rel, patterns) is not None:
                continue
            yield current / name, rel
