"""Glob matching for scan-root relative POSIX paths."""

from __future__ import annotations

from fnmatch import fnmatchcase
from functools import lru_cache
from itertools import product
from typing import Iterable, Tuple


def _normalize(pattern: str) -> str:
    pattern = pattern.strip().replace("\\", "/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    while pattern.endswith("/**") or pattern.endswith("/"):
        pattern = pattern[:-3] if pattern.endswith("/**") else pattern[:-1]
    return pattern


@lru_cache(maxsize=512)
def _expand(pattern: str) -> Tuple[str, ...]:
    """Spell out every way a ``**`` segment can also stand for zero directories."""

    parts = pattern.split("/")
    choices = [((part,), ()) if part == "**" else ((part,),) for part in parts]
    variants = []
    for combo in product(*choices):
        variant = "/".join(part for chosen in combo for part in chosen)
        if variant and variant not in variants:
            variants.append(variant)
    return tuple(variants)


def _match_one(parts: list, pattern: str) -> bool:
    if "/" not in pattern:
        return any(fnmatchcase(part, pattern) for part in parts)
    for end in range(len(parts), 0, -1):
        if fnmatchcase("/".join(parts[:end]), pattern):
            return True
    return False


def match_path(rel_path: str, pattern: str) -> bool:
    """Return True if ``rel_path`` or one of its parent directories matches.

    Patterns without a slash match any single path component (so ``node_modules``
    or ``*.min.js`` behave like ignore-file entries). Patterns with a slash are
    matched against the whole path and every leading directory prefix. A ``**``
    segment matches zero or more directories, so ``app/**/*.rb`` also matches
    ``app/x.rb``.
    """

    pattern = _normalize(pattern)
    if not pattern:
        return False
    parts = rel_path.replace("\\", "/").strip("/").split("/")
    return any(_match_one(parts, variant) for variant in _expand(pattern))


def first_match(rel_path: str, patterns: Iterable[str]) -> str | None:
    for pattern in patterns:
        if match_path(rel_path, pattern):
            return pattern
    return None
