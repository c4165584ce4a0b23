"""Inline marker and path-glob suppression of raw hits."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .result import RawHit, ScanWarning, UnknownSuppressionWarning
from .utils.globs import match_path

MARKER_PATTERN = re.compile(r"railscan:ignore(?![\w-])(?:\[(?P<rules>[^\]]*)\])?(?:\s+--\s+(?P<reason>\S.*))?")
COMMENT_CLOSERS = ("-->", "%>", "*/")
COMMENT_ONLY_PREFIX = re.compile(r"\s*(?:#+|<%-?#|-#|//|/\*+|<!--|/)?\s*")


@dataclass(frozen=True)
class PathSuppression:
    """Suppress every hit under paths matching ``glob``."""

    glob: str
    reason: str = ""

    def matches(self, rel_path: str) -> bool:
        return match_path(rel_path, self.glob)

    def describe(self) -> str:
        text = f"path matches {self.glob!r}"
        return f"{text}: {self.reason}" if self.reason else text


@dataclass(frozen=True)
class InlineMarker:
    """A ``railscan:ignore`` comment found in a source file.

    A marker covers hits on its own line. A ``standalone`` marker, alone on a
    comment line, also covers the line directly below it. An empty
    ``rule_ids`` set covers every rule.
    """

    path: str
    line_number: int
    rule_ids: FrozenSet[str] = frozenset()
    reason: str = ""
    standalone: bool = False

    def covers(self, hit: RawHit) -> bool:
        if hit.file_path != self.path:
            return False
        reach = (self.line_number, self.line_number + 1) if self.standalone else (self.line_number,)
        if hit.line_number not in reach:
            return False
        return not self.rule_ids or hit.rule_id in self.rule_ids

    def describe(self) -> str:
        scope = ", ".join(sorted(self.rule_ids)) if self.rule_ids else "all rules"
        text = f"inline marker at line {self.line_number} ({scope})"
        return f"{text}: {self.reason}" if self.reason else text


@dataclass
class Suppressions:
    """All suppressions that apply to one scan."""

    paths: Tuple[PathSuppression, ...] = ()
    markers: Dict[Tuple[str, int], List[InlineMarker]] = field(default_factory=dict)

    def add_markers(self, markers: Iterable[InlineMarker]) -> None:
        for marker in markers:
            self.markers.setdefault((marker.path, marker.line_number), []).append(marker)

    def iter_markers(self) -> Iterable[InlineMarker]:
        for key in sorted(self.markers):
            yield from self.markers[key]

    def reason_for(self, hit: RawHit) -> Optional[str]:
        """Return why ``hit`` is suppressed, or ``None`` if it stays active."""

        for line_number in (hit.line_number, hit.line_number - 1):
            for marker in self.markers.get((hit.file_path, line_number), ()):
                if marker.covers(hit):
                    return marker.describe()
        return self.path_reason(hit.file_path)

    def path_reason(self, rel_path: str) -> Optional[str]:
        for suppression in self.paths:
            if suppression.matches(rel_path):
                return suppression.describe()
        return None


@dataclass
class Resolution:
    active: List[RawHit] = field(default_factory=list)
    suppressed: List[Tuple[RawHit, str]] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)


def parse_inline_markers(path: str, lines: Sequence[str]) -> List[InlineMarker]:
    """Find ``railscan:ignore`` markers, optionally ``railscan:ignore[id, id] -- reason``."""

    markers: List[InlineMarker] = []
    for index, line in enumerate(lines):
        if "railscan:ignore" not in line:
            continue
        found = MARKER_PATTERN.search(line)
        if found is None:
            continue
        raw_rules = found.group("rules") or ""
        rule_ids = frozenset(part.strip() for part in raw_rules.split(",") if part.strip())
        markers.append(
            InlineMarker(
                path=path,
                line_number=index + 1,
                rule_ids=rule_ids,
                reason=_clean_reason(found.group("reason") or ""),
                standalone=COMMENT_ONLY_PREFIX.fullmatch(line[: found.start()]) is not None,
            )
        )
    return markers


def _clean_reason(text: str) -> str:
    text = text.strip()
    for closer in COMMENT_CLOSERS:
        if text.endswith(closer):
            text = text[: -len(closer)].rstrip()
    return text


def resolve(
    hits: Iterable[RawHit],
    suppressions: Suppressions,
    known_rule_ids: Optional[Iterable[str]] = None,
) -> Resolution:
    """Partition ``hits`` into active and suppressed.

    Inline markers are consulted before path globs; either one suppresses.
    Markers naming a rule id missing from ``known_rule_ids`` still apply, but
    each unknown id is reported as a warning unless the marker sits in a
    path-suppressed file.
    """

    resolution = Resolution()
    for hit in hits:
        reason = suppressions.reason_for(hit)
        if reason is None:
            resolution.active.append(hit)
        else:
            resolution.suppressed.append((hit, reason))

    if known_rule_ids is not None:
        known = frozenset(known_rule_ids)
        for marker in suppressions.iter_markers():
            if suppressions.path_reason(marker.path) is not None:
                continue
            for rule_id in sorted(marker.rule_ids - known):
                resolution.warnings.append(
                    UnknownSuppressionWarning(
                        path=marker.path,
                        line_number=marker.line_number,
                        rule_id=rule_id,
                        message=f"unknown rule referenced by suppression marker: {rule_id}",
                    )
                )
    return resolution
