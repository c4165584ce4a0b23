"""Apply a single rule to a single source file."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from .result import MAX_MATCHED_TEXT, MAX_SNIPPET, RawHit, bounded
from .rules import Pattern, Rule

DEFAULT_WINDOW = 3


class MatchTimeout(Exception):
    """Raised when matching runs past its deadline."""

    def __init__(self, rule_id: str, line_number: int) -> None:
        super().__init__(f"rule {rule_id} exceeded its time budget at line {line_number}")
        self.rule_id = rule_id
        self.line_number = line_number


@dataclass
class SourceFile:
    """Text of one file plus its path relative to the scan root."""

    path: str
    text: str
    _lines: Optional[List[str]] = field(default=None, repr=False, compare=False)

    @property
    def lines(self) -> List[str]:
        if self._lines is None:
            self._lines = self.text.splitlines()
        return self._lines


class Matcher:
    """Two-phase matcher: candidate patterns first, then safe-code exclusions.

    Single-line patterns see one line at a time. Patterns marked ``multiline``
    see a window of up to ``window`` lines starting at the current line, and
    only count when the match begins on that first line, so each call that
    spans lines is reported once, at the line where it starts.
    """

    def __init__(self, window: int = DEFAULT_WINDOW) -> None:
        if window < 1:
            raise ValueError("window must be at least 1")
        self.window = window

    def match(
        self,
        rule: Rule,
        source: Union[SourceFile, str],
        deadline: Optional[float] = None,
    ) -> List[RawHit]:
        if isinstance(source, str):
            source = SourceFile(path="", text=source)
        lines = source.lines
        hits: List[RawHit] = []

        for index, line in enumerate(lines):
            if deadline is not None and time.monotonic() > deadline:
                raise MatchTimeout(rule.id, index + 1)
            window_text: Optional[str] = None
            if rule.has_multiline:
                window_text = "\n".join(lines[index : index + self.window])
            hit = self._match_line(rule, source.path, index + 1, line, window_text)
            if hit is not None:
                hits.append(hit)
        return hits

    def _match_line(
        self,
        rule: Rule,
        path: str,
        line_number: int,
        line: str,
        window_text: Optional[str],
    ) -> Optional[RawHit]:
        for pattern in rule.match_patterns:
            spans_lines = pattern.multiline and window_text is not None
            text = window_text if spans_lines else line
            found = pattern.search(text)
            if found is None:
                continue
            if spans_lines and found.start() >= len(line):
                continue
            if self._excluded(rule.exclude_patterns, text):
                return None
            start = found.start() + 1
            end = min(found.end(), len(line)) + 1
            return RawHit(
                rule_id=rule.id,
                file_path=path,
                line_number=line_number,
                matched_text=bounded(found.group(0), MAX_MATCHED_TEXT),
                column_span=(start, end),
                snippet=bounded(line, MAX_SNIPPET),
            )
        return None

    @staticmethod
    def _excluded(patterns: Sequence[Pattern], text: str) -> bool:
        # Exclusions see exactly the text the candidate pattern matched against.
        return any(pattern.search(text) for pattern in patterns)


def match(rule: Rule, source: Union[SourceFile, str], deadline: Optional[float] = None) -> List[RawHit]:
    """Match ``rule`` against ``source`` with the default window."""

    return Matcher().match(rule, source, deadline=deadline)
