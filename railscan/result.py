"""Core result data structures for the scanner."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Dict, List, Optional, Tuple

from .severity import SEVERITY_ORDER, Severity

if TYPE_CHECKING:
    from .rules import Rule

MAX_MATCHED_TEXT = 200
MAX_SNIPPET = 300


def bounded(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


@dataclass(frozen=True)
class RawHit:
    """An unfiltered pattern match, before suppression and deduplication."""

    rule_id: str
    file_path: str
    line_number: int
    matched_text: str
    column_span: Optional[Tuple[int, int]] = None
    snippet: str = ""


class FindingStatus(str, Enum):
    ACTIVE = "active"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class Finding:
    """Capture a single deduplicated, identity-stable result."""

    finding_id: str
    rule: "Rule"
    file_path: str
    line_number: int
    matched_text: str
    snippet: str = ""
    column_span: Optional[Tuple[int, int]] = None
    status: FindingStatus = FindingStatus.ACTIVE
    suppression_reason: Optional[str] = None

    @property
    def rule_id(self) -> str:
        return self.rule.id

    @property
    def severity(self) -> Severity:
        return self.rule.severity

    @property
    def location(self) -> str:
        if self.column_span:
            return f"{self.file_path}:{self.line_number}:{self.column_span[0]}"
        return f"{self.file_path}:{self.line_number}"

    def to_dict(self) -> Dict[str, object]:
        column, end_column = self.column_span if self.column_span else (None, None)
        return {
            "id": self.finding_id,
            "rule_id": self.rule.id,
            "title": self.rule.label,
            "category": self.rule.category.value,
            "severity": self.rule.severity.value,
            "path": self.file_path,
            "line": self.line_number,
            "column": column,
            "end_column": end_column,
            "matched_text": self.matched_text,
            "snippet": self.snippet,
            "remediation": self.rule.remediation,
            "status": self.status.value,
            "suppression_reason": self.suppression_reason,
        }


@dataclass(frozen=True)
class ScanWarning:
    """A non-fatal condition recorded during a scan."""

    kind: ClassVar[str] = "warning"

    path: str
    message: str
    rule_id: Optional[str] = None
    line_number: Optional[int] = None

    def sort_key(self) -> Tuple[str, int, str, str]:
        return (self.path, self.line_number or 0, self.kind, self.message)

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"kind": self.kind}
        data.update(asdict(self))
        return data

    def __str__(self) -> str:
        where = f"{self.path}:{self.line_number}" if self.line_number else self.path
        return f"[{self.kind}] {where}: {self.message}"


@dataclass(frozen=True)
class IOWarning(ScanWarning):
    """File could not be read, or was skipped as binary or oversized."""

    kind: ClassVar[str] = "io"


@dataclass(frozen=True)
class MatchTimeoutWarning(ScanWarning):
    """A file exceeded its matching time budget."""

    kind: ClassVar[str] = "match-timeout"


@dataclass(frozen=True)
class UnknownSuppressionWarning(ScanWarning):
    """An inline marker named a rule id that is not in the rule set."""

    kind: ClassVar[str] = "unknown-suppression"


@dataclass
class Summary:
    """Aggregate active finding counts by severity."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0

    def increment(self, severity: Severity) -> None:
        attr = severity.value
        setattr(self, attr, getattr(self, attr) + 1)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    def as_rows(self) -> List[Tuple[str, int]]:
        """Return severity/count pairs ordered for reporting."""

        return [(severity.value, getattr(self, severity.value)) for severity in SEVERITY_ORDER]

    @property
    def total(self) -> int:
        return sum(getattr(self, severity.value) for severity in SEVERITY_ORDER)


@dataclass
class ScanResult:
    """Bundle findings, warnings, and run statistics."""

    findings: List[Finding] = field(default_factory=list)
    suppressed: List[Finding] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)
    files_scanned: int = 0
    duration: float = 0.0
    partial: bool = False
    fail_on: Severity = Severity.LOW

    @property
    def summary(self) -> Summary:
        summary = Summary()
        for finding in self.findings:
            summary.increment(finding.severity)
        return summary

    def failing_findings(self, threshold: Severity) -> List[Finding]:
        return [finding for finding in self.findings if finding.severity.at_least(threshold)]

    def passed(self, threshold: Optional[Severity] = None) -> bool:
        """Return True when no active finding reaches ``threshold`` (defaults to ``fail_on``)."""

        return not self.failing_findings(threshold or self.fail_on)

    def exit_code(self, threshold: Optional[Severity] = None, fail_on_warnings: bool = False) -> int:
        if not self.passed(threshold):
            return 1
        if fail_on_warnings and self.warnings:
            return 1
        return 0

    def to_dict(self, threshold: Optional[Severity] = None) -> Dict[str, object]:
        return {
            "summary": self.summary.to_dict(),
            "findings": [finding.to_dict() for finding in self.findings],
            "suppressed": [finding.to_dict() for finding in self.suppressed],
            "warnings": [warning.to_dict() for warning in self.warnings],
            "files_scanned": self.files_scanned,
            "duration": round(self.duration, 3),
            "partial": self.partial,
            "passed": self.passed(threshold),
        }


def format_summary_table(result: ScanResult, threshold: Optional[Severity] = None) -> str:
    """Create a human-readable summary table for console output."""

    lines: List[str] = []
    lines.append("Scan Summary")
    lines.append("=" * 40)
    header = f"{'Severity':<10} | {'Count':>5}"
    lines.append(header)
    lines.append("-" * len(header))
    summary = result.summary
    for severity, count in summary.as_rows():
        lines.append(f"{severity:<10} | {count:>5}")
    lines.append("-" * len(header))
    status = "PASS" if result.passed(threshold) else "FAIL"
    if result.partial:
        status += " (partial result, scan was cancelled)"
    lines.append(f"Status    : {status}")
    lines.append(f"Findings  : {summary.total}")
    lines.append(f"Suppressed: {len(result.suppressed)}")
    lines.append(f"Files     : {result.files_scanned}")
    lines.append(f"Warnings  : {len(result.warnings)}")
    return "\n".join(lines)


def format_findings(findings: List[Finding], heading: str) -> str:
    lines: List[str] = [heading, "-" * 40]
    for finding in findings:
        lines.append(f"[{finding.severity.value.upper()}] {finding.rule.label} ({finding.rule_id})")
        lines.append(f"  Location: {finding.location}")
        if finding.snippet:
            lines.append(f"  Code    : {finding.snippet}")
        if finding.suppression_reason:
            lines.append(f"  Reason  : {finding.suppression_reason}")
        elif finding.rule.remediation:
            lines.append(f"  Fix     : {finding.rule.remediation}")
        lines.append(f"  Id      : {finding.finding_id}")
    return "\n".join(lines)
