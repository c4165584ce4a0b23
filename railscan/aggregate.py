"""Deduplicate raw hits into ordered, identity-stable findings."""

from __future__ import annotations

import hashlib
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .result import Finding, FindingStatus, RawHit
from .rules import RuleSet

HitKey = Tuple[str, str, int]


def normalize_text(text: str) -> str:
    return " ".join(text.split())


def compute_finding_id(rule_id: str, file_path: str, line_number: int, matched_text: str) -> str:
    """Deterministic fingerprint: sha256(rule|path|line|normalized text)."""

    file_path = file_path.replace("\\", "/")
    payload = "|".join([rule_id, file_path, str(line_number), normalize_text(matched_text)])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def hit_key(hit: RawHit) -> HitKey:
    return (hit.rule_id, hit.file_path, hit.line_number)


def _preference(hit: RawHit) -> Tuple[int, str]:
    column = hit.column_span[0] if hit.column_span else 0
    return (column, hit.matched_text)


def dedupe(hits: Iterable[RawHit]) -> Dict[HitKey, RawHit]:
    """Collapse hits sharing (rule, path, line), keeping the leftmost match."""

    kept: Dict[HitKey, RawHit] = {}
    for hit in hits:
        key = hit_key(hit)
        current = kept.get(key)
        if current is None or _preference(hit) < _preference(current):
            kept[key] = hit
    return kept


def sort_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Order by severity (most severe first), then path, line, and rule id."""

    return sorted(
        findings,
        key=lambda finding: (-finding.severity.rank, finding.file_path, finding.line_number, finding.rule_id),
    )


def aggregate(
    hits: Iterable[RawHit],
    rule_set: RuleSet,
    status: FindingStatus = FindingStatus.ACTIVE,
    reasons: Optional[Mapping[HitKey, str]] = None,
) -> List[Finding]:
    """Turn surviving hits into the final, totally ordered finding list.

    Must run once, after every worker has finished, so cross-file completion
    order never leaks into the output.
    """

    findings = []
    for key, hit in dedupe(hits).items():
        findings.append(
            Finding(
                finding_id=compute_finding_id(hit.rule_id, hit.file_path, hit.line_number, hit.matched_text),
                rule=rule_set.get(hit.rule_id),
                file_path=hit.file_path,
                line_number=hit.line_number,
                matched_text=hit.matched_text,
                snippet=hit.snippet,
                column_span=hit.column_span,
                status=status,
                suppression_reason=reasons.get(key) if reasons else None,
            )
        )
    return sort_findings(findings)
