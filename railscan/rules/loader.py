"""Load rule sets from YAML documents."""

from __future__ import annotations

import logging
import os
import re
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from railscan.severity import Severity

from . import Category, Pattern, Rule, RuleSet, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_RULES_RESOURCE = "default.yaml"

REQUIRED_KEYS = ("id", "category", "severity", "match_patterns")
OPTIONAL_KEYS = ("exclude_patterns", "remediation", "title", "ignore_case", "files")
PATTERN_KEYS = ("regex", "text", "multiline")

Issues = List[Tuple[Optional[str], str]]


def load_rule_set(source: Any) -> RuleSet:
    """Load and validate a rule set.

    ``source`` may be a ``Path``, a path string naming an existing file, a YAML
    document string, or already-parsed records (a list of mappings or a mapping
    with a ``rules`` key). Every problem is collected and raised as a single
    ``ValidationError``; no partially loaded rule set is ever returned.
    """

    document = _read_document(source)
    records = _extract_records(document)

    issues: Issues = []
    rules: List[Rule] = []
    seen: Dict[str, int] = {}
    for index, record in enumerate(records):
        rule = _build_rule(index, record, issues)
        if rule is None:
            continue
        if rule.id in seen:
            issues.append((rule.id, f"duplicate rule id (records {seen[rule.id]} and {index})"))
            continue
        seen[rule.id] = index
        rules.append(rule)

    if issues:
        raise ValidationError(issues)
    rule_set = RuleSet(rules)
    logger.debug("Loaded %d rules", len(rule_set))
    return rule_set


def load_default_rule_set() -> RuleSet:
    """Load the rule pack shipped with the package."""

    text = resources.files("railscan.rules").joinpath(DEFAULT_RULES_RESOURCE).read_text(encoding="utf-8")
    return load_rule_set(text)


# ----------------------------------------------------------------------
# Document helpers
# ----------------------------------------------------------------------
def _read_document(source: Any) -> Any:
    if isinstance(source, Path):
        return _parse_yaml(_read_path(source), str(source))
    if isinstance(source, str):
        candidate = source.strip()
        if "\n" not in candidate and (candidate.endswith((".yaml", ".yml", ".json")) or os.path.isfile(candidate)):
            return _parse_yaml(_read_path(Path(candidate)), candidate)
        return _parse_yaml(source, "<string>")
    return source


def _read_path(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError([(None, f"cannot read rules file {path}: {exc}")]) from exc


def _parse_yaml(text: str, origin: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValidationError([(None, f"{origin} is not valid YAML: {exc}")]) from exc


def _extract_records(document: Any) -> Sequence[Any]:
    if isinstance(document, dict):
        unknown = sorted(set(document) - {"rules", "version"})
        if unknown:
            raise ValidationError([(None, f"unknown top-level keys: {', '.join(map(str, unknown))}")])
        document = document.get("rules")
    if not isinstance(document, list) or not document:
        raise ValidationError([(None, "rule document must contain a non-empty list of rules")])
    return document


# ----------------------------------------------------------------------
# Record validation
# ----------------------------------------------------------------------
def _build_rule(index: int, record: Any, issues: Issues) -> Optional[Rule]:
    if not isinstance(record, dict):
        issues.append((None, f"record {index} must be a mapping"))
        return None

    rule_id = str(record.get("id") or "").strip()
    label: Optional[str] = rule_id or None
    before = len(issues)

    if not rule_id:
        issues.append((None, f"record {index} is missing 'id'"))

    unknown = sorted(set(record) - set(REQUIRED_KEYS) - set(OPTIONAL_KEYS))
    if unknown:
        issues.append((label, f"unknown keys: {', '.join(map(str, unknown))}"))

    try:
        category = Category.parse(record.get("category", ""))
    except ValueError as exc:
        issues.append((label, str(exc)))
        category = Category.OTHER

    try:
        severity = Severity.parse(record.get("severity", ""))
    except ValueError as exc:
        issues.append((label, str(exc)))
        severity = Severity.INFO

    ignore_case = record.get("ignore_case", False)
    if not isinstance(ignore_case, bool):
        issues.append((label, "'ignore_case' must be true or false"))
        ignore_case = False

    pattern_issues = len(issues)
    match_patterns = _build_patterns(label, "match_patterns", record.get("match_patterns"), ignore_case, issues)
    if "match_patterns" not in record:
        issues.append((label, "missing 'match_patterns'"))
    elif not match_patterns and len(issues) == pattern_issues:
        issues.append((label, "match_patterns must not be empty"))
    exclude_patterns = _build_patterns(
        label, "exclude_patterns", record.get("exclude_patterns") or [], ignore_case, issues
    )

    files = record.get("files") or []
    if isinstance(files, str):
        files = [files]
    if not isinstance(files, list) or not all(isinstance(item, str) and item.strip() for item in files):
        issues.append((label, "'files' must be a list of glob strings"))
        files = []

    remediation = record.get("remediation") or ""
    title = record.get("title") or ""
    if not isinstance(remediation, str) or not isinstance(title, str):
        issues.append((label, "'title' and 'remediation' must be strings"))

    if len(issues) != before:
        return None
    return Rule(
        id=rule_id,
        category=category,
        severity=severity,
        match_patterns=tuple(match_patterns),
        exclude_patterns=tuple(exclude_patterns),
        remediation=remediation.strip(),
        title=title.strip(),
        ignore_case=ignore_case,
        files=tuple(item.strip() for item in files),
    )


def _build_patterns(
    label: Optional[str],
    key: str,
    raw: Any,
    ignore_case: bool,
    issues: Issues,
) -> List[Pattern]:
    if raw is None:
        return []
    if isinstance(raw, (str, dict)):
        raw = [raw]
    if not isinstance(raw, list):
        issues.append((label, f"'{key}' must be a list"))
        return []

    patterns: List[Pattern] = []
    for position, entry in enumerate(raw):
        where = f"{key}[{position}]"
        literal = False
        multiline = False
        if isinstance(entry, str):
            source = entry
        elif isinstance(entry, dict):
            unknown = sorted(set(entry) - set(PATTERN_KEYS))
            if unknown:
                issues.append((label, f"{where} has unknown keys: {', '.join(map(str, unknown))}"))
                continue
            if ("regex" in entry) == ("text" in entry):
                issues.append((label, f"{where} needs exactly one of 'regex' or 'text'"))
                continue
            literal = "text" in entry
            source = entry["text"] if literal else entry["regex"]
            multiline = entry.get("multiline", False)
            if not isinstance(multiline, bool):
                issues.append((label, f"{where}.multiline must be true or false"))
                continue
        else:
            issues.append((label, f"{where} must be a string or mapping"))
            continue

        if not isinstance(source, str) or not source:
            issues.append((label, f"{where} must be a non-empty string"))
            continue
        try:
            patterns.append(Pattern.compile(source, literal=literal, multiline=multiline, ignore_case=ignore_case))
        except re.error as exc:
            issues.append((label, f"{where} does not compile: {exc}"))
    return patterns
