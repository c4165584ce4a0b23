"""Rule model and the validated rule collection."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from railscan.severity import Severity
from railscan.utils.globs import first_match


class Category(str, Enum):
    """Vulnerability classes a rule can belong to."""

    SQL_INJECTION = "sql-injection"
    COMMAND_INJECTION = "command-injection"
    XSS = "xss"
    CSRF = "csrf"
    DESERIALIZATION = "deserialization"
    MASS_ASSIGNMENT = "mass-assignment"
    SSRF = "ssrf"
    OPEN_REDIRECT = "open-redirect"
    FILE_UPLOAD = "file-upload"
    CORS = "cors"
    LOGGING_SECRETS = "logging-secrets"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> "Category":
        if isinstance(value, Category):
            return value
        text = str(value).strip().lower().replace("_", "-")
        for category in cls:
            if category.value == text:
                return category
        choices = ", ".join(category.value for category in cls)
        raise ValueError(f"unknown category {value!r} (expected one of: {choices})")


class ValidationError(ValueError):
    """Raised when a rule set cannot be loaded; carries every problem found."""

    def __init__(self, issues: Sequence[Tuple[Optional[str], str]]) -> None:
        self.issues: List[Tuple[Optional[str], str]] = list(issues)
        super().__init__(self._render())

    def _render(self) -> str:
        lines = []
        for rule_id, reason in self.issues:
            prefix = f"rule {rule_id!r}" if rule_id else "rule set"
            lines.append(f"{prefix}: {reason}")
        return "; ".join(lines) if lines else "invalid rule set"


@dataclass(frozen=True)
class Pattern:
    """A compiled match or exclude expression."""

    source: str
    regex: "re.Pattern[str]" = field(compare=False, repr=False)
    literal: bool = False
    multiline: bool = False

    @classmethod
    def compile(
        cls,
        source: str,
        *,
        literal: bool = False,
        multiline: bool = False,
        ignore_case: bool = False,
    ) -> "Pattern":
        expression = re.escape(source) if literal else source
        flags = re.IGNORECASE if ignore_case else 0
        return cls(source=source, regex=re.compile(expression, flags), literal=literal, multiline=multiline)

    def search(self, text: str) -> Optional["re.Match[str]"]:
        return self.regex.search(text)

    def to_dict(self) -> Dict[str, object]:
        key = "text" if self.literal else "regex"
        data: Dict[str, object] = {key: self.source}
        if self.multiline:
            data["multiline"] = True
        return data


@dataclass(frozen=True)
class Rule:
    """Immutable definition of one vulnerability-matching policy."""

    id: str
    category: Category
    severity: Severity
    match_patterns: Tuple[Pattern, ...]
    exclude_patterns: Tuple[Pattern, ...] = ()
    remediation: str = ""
    title: str = ""
    ignore_case: bool = False
    files: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.title or self.id

    @property
    def has_multiline(self) -> bool:
        return any(pattern.multiline for pattern in self.match_patterns)

    def applies_to(self, rel_path: str) -> bool:
        """Return True when the rule's ``files`` globs select ``rel_path``."""

        if not self.files:
            return True
        return first_match(rel_path, self.files) is not None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.label,
            "category": self.category.value,
            "severity": self.severity.value,
            "match_patterns": [pattern.to_dict() for pattern in self.match_patterns],
            "exclude_patterns": [pattern.to_dict() for pattern in self.exclude_patterns],
            "ignore_case": self.ignore_case,
            "files": list(self.files),
            "remediation": self.remediation,
        }


class RuleSet:
    """Ordered collection of rules with unique ids.

    A rule set is read-only once built and is shared between scan workers
    without locking.
    """

    def __init__(self, rules: Iterable[Rule]) -> None:
        ordered = tuple(rules)
        seen: set = set()
        issues: List[Tuple[Optional[str], str]] = []
        for rule in ordered:
            if rule.id in seen:
                issues.append((rule.id, "duplicate rule id"))
            seen.add(rule.id)
            if not rule.match_patterns:
                issues.append((rule.id, "match_patterns must not be empty"))
        if issues:
            raise ValidationError(issues)
        self._rules = ordered
        self._by_id = {rule.id: rule for rule in ordered}

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def __repr__(self) -> str:
        return f"RuleSet({len(self._rules)} rules)"

    @property
    def ids(self) -> frozenset:
        return frozenset(self._by_id)

    def get(self, rule_id: str) -> Rule:
        return self._by_id[rule_id]

    def rules_for(self, category: Category | str | None = None) -> Tuple[Rule, ...]:
        """Return the rules in ``category`` (all rules when ``None``)."""

        if category is None:
            return self._rules
        wanted = Category.parse(category)
        return tuple(rule for rule in self._rules if rule.category is wanted)

    def restrict(self, categories: Iterable[Category | str]) -> "RuleSet":
        """Return a new rule set limited to ``categories``; empty means all."""

        wanted = {Category.parse(category) for category in categories}
        if not wanted:
            return self
        return RuleSet(rule for rule in self._rules if rule.category in wanted)


__all__ = [
    "Category",
    "Pattern",
    "Rule",
    "RuleSet",
    "ValidationError",
]
