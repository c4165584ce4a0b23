"""Severity definitions for scanner findings."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Enumerate the supported severity levels for findings."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Return an integer ranking; higher means more severe."""

        ordering = {
            Severity.CRITICAL: 4,
            Severity.HIGH: 3,
            Severity.MEDIUM: 2,
            Severity.LOW: 1,
            Severity.INFO: 0,
        }
        return ordering[self]

    def at_least(self, threshold: "Severity") -> bool:
        return self.rank >= threshold.rank

    @classmethod
    def parse(cls, value: object) -> "Severity":
        """Parse a severity name case-insensitively, raising ``ValueError``."""

        if isinstance(value, Severity):
            return value
        text = str(value).strip().lower()
        for severity in cls:
            if severity.value == text:
                return severity
        choices = ", ".join(severity.value for severity in cls)
        raise ValueError(f"unknown severity {value!r} (expected one of: {choices})")


SEVERITY_ORDER = (
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
    Severity.INFO,
)
