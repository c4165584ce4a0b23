from pathlib import Path

import pytest

from railscan.rules.loader import load_rule_set

SAMPLES_DIR = Path(__file__).resolve().parent.parent / "samples"

WHERE_RULES = """
rules:
  - id: sql-injection-where-interpolation
    category: sql-injection
    severity: high
    files: ["*.rb"]
    match_patterns:
      - text: '.where("'
    remediation: Use hash conditions or bind placeholders.
  - id: find-by-non-hash
    category: sql-injection
    severity: medium
    match_patterns:
      - text: 'find_by('
    exclude_patterns:
      - 'find_by\\(\\w+:'
  - id: command-injection-system
    category: command-injection
    severity: critical
    match_patterns:
      - 'system\\("[^"]*#\\{'
  - id: logging-token
    category: logging-secrets
    severity: low
    match_patterns:
      - 'logger\\.\\w+.*token'
"""


@pytest.fixture
def samples_dir():
    return SAMPLES_DIR


@pytest.fixture
def rule_set():
    return load_rule_set(WHERE_RULES)


@pytest.fixture
def write_tree(tmp_path):
    """Create files under ``tmp_path`` from a ``{relative_path: text}`` mapping."""

    def _write(files):
        for rel_path, text in files.items():
            target = tmp_path / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        return tmp_path

    return _write
