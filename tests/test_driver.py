import os
import threading

import pytest

from railscan.config import ProjectConfig, ScanOptions
from railscan.driver import ScanError, scan
from railscan.matcher import Matcher, MatchTimeout
from railscan.result import IOWarning, MatchTimeoutWarning, UnknownSuppressionWarning
from railscan.rules import RuleSet
from railscan.suppression import PathSuppression

VULNERABLE_LINE = "Project.where(\"name = '#{params[:name]}'\")\n"


def test_where_interpolation_scenario(write_tree, rule_set):
    root = write_tree({"app/models/project.rb": "# line\n" * 11 + VULNERABLE_LINE})

    result = scan(root, rule_set, options=ScanOptions(concurrency=2))

    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.rule_id == "sql-injection-where-interpolation"
    assert finding.file_path == "app/models/project.rb"
    assert finding.line_number == 12
    assert finding.severity.value == "high"
    assert result.files_scanned == 1
    assert result.partial is False
    assert result.warnings == []


def test_rescans_are_identical(write_tree, rule_set):
    files = {
        f"app/controllers/c{index}.rb": "User.find_by(params[:id])\n" + VULNERABLE_LINE
        for index in range(12)
    }
    files["lib/tasks/run.rb"] = 'system("rm -rf #{params[:dir]}")\nlogger.info("token=#{t}")\n'
    root = write_tree(files)

    first = scan(root, rule_set, options=ScanOptions(concurrency=4))
    second = scan(root, rule_set, options=ScanOptions(concurrency=1))

    assert [f.finding_id for f in first.findings] == [f.finding_id for f in second.findings]
    assert len(first.findings) == 12 * 2 + 2
    assert first.findings[0].rule_id == "command-injection-system"
    assert first.findings[-1].rule_id == "logging-token"


def test_ignored_paths_are_never_read(write_tree, rule_set):
    root = write_tree(
        {
            "app/models/project.rb": VULNERABLE_LINE,
            "vendor/gems/widget/lib/widget.rb": VULNERABLE_LINE,
            "node_modules/pkg/index.rb": VULNERABLE_LINE,
        }
    )
    (root / "vendor/gems/big.rb").write_bytes(b"\x00" * 10)

    result = scan(root, rule_set, options=ScanOptions(ignore=("vendor/**",)))

    assert [f.file_path for f in result.findings] == ["app/models/project.rb"]
    assert result.warnings == []
    assert result.files_scanned == 1


def test_project_config_ignore_and_suppress(write_tree, rule_set):
    root = write_tree(
        {
            "app/models/project.rb": VULNERABLE_LINE,
            "app/legacy/report.rb": VULNERABLE_LINE,
            "spec/fixtures/bad.rb": VULNERABLE_LINE,
        }
    )
    project = ProjectConfig(
        ignore=("spec/fixtures",),
        suppress=(PathSuppression(glob="app/legacy/**", reason="tracked in backlog"),),
    )

    result = scan(root, rule_set, suppression_config=project)

    assert [f.file_path for f in result.findings] == ["app/models/project.rb"]
    assert [f.file_path for f in result.suppressed] == ["app/legacy/report.rb"]
    assert result.suppressed[0].suppression_reason == "path matches 'app/legacy/**': tracked in backlog"
    assert result.files_scanned == 2


def test_path_suppressed_files_produce_no_warnings(write_tree, rule_set):
    root = write_tree(
        {
            "app/legacy/a.rb": "# railscan:ignore[typo-rule]\n" + VULNERABLE_LINE,
            "app/models/b.rb": "# railscan:ignore[other-typo]\nx = 1\n",
        }
    )
    (root / "app/legacy/blob.rb").write_bytes(b"\x00\x01\x02")
    project = ProjectConfig(suppress=(PathSuppression(glob="app/legacy/**"),))

    result = scan(root, rule_set, suppression_config=project)

    assert result.findings == []
    assert [f.file_path for f in result.suppressed] == ["app/legacy/a.rb"]
    assert [(w.path, w.rule_id) for w in result.warnings] == [("app/models/b.rb", "other-typo")]


def test_fail_on_option_drives_exit_code(write_tree, rule_set):
    root = write_tree({"a.rb": 'logger.info("token=#{t}")\n'})

    lenient = scan(root, rule_set, options=ScanOptions(fail_on="critical"))
    strict = scan(root, rule_set)

    assert [f.rule_id for f in lenient.findings] == ["logging-token"]
    assert lenient.passed() is True
    assert lenient.exit_code() == 0
    assert lenient.to_dict()["passed"] is True
    assert strict.exit_code() == 1


def test_inline_markers_and_unknown_rule_warning(write_tree, rule_set):
    root = write_tree(
        {
            "app/models/a.rb": (
                "# railscan:ignore[sql-injection-where-interpolation, no-such-rule]\n"
                + VULNERABLE_LINE
                + VULNERABLE_LINE.rstrip("\n")
                + "  # railscan:ignore[find-by-non-hash]\n"
            ),
        }
    )

    result = scan(root, rule_set)

    assert [(f.line_number, f.status.value) for f in result.suppressed] == [(2, "suppressed")]
    assert [f.line_number for f in result.findings] == [3]
    assert result.warnings == [
        UnknownSuppressionWarning(
            path="app/models/a.rb",
            line_number=1,
            rule_id="no-such-rule",
            message="unknown rule referenced by suppression marker: no-such-rule",
        )
    ]


def test_unreadable_file_becomes_warning(write_tree, rule_set):
    root = write_tree({f"app/models/m{index}.rb": VULNERABLE_LINE for index in range(9)})
    os.symlink(root / "missing-target.rb", root / "app/models/broken.rb")

    result = scan(root, rule_set)

    assert len(result.findings) == 9
    assert result.files_scanned == 9
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert isinstance(warning, IOWarning)
    assert warning.path == "app/models/broken.rb"
    assert warning.message.startswith("cannot read file")
    assert result.exit_code() == 1


def test_binary_and_oversized_files_are_skipped(write_tree, rule_set):
    root = write_tree({"big.rb": VULNERABLE_LINE * 50, "ok.rb": VULNERABLE_LINE})
    (root / "blob.rb").write_bytes(b"Project.where(\"#{x}\")\x00\x01")

    result = scan(root, rule_set, options=ScanOptions(max_file_size=len(VULNERABLE_LINE) * 10))

    assert [f.file_path for f in result.findings] == ["ok.rb"]
    assert [(w.kind, w.path) for w in result.warnings] == [("io", "big.rb"), ("io", "blob.rb")]
    assert "exceeds limit" in result.warnings[0].message
    assert result.warnings[1].message == "skipped: binary file"


def test_files_without_applicable_rules_are_not_read(write_tree, rule_set):
    root = write_tree({"README.md": VULNERABLE_LINE, "app.rb": VULNERABLE_LINE})
    (root / "logo.png").write_bytes(b"\x89PNG\x00\x00")
    ruby_only = RuleSet([rule_set.get("sql-injection-where-interpolation")])

    result = scan(root, ruby_only)

    assert [f.file_path for f in result.findings] == ["app.rb"]
    assert result.warnings == []
    assert result.files_scanned == 1


def test_category_filter(write_tree, rule_set):
    root = write_tree({"a.rb": VULNERABLE_LINE + 'system("x #{y}")\n'})

    result = scan(root, rule_set, options=ScanOptions(categories=("command-injection",)))

    assert [f.rule_id for f in result.findings] == ["command-injection-system"]


def test_timeout_drops_rule_and_keeps_scanning(write_tree, rule_set, monkeypatch):
    root = write_tree({"a.rb": VULNERABLE_LINE + 'system("x #{y}")\n', "b.rb": VULNERABLE_LINE})
    original = Matcher.match

    def slow_on_a(self, rule, source, deadline=None):
        if source.path == "a.rb" and rule.id == "find-by-non-hash":
            raise MatchTimeout(rule.id, 1)
        return original(self, rule, source, deadline=deadline)

    monkeypatch.setattr(Matcher, "match", slow_on_a)

    result = scan(root, rule_set, options=ScanOptions(file_timeout=0.5))

    assert [(f.file_path, f.rule_id) for f in result.findings] == [
        ("a.rb", "sql-injection-where-interpolation"),
        ("b.rb", "sql-injection-where-interpolation"),
    ]
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert isinstance(warning, MatchTimeoutWarning)
    assert warning.rule_id == "find-by-non-hash"
    assert "2 remaining rule(s) skipped" in warning.message


def test_cancelled_scan_is_partial(write_tree, rule_set):
    root = write_tree({f"f{index}.rb": VULNERABLE_LINE for index in range(5)})
    cancel = threading.Event()
    cancel.set()

    result = scan(root, rule_set, cancel_event=cancel)

    assert result.partial is True
    assert result.files_scanned == 0
    assert result.findings == []


def test_invalid_root(tmp_path, rule_set):
    with pytest.raises(ScanError):
        scan(tmp_path / "missing", rule_set)
    target = tmp_path / "file.rb"
    target.write_text("x", encoding="utf-8")
    with pytest.raises(ScanError):
        scan(target, rule_set)
