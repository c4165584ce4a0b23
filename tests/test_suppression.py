from railscan.result import RawHit, UnknownSuppressionWarning
from railscan.suppression import PathSuppression, Suppressions, parse_inline_markers, resolve


def _hit(rule_id="sql-injection", path="app/models/user.rb", line=3):
    return RawHit(rule_id=rule_id, file_path=path, line_number=line, matched_text="x")


def _suppressions(lines, path="app/models/user.rb", globs=()):
    suppressions = Suppressions(paths=tuple(globs))
    suppressions.add_markers(parse_inline_markers(path, lines))
    return suppressions


def test_parse_marker_variants():
    lines = [
        "x = 1  # railscan:ignore",
        "y = 2  # railscan:ignore[sql-injection, xss] -- reviewed by security",
        "<%# railscan:ignore[xss] -- static markup %>",
        "# railscan:ignored is not a marker",
    ]

    markers = parse_inline_markers("a.rb", lines)

    assert [marker.line_number for marker in markers] == [1, 2, 3]
    assert markers[0].rule_ids == frozenset()
    assert markers[1].rule_ids == {"sql-injection", "xss"}
    assert markers[1].reason == "reviewed by security"
    assert markers[2].reason == "static markup"


def test_marker_naming_other_rule_does_not_suppress():
    suppressions = _suppressions(["", "", "query  # railscan:ignore[xss]"])

    resolution = resolve([_hit()], suppressions)

    assert resolution.active == [_hit()]
    assert resolution.suppressed == []


def test_bare_marker_suppresses_every_rule():
    suppressions = _suppressions(["", "", "query  # railscan:ignore"])
    hits = [_hit(), _hit(rule_id="xss")]

    resolution = resolve(hits, suppressions)

    assert resolution.active == []
    assert [hit.rule_id for hit, _ in resolution.suppressed] == ["sql-injection", "xss"]
    assert "inline marker at line 3 (all rules)" in resolution.suppressed[0][1]


def test_marker_covers_next_line_only():
    suppressions = _suppressions(["# railscan:ignore[sql-injection]", "", ""])

    resolution = resolve([_hit(line=2), _hit(line=3)], suppressions)

    assert [hit.line_number for hit, _ in resolution.suppressed] == [2]
    assert [hit.line_number for hit in resolution.active] == [3]


def test_trailing_marker_covers_its_own_line_only():
    lines = ["x = 1  # railscan:ignore", "query", "<%# railscan:ignore[sql-injection] %>", "query"]
    suppressions = _suppressions(lines)

    resolution = resolve([_hit(line=1), _hit(line=2), _hit(line=4)], suppressions)

    assert [hit.line_number for hit, _ in resolution.suppressed] == [1, 4]
    assert [hit.line_number for hit in resolution.active] == [2]


def test_standalone_flag():
    lines = [
        "  # railscan:ignore",
        "<%# railscan:ignore[xss] %>",
        "-# railscan:ignore",
        "x = 1 # railscan:ignore",
        "<p><%= raw @x %></p> <%# railscan:ignore %>",
    ]

    markers = parse_inline_markers("a.rb", lines)

    assert [marker.standalone for marker in markers] == [True, True, True, False, False]


def test_markers_do_not_leak_across_files():
    suppressions = _suppressions(["", "", "# railscan:ignore"], path="other.rb")

    resolution = resolve([_hit()], suppressions)

    assert len(resolution.active) == 1


def test_path_glob_suppresses_regardless_of_rule():
    suppressions = _suppressions([], globs=[PathSuppression(glob="app/models/**", reason="legacy")])

    resolution = resolve([_hit(), _hit(rule_id="xss"), _hit(path="app/views/a.erb")], suppressions)

    assert [hit.file_path for hit in resolution.active] == ["app/views/a.erb"]
    assert resolution.suppressed[0][1] == "path matches 'app/models/**': legacy"


def test_inline_marker_wins_over_path_reason():
    suppressions = _suppressions(
        ["", "", "# railscan:ignore -- false positive"],
        globs=[PathSuppression(glob="app")],
    )

    resolution = resolve([_hit()], suppressions)

    assert resolution.suppressed[0][1].startswith("inline marker")


def test_unknown_rule_warns_but_still_suppresses():
    suppressions = _suppressions(["", "", "query  # railscan:ignore[sql-injection, sql-injektion]"])

    resolution = resolve([_hit()], suppressions, known_rule_ids={"sql-injection", "xss"})

    assert resolution.active == []
    assert len(resolution.suppressed) == 1
    assert resolution.warnings == [
        UnknownSuppressionWarning(
            path="app/models/user.rb",
            line_number=3,
            rule_id="sql-injektion",
            message="unknown rule referenced by suppression marker: sql-injektion",
        )
    ]


def test_marker_for_only_unknown_rule_applies_to_matching_hits():
    suppressions = _suppressions(["", "", "# railscan:ignore[custom-rule]"])

    resolution = resolve([_hit(rule_id="custom-rule")], suppressions, known_rule_ids=set())

    assert resolution.active == []
    assert len(resolution.warnings) == 1
