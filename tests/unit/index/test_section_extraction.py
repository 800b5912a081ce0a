from __future__ import annotations

from policy_mcp.index import extract_section, scan_section_references

POLICY = "\n".join(
    [
        "# Application",
        "",
        "## {§APP.1}",
        "First section.",
        "",
        "### {§APP.1.1}",
        "First subsection.",
        "",
        "### {§APP.1.2}",
        "Second subsection.",
        "",
        "## {§APP-HOOK.1}",
        "Extended prefix inside APP.1.",
        "",
        "## {§APP.2}",
        "Second section.",
        "```markdown",
        "## {§APP.3}",
        "{§END}",
        "```",
        "Still second.",
        "{§END}",
        "Trailing notes.",
    ]
)


def test_top_level_section_stops_at_next_same_prefix_header() -> None:
    content = extract_section(POLICY, "APP", "1")

    assert content.splitlines()[0] == "## {§APP.1}"
    assert "### {§APP.1.2}" in content
    assert "## {§APP-HOOK.1}" in content
    assert "§APP.2" not in content


def test_subsection_stops_at_any_section_marker() -> None:
    content = extract_section(POLICY, "APP", "1.1")

    assert content == "### {§APP.1.1}\nFirst subsection.\n"


def test_end_marker_inside_fence_does_not_stop_extraction() -> None:
    content = extract_section(POLICY, "APP", "2")

    assert "## {§APP.3}" in content
    assert "Still second." in content
    assert "Trailing notes." not in content


def test_missing_section_extracts_empty_string() -> None:
    assert extract_section(POLICY, "APP", "9") == ""
    assert extract_section(POLICY, "META", "1") == ""


def test_scan_ignores_headers_inside_fences() -> None:
    assert scan_section_references(POLICY) == (
        "§APP.1",
        "§APP.1.1",
        "§APP.1.2",
        "§APP-HOOK.1",
        "§APP.2",
    )
