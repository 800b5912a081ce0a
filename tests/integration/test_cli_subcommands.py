from __future__ import annotations

import json
from pathlib import Path

import pytest

from policy_mcp.cli import main


@pytest.fixture()
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "policies").mkdir()
    (tmp_path / "policies" / "app.md").write_text(
        "## {§APP.1}\nFirst. See §APP.2.\n\n## {§APP.2}\nSecond.\n", encoding="utf-8"
    )
    (tmp_path / "agent.md").write_text("Apply §APP.1 always.\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("POLICY_MCP_CONFIG", raising=False)
    return tmp_path


def test_fetch_policies_prints_resolved_content(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(["fetch-policies", "agent.md"])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert output == "## {§APP.1}\nFirst. See §APP.2.\n\n## {§APP.2}\nSecond.\n"


def test_fetch_policies_without_references_prints_nothing(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (project / "plain.md").write_text("Nothing here.\n", encoding="utf-8")

    assert main(["fetch-policies", "plain.md"]) == 0
    assert capsys.readouterr().out == ""


def test_validate_references_exit_code_follows_validity(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    good = main(["validate-references", "§APP.1", "§APP.2"])
    good_report = json.loads(capsys.readouterr().out)
    bad = main(["validate-references", "§APP.5"])
    bad_report = json.loads(capsys.readouterr().out)

    assert good == 0
    assert good_report["valid"] is True
    assert bad == 1
    assert bad_report["invalid"] == ["§APP.5"]


def test_extract_references_prints_json_list(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["extract-references", "agent.md"]) == 0
    assert json.loads(capsys.readouterr().out) == ["§APP.1"]


def test_list_sources_prints_markdown(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["list-sources"]) == 0

    output = capsys.readouterr().out
    assert output.startswith("# Policy Documentation Files\n\n- policies/app.md\n")
    assert "- §APP" in output


def test_resolve_references_prints_locations(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["resolve-references", "§APP.1"]) == 0
    assert json.loads(capsys.readouterr().out) == {"policies/app.md": ["§APP.1", "§APP.2"]}


def test_check_reports_each_file(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (project / "gap.md").write_text("## {§GAP.1}\n## {§GAP.3}\n", encoding="utf-8")

    exit_code = main(["check", "policies/app.md", "gap.md"])

    output = capsys.readouterr().out
    assert exit_code == 1
    assert output.startswith("✓ policies/app.md: OK\n\n✗ gap.md\n")


def test_errors_are_printed_with_prefix(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    missing_file = main(["extract-references", "absent.md"])
    missing_section = main(["resolve-references", "§APP.9"])
    bad_config = main(["list-sources", "-c", "nothing/*.md"])

    errors = capsys.readouterr().err.splitlines()
    assert [missing_file, missing_section, bad_config] == [1, 1, 1]
    assert errors[0] == f"Error: File not found: {(project / 'absent.md').resolve()}"
    assert errors[1].startswith('Error: Failed to resolve section "§APP.9"')
    assert errors[2].startswith("Error: No policy files matched: nothing/*.md")
