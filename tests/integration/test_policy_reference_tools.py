from __future__ import annotations

from pathlib import Path

from policy_mcp.config import CliOverrides
from policy_mcp.server import StdioServer, create_server


def _server(root: Path) -> StdioServer:
    (root / "policies").mkdir()
    (root / "policies" / "app.md").write_text(
        "## {§APP.1}\nSee §SYS.2.\n\n### {§APP.1.1}\nDetail.\n\n## {§APP.2}\nTwo.\n",
        encoding="utf-8",
    )
    (root / "policies" / "sys.md").write_text(
        "## {§SYS.1}\nOne.\n\n## {§SYS.2}\nTwo.\n",
        encoding="utf-8",
    )
    (root / "policies" / "legacy.md").write_text("## {§APP.2}\nCopied.\n", encoding="utf-8")
    (root / "agent.md").write_text(
        "Follow §APP.1.1, §SYS.1-2 and `§APP.9`.\n```\n§APP.8\n```\nAlso §APP.1.1.\n",
        encoding="utf-8",
    )
    return create_server(base_dir=str(root), cli_overrides=CliOverrides(watch=False))


def _call(server: StdioServer, method: str, params: dict[str, object]) -> dict[str, object]:
    return server.handle_payload({"id": method, "method": method, "params": params})


def test_resolve_references_groups_transitive_sections_by_file(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(server, "policy.resolve_references", {"sections": ["§APP.1"]})

    assert response["ok"] is True
    assert response["result"]["locations"] == {
        "policies/app.md": ["§APP.1"],
        "policies/sys.md": ["§SYS.2"],
    }


def test_resolve_duplicate_section_is_an_error(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(server, "policy.resolve_references", {"sections": ["§APP.2"]})

    assert response["ok"] is False
    assert response["error"]["code"] == "DUPLICATE_SECTION"
    assert "found in multiple files" in response["error"]["message"]


def test_extract_references_skips_code_and_expands_ranges(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(server, "policy.extract_references", {"file_path": "agent.md"})

    assert response["result"] == {
        "file_path": str((tmp_path / "agent.md").resolve()),
        "references": ["§APP.1.1", "§SYS.1", "§SYS.2"],
    }


def test_validate_references_reports_duplicates_and_missing(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(
        server, "policy.validate_references", {"references": ["§APP.1", "§APP.2", "§APP.7"]}
    )

    result = response["result"]
    assert response["ok"] is True
    assert result["valid"] is False
    assert result["checked"] == 3
    assert result["invalid"] == ["§APP.2", "§APP.7"]
    assert result["duplicates"][0]["section"] == "§APP.2"


def test_list_sources_summarizes_index(tmp_path: Path) -> None:
    server = _server(tmp_path)

    result = _call(server, "policy.list_sources", {})["result"]

    assert result["files"] == ["policies/app.md", "policies/legacy.md", "policies/sys.md"]
    assert result["file_count"] == 3
    assert result["duplicate_count"] == 1
    assert result["prefixes"] == ["APP", "SYS"]
    assert result["skipped"] == []


def test_check_tool_returns_issues_and_report(tmp_path: Path) -> None:
    server = _server(tmp_path)
    (tmp_path / "broken.md").write_text("## {§APP.1}\n## {§APP.3}\n", encoding="utf-8")

    result = _call(server, "policy.check", {"file_path": "broken.md"})["result"]

    assert result["valid"] is False
    assert result["errors"] == 1
    assert result["issues"][0]["code"] == "NUMBERING_GAP"
    assert result["report"].startswith("✗ ")


def test_other_prefix_heading_does_not_end_a_section(tmp_path: Path) -> None:
    server = _server(tmp_path)
    (tmp_path / "policies" / "sys.md").write_text(
        "## {§SYS.1}\nOne.\n\n## {§APP.2}\nCopied again.\n", encoding="utf-8"
    )
    server.state.mark_stale()

    response = _call(server, "policy.resolve_references", {"sections": ["§SYS.1"]})

    assert response["ok"] is False
    assert response["error"]["code"] == "DUPLICATE_SECTION"
    assert "(referenced by §SYS.1)" in response["error"]["message"]
