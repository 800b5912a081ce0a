from __future__ import annotations

from pathlib import Path

from policy_mcp.config import CliOverrides
from policy_mcp.server import create_server


def test_status_reports_config_snapshot_and_index_state(tmp_path: Path) -> None:
    (tmp_path / "policies").mkdir()
    (tmp_path / "policies" / "app.md").write_text(
        "## {§APP.1}\n### {§APP.1.1}\n", encoding="utf-8"
    )
    (tmp_path / "policy_mcp.toml").write_text(
        '[policies]\nfiles = ["policies/*.md", "missing.md"]\n', encoding="utf-8"
    )
    server = create_server(
        base_dir=str(tmp_path), cli_overrides=CliOverrides(watch=False, max_chunk_tokens=500)
    )

    response = server.handle_payload({"id": "status", "method": "policy.status", "params": {}})

    result = response["result"]
    effective = result["effective_config"]
    assert effective["base_dir"] == str(tmp_path.resolve())
    assert effective["config_path"] == str((tmp_path / "policy_mcp.toml").resolve())
    assert effective["patterns"] == ["policies/*.md", "missing.md"]
    assert effective["limits"]["max_chunk_tokens"] == 500
    assert effective["watch"] is False
    index = result["index"]
    assert index["stale"] is False
    assert index["rebuilding"] is False
    assert index["watch_handle_count"] == 0
    assert index["file_count"] == 1
    assert index["section_count"] == 2
    assert index["duplicate_count"] == 0
    assert index["skipped_count"] == 1
    assert index["built_at"].endswith("Z")


def test_status_does_not_rebuild_a_stale_index(tmp_path: Path) -> None:
    (tmp_path / "policies").mkdir()
    (tmp_path / "policies" / "app.md").write_text("## {§APP.1}\n", encoding="utf-8")
    server = create_server(base_dir=str(tmp_path), cli_overrides=CliOverrides(watch=False))
    server.state.mark_stale()

    status = server.handle_payload({"id": "s1", "method": "policy.status", "params": {}})
    server.handle_payload({"id": "l1", "method": "policy.list_sources", "params": {}})
    after = server.handle_payload({"id": "s2", "method": "policy.status", "params": {}})

    assert status["result"]["index"]["stale"] is True
    assert after["result"]["index"]["stale"] is False
