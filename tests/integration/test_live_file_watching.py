from __future__ import annotations

import time
from pathlib import Path

from policy_mcp.config import CliOverrides
from policy_mcp.index import IndexState
from policy_mcp.server import create_server


def _wait_for_stale(state: IndexState, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if state.stale:
            return True
        time.sleep(0.05)
    return state.stale


def test_edited_policy_file_is_served_after_change(tmp_path: Path) -> None:
    policy = tmp_path / "policies" / "app.md"
    policy.parent.mkdir()
    policy.write_text("## {§APP.1}\nOld wording.\n", encoding="utf-8")
    server = create_server(base_dir=str(tmp_path), cli_overrides=CliOverrides(watch=True))
    try:
        assert len(server.state.watch_handles) == 1

        policy.write_text("## {§APP.1}\nNew wording.\n\n## {§APP.2}\nAdded.\n", encoding="utf-8")
        assert _wait_for_stale(server.state)

        fetched = server.handle_payload(
            {"id": "after", "method": "policy.fetch", "params": {"sections": ["§APP"]}}
        )
    finally:
        server.close()

    assert fetched["ok"] is True
    assert fetched["result"]["references"] == ["§APP.1", "§APP.2"]
    assert "New wording." in fetched["result"]["content"]
    assert server.state.closed is True
    assert server.state.watch_handles == ()


def test_unrelated_file_in_same_directory_does_not_mark_stale(tmp_path: Path) -> None:
    policy = tmp_path / "policies" / "app.md"
    policy.parent.mkdir()
    policy.write_text("## {§APP.1}\nRule.\n", encoding="utf-8")
    server = create_server(
        base_dir=str(tmp_path),
        cli_overrides=CliOverrides(config="policies/app.md", watch=True),
    )
    try:
        (policy.parent / "notes.txt").write_text("scratch\n", encoding="utf-8")
        time.sleep(0.5)

        assert server.state.stale is False
    finally:
        server.close()
