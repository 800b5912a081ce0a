from __future__ import annotations

from pathlib import Path

from policy_mcp.config import CliOverrides
from policy_mcp.server import StdioServer, create_server

POLICY = """# Application policies

## {§APP.1}
First rule. Also see §META.1.

---

## {§APP.2}
Second rule with a longer explanation that takes up some room in the output.

---

## {§APP.3}
Third rule with a longer explanation that also takes up some room in the output.
"""

META = """## {§META.1}
Meta background.
"""


def _server(root: Path, max_chunk_tokens: int | None = None) -> StdioServer:
    (root / "policies").mkdir()
    (root / "policies" / "app.md").write_text(POLICY, encoding="utf-8")
    (root / "policies" / "meta.md").write_text(META, encoding="utf-8")
    return create_server(
        base_dir=str(root),
        cli_overrides=CliOverrides(watch=False, max_chunk_tokens=max_chunk_tokens),
    )


def _fetch(server: StdioServer, params: dict[str, object]) -> dict[str, object]:
    return server.handle_payload({"id": "fetch", "method": "policy.fetch", "params": params})


def test_fetch_returns_requested_and_referenced_sections_in_order(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _fetch(server, {"sections": ["§APP.1"]})

    assert response["ok"] is True
    result = response["result"]
    assert result["references"] == ["§APP.1", "§META.1"]
    assert result["has_more"] is False
    assert result["continuation"] is None
    assert result["chunk_count"] == 1
    content = result["content"]
    assert content.index("## {§APP.1}") < content.index("## {§META.1}")
    assert "## {§APP.2}" not in content


def test_fetch_wildcard_and_range(tmp_path: Path) -> None:
    server = _server(tmp_path)

    wildcard = _fetch(server, {"sections": ["§APP"]})
    ranged = _fetch(server, {"sections": ["§APP.2-3"]})

    assert wildcard["result"]["references"] == ["§APP.1", "§APP.2", "§APP.3", "§META.1"]
    assert ranged["result"]["references"] == ["§APP.2", "§APP.3"]


def test_large_fetch_is_chunked_with_continuation(tmp_path: Path) -> None:
    server = _server(tmp_path, max_chunk_tokens=30)

    first = _fetch(server, {"sections": ["§APP"]})["result"]

    assert first["has_more"] is True
    assert first["continuation"] == "chunk:1"
    assert first["chunk_index"] == 0
    assert first["content"].endswith(
        "**INCOMPLETE RESPONSE: CONTINUATION REQUIRED**\n\n"
        'Call policy.fetch again with: sections=["§APP"], continuation="chunk:1"'
    )
    assert "---\n\n---" not in first["content"]

    chunks = [first]
    while chunks[-1]["has_more"]:
        token = chunks[-1]["continuation"]
        chunks.append(_fetch(server, {"sections": ["§APP"], "continuation": token})["result"])

    assert [chunk["chunk_index"] for chunk in chunks] == list(range(first["chunk_count"]))
    assert chunks[-1]["continuation"] is None
    assert "## {§META.1}" in chunks[-1]["content"]


def test_out_of_range_continuation_is_an_error(tmp_path: Path) -> None:
    server = _server(tmp_path, max_chunk_tokens=30)
    count = _fetch(server, {"sections": ["§APP"]})["result"]["chunk_count"]

    response = _fetch(server, {"sections": ["§APP"], "continuation": "chunk:99"})

    assert response["ok"] is False
    assert response["error"] == {
        "code": "INVALID_CONTINUATION",
        "message": (
            "Invalid continuation token: chunk:99 "
            f"(requested chunk 99 but only {count} chunks exist)"
        ),
    }


def test_missing_section_fails_strict_and_warns_lenient(tmp_path: Path) -> None:
    server = _server(tmp_path)

    strict = _fetch(server, {"sections": ["§APP.1", "§APP.9"]})
    lenient = _fetch(server, {"sections": ["§APP.1", "§APP.9"], "lenient": True})

    assert strict["ok"] is False
    assert strict["error"]["code"] == "SECTION_NOT_FOUND"
    assert lenient["ok"] is True
    assert lenient["result"]["references"] == ["§APP.1", "§META.1"]
    assert len(lenient["warnings"]) == 1
    assert "§APP.9" in lenient["warnings"][0]
    assert "__warnings__" not in lenient["result"]
