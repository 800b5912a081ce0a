from __future__ import annotations

import os
from pathlib import Path

import pytest

from policy_mcp.index import build_section_index, builder, extractor


def _write(path: Path, text: str) -> str:
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_build_maps_each_reference_to_its_file(tmp_path: Path) -> None:
    app = _write(tmp_path / "app.md", "## {§APP.1}\nA\n### {§APP.1.1}\nB\n")
    meta = _write(tmp_path / "meta.md", "## {§META.1}\nM\n")

    index = build_section_index([app, meta])

    assert index.lookup == {"§APP.1": app, "§APP.1.1": app, "§META.1": meta}
    assert index.duplicates == {}
    assert index.file_count == 2
    assert index.section_count == 3
    assert index.prefixes() == ["APP", "META"]


def test_reference_in_two_files_moves_entirely_to_duplicates(tmp_path: Path) -> None:
    first = _write(tmp_path / "one.md", "## {§DUP.1}\nA\n## {§DUP.2}\nB\n")
    second = _write(tmp_path / "two.md", "## {§DUP.1}\nC\n")

    index = build_section_index([first, second])

    assert index.duplicates == {"§DUP.1": (first, second)}
    assert "§DUP.1" not in index.lookup
    assert index.lookup["§DUP.2"] == first
    assert index.references_with_prefix("DUP") == ["§DUP.1", "§DUP.2"]


def test_missing_and_unreadable_files_are_skipped(tmp_path: Path) -> None:
    good = _write(tmp_path / "good.md", "## {§APP.1}\nA\n")
    missing = str(tmp_path / "missing.md")
    binary = tmp_path / "binary.md"
    binary.write_bytes(b"\xff\xfe\x00bad")

    index = build_section_index([missing, good, str(binary)])

    assert index.skipped == (missing, str(binary))
    assert list(index.files) == [good]
    assert index.lookup == {"§APP.1": good}


def test_unchanged_files_are_not_reread(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path / "app.md", "## {§APP.1}\nA\n")
    first = build_section_index([path])

    def fail_read(_: object) -> tuple[str, ...]:
        raise AssertionError("file should not be re-read")

    monkeypatch.setattr(extractor, "read_file_references", fail_read)
    second = build_section_index([path], previous=first)

    assert second.files[path] is first.files[path]
    assert second.lookup == first.lookup


def test_changed_size_triggers_reparse(tmp_path: Path) -> None:
    path = tmp_path / "app.md"
    _write(path, "## {§APP.1}\nA\n")
    first = build_section_index([str(path)])
    stat = path.stat()

    path.write_text("## {§APP.1}\nA\n## {§APP.2}\nB\n", encoding="utf-8")
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns))
    second = build_section_index([str(path)], previous=first)

    assert "§APP.2" in second.lookup


def test_dropped_files_do_not_leak_into_rebuild(tmp_path: Path) -> None:
    app = _write(tmp_path / "app.md", "## {§APP.1}\nA\n")
    meta = _write(tmp_path / "meta.md", "## {§META.1}\nM\n")
    first = build_section_index([app, meta])

    second = build_section_index([app], previous=first)

    assert list(second.files) == [app]
    assert "§META.1" not in second.lookup


def test_headers_inside_fences_are_not_indexed(tmp_path: Path) -> None:
    path = _write(tmp_path / "app.md", "## {§APP.1}\n```\n## {§APP.2}\n```\n")

    index = build_section_index([path])

    assert list(index.lookup) == ["§APP.1"]


def test_built_at_uses_audit_timestamp_format(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = _write(tmp_path / "app.md", "## {§APP.1}\n")
    monkeypatch.setattr(builder, "utc_timestamp", lambda: "2026-10-16T12:00:00.000Z")

    index = build_section_index([path])

    assert index.built_at == "2026-10-16T12:00:00.000Z"
