from __future__ import annotations

from pathlib import Path

from policy_mcp.config import CliOverrides, load_effective_config
from policy_mcp.server import create_server


def _policies(root: Path) -> None:
    (root / "policies").mkdir()
    (root / "policies" / "app.md").write_text("## {§APP.1}\nA\n", encoding="utf-8")


def test_merge_order_defaults_then_file_then_cli(tmp_path: Path) -> None:
    _policies(tmp_path)
    (tmp_path / "policy_mcp.toml").write_text(
        "\n".join(
            [
                "watch = false",
                "",
                "[limits]",
                "max_chunk_tokens = 42",
                "max_total_bytes_per_response = 5000",
            ]
        ),
        encoding="utf-8",
    )
    overrides = CliOverrides(max_chunk_tokens=99)
    server = create_server(base_dir=str(tmp_path), cli_overrides=overrides)

    response = server.handle_payload({"id": "req-merge", "method": "policy.status", "params": {}})
    effective = response["result"]["effective_config"]

    assert effective["limits"]["max_chunk_tokens"] == 99
    assert effective["limits"]["max_total_bytes_per_response"] == 5000
    assert effective["watch"] is False
    assert effective["patterns"] == ["policies/*.md"]


def test_data_dir_override_has_highest_precedence(tmp_path: Path) -> None:
    _policies(tmp_path)
    (tmp_path / "policy_mcp.toml").write_text('data_dir = "from_file"\n', encoding="utf-8")
    custom_data_dir = tmp_path / ".custom_data"

    config = load_effective_config(
        tmp_path,
        overrides=CliOverrides(data_dir=custom_data_dir),
        environ={},
    )

    assert config.data_dir == custom_data_dir.resolve()


def test_cli_config_beats_environment_variable(tmp_path: Path) -> None:
    _policies(tmp_path)
    (tmp_path / "other.md").write_text("## {§OTHER.1}\n", encoding="utf-8")

    from_env = load_effective_config(tmp_path, environ={"POLICY_MCP_CONFIG": "other.md"})
    from_cli = load_effective_config(
        tmp_path,
        overrides=CliOverrides(config="policies/*.md"),
        environ={"POLICY_MCP_CONFIG": "other.md"},
    )

    assert from_env.files == (str((tmp_path / "other.md").resolve()),)
    assert from_cli.files == (str((tmp_path / "policies" / "app.md").resolve()),)


def test_toml_source_moves_base_directory(tmp_path: Path) -> None:
    nested = tmp_path / "conf"
    nested.mkdir()
    (nested / "docs").mkdir()
    (nested / "docs" / "rules.md").write_text("## {§RULE.1}\n", encoding="utf-8")
    (nested / "custom.toml").write_text(
        '[policies]\nfiles = ["docs/*.md"]\n', encoding="utf-8"
    )

    config = load_effective_config(tmp_path, overrides=CliOverrides(config="conf/custom.toml"))

    assert config.base_dir == nested.resolve()
    assert config.config_path == (nested / "custom.toml").resolve()
    assert config.files == (str((nested / "docs" / "rules.md").resolve()),)
    assert config.data_dir == (nested / ".policy_mcp").resolve()


def test_defaults_without_config_file(tmp_path: Path) -> None:
    _policies(tmp_path)

    config = load_effective_config(tmp_path, environ={})

    assert config.config_path is None
    assert config.watch is True
    assert config.limits.max_chunk_tokens == 10_000
    assert config.limits.max_total_bytes_per_response == 1024 * 1024
