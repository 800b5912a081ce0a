"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import glob
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path

from policy_mcp.resolver import DEFAULT_MAX_CHUNK_TOKENS

CONFIG_FILE_NAME = "policy_mcp.toml"
CONFIG_ENV_VAR = "POLICY_MCP_CONFIG"
DEFAULT_FILE_PATTERNS = ("policies/*.md",)
DEFAULT_DATA_DIR_NAME = ".policy_mcp"

MAX_CHUNK_TOKENS_CAP = 100_000
DEFAULT_MAX_TOTAL_BYTES_PER_RESPONSE = 1024 * 1024
MAX_TOTAL_BYTES_PER_RESPONSE_CAP = 16 * 1024 * 1024

_GLOB_CHARS = frozenset("*?[")


class ConfigError(ValueError):
    """Raised when configuration is missing, malformed or matches no files."""


@dataclass(slots=True, frozen=True)
class LimitsConfig:
    """Output size limits."""

    max_chunk_tokens: int = DEFAULT_MAX_CHUNK_TOKENS
    max_total_bytes_per_response: int = DEFAULT_MAX_TOTAL_BYTES_PER_RESPONSE


@dataclass(slots=True, frozen=True)
class PolicyConfig:
    """Fully merged configuration with resolved policy files."""

    base_dir: Path
    data_dir: Path
    patterns: tuple[str, ...]
    files: tuple[str, ...]
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    watch: bool = True
    config_path: Path | None = None

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for tool responses."""
        return {
            "base_dir": str(self.base_dir),
            "data_dir": str(self.data_dir),
            "config_path": str(self.config_path) if self.config_path is not None else None,
            "patterns": list(self.patterns),
            "files": list(self.files),
            "limits": {
                "max_chunk_tokens": self.limits.max_chunk_tokens,
                "max_total_bytes_per_response": self.limits.max_total_bytes_per_response,
            },
            "watch": self.watch,
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence.

    ``config`` is either a path to a TOML file or a glob pattern naming the
    policy files directly.
    """

    config: str | None = None
    data_dir: Path | None = None
    max_chunk_tokens: int | None = None
    max_total_bytes_per_response: int | None = None
    watch: bool | None = None


def default_config(base_dir: Path) -> PolicyConfig:
    """Build default config for a given base directory (files not yet expanded)."""
    resolved = base_dir.resolve()
    return PolicyConfig(
        base_dir=resolved,
        data_dir=resolved / DEFAULT_DATA_DIR_NAME,
        patterns=DEFAULT_FILE_PATTERNS,
        files=(),
    )


def load_config_file(path: Path) -> dict[str, object]:
    """Parse a TOML config file into a table."""
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid TOML: {exc}") from exc
    return payload


def is_toml_path(value: str) -> bool:
    return value.lower().endswith(".toml")


def is_glob_pattern(value: str) -> bool:
    return any(char in _GLOB_CHARS for char in value)


def _get_table(payload: Mapping[str, object], key: str) -> Mapping[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigError(f"Config field '{name}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item:
            raise ConfigError(f"Config field '{name}' must contain only non-empty strings.")
        output.append(item)
    if not output:
        raise ConfigError(f"Config field '{name}' must not be empty.")
    return tuple(output)


def _optional_positive_int_with_cap(value: object, name: str, default: int, cap: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"Config field '{name}' must be a positive integer.")
    if value > cap:
        raise ConfigError(f"Config field '{name}' must be <= {cap}.")
    return value


def _optional_bool(value: object, name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"Config field '{name}' must be a boolean.")
    return value


def merge_config(
    base: PolicyConfig,
    payload: Mapping[str, object],
    overrides: CliOverrides,
) -> PolicyConfig:
    """Merge defaults, file config, then CLI/startup overrides (files not yet expanded)."""
    policies = _get_table(payload, "policies")
    limits_payload = _get_table(payload, "limits")

    patterns = base.patterns
    if "files" in policies:
        patterns = _tuple_of_strings(policies["files"], "policies.files")

    data_dir = base.data_dir
    raw_data_dir = payload.get("data_dir")
    if raw_data_dir is not None:
        if not isinstance(raw_data_dir, str) or not raw_data_dir:
            raise ConfigError("Config field 'data_dir' must be a non-empty string.")
        data_dir = base.base_dir / raw_data_dir

    limits = LimitsConfig(
        max_chunk_tokens=_optional_positive_int_with_cap(
            limits_payload.get("max_chunk_tokens"),
            "limits.max_chunk_tokens",
            base.limits.max_chunk_tokens,
            MAX_CHUNK_TOKENS_CAP,
        ),
        max_total_bytes_per_response=_optional_positive_int_with_cap(
            limits_payload.get("max_total_bytes_per_response"),
            "limits.max_total_bytes_per_response",
            base.limits.max_total_bytes_per_response,
            MAX_TOTAL_BYTES_PER_RESPONSE_CAP,
        ),
    )
    watch = _optional_bool(payload.get("watch"), "watch", base.watch)
    merged = PolicyConfig(
        base_dir=base.base_dir,
        data_dir=data_dir,
        patterns=patterns,
        files=(),
        limits=limits,
        watch=watch,
        config_path=base.config_path,
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: PolicyConfig, overrides: CliOverrides) -> PolicyConfig:
    """Apply startup overrides at highest precedence."""
    limits = LimitsConfig(
        max_chunk_tokens=_optional_positive_int_with_cap(
            overrides.max_chunk_tokens,
            "overrides.max_chunk_tokens",
            config.limits.max_chunk_tokens,
            MAX_CHUNK_TOKENS_CAP,
        ),
        max_total_bytes_per_response=_optional_positive_int_with_cap(
            overrides.max_total_bytes_per_response,
            "overrides.max_total_bytes_per_response",
            config.limits.max_total_bytes_per_response,
            MAX_TOTAL_BYTES_PER_RESPONSE_CAP,
        ),
    )
    data_dir = overrides.data_dir or config.data_dir
    return PolicyConfig(
        base_dir=config.base_dir,
        data_dir=data_dir.resolve(),
        patterns=config.patterns,
        files=config.files,
        limits=limits,
        watch=overrides.watch if overrides.watch is not None else config.watch,
        config_path=config.config_path,
    )


def expand_file_patterns(base_dir: Path, patterns: tuple[str, ...]) -> tuple[str, ...]:
    """Expand paths and glob patterns into sorted absolute file paths.

    Each pattern's matches are sorted; patterns keep their configured order
    and a file named twice is kept at its first position. Literal paths are
    kept even when missing so the index can report them as skipped.
    """
    seen: set[str] = set()
    output: list[str] = []
    for pattern in patterns:
        if is_glob_pattern(pattern):
            matches = sorted(
                str((base_dir / match).resolve())
                for match in glob.glob(pattern, root_dir=base_dir, recursive=True)
                if (base_dir / match).is_file()
            )
        else:
            matches = [str((base_dir / pattern).resolve())]
        for path in matches:
            if path in seen:
                continue
            seen.add(path)
            output.append(path)
    return tuple(output)


def load_effective_config(
    base_dir: Path,
    overrides: CliOverrides | None = None,
    environ: Mapping[str, str] | None = None,
) -> PolicyConfig:
    """Load effective config using merge order defaults -> config file -> overrides.

    The config source is ``overrides.config``, then ``$POLICY_MCP_CONFIG``,
    then ``policy_mcp.toml`` in ``base_dir``. A TOML source moves the base
    directory to the file's parent; any other value is used as the file
    pattern itself.
    """
    env = os.environ if environ is None else environ
    active = overrides or CliOverrides()
    source = active.config or env.get(CONFIG_ENV_VAR) or None
    resolved_base = base_dir.resolve()
    payload: Mapping[str, object] = {}
    config_path: Path | None = None

    if source is not None and is_toml_path(source):
        config_path = (resolved_base / source).resolve()
        payload = load_config_file(config_path)
        resolved_base = config_path.parent
    elif source is None and (resolved_base / CONFIG_FILE_NAME).is_file():
        config_path = resolved_base / CONFIG_FILE_NAME
        payload = load_config_file(config_path)

    base = default_config(resolved_base)
    if config_path is not None:
        base = replace(base, config_path=config_path)
    merged = merge_config(base, payload, active)
    if source is not None and not is_toml_path(source):
        merged = replace(merged, patterns=(source,))

    files = expand_file_patterns(merged.base_dir, merged.patterns)
    if not files:
        raise ConfigError(
            f"No policy files matched: {', '.join(merged.patterns)} "
            f"(base directory {merged.base_dir})"
        )
    return replace(merged, files=files)
