"""Built-in policy tools."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from policy_mcp.checks import check_policy_file, format_check_result, validate_references
from policy_mcp.config import PolicyConfig
from policy_mcp.index import IndexState
from policy_mcp.notation import NotationError
from policy_mcp.operations import (
    fetch_chunk,
    references_in_file,
    resolve_path,
    sources_summary,
)
from policy_mcp.resolver import ChunkingError, ResolutionError, expand_requested, gather_sections
from policy_mcp.resolver.engine import group_by_file
from policy_mcp.tools.registry import ToolDispatchError, ToolHandler, ToolRegistry

AUDIT_LOG_DEFAULT_LIMIT = 50
AUDIT_LOG_MAX_LIMIT = 200

_FAILURE_CODES = {
    "invalid_notation": "INVALID_NOTATION",
    "not_found": "SECTION_NOT_FOUND",
    "empty_extract": "SECTION_NOT_FOUND",
    "duplicate": "DUPLICATE_SECTION",
}


def register_builtin_tools(
    registry: ToolRegistry,
    state: IndexState,
    config: PolicyConfig,
    read_audit_entries: Callable[[str | None, int], list[dict[str, object]]],
) -> None:
    """Register the policy tool set in a fixed order."""
    registry.register(
        "policy.fetch",
        _fetch_handler(state, config),
        "Fetch sections with every referenced section, chunked by token budget.",
    )
    registry.register(
        "policy.resolve_references",
        _resolve_references_handler(state, config),
        "Map sections and their transitive references to source files.",
    )
    registry.register(
        "policy.extract_references",
        _extract_references_handler(config),
        "List the section references embedded in a file.",
    )
    registry.register(
        "policy.validate_references",
        _validate_references_handler(state),
        "Check that references exist in exactly one policy file.",
    )
    registry.register(
        "policy.list_sources",
        _list_sources_handler(state, config),
        "List policy files, index statistics and available prefixes.",
    )
    registry.register(
        "policy.check",
        _check_handler(config),
        "Check a policy file's section headers, numbering and fences.",
    )
    registry.register(
        "policy.status",
        _status_handler(state, config),
        "Report configuration and index state.",
    )
    registry.register(
        "policy.audit_log",
        _audit_log_handler(read_audit_entries),
        "Read recent audit log entries.",
    )


@contextmanager
def translate_errors() -> Iterator[None]:
    """Convert domain exceptions raised inside a tool into ToolDispatchError."""
    try:
        yield
    except NotationError as error:
        raise ToolDispatchError(code="INVALID_NOTATION", message=error.message) from error
    except ResolutionError as error:
        raise ToolDispatchError(
            code=_FAILURE_CODES[error.failure.kind],
            message=error.failure.message,
        ) from error
    except ChunkingError as error:
        raise ToolDispatchError(code="INVALID_CONTINUATION", message=str(error)) from error


def _reference_list(arguments: dict[str, object], key: str, tool: str) -> list[str]:
    value = arguments.get(key)
    if not isinstance(value, list) or not value:
        raise ToolDispatchError(
            code="INVALID_PARAMS",
            message=f"{tool} {key} must be a non-empty array of strings.",
        )
    if not all(isinstance(item, str) and item for item in value):
        raise ToolDispatchError(
            code="INVALID_PARAMS",
            message=f"{tool} {key} must contain only non-empty strings.",
        )
    return list(value)


def _optional_bool(arguments: dict[str, object], key: str, tool: str) -> bool:
    value = arguments.get(key, False)
    if not isinstance(value, bool):
        raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} {key} must be a boolean.")
    return value


def _file_path(arguments: dict[str, object], config: PolicyConfig, tool: str) -> Path:
    value = arguments.get("file_path")
    if not isinstance(value, str) or not value:
        raise ToolDispatchError(
            code="INVALID_PARAMS",
            message=f"{tool} file_path must be a non-empty string.",
        )
    resolved = resolve_path(value, config.base_dir)
    if not resolved.is_file():
        raise ToolDispatchError(code="FILE_NOT_FOUND", message=f"File not found: {resolved}")
    return resolved


def _fetch_handler(state: IndexState, config: PolicyConfig) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        sections = _reference_list(arguments, "sections", "policy.fetch")
        continuation = arguments.get("continuation")
        if continuation is not None and not isinstance(continuation, str):
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message="policy.fetch continuation must be a string.",
            )
        lenient = _optional_bool(arguments, "lenient", "policy.fetch")
        warnings: list[str] = []
        index = state.ensure_fresh()
        with translate_errors():
            result = fetch_chunk(
                sections,
                index,
                continuation=continuation,
                max_tokens=config.limits.max_chunk_tokens,
                lenient=lenient,
                on_warning=warnings.append,
            )
        payload = result.to_dict()
        if warnings:
            payload["__warnings__"] = warnings
        return payload

    return handler


def _resolve_references_handler(state: IndexState, config: PolicyConfig) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        sections = _reference_list(arguments, "sections", "policy.resolve_references")
        lenient = _optional_bool(arguments, "lenient", "policy.resolve_references")
        warnings: list[str] = []
        index = state.ensure_fresh()
        with translate_errors():
            gathered = gather_sections(
                expand_requested(sections, index),
                index,
                lenient=lenient,
                on_warning=warnings.append,
            )
        payload: dict[str, object] = {"locations": group_by_file(gathered, config.base_dir)}
        if warnings:
            payload["__warnings__"] = warnings
        return payload

    return handler


def _extract_references_handler(config: PolicyConfig) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        path = _file_path(arguments, config, "policy.extract_references")
        try:
            references = references_in_file(path)
        except (OSError, UnicodeDecodeError) as error:
            raise ToolDispatchError(
                code="FILE_NOT_FOUND",
                message=f"Failed to read {path}: {error}",
            ) from error
        return {"file_path": str(path), "references": references}

    return handler


def _validate_references_handler(state: IndexState) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        references = _reference_list(arguments, "references", "policy.validate_references")
        index = state.ensure_fresh()
        with translate_errors():
            report = validate_references(references, index)
        return report.to_dict()

    return handler


def _list_sources_handler(state: IndexState, config: PolicyConfig) -> ToolHandler:
    def handler(_: dict[str, object]) -> dict[str, object]:
        index = state.ensure_fresh()
        return sources_summary(state.files, index, config.base_dir)

    return handler


def _check_handler(config: PolicyConfig) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        path = _file_path(arguments, config, "policy.check")
        try:
            result = check_policy_file(path)
        except (OSError, UnicodeDecodeError) as error:
            raise ToolDispatchError(
                code="FILE_NOT_FOUND",
                message=f"Failed to read {path}: {error}",
            ) from error
        payload = result.to_dict()
        payload["file_path"] = str(path)
        payload["report"] = format_check_result(result, str(path))
        return payload

    return handler


def _status_handler(state: IndexState, config: PolicyConfig) -> ToolHandler:
    def handler(_: dict[str, object]) -> dict[str, object]:
        index = state.index
        return {
            "effective_config": config.to_public_dict(),
            "index": {
                "stale": state.stale,
                "rebuilding": state.rebuilding,
                "watch_handle_count": len(state.watch_handles),
                "file_count": index.file_count,
                "section_count": index.section_count,
                "duplicate_count": len(index.duplicates),
                "skipped_count": len(index.skipped),
                "built_at": index.built_at,
            },
        }

    return handler


def _audit_log_handler(
    read_audit_entries: Callable[[str | None, int], list[dict[str, object]]],
) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        since_value = arguments.get("since")
        limit_value = arguments.get("limit", AUDIT_LOG_DEFAULT_LIMIT)

        since: str | None = since_value if isinstance(since_value, str) else None
        limit = (
            limit_value
            if isinstance(limit_value, int) and not isinstance(limit_value, bool)
            else AUDIT_LOG_DEFAULT_LIMIT
        )
        limit = max(1, min(limit, AUDIT_LOG_MAX_LIMIT))
        return {"entries": read_audit_entries(since, limit)}

    return handler
