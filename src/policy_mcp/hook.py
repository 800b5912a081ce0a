"""PreToolUse hook that appends referenced policies to sub-agent prompts."""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

from policy_mcp.config import CliOverrides, ConfigError, load_effective_config
from policy_mcp.index import build_section_index
from policy_mcp.operations import references_in_text
from policy_mcp.resolver import expand_embedded, fetch_sections

PROJECT_DIR_ENV_VAR = "CLAUDE_PROJECT_DIR"
HOOK_EVENT_NAME = "PreToolUse"

_TOOLS_LINE_RE = re.compile(r"^tools:\s*(.+)$", re.MULTILINE)
_POLICY_TOOL_RE = re.compile(
    r"(?<![\w.])(?:mcp__[\w-]+__)?policy\.fetch(?![\w.])"
    r"|mcp__(?:\w+_)*policy-server__fetch_policies"
)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="policy-hook",
        description="Read a PreToolUse payload on stdin and inject policies into the prompt.",
    )
    parser.add_argument("-c", "--config", default=None)
    parser.add_argument(
        "-a",
        "--agents-dir",
        default=None,
        help="Agent files directory (defaults to $CLAUDE_PROJECT_DIR/.claude/agents).",
    )
    return parser


def agent_has_policy_tool(content: str) -> bool:
    """Return True when the agent's frontmatter ``tools:`` line grants the fetch tool."""
    if not content.startswith("---"):
        return False
    end = content.find("---", 3)
    if end == -1:
        return False
    match = _TOOLS_LINE_RE.search(content[3:end])
    if match is None:
        return False
    return _POLICY_TOOL_RE.search(match.group(1)) is not None


def resolve_agents_dir(agents_dir: str | None, environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    project_dir = Path(env.get(PROJECT_DIR_ENV_VAR) or Path.cwd())
    if agents_dir is None:
        return project_dir / ".claude" / "agents"
    candidate = Path(agents_dir)
    return candidate if candidate.is_absolute() else project_dir / candidate


def allow_response() -> dict[str, object]:
    return {"permissionDecision": "allow"}


def build_hook_response(
    payload: object,
    agents_dir: Path,
    config: str | None = None,
    warnings: TextIO | None = None,
) -> dict[str, object]:
    """Compute the hook output for one parsed payload.

    Any missing piece (agent, references, config) yields a plain allow.
    Unresolvable references are reported to ``warnings`` and skipped.
    """
    if not isinstance(payload, dict):
        return allow_response()
    tool_input = payload.get("tool_input")
    if not isinstance(tool_input, dict):
        return allow_response()
    subagent_type = tool_input.get("subagent_type")
    prompt = tool_input.get("prompt")
    if not isinstance(subagent_type, str) or not subagent_type:
        return allow_response()
    if not isinstance(prompt, str) or not prompt:
        return allow_response()

    agent_path = agents_dir / f"{subagent_type}.md"
    try:
        agent_content = agent_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return allow_response()
    if agent_has_policy_tool(agent_content):
        return allow_response()

    references = references_in_text(agent_content)
    if not references:
        return allow_response()

    try:
        effective = load_effective_config(Path.cwd(), overrides=CliOverrides(config=config))
    except ConfigError:
        return allow_response()
    index = build_section_index(effective.files)

    stream = warnings if warnings is not None else sys.stderr

    def warn(message: str) -> None:
        print(f"Warning: {message}", file=stream)

    expanded = list(dict.fromkeys(expand_embedded(references, index)))
    policies = fetch_sections(expanded, index, lenient=True, on_warning=warn)
    if not policies:
        return allow_response()

    updated_input = dict(tool_input)
    updated_input["prompt"] = f"{prompt}\n\n<policies>\n{policies}\n</policies>"
    return {
        "hookSpecificOutput": {
            "hookEventName": HOOK_EVENT_NAME,
            "permissionDecision": "allow",
            "updatedInput": updated_input,
        }
    }


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for ``policy-hook``."""
    args = build_arg_parser().parse_args(argv)
    agents_dir = resolve_agents_dir(args.agents_dir)
    raw = sys.stdin.read()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        response = allow_response()
    else:
        response = build_hook_response(payload, agents_dir, config=args.config)
    sys.stdout.write(json.dumps(response, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
