"""Command-line access to policy fetching, validation and checks."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from pathlib import Path

from policy_mcp.checks import check_policy_file, format_check_result, validate_references
from policy_mcp.config import CliOverrides, ConfigError, PolicyConfig, load_effective_config
from policy_mcp.index import SectionIndex, build_section_index
from policy_mcp.notation import NotationError
from policy_mcp.operations import (
    format_sources_markdown,
    references_in_file,
    resolve_path,
    sources_summary,
)
from policy_mcp.resolver import (
    ResolutionError,
    expand_requested,
    fetch_sections,
    resolve_locations,
)

CONFIG_HELP = "Path to a policy_mcp.toml file or a glob pattern (defaults to $POLICY_MCP_CONFIG)."


class CliError(Exception):
    """A user-facing failure printed as ``Error: <message>``."""


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="policy-cli",
        description="CLI for policy documentation operations.",
    )
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    fetch = subparsers.add_parser(
        "fetch-policies", help="Fetch policy content for § references found in a file."
    )
    fetch.add_argument("file")
    fetch.add_argument("-c", "--config", default=None, help=CONFIG_HELP)

    validate = subparsers.add_parser(
        "validate-references", help="Validate that § references exist and are unique."
    )
    validate.add_argument("references", nargs="+")
    validate.add_argument("-c", "--config", default=None, help=CONFIG_HELP)

    extract = subparsers.add_parser("extract-references", help="Extract § references from a file.")
    extract.add_argument("file")

    sources = subparsers.add_parser(
        "list-sources", help="List policy files, index statistics and prefixes."
    )
    sources.add_argument("-c", "--config", default=None, help=CONFIG_HELP)

    resolve = subparsers.add_parser(
        "resolve-references", help="Map § references to their source files."
    )
    resolve.add_argument("references", nargs="+")
    resolve.add_argument("-c", "--config", default=None, help=CONFIG_HELP)

    check = subparsers.add_parser(
        "check", help="Check policy file format (sections, numbering, fencing)."
    )
    check.add_argument("files", nargs="+")
    return parser


def _load(config: str | None) -> tuple[PolicyConfig, SectionIndex]:
    effective = load_effective_config(Path.cwd(), overrides=CliOverrides(config=config))
    return effective, build_section_index(effective.files)


def _existing_file(raw: str) -> Path:
    path = resolve_path(raw, Path.cwd())
    if not path.is_file():
        raise CliError(f"File not found: {path}")
    return path


def _fetch_policies(args: argparse.Namespace) -> int:
    references = references_in_file(_existing_file(args.file))
    if not references:
        return 0
    _, index = _load(args.config)
    unique = list(dict.fromkeys(expand_requested(references, index)))
    content = fetch_sections(unique, index)
    sys.stdout.write(content)
    return 0


def _validate_references(args: argparse.Namespace) -> int:
    _, index = _load(args.config)
    report = validate_references(args.references, index)
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    return 0 if report.valid else 1


def _extract_references(args: argparse.Namespace) -> int:
    references = references_in_file(_existing_file(args.file))
    print(json.dumps(references, indent=2, ensure_ascii=False))
    return 0


def _list_sources(args: argparse.Namespace) -> int:
    config, index = _load(args.config)
    summary = sources_summary(config.files, index, config.base_dir)
    print(format_sources_markdown(summary))
    return 0


def _resolve_references(args: argparse.Namespace) -> int:
    config, index = _load(args.config)
    locations = resolve_locations(expand_requested(args.references, index), index, config.base_dir)
    print(json.dumps(locations, indent=2, ensure_ascii=False))
    return 0


def _check(args: argparse.Namespace) -> int:
    exit_code = 0
    reports: list[str] = []
    for raw in args.files:
        path = _existing_file(raw)
        result = check_policy_file(path)
        reports.append(format_check_result(result, raw))
        if not result.valid:
            exit_code = 1
    print("\n\n".join(reports))
    return exit_code


_HANDLERS: dict[str, Callable[[argparse.Namespace], int]] = {
    "fetch-policies": _fetch_policies,
    "validate-references": _validate_references,
    "extract-references": _extract_references,
    "list-sources": _list_sources,
    "resolve-references": _resolve_references,
    "check": _check,
}


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for ``policy-cli``."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    handler = _HANDLERS[args.subcommand]
    try:
        return handler(args)
    except (CliError, ConfigError) as error:
        print(f"Error: {error}", file=sys.stderr)
    except NotationError as error:
        print(f"Error: {error.message}", file=sys.stderr)
    except ResolutionError as error:
        print(f"Error: {error.failure.message}", file=sys.stderr)
    except (OSError, UnicodeDecodeError) as error:
        print(f"Error: {error}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
