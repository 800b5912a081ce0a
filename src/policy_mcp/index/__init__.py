"""Section index construction, staleness tracking and extraction."""

from policy_mcp.index.builder import build_section_index, merge_file_references
from policy_mcp.index.extractor import (
    extract_section,
    extract_section_from_lines,
    read_file_references,
    scan_section_references,
)
from policy_mcp.index.models import FileRecord, SectionIndex, empty_index
from policy_mcp.index.state import IndexState, initialize_index_state
from policy_mcp.index.watcher import FileWatcher, PolicyFileEventHandler, WatchHandle

__all__ = [
    "FileRecord",
    "FileWatcher",
    "IndexState",
    "PolicyFileEventHandler",
    "SectionIndex",
    "WatchHandle",
    "build_section_index",
    "empty_index",
    "extract_section",
    "extract_section_from_lines",
    "initialize_index_state",
    "merge_file_references",
    "read_file_references",
    "scan_section_references",
]
