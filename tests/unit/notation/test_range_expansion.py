from __future__ import annotations

import pytest

from policy_mcp.notation import NotationError, expand_range


def test_abbreviated_subsection_range_expands_inclusively() -> None:
    assert expand_range("§APP.4.1-3") == ["§APP.4.1", "§APP.4.2", "§APP.4.3"]


def test_explicit_major_range_expands_inclusively() -> None:
    assert expand_range("§APP.4.1-4.3") == ["§APP.4.1", "§APP.4.2", "§APP.4.3"]


def test_top_level_range_expands_inclusively() -> None:
    assert expand_range("§META.2-4") == ["§META.2", "§META.3", "§META.4"]


def test_non_range_returns_single_element() -> None:
    assert expand_range("§APP.7") == ["§APP.7"]
    assert expand_range("§APP") == ["§APP"]


def test_backwards_range_is_empty_without_error() -> None:
    assert expand_range("§APP.4.5-2") == []
    assert expand_range("§APP.9-3") == []


def test_mismatched_major_is_not_treated_as_range() -> None:
    assert expand_range("§APP.4.1-5.3") == ["§APP.4.1-5.3"]


def test_missing_section_sign_raises() -> None:
    with pytest.raises(NotationError):
        expand_range("APP.4.1-3")
