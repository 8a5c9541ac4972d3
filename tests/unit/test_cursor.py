# ============================================================================
# FILE: tests/unit/test_cursor.py
# ============================================================================
"""
Unit tests for the forward-only line cursor
"""

import pytest

from delta4qa.cursor import LineCursor
from delta4qa.errors import AnchorNotFound


def test_peek_and_advance():
    """Test peek returns current line and advance moves forward"""
    cur = LineCursor(["a", "b"])
    assert cur.peek() == "a"
    cur.advance()
    assert cur.peek() == "b"
    cur.advance()
    assert cur.peek() is None
    assert cur.at_end


def test_advance_past_end_is_noop():
    """Test advance at end keeps position"""
    cur = LineCursor(["a"])
    cur.advance()
    cur.advance()
    assert cur.position == 1


def test_scan_until_leaves_cursor_on_match():
    """Test scan_until returns the matching line without consuming it"""
    cur = LineCursor(["x", "Plan: A", "y"])
    line = cur.scan_until(lambda ln: ln.startswith("Plan:"), "Plan:")
    assert line == "Plan: A"
    assert cur.position == 1
    assert cur.peek() == "Plan: A"


def test_scan_until_missing_anchor():
    """Test scan_until raises AnchorNotFound at end of input"""
    cur = LineCursor(["x", "y"])
    with pytest.raises(AnchorNotFound) as exc:
        cur.scan_until(lambda ln: ln.startswith("Plan:"), "Plan:")
    assert exc.value.expected == "Plan:"
    assert exc.value.line_index == 2


def test_collect_until_skips_blank_and_strips():
    """Test collect_until keeps non-empty stripped lines before the terminal line"""
    cur = LineCursor(["  one ", "", "   ", "two", "STOP", "three"])
    out = cur.collect_until(lambda ln: ln == "STOP", "STOP")
    assert out == ["one", "two"]
    assert cur.peek() == "STOP"


def test_collect_until_missing_anchor():
    """Test collect_until raises when the terminal line never appears"""
    cur = LineCursor(["one", "two"])
    with pytest.raises(AnchorNotFound):
        cur.collect_until(lambda ln: ln == "STOP", "STOP")


def test_seek_never_rewinds():
    """Test seek refuses to move backwards"""
    cur = LineCursor(["a", "b", "c"])
    cur.seek(2)
    assert cur.peek() == "c"
    with pytest.raises(ValueError):
        cur.seek(1)


def test_line_at_out_of_range():
    """Test absolute lookup outside the input returns None"""
    cur = LineCursor(["a"])
    assert cur.line_at(0) == "a"
    assert cur.line_at(5) is None
    assert cur.line_at(-1) is None


def test_none_lines_become_empty():
    """Test None entries are treated as empty lines"""
    cur = LineCursor(["a", None, "b"])
    assert cur.collect_until(lambda ln: ln == "b", "b") == ["a"]
