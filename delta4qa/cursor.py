# delta4qa/cursor.py
from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from delta4qa.errors import AnchorNotFound

LinePredicate = Callable[[str], bool]


class LineCursor:
    """
    Forward-only cursor over the report lines.

    Every stage reads from the same cursor; the position only ever moves
    forward, so no stage can see lines consumed by an earlier one.
    """

    def __init__(self, lines: Iterable[str]):
        self._lines = tuple("" if ln is None else str(ln) for ln in lines)
        self._pos = 0

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def position(self) -> int:
        return self._pos

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._lines)

    def line_at(self, index: int) -> Optional[str]:
        """Absolute lookup used by layout detection; does not move the cursor."""
        if 0 <= index < len(self._lines):
            return self._lines[index]
        return None

    def peek(self) -> Optional[str]:
        if self.at_end:
            return None
        return self._lines[self._pos]

    def advance(self) -> None:
        if not self.at_end:
            self._pos += 1

    def seek(self, index: int) -> None:
        """Jump forward to an absolute index. Moving backwards is refused."""
        if index < self._pos:
            raise ValueError(f"LineCursor cannot rewind from {self._pos} to {index}")
        self._pos = min(index, len(self._lines))

    def scan_until(self, predicate: LinePredicate, anchor: str) -> str:
        """
        Advance until predicate(line) is true and return that line.
        The cursor is left on the matching line.
        """
        while not self.at_end:
            line = self._lines[self._pos]
            if predicate(line):
                return line
            self._pos += 1
        raise AnchorNotFound(anchor, self._pos)

    def collect_until(self, predicate: LinePredicate, anchor: str) -> List[str]:
        """
        Same scan as scan_until(), returning every non-empty stripped line
        visited before the terminal one.
        """
        out: List[str] = []
        while not self.at_end:
            line = self._lines[self._pos]
            if predicate(line):
                return out
            s = line.strip()
            if s:
                out.append(s)
            self._pos += 1
        raise AnchorNotFound(anchor, self._pos)
