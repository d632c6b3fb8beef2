"""Reading lines of source files around a given line, with caching."""

from __future__ import annotations

import threading
from collections.abc import Sequence


def calculate_context_lines(
    lines: Sequence[str] | None, line: int, context: int
) -> tuple[list[str], int]:
    """Return the lines around ``line`` and the index of ``line`` among them.

    ``line`` is 1-based. Up to ``context`` lines are taken on each side;
    a negative ``context`` counts as zero. When ``lines`` is None or
    ``line`` is out of range, ``([], 0)`` is returned.
    """
    index = line - 1
    if lines is None or index >= len(lines) or index < 0:
        return [], 0

    context = max(context, 0)
    context_line = context
    start = index - context
    if start < 0:
        context_line += start
        start = 0
    end = min(index + context + 1, len(lines))
    return list(lines[start:end]), context_line


class SourceReader:
    """Reads source files on demand and caches their lines.

    Files that cannot be read are cached as None so that they are not
    tried again.
    """

    def __init__(self) -> None:
        self.cache: dict[str, list[str] | None] = {}
        self._lock = threading.Lock()

    def read_context_lines(
        self, filename: str, line: int, context: int
    ) -> tuple[list[str], int]:
        """Return the lines of ``filename`` around ``line``, see
        :func:`calculate_context_lines`."""
        with self._lock:
            if filename in self.cache:
                lines = self.cache[filename]
            else:
                try:
                    with open(
                        filename, encoding="utf-8", errors="replace", newline=""
                    ) as handle:
                        data = handle.read()
                except OSError:
                    self.cache[filename] = None
                    return [], 0
                lines = data.split("\n")
                self.cache[filename] = lines
            return calculate_context_lines(lines, line, context)