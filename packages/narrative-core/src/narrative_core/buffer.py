"""
ConsoleLog: bounded line store behind a vignette's console panel.

Vignettes print into it (the "system console" in the command injection
demo, narrator messages in IDOR), and every Snapshot copies its lines
out. Backed by deque(maxlen=N), so the oldest line falls off when a new
one arrives on a full log.
"""

from collections import deque
from collections.abc import Iterable, Iterator


class ConsoleLog:
    """
    Ring buffer of console lines, newest last.

    Multi-line strings are split so each stored entry is exactly one
    rendered row.

    Example:
        log = ConsoleLog(maxlen=3)
        log.write("$ grep food menu.txt\\nfood: 3 results")
        log.tail(1)  # ["food: 3 results"]

    Attributes:
        dropped: Lines discarded because the log was full
    """

    def __init__(self, maxlen: int = 20) -> None:
        """
        Args:
            maxlen: Lines kept before the oldest is discarded
        """
        self._lines: deque[str] = deque(maxlen=maxlen)
        self.dropped = 0

    @property
    def maxlen(self) -> int:
        return self._lines.maxlen or 0

    def write(self, text: str) -> None:
        """Append text, one entry per line. A trailing newline adds nothing."""
        for line in text.rstrip("\n").split("\n"):
            if len(self._lines) == self.maxlen:
                self.dropped += 1
            self._lines.append(line)

    def replace(self, lines: Iterable[str]) -> None:
        """Show exactly these lines (subject to maxlen)."""
        self.clear()
        for line in lines:
            self.write(line)

    def tail(self, n: int | None = None) -> list[str]:
        """
        Copy of the newest n lines, or all lines if n is None.
        """
        lines = list(self._lines)
        if n is None:
            return lines
        return lines[-n:] if n > 0 else []

    def text(self, n: int | None = None) -> str:
        return "\n".join(self.tail(n))

    def clear(self) -> None:
        self._lines.clear()
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self._lines)
