"""
Keyboard input for the vignette player.

This module provides:
- normalize_key: Raw keypress or escape sequence to a key name
- KeyReader: Unbuffered single-key reads from a terminal file descriptor
- KeyboardTask: Async reader that feeds key names to the player

KeyReader reads straight from the descriptor with os.read(), one byte at
a time through an incremental UTF-8 decoder, so select() always agrees
with what is left to read. Escape sequences are collected until their
final byte. KeyboardTask runs the blocking reads in an executor with a
poll timeout, so stop() takes effect within one poll interval.
"""

import asyncio
import codecs
import os
import select
import sys
import termios
import tty
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Callable, Protocol

# Escape sequences and control characters mapped to key names
KEY_NAMES = {
    " ": "space",
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    "\x1b": "escape",
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
    "\x1b[H": "home",
    "\x1b[F": "end",
    "\x1b[3~": "delete",
    "\x7f": "backspace",
}

# Longest escape sequence collected before giving up on a final byte
MAX_SEQUENCE = 8


def normalize_key(raw: str) -> str:
    """
    Map a raw keypress to a key name.

    Printable characters are lower-cased so "Q" and "q" match the same
    binding; known control sequences get names from KEY_NAMES.
    """
    if raw in KEY_NAMES:
        return KEY_NAMES[raw]
    if len(raw) == 1:
        return raw.lower()
    return raw


class KeySource(Protocol):
    """What KeyboardTask needs from a reader."""

    closed: bool

    def raw_mode(self) -> AbstractContextManager[None]:
        ...

    def read(self, timeout: float) -> str | None:
        ...


class KeyReader:
    """
    Reads one key at a time from a file descriptor.

    Example:
        reader = KeyReader()          # stdin
        with reader.raw_mode():
            key = reader.read(0.3)    # "q", "\\x1b[A", ... or None

    Attributes:
        closed: Set once the descriptor reports end of input
    """

    def __init__(self, fd: int | None = None, sequence_timeout: float = 0.05) -> None:
        """
        Args:
            fd: Descriptor to read (stdin if None)
            sequence_timeout: Seconds to wait for the rest of an escape sequence
        """
        self._fd = fd if fd is not None else sys.stdin.fileno()
        self._sequence_timeout = sequence_timeout
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.closed = False

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        """cbreak mode for the duration of the block; a no-op off a terminal."""
        if not os.isatty(self._fd):
            yield
            return
        saved = termios.tcgetattr(self._fd)
        try:
            tty.setcbreak(self._fd)
            yield
        finally:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, saved)

    def read(self, timeout: float) -> str | None:
        """
        Wait up to timeout seconds for a key.

        Returns:
            The key (a full escape sequence for arrows and the like), or
            None on timeout or end of input
        """
        if self.closed or not self._ready(timeout):
            return None
        char = self._read_char()
        if char != "\x1b":
            return char
        return char + self._read_sequence()

    def _ready(self, timeout: float) -> bool:
        return bool(select.select([self._fd], [], [], timeout)[0])

    def _read_char(self) -> str | None:
        while True:
            data = os.read(self._fd, 1)
            if not data:
                self.closed = True
                return None
            char = self._decoder.decode(data)
            if char:
                return char

    def _read_sequence(self) -> str:
        # CSI: ESC [ parameters final-byte, final byte in "@".."~"
        sequence = ""
        while len(sequence) < MAX_SEQUENCE and self._ready(self._sequence_timeout):
            char = self._read_char()
            if char is None:
                break
            sequence += char
            if sequence == "[":
                continue
            if not sequence.startswith("[") or "@" <= char <= "~":
                break
        return sequence


class KeyboardTask:
    """
    Async keyboard reader for the player's TaskGroup.

    Example:
        keyboard = KeyboardTask(on_key=handle_key)
        tg.create_task(keyboard.run())
        # Later:
        keyboard.stop()
    """

    def __init__(
        self,
        on_key: Callable[[str], None],
        poll_interval: float = 0.3,
        reader: KeySource | None = None,
    ) -> None:
        """
        Initialize keyboard task.

        Args:
            on_key: Callback invoked with each normalised key name
            poll_interval: Seconds each blocking read waits before re-checking stop()
            reader: Key source (a KeyReader on stdin if None)
        """
        self._on_key = on_key
        self._poll_interval = poll_interval
        self._reader = reader
        self._shutdown = asyncio.Event()

    async def run(self) -> None:
        """Read keys until stop(), end of input, or cancellation."""
        loop = asyncio.get_running_loop()
        reader = self._reader if self._reader is not None else KeyReader()
        with reader.raw_mode():
            while not self._shutdown.is_set() and not reader.closed:
                try:
                    raw = await loop.run_in_executor(None, reader.read, self._poll_interval)
                except asyncio.CancelledError:
                    break
                if raw is not None:
                    self._on_key(normalize_key(raw))

    def stop(self) -> None:
        """Signal task to stop."""
        self._shutdown.set()
