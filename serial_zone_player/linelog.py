from __future__ import annotations

import datetime
from collections import deque
from typing import Callable, Deque, Final, List, Optional

MAX_LOG_LENGTH: Final[int] = 100


class LineLog:
    """
    Bounded, timestamped log of received lines for on-screen display.
    Entries look like "9:05:07 -> 42"; only the newest max_length are kept.
    Args:
        max_length (int): Number of entries to keep
        echo: Called with each formatted entry, e.g. click.echo
    """

    def __init__(self, max_length: int = MAX_LOG_LENGTH, echo: Optional[Callable[[str], None]] = None) -> None:
        self._entries: Deque[str] = deque(maxlen=max_length)
        self.echo = echo

    @staticmethod
    def timestamp(now: Optional[datetime.datetime] = None) -> str:
        now = now or datetime.datetime.now()
        return f"{now.hour}:{now.minute:02d}:{now.second:02d}"

    def add(self, line: str, now: Optional[datetime.datetime] = None) -> str:
        """
        Record one line; a trailing carriage return is dropped for display.
        Returns:
            str: The formatted entry
        """
        text = line.rstrip("\r")
        entry = f"{self.timestamp(now)} -> {text}"
        self._entries.append(entry)
        if self.echo is not None:
            self.echo(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
