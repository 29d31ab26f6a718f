from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union

# Optionally signed decimal literal with an optional fraction: "7", "+7", "7.", "7.5", ".5"
_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)", re.ASCII)


@dataclass(frozen=True)
class ZoneEvent:
    """A numeric zone id parsed from one received line."""

    zone: Union[int, float]
    line: str = field(default="", compare=False)

    def __str__(self) -> str:
        return str(self.zone)


def parse_zone(line: str) -> Optional[ZoneEvent]:
    """
    Interpret a received line as a zone id.
    Surrounding whitespace, including a trailing carriage return, is ignored.
    Blank lines, negative numbers, and anything that is not a plain decimal
    literal yield None.
    Args:
        line (str): One line as emitted by the framer
    Returns:
        ZoneEvent | None: Parsed event, or None if the line carries no zone
    """
    text = line.strip()
    if not _NUMBER.fullmatch(text):
        return None
    value = float(text)
    if value < 0:
        return None
    zone: Union[int, float] = int(value) if value.is_integer() else value
    return ZoneEvent(zone=zone, line=line)
