from __future__ import annotations

from typing import Final, List, Optional


class LineFramer:
    """
    Splits a stream of decoded text chunks into newline-delimited lines.
    Features:
        - Lines may span any number of chunks
        - Carriage returns are kept as-is
        - The unterminated tail is returned by flush() at stream end
    """
    DELIMITER: Final[str] = "\n"

    def __init__(self) -> None:
        self._pending = ""
        self._fed = False

    @property
    def pending(self) -> str:
        """
        Text received since the last delimiter.
        """
        return self._pending

    def feed(self, chunk: str) -> List[str]:
        """
        Append a chunk and return the lines it completes.
        Args:
            chunk (str): Decoded text, possibly empty
        Returns:
            List[str]: Completed lines in arrival order, without the delimiter
        """
        self._fed = True
        if not chunk:
            return []
        pieces = (self._pending + chunk).split(self.DELIMITER)
        self._pending = pieces.pop()
        return pieces

    def flush(self) -> Optional[str]:
        """
        Return the residual buffer at stream end and reset the framer.
        Returns:
            str | None: Residual text (may be empty), or None if nothing was fed
                since the previous flush
        """
        if not self._fed and not self._pending:
            return None
        tail = self._pending
        self._pending = ""
        self._fed = False
        return tail
