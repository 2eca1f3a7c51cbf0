"""Line cursor over a filtered document with block replay support."""

from collections.abc import Iterable


def read_lines(text: str | Iterable[str], comment_prefix: str = "//") -> list[str]:
    """Drop leading blank lines and comment lines."""
    if isinstance(text, str):
        text = text.splitlines()
    lines: list[str] = []
    for line in text:
        line = line.rstrip("\r\n")
        if not lines and not line.strip():
            continue
        if comment_prefix and line.startswith(comment_prefix):
            continue
        lines.append(line)
    return lines


class BlockCursor:
    """Scan position over document lines.

    ``rewind(line_number)`` re-enters the block whose header sits at
    ``line_number``: the next line returned is the first line after it.
    """

    def __init__(self, lines: list[str], start: int = 1):
        self.lines = lines
        self.position = start

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def line(self) -> str:
        return self.lines[self.position]

    def at_end(self) -> bool:
        return self.position >= len(self.lines)

    def is_last(self) -> bool:
        return self.position + 1 == len(self.lines)

    def advance(self, count: int = 1) -> None:
        self.position += count

    def rewind(self, line_number: int) -> None:
        self.position = line_number + 1

    def following(self) -> Iterable[tuple[int, str]]:
        """Lines after the current one, with their positions."""
        for k in range(self.position + 1, len(self.lines)):
            yield k, self.lines[k]
