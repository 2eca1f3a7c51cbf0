"""Errors raised while loading neatly documents.

Every error can carry positional context (line, tag id, raw cell text) so a
failing document points at the offending row.
"""

EXCERPT_LIMIT = 64


def excerpt(text: str, limit: int = EXCERPT_LIMIT) -> str:
    """Shorten text for diagnostics."""
    text = str(text)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class NeatlyError(Exception):
    def __init__(
        self,
        msg: str,
        line: int | None = None,
        tag_id: str | None = None,
        cell: str | None = None,
    ):
        self.msg = msg
        self.line = line
        self.tag_id = tag_id
        self.cell = cell
        super().__init__(self._format())

    def _format(self) -> str:
        prefix = []
        if self.line is not None:
            prefix.append(f"line {self.line}")
        if self.tag_id:
            prefix.append(f"tag {self.tag_id}")
        message = self.msg
        if prefix:
            message = ", ".join(prefix) + ": " + message
        if self.cell is not None:
            message += f" (cell: {excerpt(self.cell)!r})"
        return message

    def with_context(
        self,
        line: int | None = None,
        tag_id: str | None = None,
        cell: str | None = None,
    ) -> "NeatlyError":
        """Fill in missing positional context and refresh the message."""
        if self.line is None:
            self.line = line
        if not self.tag_id:
            self.tag_id = tag_id
        if self.cell is None:
            self.cell = cell
        self.args = (self._format(),)
        return self

    def __str__(self) -> str:
        return self._format()


class DecodeError(NeatlyError):
    """Malformed delimited line or embedded JSON/YAML fragment."""


class ReferenceResolutionError(NeatlyError):
    """Undeclared or unresolved forward reference."""


class ResourceError(NeatlyError):
    """External asset could not be located or read."""


class SubstitutionError(NeatlyError):
    """Template or virtual-object substitution failed."""


class AssignmentError(NeatlyError):
    """A composite value would be overwritten by a scalar."""
