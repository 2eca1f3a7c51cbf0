"""Column expressions: where and how a cell value lands in the document.

Expression grammar (applied left to right to a header cell):

    /Name          address the document root instead of the tag object
    :Name, name    virtual: write into the per-row scratch mapping
    []Name         the segment is a sequence, one element per row/continuation
    A.B.C          path separator, builds a Field -> Child chain
    []A.0          numeric child under a sequence addresses that slot directly
"""

from dataclasses import dataclass
from typing import Any

from .errors import AssignmentError, DecodeError

ROOT_PREFIX = "/"
VIRTUAL_PREFIX = ":"
ARRAY_PREFIX = "[]"
PATH_SEPARATOR = "."


@dataclass
class Field:
    expression: str  # raw header cell this field was parsed from
    name: str
    child: "Field | None" = None
    is_array: bool = False
    has_sub_path: bool = False
    has_array_component: bool = False  # this or a child segment is a sequence
    is_root: bool = False
    is_virtual: bool = False
    is_index: bool = False  # numeric segment addressing a sequence slot
    leaf: "Field | None" = None

    def set(self, value: Any, target: dict, *indexes: int, link: bool = False) -> None:
        """Write value into target along this field's path.

        ``indexes`` select sequence slots for array segments, outermost first;
        a missing index means slot 0.  With ``link`` a list value assigned to
        an array segment replaces the sequence itself, so later appends to the
        list show up in the document.
        """
        if self.name not in target:
            if self.is_array:
                target[self.name] = []
            elif self.has_sub_path:
                target[self.name] = {}

        if self.is_array:
            if link and isinstance(value, list) and not self.has_sub_path:
                target[self.name] = value
                return
            index, indexes = _shift_index(indexes)
            collection = target[self.name]
            if not isinstance(collection, list):
                raise AssignmentError(
                    f"{self.name!r} holds {type(collection).__name__}, expected a sequence"
                )
            pad_with_maps(collection, index + 1)
            if not self.has_sub_path:
                collection[index] = value
                return
            if self.child.is_index:
                self._set_index(collection, value)
                return
            item = collection[index]
            if not isinstance(item, dict):
                item = {}
                collection[index] = item
            self.child.set(value, item, *indexes, link=link)
            return

        if self.has_sub_path:
            nested = target[self.name]
            if not isinstance(nested, dict):
                raise AssignmentError(
                    f"{self.name!r} holds {type(nested).__name__}, expected a mapping"
                )
            self.child.set(value, nested, *indexes, link=link)
            return

        self._merge(value, target)

    def _set_index(self, collection: list, value: Any) -> None:
        index = int(self.child.name)
        pad_with_maps(collection, index + 1)
        collection[index] = value

    def _merge(self, value: Any, target: dict) -> None:
        """Store value, accumulating into an existing mapping or sequence."""
        if self.name not in target:
            target[self.name] = value
            return
        existing = target[self.name]
        if isinstance(existing, dict) and isinstance(value, dict):
            if existing is not value:
                existing.update(value)
        elif isinstance(existing, list):
            if isinstance(value, list):
                if existing is not value:
                    existing.extend(value)
            else:
                existing.append(value)
        elif isinstance(existing, dict) and existing and not isinstance(value, dict):
            raise AssignmentError(
                f"cannot overwrite mapping {self.name!r} with {type(value).__name__}"
            )
        else:
            target[self.name] = value

    def array_path(self) -> str:
        """Dotted path up to and including the first array segment."""
        if not self.has_array_component:
            return ""
        result = []
        field = self
        while True:
            result.append(field.name)
            if field.is_array or not field.has_sub_path:
                break
            field = field.child
        return PATH_SEPARATOR.join(result)

    def get_array_size(self, value: dict) -> int:
        """Current length of the sequence addressed by ``array_path``."""
        if not self.has_array_component:
            return 0
        field = self
        while True:
            sub_value = value.get(field.name) if isinstance(value, dict) else None
            if sub_value is None:
                return 0
            if field.is_array:
                return len(sub_value) if isinstance(sub_value, list) else 0
            if not field.has_sub_path:
                return 0
            value = sub_value
            field = field.child


def pad_with_maps(collection: list, size: int) -> None:
    while len(collection) < size:
        collection.append({})


def _shift_index(indexes: tuple[int, ...]) -> tuple[int, tuple[int, ...]]:
    if indexes:
        return indexes[0], indexes[1:]
    return 0, indexes


def parse_field(expression: str) -> Field:
    """Parse a header cell into a Field chain."""
    parsed = expression.strip()
    is_root = parsed.startswith(ROOT_PREFIX)
    if is_root:
        parsed = parsed[len(ROOT_PREFIX):]
    is_virtual = parsed.startswith(VIRTUAL_PREFIX)
    if is_virtual:
        parsed = parsed[len(VIRTUAL_PREFIX):]
    is_array = parsed.startswith(ARRAY_PREFIX)
    if is_array:
        parsed = parsed[len(ARRAY_PREFIX):]
    if not parsed:
        raise DecodeError(f"empty field expression: {expression!r}")
    if parsed[0].islower():
        is_virtual = True

    field = Field(
        expression=expression,
        name=parsed,
        is_array=is_array,
        has_sub_path=PATH_SEPARATOR in parsed,
        has_array_component=is_array or ARRAY_PREFIX in parsed,
        is_root=is_root,
        is_virtual=is_virtual,
    )
    if field.has_sub_path:
        head, _, tail = parsed.partition(PATH_SEPARATOR)
        field.name = head
        field.child = parse_field(tail)
        if field.is_array and field.child.name.isdigit():
            field.child.is_index = True
        field.leaf = field.child.leaf
    else:
        field.leaf = field
    return field
