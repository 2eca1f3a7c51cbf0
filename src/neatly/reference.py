"""Forward references between rows and tags.

A cell value ``%Name`` declares that the field it sits in will receive the
object of tag ``Name`` once that tag appears further down the document.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import ReferenceResolutionError
from .field import Field

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "%"
ESCAPED_REFERENCE_PREFIX = "%%"


@dataclass
class ReferenceEntry:
    key: str
    field: Field
    target: dict
    setter: Callable[[Any], None] | None = None
    used: bool = False


@dataclass
class ReferenceLedger:
    entries: dict[str, ReferenceEntry] = field(default_factory=dict)

    def declare(self, name: str, field: Field, target: dict) -> ReferenceEntry:
        """Capture a deferred write of tag ``name`` into ``field`` of ``target``."""
        entry = ReferenceEntry(key=name, field=field, target=target)

        def setter(value: Any) -> None:
            entry.used = True
            field.set(value, entry.target, link=True)

        entry.setter = setter
        if name in self.entries and not self.entries[name].used:
            logger.debug("reference %r redeclared before resolution", name)
        self.entries[name] = entry
        logger.debug("declared reference %r -> %s", name, field.expression)
        return entry

    def resolve(self, name: str, value: Any) -> None:
        """Apply the value of tag ``name`` to the field that declared it."""
        entry = self.entries.get(name)
        if entry is None:
            available = ",".join(sorted(self.entries))
            raise ReferenceResolutionError(
                f"missing reference {name!r} in the previous rows, available [{available}]"
            )
        entry.setter(value)
        logger.debug("resolved reference %r", name)

    def unresolved(self) -> list[str]:
        return sorted(k for k, entry in self.entries.items() if not entry.used)

    def check_all_resolved(self) -> None:
        unused = self.unresolved()
        if unused:
            raise ReferenceResolutionError(f"unresolved references: {', '.join(unused)}")
