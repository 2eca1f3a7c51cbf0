"""Tags: header cells anchoring an object or array subtree.

A header cell looks like ``Name``, ``[]Name`` (array tag) or
``[]Name{1..3}`` (array tag replayed once per iterator value).  Zero padded
bounds such as ``{01..12}`` produce zero padded index text.
"""

import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any

from .errors import AssignmentError, ResourceError
from .field import ARRAY_PREFIX
from .reference import ReferenceLedger
from .resource import Resource, url_path_join

logger = logging.getLogger(__name__)

ITERATOR = re.compile(r"^(?P<key>.*?)\{\s*(?P<min>\d+)\s*\.\.\s*(?P<max>\d+)\s*\}\s*$")
WILDCARD = "*"
SUBPATH_KEY = "Subpath"
GROUP_KEY = "Group"


class TagIterator:
    """Bounded numeric range driving replay of a tag's row block."""

    def __init__(self, min_value: int, max_value: int, template: str = "%d"):
        self.min = min_value
        self.max = max_value
        self.template = template
        self.current = min_value

    def has(self) -> bool:
        return self.current <= self.max

    def next(self) -> bool:
        """Advance to the next value; False once the range is exhausted."""
        self.current += 1
        return self.has()

    def index(self) -> str:
        return self.template % self.current


def decode_iterator(key: str) -> tuple[str, TagIterator | None]:
    """Strip an ``{min..max}`` suffix from key, returning (key, iterator)."""
    match = ITERATOR.match(key)
    if not match:
        return key, None
    min_text, max_text = match.group("min"), match.group("max")
    template = "%d"
    padded = [text for text in (min_text, max_text) if len(text) > 1 and text.startswith("0")]
    if padded:
        width = max(len(min_text), len(max_text))
        template = f"%0{width}d"
    return match.group("key").strip(), TagIterator(int(min_text), int(max_text), template)


@dataclass
class Tag:
    name: str
    line_number: int
    owner_name: str = ""
    owner_source: Resource | None = None
    group: str = ""
    is_array: bool = False
    iterator: TagIterator | None = None
    subpath: str = ""
    tag_id_template: str = ""

    def has_active_iterator(self) -> bool:
        return self.iterator is not None and self.iterator.has()

    def index(self) -> str:
        return self.iterator.index() if self.has_active_iterator() else ""

    def tag_id(self) -> str:
        """Identifier of the current tag instance, alphanumerics and '_' only."""
        index = self.index()
        if index and (index in self.subpath or self.name.endswith(index)):
            index = ""
        subpath = self.subpath
        if subpath and subpath in self.name:
            subpath = ""
        value = self.tag_id_template.format(group=self.group, index=index, subpath=subpath)
        return "".join(c for c in value if c.isalnum() or c == "_")

    def expand_subpath(self, subpath: str) -> str:
        """Resolve a trailing-wildcard sub-path against the owner's directory.

        The first sibling whose name starts with the literal prefix wins.  When
        listing fails or nothing matches the literal sub-path is kept.
        """
        if not subpath.endswith(WILDCARD) or self.owner_source is None:
            return subpath
        parent_url = self.owner_source.parent_url
        leaf_prefix = ""
        parent = ""
        for element in subpath.split("/"):
            if WILDCARD in element:
                leaf_prefix = element.replace(WILDCARD, "", 1)
                break
            parent = posixpath.join(parent, element)
            parent_url = url_path_join(parent_url.rstrip("/") + "/", element)
        try:
            candidates = Resource(parent_url, self.owner_source.credential).list()
        except ResourceError as e:
            logger.warning("keeping literal subpath %r: %s", subpath, e)
            return subpath
        for candidate in candidates:
            if candidate.name.startswith(leaf_prefix):
                resolved = posixpath.join(parent, candidate.name) if parent else candidate.name
                logger.debug("subpath %r resolved to %r", subpath, resolved)
                return resolved
        logger.warning("no match for subpath %r under %s, keeping literal", subpath, parent_url)
        return subpath

    def update_from_record(self, record: dict[str, Any]) -> None:
        """Pick up Subpath and Group metadata cells of a data row."""
        subpath = record.get(SUBPATH_KEY)
        if subpath:
            self.subpath = self.expand_subpath(str(subpath))
        group = record.get(GROUP_KEY)
        if group:
            self.group = str(group)

    def set_meta(self, target: dict) -> None:
        target["Tag"] = self.name
        if self.has_active_iterator():
            target["TagIndex"] = self.iterator.index()
        if self.subpath:
            target["Subpath"] = self.subpath
        if self.group:
            target["Group"] = self.group
        target["TagID"] = self.tag_id()

    def set_tag_object(self, context: "TagContext", record: dict[str, Any], include_meta: bool = False) -> dict:
        """Select (singleton) or push (array) the object this data row fills."""
        container = context.object_container
        if self.is_array:
            collection = container[self.name]
            if not isinstance(collection, list):
                raise AssignmentError(f"tag {self.name!r} is not an array")
            result: dict = {}
            collection.append(result)
        else:
            result = container[self.name]
            if not isinstance(result, dict):
                raise AssignmentError(f"tag {self.name!r} is not an object")
        self.update_from_record(record)
        if include_meta:
            self.set_meta(result)
        context.tag = self
        context.tag_object = result
        return result

    def scope(self) -> dict[str, str]:
        """Template keys describing the current tag instance."""
        return {
            "tag": self.name,
            "tagIndex": self.index(),
            "tagId": self.tag_id(),
            "subpath": self.subpath,
        }


def parse_tag_header(
    key: str,
    line_number: int,
    owner_name: str = "",
    owner_source: Resource | None = None,
) -> Tag:
    """Parse a header cell into a Tag."""
    key, iterator = decode_iterator(key.strip())
    tag = Tag(
        name=key,
        line_number=line_number,
        owner_name=owner_name,
        owner_source=owner_source,
        iterator=iterator,
    )
    if len(key) > len(ARRAY_PREFIX) and key.startswith(ARRAY_PREFIX):
        tag.name = key[len(ARRAY_PREFIX):]
        tag.is_array = True
    safe_text = (owner_name + tag.name).replace("{", "{{").replace("}", "}}")
    tag.tag_id_template = safe_text + "{group}{index}{subpath}"
    return tag


@dataclass
class TagContext:
    """Mutable state threaded through the processing of one document."""

    root_object: dict
    object_container: dict
    references: ReferenceLedger
    owner: Resource | None = None
    tag: Tag | None = None
    tag_object: dict = field(default_factory=dict)
    virtual_objects: dict = field(default_factory=dict)
    array_index: dict[str, int] = field(default_factory=dict)
    cell_sequences: set[int] = field(default_factory=set)  # ids of sequences written from cell values

    def reset_row(self) -> None:
        self.virtual_objects = {}
        self.array_index = {}
        self.cell_sequences = set()
