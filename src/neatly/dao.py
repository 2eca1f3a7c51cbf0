"""Neatly document loader.

A neatly document is a delimited text where rows without a leading
delimiter are headers (column 0 holds a tag, the rest hold field
expressions) and rows starting with the delimiter carry data for the most
recent header.  Line 0 is always the root header.

Example:
    Root,Name,Info
    ,demo,%Info
    Info,Name,/Count
    ,Acme,3

loads as ``{"Name": "demo", "Info": {"Name": "Acme"}, "Count": 3}``.
"""

import logging
import posixpath
from typing import Any

from pydantic import TypeAdapter

from .config import LoaderConfig
from .cursor import BlockCursor, read_lines
from .delimited import DelimitedRecord
from .errors import DecodeError, NeatlyError
from .field import Field, parse_field
from .normalizer import INDEX_KEY, OWNER_URL_KEY, ValueNormalizer, expand_iterator_index
from .reference import ESCAPED_REFERENCE_PREFIX, REFERENCE_PREFIX, ReferenceLedger
from .resource import Resource
from .tag import Tag, TagContext, parse_tag_header
from .template import State
from .udf import add_standard_udfs

logger = logging.getLogger(__name__)

SOURCE_KEY = "Source"
NEATLY_LOADER_KEY = "neatlyLoader"
ARRAY_ROW_MARKER = "[]"


class Dao:
    """Loads neatly documents into nested dict/list values."""

    def __init__(self, config: LoaderConfig | None = None, **options: Any):
        self.config = config or LoaderConfig(**options)
        self.normalizer = ValueNormalizer(self.config)

    def load(self, state: dict | None, source: str | Resource, target: Any = None) -> Any:
        """Load the document at ``source``.

        ``state`` is the ambient scope used for template expansion; standard
        callables are registered into it.  With ``target`` (a pydantic model,
        dataclass or any type pydantic can validate) the document is converted
        into that type, otherwise the document mapping is returned.
        """
        if not isinstance(source, Resource):
            source = Resource(source)
        if not isinstance(state, State):
            state = State(state or {})
        text = source.download_text()
        add_standard_udfs(state)
        state[OWNER_URL_KEY] = source.url
        state.setdefault(NEATLY_LOADER_KEY, self)
        document = self.load_document(state, source, text)
        if self.config.include_source:
            document[SOURCE_KEY] = source.as_dict()
        if target is None:
            return document
        return TypeAdapter(target).validate_python(document)

    def load_document(self, state: State, source: Resource | None, text: str) -> dict:
        """Scan document text and assemble the root mapping."""
        lines = read_lines(text, self.config.comment_prefix)
        if not lines:
            raise DecodeError("document is empty")
        owner_name = posixpath.splitext(source.name)[0] if source else ""
        container: dict = {}
        record, tag = self._process_root_header(lines[0], container, owner_name, source)
        root = container[tag.name]
        context = TagContext(
            root_object=root,
            object_container=container,
            references=ReferenceLedger(),
            owner=source,
            tag=tag,
            tag_object=root,
        )
        cursor = BlockCursor(lines)
        while not cursor.at_end():
            line = self._strip_array_marker(cursor.line)
            if tag.has_active_iterator():
                state[INDEX_KEY] = tag.index()
                line = expand_iterator_index(line, tag, state)

            if self._is_header(line):
                if tag.has_active_iterator() and tag.iterator.next():
                    logger.debug("replaying %s with index %s", tag.name, tag.index())
                    cursor.rewind(tag.line_number)
                    continue
                try:
                    record, tag = self._process_header_line(line, cursor.position, context, owner_name)
                except NeatlyError as e:
                    raise e.with_context(line=cursor.position, cell=line)
                cursor.advance()
                continue

            height = 0
            if line.strip():
                try:
                    record.decode(line)
                    if not record.is_empty():
                        height = self._process_row(state, record, cursor, line, context)
                except NeatlyError as e:
                    raise e.with_context(line=cursor.position, tag_id=tag.tag_id())

            cursor.advance(height)
            if cursor.is_last() and tag.has_active_iterator() and tag.iterator.next():
                logger.debug("replaying %s with index %s", tag.name, tag.index())
                cursor.rewind(tag.line_number)
                continue
            cursor.advance()

        context.references.check_all_resolved()
        return root

    def _process_root_header(
        self, line: str, container: dict, owner_name: str, source: Resource | None
    ) -> tuple[DelimitedRecord, Tag]:
        record = DelimitedRecord.from_header(line, self.config.delimiter)
        tag = parse_tag_header(record.columns[0], 0, owner_name, source)
        container[tag.name] = {}
        return record, tag

    def _process_header_line(
        self, line: str, line_number: int, context: TagContext, owner_name: str
    ) -> tuple[DelimitedRecord, Tag]:
        record = DelimitedRecord.from_header(line, self.config.delimiter)
        tag = parse_tag_header(record.columns[0], line_number, owner_name, context.owner)
        logger.debug("line %d: tag %s (array=%s)", line_number, tag.name, tag.is_array)
        self._process_tag(tag, context)
        context.tag = tag
        return record, tag

    def _process_tag(self, tag: Tag, context: TagContext) -> None:
        """Create the tag's container on first occurrence and resolve references to it."""
        container = context.object_container
        if tag.name in container:
            return
        value: Any = [] if tag.is_array else {}
        container[tag.name] = value
        context.references.resolve(tag.name, value)

    def _process_row(
        self,
        state: State,
        record: DelimitedRecord,
        cursor: BlockCursor,
        line: str,
        context: TagContext,
    ) -> int:
        context.reset_row()
        tag = context.tag
        tag_object = tag.set_tag_object(context, record.record, self.config.include_meta)
        if "$" in line:
            scope = State(tag.scope())
            if tag.has_active_iterator():
                scope[INDEX_KEY] = tag.index()
            record.record = {k: scope.expand_as_text(v) for k, v in record.record.items()}

        fields = {column: parse_field(column) for column in record.columns[1:] if column}
        height = 0
        # virtual cells first: they stage values consumed by $name in the same row
        for virtual in (True, False):
            for field in fields.values():
                if field.is_virtual != virtual:
                    continue
                height = self._process_cell(state, record, fields, cursor, field, context, height)
        strip_empty_trailing(tag_object, context.cell_sequences)
        return height

    def _process_cell(
        self,
        state: State,
        record: DelimitedRecord,
        fields: dict[str, Field],
        cursor: BlockCursor,
        field: Field,
        context: TagContext,
        height: int,
    ) -> int:
        cell = record.record.get(field.expression)
        if cell is None or cell == "":
            return height

        text = cell
        if text.startswith(ESCAPED_REFERENCE_PREFIX):
            text = text[1:]
        elif text.startswith(REFERENCE_PREFIX):
            context.references.declare(text[1:], field, self._target(field, context))
            return height

        try:
            value = self.normalizer.normalize(text, context, state)
        except NeatlyError as e:
            raise e.with_context(cell=cell)
        collect_sequences(value, context.cell_sequences)

        target = self._target(field, context)
        if not field.has_array_component:
            field.set(value, target)
            return height

        base = None
        if is_root_array(field):
            set_root_array(field, target, value)
        else:
            base = self._array_base(field, target, context)
            field.set(value, target, base)
        consumed = self._process_array_values(state, record, fields, cursor, field, target, base, context)
        return max(height, consumed)

    def _target(self, field: Field, context: TagContext) -> dict:
        if field.is_root:
            return context.root_object
        if field.is_virtual:
            return context.virtual_objects
        return context.tag_object

    def _array_base(self, field: Field, target: dict, context: TagContext) -> int:
        """First sequence slot this row writes to for the field's array path.

        Fields sharing an array path in one row share the slot; a later row
        writing into the same object continues after the existing elements.
        """
        key = f"{id(target)}:{field.array_path()}"
        if key not in context.array_index:
            context.array_index[key] = field.get_array_size(target)
        return context.array_index[key]

    def _process_array_values(
        self,
        state: State,
        record: DelimitedRecord,
        fields: dict[str, Field],
        cursor: BlockCursor,
        field: Field,
        target: dict,
        base: int | None,
        context: TagContext,
    ) -> int:
        """Absorb continuation rows holding further elements for an array column.

        Elements land at ``base + 1``, ``base + 2``...; root-level sequences
        (``base`` None) are appended to instead.
        """
        tag = context.tag
        item_record = DelimitedRecord(columns=record.columns, delimiter=record.delimiter)
        item_count = 0
        for position, line in cursor.following():
            line = self._strip_array_marker(line)
            if not line.startswith(self.config.delimiter):
                break
            if tag.has_active_iterator():
                line = expand_iterator_index(line, tag, state)
            try:
                item_record.decode(line)
            except NeatlyError as e:
                raise e.with_context(line=position)
            if self._starts_new_record(item_record, fields):
                break
            item = item_record.record.get(field.expression)
            if item is None or item == "":
                break
            item_count += 1
            text = item[1:] if item.startswith(ESCAPED_REFERENCE_PREFIX) else item
            try:
                value = self.normalizer.normalize(text, context, state)
            except NeatlyError as e:
                raise e.with_context(line=position, tag_id=tag.tag_id(), cell=item)
            collect_sequences(value, context.cell_sequences)
            if base is None:
                set_root_array(field, target, value)
            else:
                field.set(value, target, base + item_count)
        return item_count

    @staticmethod
    def _starts_new_record(record: DelimitedRecord, fields: dict[str, Field]) -> bool:
        """A continuation row with values outside array columns is a new record."""
        for column, field in fields.items():
            if field.has_array_component:
                continue
            if record.record.get(column):
                return True
        return False

    def _is_header(self, line: str) -> bool:
        """Header rows do not start with the delimiter; blank lines are empty data rows."""
        return bool(line.strip()) and not line.startswith(self.config.delimiter)

    def _strip_array_marker(self, line: str) -> str:
        if line.startswith(ARRAY_ROW_MARKER + self.config.delimiter):
            return line[len(ARRAY_ROW_MARKER):]
        return line


def is_root_array(field: Field) -> bool:
    return field.is_root and field.is_array and not field.has_sub_path


def set_root_array(field: Field, root: dict, value: Any) -> None:
    """Append to (or extend) a root-level sequence."""
    bucket = root.get(field.name)
    if not isinstance(bucket, list):
        bucket = [] if bucket is None else [bucket]
        root[field.name] = bucket
    if isinstance(value, list):
        bucket.extend(value)
    else:
        bucket.append(value)


def is_empty_value(value: Any) -> bool:
    if value is None or value == "":
        return True
    if isinstance(value, dict):
        return all(is_empty_value(v) for v in value.values())
    return False


def collect_sequences(value: Any, into: set[int]) -> None:
    """Record the ids of every sequence nested in a cell value."""
    if isinstance(value, list):
        into.add(id(value))
        for item in value:
            collect_sequences(item, into)
    elif isinstance(value, dict):
        for item in value.values():
            collect_sequences(item, into)


def strip_empty_trailing(value: Any, keep: set[int] | frozenset[int] = frozenset()) -> None:
    """Drop trailing empty mappings from every sequence nested in value.

    Sequences whose id is in ``keep`` came verbatim from a cell and are left as written.
    """
    if isinstance(value, dict):
        for item in value.values():
            strip_empty_trailing(item, keep)
    elif isinstance(value, list):
        if id(value) in keep:
            return
        for item in value:
            strip_empty_trailing(item, keep)
        while value and isinstance(value[-1], dict) and is_empty_value(value[-1]):
            value.pop()
