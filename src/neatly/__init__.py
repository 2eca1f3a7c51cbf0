"""neatly: load tag-oriented tabular documents into nested data.

Pipeline: read delimited text -> scan header/data rows -> assemble a
document of dicts, lists and scalars -> optionally validate into a type.

Example:
    from neatly import Dao

    dao = Dao()
    document = dao.load({}, "use_case.csv")
"""

__version__ = "0.1.0"

from .config import LoaderConfig
from .cursor import BlockCursor, read_lines
from .dao import Dao
from .delimited import DelimitedRecord
from .errors import (
    AssignmentError,
    DecodeError,
    NeatlyError,
    ReferenceResolutionError,
    ResourceError,
    SubstitutionError,
)
from .field import Field, parse_field
from .normalizer import ValueNormalizer, as_data_structure
from .reference import ReferenceEntry, ReferenceLedger
from .resource import Resource
from .tag import Tag, TagContext, TagIterator, parse_tag_header
from .template import State
from .udf import add_standard_udfs

Value = str | int | float | bool | None | list["Value"] | dict[str, "Value"]


def load(source: str | Resource, state: dict | None = None, target=None, **options):
    """Load a neatly document with a default-configured Dao."""
    return Dao(**options).load(state, source, target)


__all__ = [
    # Load
    "load",
    "Dao",
    "LoaderConfig",
    "Value",
    # Document model
    "Field",
    "parse_field",
    "Tag",
    "TagIterator",
    "TagContext",
    "parse_tag_header",
    "ReferenceLedger",
    "ReferenceEntry",
    "ValueNormalizer",
    "as_data_structure",
    # Infrastructure
    "BlockCursor",
    "read_lines",
    "DelimitedRecord",
    "Resource",
    "State",
    "add_standard_udfs",
    # Errors
    "NeatlyError",
    "DecodeError",
    "ReferenceResolutionError",
    "ResourceError",
    "SubstitutionError",
    "AssignmentError",
]
