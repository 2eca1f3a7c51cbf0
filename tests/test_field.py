"""Tests for column expressions and value assignment."""

import pytest

from neatly.errors import AssignmentError, DecodeError
from neatly.field import parse_field


class TestParseField:
    """Test header cell parsing."""

    def test_simple_field(self):
        field = parse_field("Name")
        assert field.name == "Name"
        assert not field.is_array
        assert not field.has_sub_path
        assert not field.is_root
        assert not field.is_virtual
        assert field.leaf is field

    def test_nested_array_path(self):
        field = parse_field("Req.[]Array.H")
        assert field.name == "Req"
        assert field.has_sub_path
        assert field.has_array_component
        assert not field.is_array

        array = field.child
        assert array.name == "Array"
        assert array.is_array
        assert array.has_sub_path
        assert array.child.name == "H"
        assert field.leaf.name == "H"

    def test_root_prefix(self):
        field = parse_field("/Count")
        assert field.is_root
        assert field.name == "Count"

    def test_virtual_prefix(self):
        field = parse_field(":Payload")
        assert field.is_virtual
        assert field.name == "Payload"

    def test_lowercase_is_virtual(self):
        assert parse_field("payload").is_virtual

    def test_root_array(self):
        field = parse_field("/[]Items")
        assert field.is_root
        assert field.is_array
        assert field.name == "Items"

    def test_index_child(self):
        field = parse_field("[]Values.1")
        assert field.is_array
        assert field.child.is_index

    def test_empty_expression_rejected(self):
        with pytest.raises(DecodeError):
            parse_field("/")


class TestFieldSet:
    """Test Field.set assignment semantics."""

    def test_set_nested_path(self):
        target = {}
        parse_field("A.B.C").set(1, target)
        assert target == {"A": {"B": {"C": 1}}}

    def test_set_array_pads_with_maps(self):
        target = {}
        parse_field("[]Items.Name").set("x", target, 2)
        assert target == {"Items": [{}, {}, {"Name": "x"}]}

    def test_set_nested_array(self):
        target = {}
        field = parse_field("Req.[]Array.H")
        field.set("a", target, 0)
        field.set("b", target, 1)
        assert target == {"Req": {"Array": [{"H": "a"}, {"H": "b"}]}}

    def test_set_array_slot(self):
        target = {}
        field = parse_field("[]Tags")
        field.set("a", target, 0)
        field.set("b", target, 1)
        assert target == {"Tags": ["a", "b"]}

    def test_set_index_child(self):
        target = {}
        parse_field("[]Values.1").set(10, target)
        assert target == {"Values": [{}, 10]}

    def test_link_replaces_sequence(self):
        target = {}
        items = []
        parse_field("[]Items").set(items, target, link=True)
        items.append({"Name": "x"})
        assert target["Items"] is items
        assert target == {"Items": [{"Name": "x"}]}

    def test_merge_mappings(self):
        target = {"Info": {"A": 1}}
        parse_field("Info").set({"B": 2}, target)
        assert target == {"Info": {"A": 1, "B": 2}}

    def test_merge_into_sequence(self):
        target = {"Tags": ["a"]}
        field = parse_field("Tags")
        field.set("b", target)
        field.set(["c", "d"], target)
        assert target == {"Tags": ["a", "b", "c", "d"]}

    def test_scalar_overwrites_scalar(self):
        target = {"Name": "a"}
        parse_field("Name").set("b", target)
        assert target == {"Name": "b"}

    def test_scalar_cannot_overwrite_mapping(self):
        target = {"Info": {"A": 1}}
        with pytest.raises(AssignmentError):
            parse_field("Info").set("text", target)

    def test_sub_path_through_scalar(self):
        target = {"Info": "text"}
        with pytest.raises(AssignmentError):
            parse_field("Info.Name").set("x", target)


class TestArrayPath:
    """Test array path helpers."""

    def test_array_path(self):
        assert parse_field("Req.[]Array.H").array_path() == "Req.Array"
        assert parse_field("[]Tags").array_path() == "Tags"
        assert parse_field("Name").array_path() == ""

    def test_get_array_size(self):
        field = parse_field("Req.[]Array.H")
        assert field.get_array_size({}) == 0
        assert field.get_array_size({"Req": {"Array": [{}, {}]}}) == 2
