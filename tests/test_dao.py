"""End-to-end tests for loading neatly documents."""

import json
from dataclasses import dataclass

import pytest
from pydantic import BaseModel

import neatly
from neatly import Dao
from neatly.dao import strip_empty_trailing
from neatly.errors import (
    AssignmentError,
    DecodeError,
    ReferenceResolutionError,
    ResourceError,
    SubstitutionError,
)

BASIC = """Root,Name,Info
,demo,%Info
Info,Name,/Count
,Acme,3
"""


class Info(BaseModel):
    Name: str


class Document(BaseModel):
    Name: str
    Info: Info
    Count: int


@dataclass
class Summary:
    Name: str
    Count: int


class TestBasicLoad:
    """Test header/data row assembly."""

    def test_root_and_reference(self, load):
        assert load(BASIC) == {"Name": "demo", "Info": {"Name": "Acme"}, "Count": 3}

    def test_module_level_load(self, write):
        path = write("doc.csv", BASIC)
        assert neatly.load(str(path))["Count"] == 3

    def test_reparse_is_stable(self, write):
        path = write("doc.csv", BASIC)
        dao = Dao()
        assert dao.load({}, str(path)) == dao.load({}, str(path))

    def test_comments_and_blank_lines(self, load):
        document = load("\n// header comment\nRoot,Name\n,demo\n\n// trailing\n")
        assert document == {"Name": "demo"}

    def test_header_only(self, load):
        assert load("Root,Name") == {}

    def test_quoted_cells(self, load):
        document = load('Root,Data,Text\n,"{""a"": 1}","x,y"\n')
        assert document == {"Data": {"a": 1}, "Text": "x,y"}

    def test_custom_delimiter(self, load):
        assert load("Root;Name;Count\n;demo;2\n", delimiter=";") == {"Name": "demo", "Count": 2}

    def test_zero_padded_text_stays_string(self, load):
        assert load("Root,Code\n,007\n") == {"Code": "007"}

    def test_nested_field_path(self, load):
        document = load("Root,Server.Host,Server.Port\n,db,5432\n")
        assert document == {"Server": {"Host": "db", "Port": 5432}}


class TestArrays:
    """Test array tags, iterators and continuation rows."""

    def test_array_tag(self, load):
        document = load("Root,Items\n,%Items\n[]Items,Name\n,a\n,b\n")
        assert document == {"Items": [{"Name": "a"}, {"Name": "b"}]}

    def test_iterator_replays_block(self, load):
        document = load("Root,Items\n,%Items\n[]Items{1..3},Name\n,item_$index\n")
        assert document == {
            "Items": [{"Name": "item_1"}, {"Name": "item_2"}, {"Name": "item_3"}]
        }

    def test_zero_padded_iterator(self, load):
        document = load("Root,Items\n,%Items\n[]Items{01..02},Name\n,m$index\n")
        assert document == {"Items": [{"Name": "m01"}, {"Name": "m02"}]}

    def test_iterator_block_followed_by_header(self, load):
        text = "Root,Items,Info\n,%Items,%Info\n[]Items{1..2},Id\n,$index\nInfo,Name\n,x\n"
        document = load(text)
        assert document == {"Items": [{"Id": 1}, {"Id": 2}], "Info": {"Name": "x"}}

    def test_continuation_rows(self, load):
        document = load("Root,Name,[]Tags\n,x,a\n,,b\n,,c\n")
        assert document == {"Name": "x", "Tags": ["a", "b", "c"]}

    def test_continuation_stops_at_new_record(self, load):
        text = "Root,Items\n,%Items\n[]Items,Name,[]Tags\n,x,a\n,,b\n,,c\n,y,d\n"
        document = load(text)
        assert document == {
            "Items": [
                {"Name": "x", "Tags": ["a", "b", "c"]},
                {"Name": "y", "Tags": ["d"]},
            ]
        }

    def test_array_of_objects(self, load):
        text = "Root,[]Users.Name,[]Users.Age\n,ann,30\n,bob,40\n"
        document = load(text)
        assert document == {"Users": [{"Name": "ann", "Age": 30}, {"Name": "bob", "Age": 40}]}

    def test_root_array_field(self, load):
        text = "Root,Items\n,%Items\n[]Items,Name,/[]All\n,a,1\n,b,2\n"
        document = load(text)
        assert document["All"] == [1, 2]
        assert document["Items"] == [{"Name": "a"}, {"Name": "b"}]

    def test_continuation_escapes(self, load):
        document = load("Root,Name,[]Tags\n,x,%%a\n,,%%b\n,,%c\n")
        assert document == {"Name": "x", "Tags": ["%a", "%b", "%c"]}

    def test_array_row_marker(self, load):
        document = load("Root,Items\n,%Items\n[]Items,Name\n[],a\n")
        assert document == {"Items": [{"Name": "a"}]}

    def test_accumulation_across_blocks(self, load):
        text = (
            "Root,Items,Other\n"
            ",%Items,%Other\n"
            "[]Items,Name\n"
            ",a\n"
            "Other,Value\n"
            ",1\n"
            "[]Items,Name\n"
            ",b\n"
        )
        document = load(text)
        assert document == {"Items": [{"Name": "a"}, {"Name": "b"}], "Other": {"Value": 1}}

    def test_array_reference_in_array_tag(self, load):
        text = (
            "Root,Orders\n"
            ",%Orders\n"
            "[]Orders,Id,Lines\n"
            ",1,%Lines\n"
            "[]Lines,Sku\n"
            ",a\n"
            ",b\n"
        )
        document = load(text)
        assert document == {"Orders": [{"Id": 1, "Lines": [{"Sku": "a"}, {"Sku": "b"}]}]}


class TestCellValues:
    """Test escapes, embedded JSON, virtual cells and assets."""

    def test_escapes(self, load):
        document = load("Root,Percent,Hash\n,%%literal,##text\n")
        assert document == {"Percent": "%literal", "Hash": "#text"}

    def test_embedded_json(self, load):
        document = load('Root,Data,List\n,"{""k"": [1, 2]}",[1]\n')
        assert document == {"Data": {"k": [1, 2]}, "List": [1]}

    def test_escaped_json_text(self, load):
        assert load("Root,Text\n,{{raw}}\n") == {"Text": "{raw}"}

    def test_virtual_cells(self, load):
        document = load("Root,:greeting,Message,Text\n,hello,$greeting,$greeting world\n")
        assert document == {"Message": "hello", "Text": "hello world"}

    def test_virtual_cells_processed_first(self, load):
        document = load("Root,Message,:greeting\n,$greeting,hello\n")
        assert document == {"Message": "hello"}

    def test_embedded_empty_mappings_kept(self, load):
        document = load('Root,Data\n,"[{""a"": 1}, {}]"\n')
        assert document == {"Data": [{"a": 1}, {}]}

    def test_lowercase_column_is_virtual(self, load):
        document = load('Root,payload,Body\n,"{""id"": 7}",$payload\n')
        assert document == {"Body": {"id": 7}}

    def test_state_expansion(self, load):
        document = load("Root,Host\n,$env.host\n", state={"env": {"host": "db"}})
        assert document == {"Host": "db"}

    def test_tag_scope(self, load):
        document = load("Root,Items\n,%Items\n[]Items,Label\n,$tag item\n")
        assert document == {"Items": [{"Label": "Items item"}]}

    def test_udf(self, load):
        document = load("Root,Hash\n,$Md5(554257_popularmechanics.com)\n")
        assert document == {"Hash": "ed045d398e8e1924486afa44acbb6b82"}

    def test_caller_udf(self, load):
        state = {"Upper": lambda source, state: str(source).upper()}
        assert load("Root,Name\n,$Upper(abc)\n", state=state) == {"Name": "ABC"}

    def test_external_asset(self, load, write):
        write("payload.json", '{"id": "$id"}')
        write("ids.json", '{"id": "x1"}')
        document = load("Root,Payload\n,#payload.json|#ids.json\n")
        assert document == {"Payload": {"id": "x1"}}

    def test_asset_per_iteration(self, load, write):
        write("item_1.json", '{"n": 1}')
        write("item_2.json", '{"n": 2}')
        document = load("Root,Items\n,%Items\n[]Items{1..2},Data\n,#item_$index.json\n")
        assert document == {"Items": [{"Data": {"n": 1}}, {"Data": {"n": 2}}]}

    def test_subpath_assets(self, load, write):
        write("case1/data.json", '{"case": 1}')
        write("case2/data.json", '{"case": 2}')
        text = "Root,Cases\n,%Cases\n[]Cases,Subpath,Data\n,case1,#data.json\n,case2,#data.json\n"
        document = load(text)
        assert [case["Data"] for case in document["Cases"]] == [{"case": 1}, {"case": 2}]

    def test_load_nested_document(self, load, write):
        write("child.csv", "Root,Name\n,kid\n")
        document = load("Root,Child\n,$LoadNeatly(child.csv)\n")
        assert document == {"Child": {"Name": "kid"}}


class TestOptions:
    def test_include_meta(self, load):
        document = load("Root,Items\n,%Items\n[]Items{1..2},Name\n,x\n", include_meta=True)
        assert document["Tag"] == "Root"
        assert document["Items"][1]["TagIndex"] == "2"
        assert document["Items"][1]["TagID"] == "docItems2"

    def test_include_source(self, load):
        document = load("Root,Name\n,demo\n", include_source=True)
        assert document["Source"]["Name"] == "doc.csv"
        assert document["Source"]["URL"].startswith("file://")

    def test_pydantic_target(self, write):
        path = write("doc.csv", BASIC)
        document = Dao().load({}, str(path), Document)
        assert document == Document(Name="demo", Info=Info(Name="Acme"), Count=3)

    def test_dataclass_target(self, write):
        path = write("doc.csv", "Root,Name,Count\n,demo,3\n")
        assert Dao().load({}, str(path), Summary) == Summary(Name="demo", Count=3)

    def test_json_serialisable(self, load):
        json.dumps(load(BASIC))


class TestErrors:
    """Test failure modes and error context."""

    def test_unresolved_reference(self, load):
        with pytest.raises(ReferenceResolutionError, match="Info"):
            load("Root,Info\n,%Info\n")

    def test_missing_reference(self, load):
        with pytest.raises(ReferenceResolutionError) as excinfo:
            load("Root,Name\n,x\nInfo,Name\n,y\n")
        assert excinfo.value.line == 2

    def test_broken_json(self, load):
        with pytest.raises(DecodeError) as excinfo:
            load("Root,Data\n,{broken\n")
        assert excinfo.value.line == 1
        assert excinfo.value.cell == "{broken"

    def test_asset_not_utf8(self, load, write):
        write("bad.txt", b"\xff\xfe")
        with pytest.raises(DecodeError, match="bad.txt") as excinfo:
            load("Root,Data\n,#bad.txt\n")
        assert excinfo.value.line == 1

    def test_document_not_utf8(self, write):
        path = write("doc.csv", b"Root,Name\n,\xff\xfe\n")
        with pytest.raises(DecodeError, match="doc.csv"):
            Dao().load({}, str(path))

    def test_missing_asset(self, load):
        with pytest.raises(ResourceError, match="missing.json"):
            load("Root,Data\n,#missing.json\n")

    def test_undefined_virtual(self, load):
        with pytest.raises(SubstitutionError):
            load("Root,:other,Body\n,1,$payload\n")

    def test_scalar_over_mapping(self, load):
        with pytest.raises(AssignmentError):
            load('Root,Info,Info.Name\n,,x\n,text,\n')

    def test_empty_document(self, load):
        with pytest.raises(DecodeError):
            load("// only a comment\n")

    def test_missing_document(self, tmp_path):
        with pytest.raises(ResourceError):
            Dao().load({}, str(tmp_path / "missing.csv"))


class TestStripEmptyTrailing:
    def test_padding_removed(self):
        value = {"Items": [{"a": 1}, {}, {"b": ""}]}
        strip_empty_trailing(value)
        assert value == {"Items": [{"a": 1}]}

    def test_cell_sequences_kept(self):
        written = [{"a": 1}, {}]
        value = {"Items": written}
        strip_empty_trailing(value, {id(written)})
        assert value == {"Items": [{"a": 1}, {}]}
