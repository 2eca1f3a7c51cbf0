"""Tests for forward references."""

import pytest

from neatly.errors import ReferenceResolutionError
from neatly.field import parse_field
from neatly.reference import ReferenceLedger


class TestReferenceLedger:
    def test_resolve_links_value(self):
        ledger = ReferenceLedger()
        target = {}
        ledger.declare("Info", parse_field("Info"), target)
        info = {}
        ledger.resolve("Info", info)
        info["Name"] = "Acme"
        assert target == {"Info": {"Name": "Acme"}}
        assert ledger.unresolved() == []

    def test_resolve_array_reference(self):
        ledger = ReferenceLedger()
        target = {}
        ledger.declare("Items", parse_field("[]Items"), target)
        items = []
        ledger.resolve("Items", items)
        items.append({"Name": "x"})
        assert target["Items"] is items

    def test_missing_reference(self):
        ledger = ReferenceLedger()
        ledger.declare("Info", parse_field("Info"), {})
        with pytest.raises(ReferenceResolutionError, match="available \\[Info\\]"):
            ledger.resolve("Other", {})

    def test_unresolved(self):
        ledger = ReferenceLedger()
        ledger.declare("B", parse_field("B"), {})
        ledger.declare("A", parse_field("A"), {})
        assert ledger.unresolved() == ["A", "B"]
        with pytest.raises(ReferenceResolutionError, match="A, B"):
            ledger.check_all_resolved()
