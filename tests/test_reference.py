"""Tests for the Reference entity."""

import pytest

from refmgr.core import reference as reference_module
from refmgr.core.identity import is_valid_uuid
from refmgr.core.reference import Reference

UUID_A = "3f2b8c1e-9d4a-4b7e-8c2f-1a2b3c4d5e6f"


def _item(**kw):
    item = {
        "id": "smith-2023",
        "type": "article-journal",
        "title": "Autonomous Suturing",
        "author": [{"family": "Smith", "given": "Jane"}],
        "issued": {"date-parts": [[2023, 5, 1]]},
        "DOI": "10.1000/star",
        "PMID": "123456",
        "PMCID": "PMC765432",
        "ISBN": "978-0-306-40615-7",
        "URL": "https://example.org/star",
        "keyword": ["robotics", "surgery"],
    }
    item.update(kw)
    return item


# ── Identity ─────────────────────────────────────────────────────────


def test_uuid_generated_and_written_back():
    ref = Reference(_item())
    assert is_valid_uuid(ref.uuid)
    assert ref.item["custom"]["uuid"] == ref.uuid
    assert ref.created_at == ref.timestamp


def test_existing_uuid_kept():
    ref = Reference(_item(custom={"uuid": UUID_A, "created_at": "2020-01-01T00:00:00Z"}))
    assert ref.uuid == UUID_A
    assert ref.created_at == "2020-01-01T00:00:00Z"


def test_invalid_uuid_replaced():
    ref = Reference(_item(custom={"uuid": "legacy-id-7"}))
    assert ref.uuid != "legacy-id-7"
    assert is_valid_uuid(ref.uuid)


def test_caller_item_not_mutated():
    item = _item()
    Reference(item)
    assert "custom" not in item


def test_item_returns_independent_copies():
    item = _item()
    item["keyword"] = ["a"]
    ref = Reference(item)
    item["keyword"].append("from-caller")
    ref.item["keyword"].append("from-reader")
    ref.item["custom"]["uuid"] = "x"
    assert ref.item["keyword"] == ["a"]
    assert ref.item["custom"]["uuid"] == ref.uuid


def test_uuid_extraction_failure_is_fatal(monkeypatch):
    monkeypatch.setattr(reference_module, "extract_uuid", lambda custom: None)
    with pytest.raises(RuntimeError, match="UUID"):
        Reference(_item())


# ── Factory ──────────────────────────────────────────────────────────


def test_create_generates_missing_id():
    item = _item()
    del item["id"]
    assert Reference.create(item).id == "smith-2023"


def test_create_generates_blank_id_with_collision_check():
    ref = Reference.create(_item(id="  "), existing_ids={"smith-2023"})
    assert ref.id == "smith-2023a"


def test_create_keeps_explicit_id():
    ref = Reference.create(_item(id="my-key"), existing_ids={"my-key"})
    assert ref.id == "my-key"


# ── Accessors ────────────────────────────────────────────────────────


def test_accessors():
    ref = Reference(_item(custom={"tags": ["to-read"], "additional_urls": ["https://a.org"]}))
    assert ref.id == "smith-2023"
    assert ref.type == "article-journal"
    assert ref.title == "Autonomous Suturing"
    assert ref.authors == [{"family": "Smith", "given": "Jane"}]
    assert ref.year == 2023
    assert ref.doi == "10.1000/star"
    assert ref.pmid == "123456"
    assert ref.pmcid == "PMC765432"
    assert ref.isbn == "978-0-306-40615-7"
    assert ref.url == "https://example.org/star"
    assert ref.keywords == ["robotics", "surgery"]
    assert ref.tags == ["to-read"]
    assert ref.additional_urls == ["https://a.org"]


def test_optional_accessors_absent():
    ref = Reference({"id": "anon-nd-untitled", "type": "book"})
    assert ref.title is None
    assert ref.year is None
    assert ref.doi is None
    assert ref.keywords is None
    assert ref.tags is None


def test_year_with_empty_date_parts():
    assert Reference(_item(issued={"date-parts": [[]]})).year is None
    assert Reference(_item(issued={})).year is None


def test_repr():
    ref = Reference(_item(custom={"uuid": UUID_A}))
    assert repr(ref) == f"Reference(id='smith-2023', uuid='{UUID_A}')"
