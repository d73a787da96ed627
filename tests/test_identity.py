"""Tests for identity metadata normalization."""

import re

import pytest

from refmgr.core import identity
from refmgr.core.identity import (
    ensure_custom_metadata,
    extract_uuid,
    generate_timestamp,
    generate_uuid,
    is_valid_uuid,
)

VALID_UUID = "3f2b8c1e-9d4a-4b7e-8c2f-1a2b3c4d5e6f"


@pytest.fixture()
def no_minting(monkeypatch):
    """Fail loudly if the random source or the clock is consulted."""

    def _boom():
        raise AssertionError("should not be called")

    monkeypatch.setattr(identity, "generate_uuid", _boom)
    monkeypatch.setattr(identity, "generate_timestamp", _boom)


# ── UUID Helpers ─────────────────────────────────────────────────────


def test_generated_uuid_is_v4():
    for _ in range(20):
        assert is_valid_uuid(generate_uuid())


def test_uuid_validation():
    assert is_valid_uuid(VALID_UUID)
    assert is_valid_uuid(VALID_UUID.upper())
    assert not is_valid_uuid("3f2b8c1e-9d4a-1b7e-8c2f-1a2b3c4d5e6f")  # v1
    assert not is_valid_uuid("not-a-uuid")
    assert not is_valid_uuid("")
    assert not is_valid_uuid(None)
    assert not is_valid_uuid(42)


def test_extract_uuid():
    assert extract_uuid({"uuid": VALID_UUID}) == VALID_UUID
    assert extract_uuid({"uuid": "bogus"}) is None
    assert extract_uuid({}) is None
    assert extract_uuid(None) is None


def test_timestamp_format():
    ts = generate_timestamp()
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", ts)


# ── ensure_custom_metadata ───────────────────────────────────────────


def test_missing_custom_gets_everything():
    custom = ensure_custom_metadata(None)
    assert is_valid_uuid(custom["uuid"])
    assert custom["created_at"]
    assert custom["timestamp"] == custom["created_at"]


def test_legacy_timestamp_promoted():
    custom = ensure_custom_metadata({"timestamp": "2020-01-01T00:00:00Z"})
    assert custom["created_at"] == "2020-01-01T00:00:00Z"
    assert custom["timestamp"] == "2020-01-01T00:00:00Z"
    assert is_valid_uuid(custom["uuid"])


def test_invalid_uuid_replaced():
    custom = ensure_custom_metadata({"uuid": "12345", "created_at": "2021-01-01T00:00:00Z"})
    assert custom["uuid"] != "12345"
    assert is_valid_uuid(custom["uuid"])
    assert custom["created_at"] == "2021-01-01T00:00:00Z"


def test_valid_input_untouched(no_minting):
    original = {
        "uuid": VALID_UUID,
        "created_at": "2021-01-01T00:00:00.000Z",
        "timestamp": "2022-06-01T00:00:00.000Z",
        "tags": ["review"],
    }
    assert ensure_custom_metadata(original) == original


def test_missing_timestamp_defaults_to_created_at(no_minting):
    custom = ensure_custom_metadata({"uuid": VALID_UUID, "created_at": "2021-01-01T00:00:00Z"})
    assert custom["timestamp"] == "2021-01-01T00:00:00Z"


def test_passthrough_fields_preserved():
    custom = ensure_custom_metadata(
        {"tags": ["a", "b"], "zotero": {"key": "ABCD1234"}, "arxiv_id": "2101.00001"}
    )
    assert custom["tags"] == ["a", "b"]
    assert custom["zotero"] == {"key": "ABCD1234"}
    assert custom["arxiv_id"] == "2101.00001"


def test_existing_key_order_kept():
    custom = ensure_custom_metadata({"tags": [], "uuid": "bad"})
    assert list(custom)[:2] == ["tags", "uuid"]


def test_input_not_mutated():
    original = {"timestamp": "2020-01-01T00:00:00Z"}
    ensure_custom_metadata(original)
    assert original == {"timestamp": "2020-01-01T00:00:00Z"}


def test_idempotent():
    once = ensure_custom_metadata({"note": "x"})
    assert ensure_custom_metadata(once) == once
