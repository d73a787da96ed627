"""Tests for duplicate detection."""

from refmgr.checks.duplicates import (
    DuplicateResult,
    detect_duplicates,
    find_duplicate_groups,
    normalize_authors,
    normalize_title,
)

# ── Factories ────────────────────────────────────────────────────────


def _item(id="smith-2023", title="Autonomous suturing with the STAR robot", **kw):
    item = {
        "id": id,
        "type": "article-journal",
        "title": title,
        "author": [{"family": "Smith", "given": "Jane"}, {"family": "Lee", "given": "Kim"}],
        "issued": {"date-parts": [[2023]]},
        "custom": {"uuid": f"uuid-{id}"},
    }
    item.update(kw)
    return item


# ── Identifier Matches ───────────────────────────────────────────────


def test_doi_match_ignores_prefix_and_case():
    existing = [_item(DOI="10.1000/ABC")]
    result = detect_duplicates(_item(id="new", title="Other", DOI="https://doi.org/10.1000/abc"), existing)
    assert isinstance(result, DuplicateResult)
    assert result.is_duplicate
    assert result.matches[0].type == "doi"
    assert result.matches[0].existing_id == "smith-2023"
    assert result.matches[0].existing_uuid == "uuid-smith-2023"
    assert result.matches[0].details == {"doi": "10.1000/abc"}


def test_pmid_match():
    result = detect_duplicates(_item(id="new", title="Other", PMID="123"), [_item(PMID="123")])
    assert [m.type for m in result.matches] == ["pmid"]


def test_isbn_match():
    result = detect_duplicates(
        _item(id="new", title="Other", ISBN="978-0-306-40615-7"),
        [_item(ISBN="9780306406157")],
    )
    assert [m.type for m in result.matches] == ["isbn"]


def test_doi_has_priority():
    result = detect_duplicates(_item(id="new", DOI="10.1/x", PMID="1"), [_item(DOI="10.1/x", PMID="1")])
    assert len(result.matches) == 1
    assert result.matches[0].type == "doi"


def test_different_dois_fall_through_to_title():
    result = detect_duplicates(_item(id="new", DOI="10.1/a"), [_item(DOI="10.1/b")])
    assert [m.type for m in result.matches] == ["title-author-year"]


# ── Title + Author + Year ────────────────────────────────────────────


def test_title_author_year_match():
    result = detect_duplicates(
        _item(id="new", title="Autonomous Suturing with the STAR Robot."),
        [_item()],
    )
    assert result.matches[0].type == "title-author-year"
    assert result.matches[0].details["year"] == "2023"


def test_missing_year_is_not_a_match():
    candidate = _item(id="new")
    del candidate["issued"]
    assert not detect_duplicates(candidate, [_item()]).is_duplicate


def test_different_authors_not_a_match():
    candidate = _item(id="new", author=[{"family": "Jones"}])
    assert not detect_duplicates(candidate, [_item()]).is_duplicate


def test_exclude_uuid_skips_self():
    item = _item()
    assert not detect_duplicates(item, [item], exclude_uuid="uuid-smith-2023").is_duplicate


# ── Library-wide Groups ──────────────────────────────────────────────


def test_find_duplicate_groups():
    items = [
        _item(id="a", DOI="10.1/x"),
        _item(id="b", title="Unrelated", author=[{"family": "Zed"}]),
        _item(id="c", DOI="10.1/X"),
    ]
    assert find_duplicate_groups(items) == [("a", "c", "doi")]


def test_no_duplicates():
    assert find_duplicate_groups([_item(id="a")]) == []


# ── Helpers ──────────────────────────────────────────────────────────


def test_normalize_title():
    assert normalize_title("  Hello,   World! ") == "hello world"


def test_normalize_authors():
    assert normalize_authors(_item()) == "smith j lee k"
    assert normalize_authors({"author": [{"literal": "WHO"}]}) == "who"
    assert normalize_authors({}) == ""
