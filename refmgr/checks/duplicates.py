"""Detect records in a library that describe the same work."""

import logging
import re
from collections.abc import Iterable
from typing import Literal, Optional

from pydantic import BaseModel, Field

from refmgr.core.identifier import extract_year
from refmgr.core.library import normalize_doi, normalize_isbn, normalize_pmid

logger = logging.getLogger(__name__)

MatchType = Literal["doi", "pmid", "isbn", "title-author-year"]


# ── Result Models ────────────────────────────────────────────────────


class DuplicateMatch(BaseModel):
    """One existing record that ``item`` duplicates."""

    type: MatchType
    existing_id: str
    existing_uuid: Optional[str] = None
    details: dict[str, str] = Field(default_factory=dict)


class DuplicateResult(BaseModel):
    is_duplicate: bool
    matches: list[DuplicateMatch]


# ── Public API ───────────────────────────────────────────────────────


def detect_duplicates(
    item: dict,
    existing: Iterable[dict],
    exclude_uuid: str | None = None,
) -> DuplicateResult:
    """Compare ``item`` against every record in ``existing``.

    Each existing record yields at most one match, of the highest-priority
    kind: DOI, then PMID, then ISBN, then title + authors + year.
    """
    matches: list[DuplicateMatch] = []
    for other in existing:
        other_uuid = (other.get("custom") or {}).get("uuid")
        if exclude_uuid is not None and other_uuid == exclude_uuid:
            continue
        match = _check_pair(item, other)
        if match is not None:
            matches.append(match)

    return DuplicateResult(is_duplicate=bool(matches), matches=matches)


def find_duplicate_groups(items: list[dict]) -> list[tuple[str, str, MatchType]]:
    """All ``(earlier key, later key, match type)`` pairs within one library."""
    pairs: list[tuple[str, str, MatchType]] = []
    for i, item in enumerate(items):
        result = detect_duplicates(item, items[:i])
        for match in result.matches:
            pairs.append((match.existing_id, item["id"], match.type))

    logger.info("Duplicate check: %d records, %d duplicate pairs", len(items), len(pairs))
    return pairs


# ── Matching ─────────────────────────────────────────────────────────


def _check_pair(item: dict, other: dict) -> DuplicateMatch | None:
    def found(kind: MatchType, **details: str) -> DuplicateMatch:
        return DuplicateMatch(
            type=kind,
            existing_id=other["id"],
            existing_uuid=(other.get("custom") or {}).get("uuid"),
            details=details,
        )

    # Priority 1-3: identifier exact match after normalization
    for kind, field, normalizer in (
        ("doi", "DOI", normalize_doi),
        ("pmid", "PMID", normalize_pmid),
        ("isbn", "ISBN", normalize_isbn),
    ):
        a, b = item.get(field), other.get(field)
        if not (isinstance(a, str) and isinstance(b, str)):
            continue
        key = normalizer(a)
        if key and key == normalizer(b):
            return found(kind, **{kind: key})

    # Priority 4: title + authors + year, all three required
    title, other_title = item.get("title"), other.get("title")
    authors, other_authors = normalize_authors(item), normalize_authors(other)
    year, other_year = extract_year(item), extract_year(other)
    if not (title and other_title and authors and other_authors and year and other_year):
        return None

    norm_title = normalize_title(title)
    if norm_title == normalize_title(other_title) and authors == other_authors and year == other_year:
        return found(
            "title-author-year",
            normalized_title=norm_title,
            normalized_authors=authors,
            year=year,
        )
    return None


# ── Helpers ──────────────────────────────────────────────────────────


_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)
_SPACE_RE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    t = title.lower()
    t = _PUNCT_RE.sub("", t)
    t = _SPACE_RE.sub(" ", t).strip()
    return t


def normalize_authors(item: dict) -> str:
    """All authors as ``family given-initial``, normalized like titles."""
    names = []
    for author in item.get("author") or []:
        family = author.get("family") or author.get("literal") or ""
        given = author.get("given") or ""
        names.append(f"{family} {given[:1]}".strip())
    return normalize_title(" ".join(names))
