"""Citation-key generation with deterministic collision suffixes.

Keys look like ``smith-2023``. When author or year is missing a title slug is
appended (``anon-2020-statistical_methods``). Collisions get a bijective
base-26 suffix: ``smith-2023a`` ... ``smith-2023z``, ``smith-2023aa`` ...
"""

import re
from collections.abc import Iterable
from string import ascii_lowercase

_MAX_PART_LENGTH = 32

_SEPARATOR_RE = re.compile(r"[\W_]*\s[\W_]*")
_NON_KEY_RE = re.compile(r"[^a-z0-9_]")


# ── Normalization ────────────────────────────────────────────────────


def normalize_text(text: str) -> str:
    """Lowercase, join words with a single ``_``, drop everything outside ``[a-z0-9_]``.

    A run of whitespace and the punctuation around it is one separator
    (``Smith - Jones`` -> ``smith_jones``); punctuation inside a word is
    dropped (``O'Brien`` -> ``obrien``). Non-ASCII letters are dropped rather
    than transliterated (``Müller`` -> ``mller``).
    """
    t = _SEPARATOR_RE.sub("_", text.lower().strip())
    return _NON_KEY_RE.sub("", t).strip("_")


def normalize_author_name(name: str) -> str:
    return normalize_text(name)[:_MAX_PART_LENGTH].rstrip("_")


def normalize_title_slug(title: str) -> str:
    return normalize_text(title)[:_MAX_PART_LENGTH].rstrip("_")


# ── Key Parts ────────────────────────────────────────────────────────


def extract_author_name(item: dict) -> str:
    """Normalized family name of the first author, or its literal name."""
    authors = item.get("author") or []
    if not authors or not isinstance(authors[0], dict):
        return ""

    first = authors[0]
    if first.get("family"):
        return normalize_author_name(first["family"])
    if first.get("literal"):
        return normalize_author_name(first["literal"])
    return ""


def extract_year(item: dict) -> str:
    """First element of the first ``date-parts`` entry, as a string."""
    issued = item.get("issued") or {}
    date_parts = issued.get("date-parts") or []
    if not date_parts or not date_parts[0]:
        return ""
    year = date_parts[0][0]
    return str(year) if year else ""


def _title_part(has_author: bool, has_year: bool, slug: str) -> str:
    if has_author and has_year:
        return ""
    if slug:
        return f"-{slug}"
    if not has_author and not has_year:
        return "-untitled"
    return ""


def generate_id(item: dict) -> str:
    """Build the base citation key for ``item`` (no collision handling)."""
    author = extract_author_name(item)
    year = extract_year(item)
    slug = normalize_title_slug(item["title"]) if item.get("title") else ""

    return f"{author or 'anon'}-{year or 'nd'}{_title_part(bool(author), bool(year), slug)}"


# ── Collision Handling ───────────────────────────────────────────────


def collision_suffix(index: int) -> str:
    """Bijective base-26 numeral over ``a-z``: 1 -> a, 26 -> z, 27 -> aa.

    Index 0 means "no suffix".
    """
    if index < 0:
        raise ValueError(f"Suffix index must be >= 0, got {index}")

    suffix = ""
    n = index
    while n > 0:
        n, rem = divmod(n - 1, 26)
        suffix = ascii_lowercase[rem] + suffix
    return suffix


def resolve_collision(base_id: str, existing_ids: Iterable[str]) -> str:
    """Return ``base_id`` or the first ``base_id + suffix`` not in ``existing_ids``.

    Comparison is case-insensitive, so ``Smith-2023`` blocks ``smith-2023``.
    """
    taken = {i.lower() for i in existing_ids}

    candidate = base_id
    index = 0
    while candidate.lower() in taken:
        index += 1
        candidate = f"{base_id}{collision_suffix(index)}"
    return candidate


def generate_id_with_collision_check(item: dict, existing_ids: Iterable[str]) -> str:
    return resolve_collision(generate_id(item), existing_ids)
