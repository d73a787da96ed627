"""Reference entity: one CSL-JSON record with a guaranteed stable UUID."""

import copy
from collections.abc import Iterable
from typing import Optional

from refmgr.core.identifier import generate_id_with_collision_check
from refmgr.core.identity import ensure_custom_metadata, extract_uuid


class Reference:
    """Wraps a CSL-JSON item.

    Construction normalizes ``custom`` (UUID, created_at, timestamp), so a
    Reference never exists without a valid UUID v4. The wrapped item is a
    private deep copy; ``item`` hands out copies, so callers cannot change it.
    """

    __slots__ = ("_item", "_uuid")

    def __init__(self, item: dict):
        custom = ensure_custom_metadata(item.get("custom"))
        self._item = copy.deepcopy({**item, "custom": custom})

        uuid = extract_uuid(custom)
        if uuid is None:
            raise RuntimeError("Failed to extract UUID after normalizing custom metadata")
        self._uuid = uuid

    @classmethod
    def create(cls, item: dict, existing_ids: Optional[Iterable[str]] = None) -> "Reference":
        """Build a Reference, generating a citation key if ``id`` is missing or blank."""
        current = item.get("id")
        if not isinstance(current, str) or not current.strip():
            new_id = generate_id_with_collision_check(item, existing_ids or ())
            item = {**item, "id": new_id}
        return cls(item)

    def __repr__(self) -> str:
        return f"Reference(id={self.id!r}, uuid={self._uuid!r})"

    # ── Identity ─────────────────────────────────────────────

    @property
    def item(self) -> dict:
        return copy.deepcopy(self._item)

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def id(self) -> str:
        """Citation key (Pandoc / BibTeX key)."""
        return self._item["id"]

    @property
    def type(self) -> str:
        return self._item["type"]

    @property
    def created_at(self) -> str:
        return self._item["custom"]["created_at"]

    @property
    def timestamp(self) -> str:
        """Last modification time."""
        return self._item["custom"]["timestamp"]

    # ── Bibliographic Fields ─────────────────────────────────

    @property
    def title(self) -> Optional[str]:
        return self._item.get("title")

    @property
    def authors(self) -> Optional[list[dict]]:
        return self._item.get("author")

    @property
    def year(self) -> Optional[int]:
        """Year from ``issued.date-parts[0][0]``."""
        date_parts = (self._item.get("issued") or {}).get("date-parts") or []
        if not date_parts or not date_parts[0]:
            return None
        return date_parts[0][0]

    @property
    def doi(self) -> Optional[str]:
        return self._item.get("DOI")

    @property
    def pmid(self) -> Optional[str]:
        return self._item.get("PMID")

    @property
    def pmcid(self) -> Optional[str]:
        return self._item.get("PMCID")

    @property
    def isbn(self) -> Optional[str]:
        return self._item.get("ISBN")

    @property
    def url(self) -> Optional[str]:
        return self._item.get("URL")

    @property
    def keywords(self) -> Optional[list[str]]:
        return self._item.get("keyword")

    @property
    def tags(self) -> Optional[list[str]]:
        return self._item["custom"].get("tags")

    @property
    def additional_urls(self) -> Optional[list[str]]:
        return self._item["custom"].get("additional_urls")
