"""File-backed reference library: in-memory records plus lookup indices.

One JSON file holds the whole library. The in-memory state is an
insertion-ordered ``uuid -> Reference`` mapping (the only owner of the
references) and four secondary indices that map citation key, DOI, PMID and
ISBN to UUIDs. Every public operation either applies completely or leaves the
state untouched.

Self-writes are told apart from external edits by the SHA-256 of the file:
``save()`` records the hash of what it wrote, ``reload()`` only re-reads when
the file no longer matches it.
"""

import copy
import logging
import re
from collections.abc import Iterable, Iterator
from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from refmgr.core.codec import parse_records, validate_record, write_records
from refmgr.core.errors import FileIOError, IdCollisionError, ValidationError
from refmgr.core.identifier import resolve_collision
from refmgr.core.identity import generate_timestamp
from refmgr.core.reference import Reference
from refmgr.core.settings import BackupSettings
from refmgr.utils.backup import cleanup_old_backups, create_backup
from refmgr.utils.files import compute_file_hash, compute_hash, write_file_atomic

logger = logging.getLogger(__name__)

IdType = Literal["id", "uuid", "doi", "pmid", "isbn"]
OnIdCollision = Literal["fail", "suffix"]

ID_TYPES: tuple[str, ...] = ("id", "uuid", "doi", "pmid", "isbn")
ON_ID_COLLISION: tuple[str, ...] = ("fail", "suffix")

# Engine-owned fields in ``custom``: never taken from updates, ignored by
# change detection.
PROTECTED_CUSTOM_FIELDS = ("uuid", "created_at", "timestamp")


# ── Index Key Normalization ──────────────────────────────────────────


_DOI_PREFIX_RE = re.compile(r"^(?:https?://(?:dx\.)?doi\.org/|doi:)", re.IGNORECASE)
_ISBN_SEP_RE = re.compile(r"[\s-]+")


def normalize_doi(doi: str) -> str:
    """``https://doi.org/10.1000/ABC`` -> ``10.1000/abc``."""
    return _DOI_PREFIX_RE.sub("", doi.strip()).strip().lower()


def normalize_pmid(pmid: str) -> str:
    return pmid.strip()


def normalize_isbn(isbn: str) -> str:
    """``978-0-306-40615-7`` -> ``9780306406157``."""
    return _ISBN_SEP_RE.sub("", isbn).upper()


# Index name -> key normalizer; each name is also the Reference accessor
_NORMALIZERS = {
    "doi": normalize_doi,
    "pmid": normalize_pmid,
    "isbn": normalize_isbn,
}


def _secondary_keys(ref: Reference) -> Iterator[tuple[str, str]]:
    for name, normalizer in _NORMALIZERS.items():
        value = getattr(ref, name)
        if isinstance(value, str):
            key = normalizer(value)
            if key:
                yield name, key


# ── Result Models ────────────────────────────────────────────────────


class RemoveResult(BaseModel):
    """Outcome of ``Library.remove``; not found is ``removed=False``."""

    removed: bool
    item: Optional[dict] = None


class UpdateResult(BaseModel):
    """Outcome of ``Library.update``."""

    status: Literal["updated", "unchanged", "not_found", "id_collision"]
    item: Optional[dict] = None
    id_changed: bool = Field(
        default=False,
        description="True when the requested key was suffixed to resolve a collision",
    )
    new_id: Optional[str] = None
    requested_id: Optional[str] = None
    conflicting_uuid: Optional[str] = None

    @property
    def updated(self) -> bool:
        return self.status == "updated"

    @property
    def id_collision(self) -> bool:
        return self.status == "id_collision"

    def raise_for_collision(self) -> "UpdateResult":
        """Raise IdCollisionError for a collision result, else return self."""
        if self.id_collision:
            raise IdCollisionError(self.requested_id or "", self.conflicting_uuid)
        return self


# ── Index State ──────────────────────────────────────────────────────


class _LibraryState:
    """References in insertion order plus the secondary indices."""

    __slots__ = ("references", "id_index", "secondary")

    def __init__(self) -> None:
        self.references: dict[str, Reference] = {}
        self.id_index: dict[str, str] = {}
        self.secondary: dict[str, dict[str, list[str]]] = {
            name: {} for name in _NORMALIZERS
        }

    @classmethod
    def build(cls, items: Iterable[dict]) -> "_LibraryState":
        """Index ``items``; duplicate citation keys or UUIDs are a ValidationError."""
        state = cls()
        errors: list[str] = []
        for i, item in enumerate(items):
            ref = Reference(item)
            if ref.uuid in state.references:
                errors.append(f"[{i}].custom.uuid: Duplicate UUID {ref.uuid}")
                continue
            if ref.id in state.id_index:
                errors.append(f"[{i}].id: Duplicate citation key {ref.id!r}")
                continue
            state.references[ref.uuid] = ref
            state.index(ref)

        if errors:
            for e in errors:
                logger.error("Library integrity: %s", e)
            raise ValidationError("Library contains conflicting identifiers", errors)
        return state

    def index(self, ref: Reference) -> None:
        self.id_index[ref.id] = ref.uuid
        for name, key in _secondary_keys(ref):
            self.secondary[name].setdefault(key, []).append(ref.uuid)

    def unindex(self, ref: Reference) -> None:
        if self.id_index.get(ref.id) == ref.uuid:
            del self.id_index[ref.id]
        for name, key in _secondary_keys(ref):
            holders = self.secondary[name].get(key, [])
            if ref.uuid in holders:
                holders.remove(ref.uuid)
            if not holders:
                self.secondary[name].pop(key, None)


# ── Library ──────────────────────────────────────────────────────────


class Library:
    """CSL-JSON reference library bound to one backing file."""

    def __init__(
        self,
        file_path: str | Path,
        items: Iterable[dict] = (),
        backup: Optional[BackupSettings] = None,
    ):
        self._file_path = Path(file_path)
        self._backup = backup
        self._current_hash: Optional[str] = None
        self._state = _LibraryState.build(items)

    # ── Persistence ──────────────────────────────────────────

    @classmethod
    def load(cls, file_path: str | Path, backup: Optional[BackupSettings] = None) -> "Library":
        """Load a library file, creating an empty one (and its directories) if absent."""
        path = Path(file_path)
        if not path.exists():
            try:
                write_file_atomic(path, "[]")
            except OSError as exc:
                raise FileIOError(path, f"Failed to create library ({exc.strerror or exc})") from exc
            logger.info("Created empty library at %s", path)

        content = _read_bytes(path)
        library = cls(path, parse_records(content), backup=backup)
        library._current_hash = compute_hash(content)

        logger.info("Loaded %d references from %s", len(library), path)
        return library

    def save(self) -> None:
        """Write all records and remember the hash of what was written."""
        if self._backup is not None and self._backup.enabled:
            self._backup_current_file()

        content = write_records(self._file_path, self.get_all())
        self._current_hash = compute_hash(content)
        logger.info("Saved %d references to %s", len(self), self._file_path)

    def reload(self) -> bool:
        """Re-read the file if someone else changed it.

        Returns False when the file still matches the last load/save (our
        own write), True when the library was rebuilt from disk.
        """
        try:
            new_hash = compute_file_hash(self._file_path)
        except OSError as exc:
            raise FileIOError(self._file_path, f"Failed to hash library ({exc.strerror or exc})") from exc

        if new_hash == self._current_hash:
            logger.debug("Library file unchanged (self-write), skipping reload")
            return False

        content = _read_bytes(self._file_path)
        state = _LibraryState.build(parse_records(content))

        self._state = state
        self._current_hash = compute_hash(content)
        logger.info(
            "Library file changed externally, reloaded %d references from %s",
            len(self),
            self._file_path,
        )
        return True

    def _backup_current_file(self) -> None:
        path = self._file_path
        if not path.exists() or path.stat().st_size == 0:
            return
        try:
            create_backup(path, path.stem, root=self._backup.root())
            cleanup_old_backups(
                path.stem,
                max_generations=self._backup.max_generations,
                max_age=timedelta(days=self._backup.max_age_days),
                root=self._backup.root(),
            )
        except OSError as exc:
            raise FileIOError(path, f"Failed to back up library ({exc.strerror or exc})") from exc

    # ── Queries ──────────────────────────────────────────────

    def find(self, identifier: str, id_type: IdType = "id") -> Optional[dict]:
        """Record matching ``identifier`` in the ``id_type`` index, or None."""
        ref = self.find_reference(identifier, id_type)
        return ref.item if ref is not None else None

    def find_reference(self, identifier: str, id_type: IdType = "id") -> Optional[Reference]:
        _check_choice("id_type", id_type, ID_TYPES)
        state = self._state

        if id_type == "uuid":
            return state.references.get(identifier)
        if id_type == "id":
            uuid = state.id_index.get(identifier)
        else:
            holders = state.secondary[id_type].get(_NORMALIZERS[id_type](identifier))
            uuid = holders[0] if holders else None
        return state.references.get(uuid) if uuid is not None else None

    def get_all(self) -> list[dict]:
        return [ref.item for ref in self._state.references.values()]

    def get_file_path(self) -> Path:
        return self._file_path

    def get_current_hash(self) -> Optional[str]:
        """Hash of the file as last loaded or saved; None before either."""
        return self._current_hash

    def __len__(self) -> int:
        return len(self._state.references)

    def __iter__(self) -> Iterator[Reference]:
        return iter(list(self._state.references.values()))

    def __contains__(self, citation_key: object) -> bool:
        return citation_key in self._state.id_index

    # ── Mutations ────────────────────────────────────────────

    def add(self, item: dict) -> dict:
        """Add a record, generating its citation key and identity if missing.

        Returns the stored record. An explicit key that is already taken
        raises IdCollisionError.
        """
        # The key may still be missing at this point; it is generated below
        validate_record({**item, "id": item.get("id") or ""} if isinstance(item, dict) else item)
        item = copy.deepcopy(item)
        state = self._state

        requested = item.get("id")
        if isinstance(requested, str) and requested.strip() and requested in state.id_index:
            raise IdCollisionError(requested, state.id_index[requested])

        ref = Reference.create(item, existing_ids=state.id_index.keys())
        validate_record(ref.item)
        if ref.uuid in state.references:
            raise ValueError(f"A reference with UUID {ref.uuid} already exists")

        state.references[ref.uuid] = ref
        state.index(ref)
        logger.debug("Added reference %s (%s)", ref.id, ref.uuid)
        return ref.item

    def remove(self, identifier: str, id_type: IdType = "id") -> RemoveResult:
        ref = self.find_reference(identifier, id_type)
        if ref is None:
            return RemoveResult(removed=False)

        del self._state.references[ref.uuid]
        self._state.unindex(ref)
        logger.debug("Removed reference %s (%s)", ref.id, ref.uuid)
        return RemoveResult(removed=True, item=ref.item)

    def update(
        self,
        identifier: str,
        updates: dict,
        id_type: IdType = "id",
        on_id_collision: OnIdCollision = "fail",
    ) -> UpdateResult:
        """Apply partial ``updates`` to one record, keeping its list position.

        A ``None`` value removes a field; ``custom`` is merged key by key.
        ``uuid`` and ``created_at`` never change; ``timestamp`` is refreshed
        only if something else actually changed.
        """
        _check_choice("on_id_collision", on_id_collision, ON_ID_COLLISION)
        ref = self.find_reference(identifier, id_type)
        if ref is None:
            return UpdateResult(status="not_found")

        updates = copy.deepcopy(updates)
        state = self._state
        current_id = ref.id
        requested = updates.get("id", current_id)
        if not isinstance(requested, str) or not requested.strip():
            raise ValueError("Citation key must be a non-empty string")

        new_id = requested
        id_changed = False
        if requested != current_id and requested in state.id_index:
            if on_id_collision == "fail":
                logger.debug("Update of %s rejected: key %s is taken", current_id, requested)
                return UpdateResult(
                    status="id_collision",
                    requested_id=requested,
                    conflicting_uuid=state.id_index[requested],
                )
            new_id = resolve_collision(requested, (k for k in state.id_index if k != current_id))
            id_changed = True

        current = ref.item
        merged = _merge(current, updates, new_id)
        if _without_protected(merged) == _without_protected(current):
            return UpdateResult(status="unchanged", item=current)

        merged["custom"]["timestamp"] = generate_timestamp()
        validate_record(merged)
        new_ref = Reference(merged)

        state.unindex(ref)
        state.references[ref.uuid] = new_ref
        state.index(new_ref)
        logger.debug("Updated reference %s (%s)", new_ref.id, new_ref.uuid)

        return UpdateResult(
            status="updated",
            item=new_ref.item,
            id_changed=id_changed,
            new_id=new_id if id_changed else None,
        )


# ── Helpers ──────────────────────────────────────────────────────────


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise FileIOError(path, f"Failed to read library ({exc.strerror or exc})") from exc


def _check_choice(name: str, value: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise ValueError(f"Invalid {name}: {value!r} (allowed: {', '.join(allowed)})")


def _merge(existing: dict, updates: dict, new_id: str) -> dict:
    merged = dict(existing)
    for key, value in updates.items():
        if key in ("id", "custom"):
            continue
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    merged["id"] = new_id

    custom = dict(existing["custom"])
    custom_updates = updates.get("custom")
    if custom_updates is not None and not isinstance(custom_updates, dict):
        raise ValidationError("Invalid CSL-JSON structure", ["custom: Input should be an object"])
    for key, value in (custom_updates or {}).items():
        if key in PROTECTED_CUSTOM_FIELDS:
            continue
        if value is None:
            custom.pop(key, None)
        else:
            custom[key] = value
    merged["custom"] = custom
    return merged


def _without_protected(item: dict) -> dict:
    custom = {k: v for k, v in item["custom"].items() if k not in PROTECTED_CUSTOM_FIELDS}
    return {**item, "custom": custom}
