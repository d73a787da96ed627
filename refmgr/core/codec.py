"""Parse and serialize CSL-JSON library files."""

import json
import logging
from pathlib import Path

import pydantic

from refmgr.core.errors import FileIOError, ParseError, ValidationError
from refmgr.core.identity import ensure_custom_metadata
from refmgr.core.models import CslItem
from refmgr.utils.files import write_file_atomic

logger = logging.getLogger(__name__)


# ── Validation ───────────────────────────────────────────────────────


def validate_record(item: object, path: str = "") -> dict:
    """Validate one item against the CSL-JSON schema and return it unchanged."""
    if not isinstance(item, dict):
        raise ValidationError(
            "Invalid CSL-JSON structure",
            [f"{path or '<item>'}: Input should be an object"],
        )
    try:
        CslItem.model_validate(item)
    except pydantic.ValidationError as exc:
        raise ValidationError("Invalid CSL-JSON structure", _format_errors(exc, path)) from exc

    problem = _unwritable(item)
    if problem:
        raise ValidationError("Invalid CSL-JSON structure", [f"{path or '<item>'}: {problem}"])
    return item


def validate_records(data: object) -> list[dict]:
    """Validate a whole library (a JSON array of items).

    Collects the diagnostics of every invalid item before raising.
    """
    if not isinstance(data, list):
        raise ValidationError(
            "Invalid CSL-JSON structure",
            [f"<root>: Input should be an array, got {type(data).__name__}"],
        )

    errors: list[str] = []
    for i, item in enumerate(data):
        try:
            validate_record(item, path=f"[{i}]")
        except ValidationError as exc:
            errors.extend(exc.errors)
    if errors:
        raise ValidationError("Invalid CSL-JSON structure", errors)
    return data


def _format_errors(exc: pydantic.ValidationError, prefix: str) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        where = f"{prefix}.{loc}" if prefix and loc else (prefix or loc or "<item>")
        messages.append(f"{where}: {err['msg']}")
    return messages


def _unwritable(value: object) -> str | None:
    """Why ``value`` cannot be written back as strict UTF-8 JSON, or None."""
    try:
        json.dumps(value, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except UnicodeEncodeError:
        return "Text cannot be encoded as UTF-8 (unpaired surrogate)"
    except (TypeError, ValueError) as exc:
        return f"Value cannot be written as JSON ({exc})"
    return None


# ── Parsing ──────────────────────────────────────────────────────────


def parse_keyword(keyword: object) -> list[str] | None:
    """Split a legacy ``"a; b; c"`` keyword string into a list.

    Returns None when nothing is left, meaning "no keywords".
    """
    if not isinstance(keyword, str):
        return None
    keywords = [k.strip() for k in keyword.split(";") if k.strip()]
    return keywords or None


def _convert_keyword(item: object) -> object:
    if not isinstance(item, dict) or not isinstance(item.get("keyword"), str):
        return item
    converted = dict(item)
    keywords = parse_keyword(item["keyword"])
    if keywords is None:
        del converted["keyword"]
    else:
        converted["keyword"] = keywords
    return converted


def _reject_constant(name: str) -> None:
    raise ParseError(f"Failed to parse JSON: {name} is not a valid JSON value")


def parse_records(content: bytes | str) -> list[dict]:
    """Parse library file content into validated, identity-normalized records.

    Empty content is an empty library. Raises ParseError for malformed JSON
    and ValidationError for JSON of the wrong shape.
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"Failed to decode library as UTF-8: {exc}") from exc

    if not content.strip():
        return []

    try:
        raw = json.loads(content, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Failed to parse JSON: {exc}") from exc
    problem = _unwritable(raw)
    if problem:
        # Lone surrogate escapes and out-of-range numbers such as 1e999
        raise ParseError(f"Failed to parse JSON: {problem}")

    if isinstance(raw, list):
        raw = [_convert_keyword(item) for item in raw]

    records = validate_records(raw)
    return [{**item, "custom": ensure_custom_metadata(item.get("custom"))} for item in records]


# ── Serialization ────────────────────────────────────────────────────


def serialize_records(records: list[dict]) -> str:
    """Formatted JSON (2-space indent), key order as given."""
    return json.dumps(records, indent=2, ensure_ascii=False, allow_nan=False)


# ── File I/O ─────────────────────────────────────────────────────────


def read_records(path: str | Path) -> list[dict]:
    path = Path(path)
    try:
        content = path.read_bytes()
    except OSError as exc:
        raise FileIOError(path, f"Failed to read library ({exc.strerror or exc})") from exc
    return parse_records(content)


def write_records(path: str | Path, records: list[dict]) -> str:
    """Atomically write ``records`` to ``path``; returns the written text."""
    path = Path(path)
    content = serialize_records(records)
    try:
        write_file_atomic(path, content)
    except OSError as exc:
        raise FileIOError(path, f"Failed to write library ({exc.strerror or exc})") from exc
    logger.debug("Wrote %d records to %s", len(records), path)
    return content
