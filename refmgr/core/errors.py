"""Error taxonomy for the reference store."""

from pathlib import Path


class LibraryError(Exception):
    """Base class for every error raised by the reference store."""


class ParseError(LibraryError):
    """Library content is not well-formed JSON."""


class ValidationError(LibraryError):
    """Well-formed JSON with the wrong shape."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or []
        if self.errors:
            message = f"{message}:\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(message)


class IdCollisionError(LibraryError):
    """A citation key is already used by a different record."""

    def __init__(self, requested_id: str, existing_uuid: str | None = None):
        self.requested_id = requested_id
        self.existing_uuid = existing_uuid
        super().__init__(f"Citation key already in use: {requested_id}")


class FileIOError(LibraryError):
    """Reading, writing or hashing the library file failed."""

    def __init__(self, path: str | Path, message: str):
        self.path = Path(path)
        super().__init__(f"{message}: {self.path}")
