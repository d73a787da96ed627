"""Pydantic schema for CSL-JSON library items.

Every model is open (``extra="allow"``): fields written by other tools are
accepted and never stripped. The models are only used to validate; the store
keeps the original mappings so key order and unknown fields survive untouched.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _CslModel(BaseModel):
    model_config = ConfigDict(extra="allow")


# ── Names & Dates ────────────────────────────────────────────────────


class CslName(_CslModel):
    """A person or an institution (``literal``)."""

    family: Optional[str] = None
    given: Optional[str] = None
    literal: Optional[str] = None
    dropping_particle: Optional[str] = Field(default=None, alias="dropping-particle")
    non_dropping_particle: Optional[str] = Field(
        default=None, alias="non-dropping-particle"
    )
    suffix: Optional[str] = None


class CslDate(_CslModel):
    """CSL date variable; ``date-parts`` is ``[[year, month, day], ...]``."""

    date_parts: Optional[list[list[Union[int, str]]]] = Field(
        default=None, alias="date-parts"
    )
    raw: Optional[str] = None
    season: Optional[Union[str, int]] = None
    circa: Optional[Union[bool, int, str]] = None
    literal: Optional[str] = None


# ── Custom Metadata ──────────────────────────────────────────────────


class AttachmentFile(_CslModel):
    filename: str
    role: str
    label: Optional[str] = None


class Attachments(_CslModel):
    directory: str
    files: list[AttachmentFile]


class CheckFinding(_CslModel):
    type: str
    message: str
    details: Optional[dict[str, Any]] = None


class CheckData(_CslModel):
    checked_at: str
    status: str
    findings: list[CheckFinding]


class CslCustom(_CslModel):
    """Engine-owned metadata.

    ``uuid``, ``created_at`` and ``timestamp`` are optional here because other
    software writes ``custom`` without them; they are filled in after
    validation.
    """

    uuid: Optional[str] = None
    created_at: Optional[str] = None
    timestamp: Optional[str] = None
    additional_urls: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    arxiv_id: Optional[str] = None
    attachments: Optional[Attachments] = None
    check: Optional[CheckData] = None


# ── Item ─────────────────────────────────────────────────────────────


class CslItem(_CslModel):
    """A single bibliographic record."""

    id: str
    type: str
    title: Optional[str] = None
    author: Optional[list[CslName]] = None
    editor: Optional[list[CslName]] = None
    issued: Optional[CslDate] = None
    accessed: Optional[CslDate] = None
    container_title: Optional[str] = Field(default=None, alias="container-title")
    container_title_short: Optional[str] = Field(
        default=None, alias="container-title-short"
    )
    volume: Optional[Union[str, int]] = None
    issue: Optional[Union[str, int]] = None
    page: Optional[Union[str, int]] = None
    DOI: Optional[str] = None
    PMID: Optional[str] = None
    PMCID: Optional[str] = None
    ISBN: Optional[str] = None
    ISSN: Optional[str] = None
    URL: Optional[str] = None
    abstract: Optional[str] = None
    publisher: Optional[str] = None
    publisher_place: Optional[str] = Field(default=None, alias="publisher-place")
    note: Optional[str] = None
    keyword: Optional[list[str]] = None
    custom: Optional[CslCustom] = None
