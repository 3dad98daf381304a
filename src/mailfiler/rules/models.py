"""Rule data model.

A rule maps up to three wildcard patterns (sender, recipient, subject) to a
filing folder. Rules are persisted with the camelCase keys the host uses
(`from`, `activeFrom`, ...) so exported rule lists stay interchangeable with
the mail client's own import/export format.

Usage:
    from mailfiler.rules.models import merge_with_defaults

    rule = merge_with_defaults({"from": "*@example.com", "activeFrom": True})
    record = rule.to_record()
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

HeaderField = Literal["sender", "recipient", "subject"]

# Keys every imported rule record must carry
REQUIRED_RECORD_KEYS = ("from", "to", "subject", "folder")

DEFAULT_RULE: Mapping[str, Any] = MappingProxyType(
    {
        "from": "",
        "to": "",
        "subject": "",
        "activeFrom": False,
        "activeTo": False,
        "activeSubject": False,
        "folder": {},
    }
)


class FolderRef(BaseModel):
    """Opaque folder identity supplied by the host.

    Only `path` and `accountId` take part in comparisons. Any extra keys the
    host sends are kept so they survive a save/load cycle.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    path: str
    account_id: str = Field(alias="accountId")
    type: str | None = None
    name: str | None = None

    def same_folder(self, other: FolderRef) -> bool:
        """Return True if both references point at the same folder."""
        return self.path == other.path and self.account_id == other.account_id

    @property
    def label(self) -> str:
        """Display name, falling back to the path."""
        return self.name or self.path

    def to_record(self) -> dict[str, Any]:
        """Serialize with host keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Rule(BaseModel):
    """A filing criterion.

    Each pattern only takes part in matching when its paired `active_*` flag
    is set. `index` is the rule's position in the store at query time; it is
    attached to returned copies and never persisted.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(default="", alias="from")
    to: str = ""
    subject: str = ""
    active_from: bool = Field(default=False, alias="activeFrom")
    active_to: bool = Field(default=False, alias="activeTo")
    active_subject: bool = Field(default=False, alias="activeSubject")
    folder: FolderRef | None = None
    index: int | None = Field(default=None, exclude=True)

    @field_validator("folder", mode="before")
    @classmethod
    def empty_folder_is_unset(cls, v: Any) -> Any:
        """The empty object marks a rule skeleton without a destination."""
        if isinstance(v, Mapping) and not v:
            return None
        return v

    @field_serializer("folder")
    def serialize_folder(self, folder: FolderRef | None) -> dict[str, Any]:
        return folder.to_record() if folder is not None else {}

    @property
    def is_actionable(self) -> bool:
        """True when the rule has a destination folder."""
        return self.folder is not None

    def active_patterns(self) -> list[tuple[HeaderField, str]]:
        """Return (header, pattern) pairs for every enabled field, in evaluation order."""
        patterns: list[tuple[HeaderField, str]] = []
        if self.active_from:
            patterns.append(("sender", self.from_))
        if self.active_to:
            patterns.append(("recipient", self.to))
        if self.active_subject:
            patterns.append(("subject", self.subject))
        return patterns

    def with_index(self, index: int) -> Rule:
        """Return a copy tagged with its store position."""
        return self.model_copy(update={"index": index}, deep=True)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted/exported record shape."""
        return self.model_dump(by_alias=True)


def merge_with_defaults(partial: Mapping[str, Any] | Rule) -> Rule:
    """Build a rule from a partial one, filling gaps from DEFAULT_RULE.

    This is a full overwrite: anything the caller leaves out falls back to
    the template default, never to a previous version of the rule. Keys may
    be given as host keys (`activeFrom`) or field names (`active_from`); keys
    outside the template are ignored and None counts as not given.

    Raises:
        pydantic.ValidationError: If a given value has the wrong type
    """
    if isinstance(partial, Rule):
        partial = partial.to_record()

    merged = copy.deepcopy(dict(DEFAULT_RULE))
    for name, field in Rule.model_fields.items():
        alias = field.alias or name
        if alias not in merged:
            continue
        if partial.get(alias) is not None:
            merged[alias] = partial[alias]
        elif partial.get(name) is not None:
            merged[alias] = partial[name]

    return Rule.model_validate(merged)


def missing_record_keys(record: Any) -> list[str]:
    """Return the required keys absent from an imported record."""
    if not isinstance(record, Mapping):
        return list(REQUIRED_RECORD_KEYS)
    return [key for key in REQUIRED_RECORD_KEYS if key not in record]
