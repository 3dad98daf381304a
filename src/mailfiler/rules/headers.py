"""Message headers and the values rules are matched against.

Hosts hand over header fields in loose shapes: a plain string, a list of
strings (several recipients) or nothing at all. Those shapes are captured
once, in header_value(), as a small tagged variant (Absent, Single,
Multiple); everything downstream works on the variant.

Sender and recipient values are free text such as
"Alice <alice@example.com>, Bob <bob@example.com>", so they are reduced to
a bare address by parse_email() before matching. When several addresses are
present the last one wins.

Usage:
    from mailfiler.rules.headers import Message, extract_header

    message = Message.from_dict(host_message)
    sender = extract_header(message, "sender")
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import regex

from mailfiler.core.errors import MatchEvaluationError
from mailfiler.core.logging import get_logger
from mailfiler.rules import matcher
from mailfiler.rules.models import FolderRef, HeaderField

logger = get_logger(__name__)

# local@domain, with quoted local parts, bracketed IPv4 or dotted-label domains
EMAIL_PATTERN = regex.compile(
    r"""(?:[^<>()\[\]\\.,;:\s@"]+(?:\.[^<>()\[\]\\.,;:\s@"]+)*|".+")"""
    r"""@(?:\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\]|(?:[a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,})"""
)

# Host field names accepted in place of the canonical ones
FIELD_ALIASES: dict[str, HeaderField] = {
    "sender": "sender",
    "author": "sender",
    "from": "sender",
    "recipient": "recipient",
    "recipients": "recipient",
    "to": "recipient",
    "subject": "subject",
}

ADDRESS_FIELDS: frozenset[HeaderField] = frozenset({"sender", "recipient"})


@dataclass(frozen=True, slots=True)
class Absent:
    """The header is missing."""

    def first(self) -> str | None:
        return None


@dataclass(frozen=True, slots=True)
class Single:
    """The header holds one string."""

    value: str

    def first(self) -> str | None:
        return self.value


@dataclass(frozen=True, slots=True)
class Multiple:
    """The header holds several values (e.g. one per recipient)."""

    values: tuple[Any, ...]

    def first(self) -> str | None:
        if not self.values:
            return None
        value = self.values[0]
        return value if isinstance(value, str) else None


HeaderValue = Absent | Single | Multiple

ABSENT = Absent()


def header_value(raw: Any) -> HeaderValue:
    """Normalize a raw host header into a HeaderValue.

    Raises:
        MatchEvaluationError: If raw is neither missing, a string nor a sequence
    """
    if raw is None:
        return ABSENT
    if isinstance(raw, HeaderValue):
        return raw
    if isinstance(raw, str):
        return Single(raw)
    if isinstance(raw, Sequence) and not isinstance(raw, (bytes, bytearray)):
        return Multiple(tuple(raw))
    raise MatchEvaluationError(
        f"Unsupported header value of type {type(raw).__name__}: "
        "expected a string or a list of strings"
    )


@dataclass(frozen=True)
class Message:
    """The header fields and location of one message, as supplied by the host."""

    id: Any = None
    subject: HeaderValue = ABSENT
    author: HeaderValue = ABSENT
    recipients: HeaderValue = ABSENT
    folder: FolderRef | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        """Build a Message from the host's plain mapping.

        Accepts `author` or `from` for the sender and `recipients` or `to`
        for the recipients.

        Raises:
            MatchEvaluationError: If a header or the folder has an unexpected shape
        """
        if not isinstance(data, Mapping):
            raise MatchEvaluationError(
                f"Message must be a mapping, got {type(data).__name__}"
            )

        author = data.get("author", data.get("from"))
        recipients = data.get("recipients", data.get("to"))
        known = {"id", "subject", "author", "from", "recipients", "to", "folder"}

        return cls(
            id=data.get("id"),
            subject=header_value(data.get("subject")),
            author=header_value(author),
            recipients=header_value(recipients),
            folder=_folder_ref(data.get("folder")),
            extra={key: value for key, value in data.items() if key not in known},
        )

    def header(self, field_name: str) -> HeaderValue:
        """Return the HeaderValue for a canonical or host field name."""
        canonical = _canonical_field(field_name)
        if canonical == "sender":
            return self.author
        if canonical == "recipient":
            return self.recipients
        return self.subject

    @property
    def folder_type(self) -> str | None:
        return self.folder.type if self.folder is not None else None


def _folder_ref(raw: Any) -> FolderRef | None:
    if raw is None or isinstance(raw, FolderRef):
        return raw
    if isinstance(raw, Mapping):
        if not raw:
            return None
        try:
            return FolderRef.model_validate(raw)
        except ValueError as e:
            raise MatchEvaluationError(f"Invalid message folder: {e}") from e
    raise MatchEvaluationError(
        f"Message folder must be a mapping, got {type(raw).__name__}"
    )


def _canonical_field(field_name: str) -> HeaderField:
    try:
        return FIELD_ALIASES[field_name]
    except KeyError:
        raise ValueError(
            f"Unknown header field '{field_name}'. "
            f"Use one of: {', '.join(sorted(FIELD_ALIASES))}"
        ) from None


def as_message(message: Message | Mapping[str, Any]) -> Message:
    """Accept either a Message or the host's plain mapping."""
    if isinstance(message, Message):
        return message
    return Message.from_dict(message)


def try_message(message: Message | Mapping[str, Any]) -> Message | None:
    """Like as_message(), but logs a malformed message and returns None."""
    try:
        return as_message(message)
    except MatchEvaluationError as e:
        logger.warning("Ignoring malformed message", error=str(e))
        return None


def parse_email(text: str) -> str:
    """Extract the bare address from free-form address text.

    Args:
        text: e.g. "Alice <alice@example.com>"

    Returns:
        The last address found, or "" if there is none
    """
    if not isinstance(text, str) or not text:
        return ""

    try:
        found = [m.group(0) for m in EMAIL_PATTERN.finditer(text, timeout=matcher.get_timeout())]
    except TimeoutError:
        logger.warning("Address extraction timed out", text_length=len(text))
        return ""

    if not found:
        return ""
    return found[-1]


def header_present(message: Message | Mapping[str, Any], field_name: str) -> bool:
    """Return True if the header holds a string to match against."""
    return as_message(message).header(field_name).first() is not None


def extract_header(message: Message | Mapping[str, Any], field_name: str) -> str:
    """Derive the comparable string for a header field.

    Multi-valued headers contribute their first value; missing headers yield
    "". Sender and recipient values are reduced to a bare address, the
    subject is used verbatim.
    """
    message = as_message(message)
    canonical = _canonical_field(field_name)
    value = message.header(canonical).first() or ""

    if canonical in ADDRESS_FIELDS:
        return parse_email(value)
    return value
